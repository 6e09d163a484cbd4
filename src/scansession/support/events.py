import threading
from queue import Empty, Queue


class EventSource(object):
    """
    A list of handlers that are all called when the source fires.

    Handlers may be added or removed from any thread. Firing calls the handlers on the
    firing thread, in the order they were added.
    """

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        for e in events:
            self._fire(e)

    def _fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)


class QueuedEventSource(EventSource):
    """
    fire() posts the event to a queue rather than calling the handlers. The queued events are
    delivered when a thread calls publish(), on that thread.
    """
    def __init__(self):
        super().__init__()
        self.event_queue = Queue()

    def fire(self, *args, **kwargs):
        self.event_queue.put((args, kwargs))

    def fire_all(self, events):
        for e in events:
            self.fire(e)

    def publish(self):
        """ publishes any queued events on the calling thread.
        :return: the number of events published
        """
        count = 0
        while True:
            try:
                args, kwargs = self.event_queue.get_nowait()
            except Empty:
                return count
            self._fire(*args, **kwargs)
            count += 1
