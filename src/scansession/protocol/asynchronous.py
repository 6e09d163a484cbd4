"""
Building blocks for running work away from the caller: futures for values that arrive later, and a loop that
runs a function repeatedly on a background thread.
"""
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future

logger = logging.getLogger(__name__)


class FutureValue(Future):
    """ describes a value that may have not yet been computed. Callers can check if the value has arrived, or chose to
        wait until the value has arrived.
        If an exception is encountered computing the value, it is set."""

    def _value_extractor(self, value):
        """
        The value extractor allows processing of the result to arrive at the
        value returned in `value`.
        """
        return value

    def set_result_or_exception(self, value):
        if isinstance(value, BaseException):
            self.set_exception(value)
        else:
            self.set_result(value)

    def value(self, timeout=None):
        """ allows the provider to set the result value but provide a different (derived) value to callers. """
        return self._value_extractor(self.result(timeout))


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to exception_handler.
        The background thread is registered as a daemon.
    """

    def __init__(self, fn: Callable = None, args=(), log=logger, name=None):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param name the name given to the background thread
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log
        self._lock = threading.Lock()

    def start(self):
        """
        Starts the background thread. Starting a loop that is already running does nothing.
        A loop that has stopped, whether by stop() or by setting stop_event itself, can be started again.
        """
        with self._lock:
            if self.background_thread is not None:
                return
            self.stop_event.clear()
            t = threading.Thread(target=self._run, name=self.name)
            t.daemon = True
            self.background_thread = t
        t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.info("background thread exiting")
        with self._lock:
            if self.background_thread is threading.current_thread():
                self.background_thread = None

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            time.sleep(0)
            callme()
        except Exception as e:
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """

    def running(self):
        return not self.stop_event.is_set()

    def stop(self):
        self.stop_event.set()
        with self._lock:
            thread = self.background_thread
            self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()
