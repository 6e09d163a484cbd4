"""
The notifications a session delivers to the application.

Notifications are delivered synchronously on whichever thread observed them: the initialization thread or the
thread calling receive_once(). An application that needs them on its own thread, such as a UI thread, can wrap
its listener in a QueuedSessionListener and call publish() from that thread.
"""
from scansession.devices import DeviceRecord
from scansession.protocol.device_layer import DecodedData
from scansession.support.events import QueuedEventSource


class SessionListener:
    """
    Receives notifications from a session. The methods do nothing by default, so subclasses implement only
    those they are interested in.
    """

    def on_device_arrival(self, result, device: DeviceRecord):
        """
        a device connected to the host.
        :param result: the result of opening the device. When this is a failure, device is None.
        """

    def on_device_removal(self, device: DeviceRecord):
        """
        a device disconnected from the host. Its queued commands have been cancelled.
        """

    def on_decoded_data(self, device: DeviceRecord, data: DecodedData):
        """
        a device decoded some data.
        """

    def on_error(self, result, message):
        """
        the device layer reported an error.
        :param message: a description of the error, or None
        """

    def on_session_initialize_complete(self, result):
        """
        the initialization handshake completed, successfully or not.
        """

    def on_session_terminated(self):
        """
        the session has ended. This is the last notification of the session.
        """

    def on_error_retrieving_message(self, result):
        """
        the device layer failed to deliver a message. The session is closed after this.
        """


class QueuedSessionListener(SessionListener):
    """
    Queues notifications and delivers them to the target listener when publish() is called, on the calling
    thread.
    """

    def __init__(self, target: SessionListener):
        self.target = target
        self.events = QueuedEventSource()
        self.events.add(self._deliver)

    def _deliver(self, name, *args):
        getattr(self.target, name)(*args)

    def publish(self):
        """ delivers the queued notifications in the order they were received.
        :return: the number delivered
        """
        return self.events.publish()

    def on_device_arrival(self, result, device):
        self.events.fire('on_device_arrival', result, device)

    def on_device_removal(self, device):
        self.events.fire('on_device_removal', device)

    def on_decoded_data(self, device, data):
        self.events.fire('on_decoded_data', device, data)

    def on_error(self, result, message):
        self.events.fire('on_error', result, message)

    def on_session_initialize_complete(self, result):
        self.events.fire('on_session_initialize_complete', result)

    def on_session_terminated(self):
        self.events.fire('on_session_terminated')

    def on_error_retrieving_message(self, result):
        self.events.fire('on_error_retrieving_message', result)
