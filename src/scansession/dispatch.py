"""
The receive side of a session. Each call to receive_once() takes at most one message from the device layer and
routes it: device arrival and removal to the registry, property completions to the command queue, and events to
the listener. Afterwards the next queued command is sent, if one is ready.

The loop does not sleep or schedule itself. The application calls receive_once() on a fixed cadence, or uses a
ReceiveLoop to do that on a background thread.
"""
import logging
import threading

from scansession.commands import CommandQueue
from scansession.devices import DeviceRegistry
from scansession.notifications import SessionListener
from scansession.protocol.device_layer import DeviceLayer, DeviceLayerError, EventDataTypes, EventKinds, Message, \
    MessageKinds, Results, succeeded
from scansession.state import SessionState

logger = logging.getLogger(__name__)


class DispatchLoop:
    """
    :param device_layer: the source of messages and destination of commands
    :param queue: the commands waiting to be sent
    :param registry: the connected devices
    :param state: the session state. Nothing is received or sent unless the session is open or closing.
    :param listener: receives the notifications
    :param receive_timeout: how long, in milliseconds, each call waits for a message
    """

    def __init__(self, device_layer: DeviceLayer, queue: CommandQueue, registry: DeviceRegistry,
                 state: SessionState, listener: SessionListener = None, receive_timeout=1, log=logger):
        self.device_layer = device_layer
        self.queue = queue
        self.registry = registry
        self.state = state
        self.listener = listener if listener is not None else SessionListener()
        self.receive_timeout = receive_timeout
        self._receiving = threading.local()
        self.logger = log
        self._message_handlers = {
            MessageKinds.device_arrival: self._device_arrival,
            MessageKinds.device_removal: self._device_removal,
            MessageKinds.get_complete: self._property_complete,
            MessageKinds.set_complete: self._property_complete,
            MessageKinds.event: self._event,
        }
        self._event_handlers = {
            EventKinds.error: self._error_event,
            EventKinds.decoded_data: self._decoded_data_event,
            EventKinds.power: self._reserved_event,
            EventKinds.buttons: self._reserved_event,
        }

    def receive_once(self):
        """
        receives and handles at most one message, then tries to send the next command.
        :return: the result of waiting for the message
        """
        if not self.state.dispatching:
            return Results.no_error
        try:
            message, result = self.device_layer.wait_for_message(self.receive_timeout)
        except DeviceLayerError as e:
            message, result = None, e.result

        if not succeeded(result):
            self.logger.error("unable to retrieve a message from the device layer: %s" % result)
            self.terminate(result)
            return result

        terminate = False
        if result == Results.no_error and message is not None:
            self._receiving.message = message
            self._receiving.terminate = False
            try:
                terminate = self.handle_message(message)
            finally:
                self._receiving.message = None
                self.device_layer.release_message(message)
            terminate = terminate or self._receiving.terminate
        if terminate:
            self.terminate()
        else:
            self.dispatch_next()
        return result

    def handle_message(self, message: Message):
        """
        routes a message to its handler.
        :return: True if the message ends the session
        """
        if message.kind == MessageKinds.terminate:
            self.logger.info("terminate message received, closing the session")
            return True
        handler = self._message_handlers.get(message.kind)
        if handler is None:
            self.logger.debug("ignoring message of unknown kind %s" % message.kind)
        else:
            handler(message)
        return False

    def dispatch_next(self):
        """ sends the command at the head of the queue if it is ready and the session allows it. """
        if not self.state.dispatching:
            return Results.no_error
        return self.queue.try_dispatch_head(self.device_layer)

    def request_terminate(self):
        """
        ends the session. When called while this thread is handling a message, the session ends once the
        message has been released back to the device layer.
        """
        if getattr(self._receiving, 'message', None) is not None:
            self._receiving.terminate = True
        else:
            self.terminate()

    def terminate(self, error=None):
        """
        ends the session: forgets the devices and queued commands, closes the device layer and notifies.
        Only the first call for a session has any effect.
        :param error: the result of a failed receive that caused the termination, if any
        :return: True if the session was terminated by this call
        """
        if not self.state.close():
            return False
        self.queue.clear()
        self.registry.close_all()
        self.device_layer.close()
        self.logger.info("session terminated")
        if error is not None:
            self.listener.on_error_retrieving_message(error)
        self.listener.on_session_terminated()
        return True

    def _device_arrival(self, message: Message):
        result, record = self.registry.on_arrival(message.device_identity, message.device_name, message.device_type)
        self.listener.on_device_arrival(result, record)

    def _device_removal(self, message: Message):
        record = self.registry.on_removal(message.device, self.queue)
        if record is not None:
            self.listener.on_device_removal(record)

    def _property_complete(self, message: Message):
        token = message.property.context if message.property is not None else None
        self.queue.complete(token, message.result, message)

    def _event(self, message: Message):
        event = message.event
        if event is None:
            self.logger.debug("event message without an event")
            return
        handler = self._event_handlers.get(event.kind)
        if handler is None:
            self.logger.debug("ignoring event of unknown kind %s" % event.kind)
        else:
            handler(message)

    def _error_event(self, message: Message):
        event = message.event
        text = event.data if event.data_type == EventDataTypes.string else None
        self.listener.on_error(message.result, text)

    def _decoded_data_event(self, message: Message):
        device = self.registry.find(message.device)
        self.listener.on_decoded_data(device, message.event.data)

    def _reserved_event(self, message: Message):
        self.logger.debug("event %s from %r not handled" % (message.event.kind, message.device))
