import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, contains_exactly, empty, is_, has_length

from scansession.commands import Command, CommandQueue, CommandStatus
from scansession.devices import DeviceRegistry
from scansession.dispatch import DispatchLoop
from scansession.notifications import SessionListener
from scansession.protocol.device_layer import DeviceLayerError, DeviceEvent, EventKinds, Message, MessageKinds, \
    Property, PropertyIds, Results
from scansession.protocol.device_layer_test import FakeDeviceLayer
from scansession.state import SessionState, SessionStates


class DispatchLoopTest(unittest.TestCase):

    def setUp(self):
        self.layer = FakeDeviceLayer()
        self.queue = CommandQueue()
        self.registry = DeviceRegistry(self.layer, "No device")
        self.state = SessionState()
        self.state.transition(SessionStates.closed, SessionStates.open)
        self.listener = Mock(spec=SessionListener)
        self.sut = DispatchLoop(self.layer, self.queue, self.registry, self.state, self.listener)

    def arrive(self, identity='id1', name='Scanner'):
        self.layer.arrive(identity, name)
        self.sut.receive_once()
        return self.registry.connected_devices[-1]

    def battery(self, device, callback=None):
        return Command(True, Property(PropertyIds.battery_level_device), device.handle, device, callback, True)

    def test_nothing_is_received_when_closed(self):
        self.state.close()
        self.layer.arrive()
        assert_that(self.sut.receive_once(), is_(Results.no_error))
        assert_that(self.layer.messages.qsize(), is_(1))

    def test_timeout_is_not_an_error(self):
        assert_that(self.sut.receive_once(), is_(Results.wait_timeout))
        self.listener.on_session_terminated.assert_not_called()

    def test_arrival(self):
        device = self.arrive()
        self.listener.on_device_arrival.assert_called_once_with(Results.no_error, device)
        assert_that(self.registry.devices, contains_exactly(device))
        assert_that(self.layer.released, has_length(1))

    def test_failed_arrival_is_reported_without_a_record(self):
        self.layer.device_open_result = Results.general_error
        self.layer.arrive()
        self.sut.receive_once()
        self.listener.on_device_arrival.assert_called_once_with(Results.general_error, None)
        assert_that(self.registry.is_device_connected, is_(False))

    def test_removal_with_commands_outstanding(self):
        device = self.arrive()
        self.queue.enqueue(self.battery(device))
        self.queue.enqueue(self.battery(device))
        self.sut.dispatch_next()
        assert_that(self.queue.head().status, is_(CommandStatus.pending))

        self.layer.remove(device.handle)
        self.sut.receive_once()
        assert_that(self.queue.commands, is_(empty()))
        assert_that(self.registry.devices, contains_exactly(self.registry.placeholder))
        self.listener.on_device_removal.assert_called_once_with(device)
        assert_that(self.layer.closed_devices, is_([device.handle]))

    def test_removal_of_an_unknown_device_is_not_notified(self):
        self.layer.remove(42)
        self.sut.receive_once()
        self.listener.on_device_removal.assert_not_called()
        assert_that(self.layer.closed_devices, is_([42]))

    def test_completion_is_matched_by_token_and_next_is_sent(self):
        device = self.arrive()
        callback = Mock()
        first = self.queue.enqueue(self.battery(device, callback))
        self.queue.enqueue(self.battery(device))
        self.sut.dispatch_next()
        self.layer.complete(value=0x643200)
        self.sut.receive_once()
        callback.assert_called_once()
        assert_that(first.future.value(), is_(0x643200))
        assert_that(self.layer.sent, has_length(2))

    def test_failed_completion_is_resent(self):
        device = self.arrive()
        callback = Mock()
        self.queue.enqueue(self.battery(device, callback))
        self.sut.dispatch_next()
        self.layer.complete(result=Results.general_error)
        self.sut.receive_once()
        callback.assert_not_called()
        assert_that(self.layer.sent, has_length(2))

    def test_decoded_data(self):
        device = self.arrive()
        message = self.layer.decoded(device.handle, b'0123')
        self.sut.receive_once()
        self.listener.on_decoded_data.assert_called_once_with(device, message.event.data)

    def test_error_event(self):
        self.layer.error(Results.general_error, "battery low")
        self.layer.error(Results.general_error)
        self.sut.receive_once()
        self.sut.receive_once()
        self.listener.on_error.assert_has_calls([call(Results.general_error, "battery low"),
                                                 call(Results.general_error, None)])

    def test_reserved_and_unknown_messages_are_ignored(self):
        self.layer.post(Message(MessageKinds.event, event=DeviceEvent(EventKinds.power, 1)))
        self.layer.post(Message(MessageKinds.event, event=DeviceEvent(99)))
        self.layer.post(Message(99))
        for _ in range(3):
            assert_that(self.sut.receive_once(), is_(Results.no_error))
        assert_that(self.listener.method_calls, is_([]))
        assert_that(self.layer.released, has_length(3))

    def test_terminate_message_closes_the_session(self):
        device = self.arrive()
        self.queue.enqueue(self.battery(device))
        self.layer.terminate()
        self.sut.receive_once()
        assert_that(self.state.value, is_(SessionStates.closed))
        assert_that(self.queue.commands, is_(empty()))
        assert_that(self.layer.closed, is_(1))
        assert_that(self.layer.closed_devices, is_([device.handle]))
        self.listener.on_session_terminated.assert_called_once_with()
        self.listener.on_error_retrieving_message.assert_not_called()

    def test_receive_failure_terminates(self):
        self.layer.receive_result = Results.general_error
        assert_that(self.sut.receive_once(), is_(Results.general_error))
        assert_that(self.state.value, is_(SessionStates.closed))
        self.listener.on_error_retrieving_message.assert_called_once_with(Results.general_error)
        self.listener.on_session_terminated.assert_called_once_with()

    def test_receive_exception_terminates(self):
        self.layer.receive_result = DeviceLayerError(Results.invalid_handle)
        assert_that(self.sut.receive_once(), is_(Results.invalid_handle))
        self.listener.on_error_retrieving_message.assert_called_once_with(Results.invalid_handle)

    def test_terminate_happens_once(self):
        assert_that(self.sut.terminate(), is_(True))
        assert_that(self.sut.terminate(), is_(False))
        self.listener.on_session_terminated.assert_called_once_with()
        assert_that(self.layer.closed, is_(1))

    def test_sends_while_closing(self):
        self.state.transition(SessionStates.open, SessionStates.closing)
        self.queue.enqueue(Command(False, Property(PropertyIds.session_abort)))
        self.sut.dispatch_next()
        assert_that(self.layer.sent, has_length(1))

    def test_terminate_requested_while_handling_waits_for_the_release(self):
        device = self.arrive()
        self.queue.enqueue(self.battery(device, lambda result, message: self.sut.request_terminate()))
        self.sut.dispatch_next()
        self.layer.complete()
        self.sut.receive_once()
        assert_that(self.state.value, is_(SessionStates.closed))
        assert_that(self.layer.calls[-2:], is_(['release', 'close']))
        self.listener.on_session_terminated.assert_called_once_with()

    def test_terminate_requested_outside_a_message(self):
        self.sut.request_terminate()
        assert_that(self.state.value, is_(SessionStates.closed))
        assert_that(self.layer.closed, is_(1))
