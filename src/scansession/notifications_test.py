import threading
import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_

from scansession.notifications import QueuedSessionListener, SessionListener


class SessionListenerTest(unittest.TestCase):
    def test_notifications_do_nothing_by_default(self):
        sut = SessionListener()
        sut.on_device_arrival(0, None)
        sut.on_device_removal(None)
        sut.on_decoded_data(None, None)
        sut.on_error(-1, None)
        sut.on_session_initialize_complete(0)
        sut.on_session_terminated()
        sut.on_error_retrieving_message(-1)


class QueuedSessionListenerTest(unittest.TestCase):
    def setUp(self):
        self.target = Mock(spec=SessionListener)
        self.sut = QueuedSessionListener(self.target)

    def test_nothing_is_delivered_until_published(self):
        self.sut.on_device_arrival(0, 'device')
        self.target.on_device_arrival.assert_not_called()

    def test_publish_delivers_in_order(self):
        self.sut.on_session_initialize_complete(0)
        self.sut.on_device_arrival(0, 'device')
        self.sut.on_decoded_data('device', 'data')
        self.sut.on_error(-1, 'text')
        self.sut.on_device_removal('device')
        self.sut.on_error_retrieving_message(-2)
        self.sut.on_session_terminated()
        assert_that(self.sut.publish(), is_(7))
        assert_that(self.target.method_calls, is_([
            call.on_session_initialize_complete(0),
            call.on_device_arrival(0, 'device'),
            call.on_decoded_data('device', 'data'),
            call.on_error(-1, 'text'),
            call.on_device_removal('device'),
            call.on_error_retrieving_message(-2),
            call.on_session_terminated(),
        ]))

    def test_publish_is_on_the_calling_thread(self):
        threads = []
        self.target.on_session_terminated.side_effect = lambda: threads.append(threading.current_thread())
        t = threading.Thread(target=self.sut.on_session_terminated)
        t.start()
        t.join()
        self.sut.publish()
        assert_that(threads, is_([threading.current_thread()]))
