import logging
import threading

logger = logging.getLogger(__name__)


class SessionStates:
    closed = 'closed'
    opening = 'opening'
    open = 'open'
    closing = 'closing'


class SessionState:
    """
    The lifecycle state of a session: closed -> opening -> open -> closing -> closed.
    Transitions are compare-and-set so that concurrent callers agree on who made the change.
    """

    def __init__(self, log=logger):
        self._value = SessionStates.closed
        self._lock = threading.Lock()
        self.logger = log

    @property
    def value(self):
        return self._value

    @property
    def dispatching(self):
        """ commands may only be sent while open, or while closing so the abort can go out. """
        return self._value in (SessionStates.open, SessionStates.closing)

    def transition(self, expected, new):
        """
        moves to the new state if the current state is expected.
        :param expected: a state, or a tuple of states
        :return: True if the state changed
        """
        if not isinstance(expected, tuple):
            expected = (expected,)
        with self._lock:
            if self._value not in expected:
                return False
            previous, self._value = self._value, new
        self.logger.debug("session %s -> %s" % (previous, new))
        return True

    def close(self):
        """ moves to closed from any other state.
        :return: True if the session was not already closed
        """
        return self.transition((SessionStates.opening, SessionStates.open, SessionStates.closing),
                               SessionStates.closed)
