"""
Outbound get/set commands and the queue that sends them to the device layer one at a time.

A command is sent when it reaches the head of the queue and its completion message arrives later, on the receive
tick. The completion is matched back to the command by the correlation token carried in the property context.
Failed completions are retried silently until the retry strategy gives up.
"""
import itertools
import logging
import threading

from scansession.protocol.asynchronous import FutureValue
from scansession.protocol.device_layer import DeviceLayer, Message, Property, PropertyIds, Results, succeeded
from scansession.support.retry_strategy import BoundedRetryStrategy, RetryStrategy

logger = logging.getLogger(__name__)

_tokens = itertools.count(1)


class CommandStatus:
    ready = 1
    pending = 2
    completed = 3


class CommandFailedError(Exception):
    """ Set on the future of a command that completed with a failure. """

    def __init__(self, result, command):
        super().__init__("command for property 0x%x failed with result %s" % (command.property.id, result))
        self.result = result
        self.command = command


class CommandFuture(FutureValue):
    """ The eventual completion message of a command. """

    def __init__(self, command):
        super().__init__()
        self.command = command

    def _value_extractor(self, message):
        return message.property.value if message is not None and message.property is not None else None


class Command:
    """
    A single get or set of a property, addressed to a device or to the session.

    :param get_operation: True to read the property, False to write it.
    :param prop: the property to send. Its context is replaced with this command's correlation token.
    :param device: the device handle, or None when the command targets the session.
    :param device_record: the DeviceRecord the command was posted for, if any.
    :param callback: called as callback(result, message) when the command completes.
    :param device_level: True when the command must be sent to a device. A device level command with no
        device handle fails when dispatched.
    """

    def __init__(self, get_operation, prop: Property, device=None, device_record=None, callback=None,
                 device_level=False):
        self.get_operation = get_operation
        self.token = next(_tokens)
        prop.context = self.token
        self.property = prop
        self.device = device
        self.device_record = device_record
        self.callback = callback
        self.device_level = device_level
        self.status = CommandStatus.ready
        self.retries = 0
        self.confirmation = False
        self.future = CommandFuture(self)

    @property
    def is_abort(self):
        return self.property.id == PropertyIds.session_abort

    @property
    def retryable(self):
        return self.property.id != PropertyIds.power_off_device

    def send(self, device_layer: DeviceLayer):
        """
        hands the property to the device layer. Every attempt counts towards the retries.
        :return: the result from the device layer
        """
        if self.device_level and self.device is None:
            result = Results.invalid_parameter
        elif self.get_operation:
            logger.debug("get for property 0x%x" % self.property.id)
            result = device_layer.get_property(self.device, self.property)
        else:
            logger.debug("set for property 0x%x" % self.property.id)
            result = device_layer.set_property(self.device, self.property)
        self.retries += 1
        return result

    def complete(self, result, message: Message = None):
        """ marks this command completed and reports the outcome to the callback and future. """
        self.status = CommandStatus.completed
        if not self.future.done():
            if succeeded(result):
                self.future.set_result(message)
            else:
                self.future.set_exception(CommandFailedError(result, self))
        if self.callback is not None:
            self.callback(result, message)

    def discard(self):
        """ the command is abandoned without completing. No callback is made. """
        self.status = CommandStatus.completed
        self.future.cancel()

    def __repr__(self):
        return "Command(%s 0x%x, token=%s, status=%s, retries=%s)" % (
            "get" if self.get_operation else "set", self.property.id, self.token, self.status, self.retries)


class CommandQueue:
    """
    The commands waiting to be sent, in the order they are sent.

    Only the head of the queue is ever sent, and it stays at the head until it completes, so at most
    one command is pending at a time. Commands are matched to their completions by token.

    The queue lock is never held while calling the device layer or a callback.
    """

    def __init__(self, retry_strategy: RetryStrategy = None, log=logger):
        self.retry_strategy = retry_strategy if retry_strategy is not None else BoundedRetryStrategy()
        self.logger = log
        self._commands = []
        self._by_token = dict()
        self._lock = threading.RLock()

    def __len__(self):
        with self._lock:
            return len(self._commands)

    @property
    def commands(self):
        """ a snapshot of the queued commands, head first. """
        with self._lock:
            return list(self._commands)

    def head(self) -> Command:
        with self._lock:
            return self._commands[0] if self._commands else None

    def find(self, token) -> Command:
        with self._lock:
            return self._by_token.get(token)

    def enqueue(self, command: Command):
        """
        adds the command to the tail. An abort supersedes all outstanding work, so the queue is
        cleared before the abort is added.
        """
        with self._lock:
            if command.is_abort:
                self.logger.debug("adding an abort command, removing all previous commands")
                discarded = self._remove_all(lambda c: True)
            else:
                discarded = []
            self._add(len(self._commands), command)
        self._discard(discarded)
        return command

    def enqueue_confirmation(self, command: Command):
        """
        adds a data confirmation so it is the next command sent. It goes behind a pending or abort head,
        otherwise to the front, and after any confirmations already waiting there.
        """
        command.confirmation = True
        with self._lock:
            commands = self._commands
            index = 0
            if commands and (commands[0].status == CommandStatus.pending or commands[0].is_abort):
                index = 1
            while index < len(commands) and commands[index].confirmation \
                    and commands[index].status == CommandStatus.ready:
                index += 1
            self._add(index, command)
        return command

    def try_dispatch_head(self, device_layer: DeviceLayer):
        """
        sends the head command if it is ready. A command the device layer refuses is dropped without retry.
        :return: the result of sending, or no_error when nothing was sent.
        """
        with self._lock:
            command = self._commands[0] if self._commands else None
            if command is None or command.status != CommandStatus.ready:
                return Results.no_error
            # pending before the lock is released so no other thread sends it too
            command.status = CommandStatus.pending

        result = command.send(device_layer)

        if succeeded(result):
            return result

        with self._lock:
            removed = self._remove(command)
        if result == Results.not_supported:
            self.logger.warning("removing an unsupported command %r" % command)
        elif result == Results.invalid_handle:
            self.logger.warning("removing a command with an invalid handle %r" % command)
        else:
            self.logger.error("removing command %r, the device layer refused it with %s" % (command, result))
        if removed:
            if command.is_abort:
                command.complete(result)
            else:
                command.discard()
        return result

    def complete(self, token, result, message: Message = None):
        """
        handles the completion of the command with the given token.
        A failure sends the command again, without notifying, until the retry strategy gives up.
        :return: the command completed, or None if it is waiting to be retried or the token is unknown.
        """
        with self._lock:
            command = self._by_token.get(token)
            if command is None:
                self.logger.debug("completion for unknown command token %s" % token)
                return None
            if not succeeded(result) and command.retryable and self.retry_strategy(command.retries):
                self.logger.debug("silent retry %d of %r after result %s" % (command.retries, command, result))
                command.status = CommandStatus.ready
                return None
            self._remove(command)
        if not succeeded(result):
            self.logger.info("%r failed with result %s" % (command, result))
        command.complete(result, message)
        return command

    def remove_by_device(self, device=None):
        """
        removes every command for the given device handle, or all commands when device is None.
        The removed commands are not completed.
        :return: the removed commands
        """
        with self._lock:
            if device is None:
                removed = self._remove_all(lambda c: True)
            else:
                removed = self._remove_all(lambda c: c.device == device)
        self._discard(removed)
        return removed

    def clear(self):
        return self.remove_by_device(None)

    def _add(self, index, command):
        command.status = CommandStatus.ready
        self._commands.insert(index, command)
        self._by_token[command.token] = command
        self.logger.debug("queued %r at %d" % (command, index))

    def _remove(self, command):
        if self._by_token.pop(command.token, None) is None:
            return False
        self._commands.remove(command)
        return True

    def _remove_all(self, predicate):
        removed = [c for c in self._commands if predicate(c)]
        for c in removed:
            self._remove(c)
        return removed

    def _discard(self, commands):
        for c in commands:
            c.discard()
