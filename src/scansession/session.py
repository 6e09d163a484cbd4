"""
The session an application opens to work with scanners.

Typical use:

- create a Session with a device layer and a SessionListener
- call open(). The listener's on_session_initialize_complete() reports the outcome.
- call receive_once() every 100ms or so, or call start_receiving() to do that on a background thread.
- follow connections with on_device_arrival() / on_device_removal() and receive data with on_decoded_data()
- post requests with the post_* methods. Each returns the queued Command; its callback and future report
  the completion.
- call close(). The session has ended when on_session_terminated() is called.
"""
import logging
import threading

from scansession.commands import Command, CommandQueue
from scansession.config.config import SessionConfig
from scansession.devices import DeviceRecord, DeviceRegistry
from scansession.dispatch import DispatchLoop
from scansession.notifications import SessionListener
from scansession.protocol.asynchronous import AsyncLoop, FutureValue
from scansession.protocol.device_layer import CapabilityGroups, DataConfirmation, DeviceLayer, DeviceLayerError, \
    LocalAcknowledgement, Property, PropertyIds, PropertyTypes, Symbologies, Symbology, SymbologyStatus, Triggers, \
    battery_levels, data_confirmation, succeeded
from scansession.state import SessionState, SessionStates
from scansession.support.retry_strategy import BoundedRetryStrategy, RetryStrategy

logger = logging.getLogger(__name__)


def _format_address(value):
    if isinstance(value, (bytes, bytearray)):
        return ':'.join('%02X' % b for b in value)
    return str(value)


def _format_battery(value):
    if isinstance(value, int):
        return "%d%%" % battery_levels(value)[1]
    return str(value)


# the device record attribute a property updates, and how the property value is converted
_record_attributes = {
    PropertyIds.friendly_name_device: ('name', str),
    PropertyIds.bluetooth_address_device: ('address', _format_address),
    PropertyIds.version_device: ('version', str),
    PropertyIds.battery_level_device: ('battery_level', _format_battery),
    PropertyIds.postamble_device: ('suffix', str),
    PropertyIds.decode_action_device: ('decode_action', int),
    PropertyIds.local_acknowledgement_device: ('local_acknowledgement', lambda v: v == LocalAcknowledgement.on),
}


def update_device_record(device: DeviceRecord, property_id, value):
    """
    records a property value read from or written to a device.
    :return: True if the property is one the record keeps
    """
    if property_id == PropertyIds.symbology_device:
        if value.name:
            device.set_symbology_name(value.id, value.name)
        device.set_symbology_status(value.id, value.status)
        return True
    attribute = _record_attributes.get(property_id)
    if attribute is None:
        return False
    name, convert = attribute
    setattr(device, name, convert(value))
    return True


class Session:
    """
    Serializes requests to the device layer and tracks the connected devices.

    :param device_layer: the scanner service
    :param listener: receives the session notifications
    :param config: the session settings. Defaults to SessionConfig().
    :param retry_strategy: decides whether failed commands are sent again. Defaults to
        config.max_retries attempts.
    """

    def __init__(self, device_layer: DeviceLayer, listener: SessionListener = None, config: SessionConfig = None,
                 retry_strategy: RetryStrategy = None, log=logger):
        self.config = config if config is not None else SessionConfig()
        self.device_layer = device_layer
        self.logger = log
        self.state = SessionState(log)
        if retry_strategy is None:
            retry_strategy = BoundedRetryStrategy(self.config.max_retries)
        self.queue = CommandQueue(retry_strategy, log)
        self.registry = DeviceRegistry(device_layer, self.config.no_device_text, log)
        self.dispatcher = DispatchLoop(device_layer, self.queue, self.registry, self.state, listener,
                                       self.config.receive_timeout, log)
        self.initialized = FutureValue()
        self._init_thread = None

    @property
    def listener(self) -> SessionListener:
        return self.dispatcher.listener

    @listener.setter
    def listener(self, listener: SessionListener):
        self.dispatcher.listener = listener if listener is not None else SessionListener()

    @property
    def no_device_text(self):
        return self.registry.no_device_text

    @no_device_text.setter
    def no_device_text(self, text):
        self.registry.no_device_text = text

    @property
    def devices(self):
        """ the connected device records, or just the placeholder when there are none and it is configured """
        return self.registry.devices

    @property
    def is_device_connected(self):
        return self.registry.is_device_connected

    @property
    def is_open(self):
        return self.state.value == SessionStates.open

    def open(self):
        """
        starts the session. The initialization handshake runs on a background thread and its outcome is
        reported to on_session_initialize_complete() and set on the `initialized` future.
        :return: True if the session was closed and is now opening
        """
        if not self.state.transition(SessionStates.closed, SessionStates.opening):
            self.logger.debug("open() ignored, the session is %s" % self.state.value)
            return False
        self.registry.reset()
        self.initialized = FutureValue()
        thread = threading.Thread(target=self._initialize, name="ScanSessionInit")
        thread.daemon = True
        self._init_thread = thread
        thread.start()
        return True

    def _initialize(self):
        try:
            result = self.device_layer.open(self.config.layer_config)
        except DeviceLayerError as e:
            result = e.result
        if succeeded(result):
            self.state.transition(SessionStates.opening, SessionStates.open)
            self.logger.info("session opened")
        else:
            self.state.transition(SessionStates.opening, SessionStates.closed)
            self.logger.error("session failed to open: %s" % result)
        try:
            self.listener.on_session_initialize_complete(result)
        finally:
            self.initialized.set_result(result)

    def close(self):
        """
        asks the device layer to end the session by posting an abort, which replaces any queued commands.
        The session closes when the device layer confirms with a terminate message.
        :return: the abort command, or None if the session is not open
        """
        if not self.state.transition(SessionStates.open, SessionStates.closing):
            return None
        return self.post_abort(self._abort_complete)

    def _abort_complete(self, result, message):
        if not succeeded(result):
            # no terminate message follows a failed abort
            self.logger.error("abort failed with %s" % result)
            self.dispatcher.request_terminate()

    def receive_once(self):
        return self.dispatcher.receive_once()

    def start_receiving(self, period=None) -> 'ReceiveLoop':
        """ calls receive_once() on a background thread until the session ends. """
        loop = ReceiveLoop(self, period)
        loop.start()
        return loop

    def _post(self, command: Command):
        self.queue.enqueue(command)
        self.dispatcher.dispatch_next()
        return command

    def _session_command(self, get_operation, prop, callback):
        return self._post(Command(get_operation, prop, None, None, callback))

    def _device_command(self, get_operation, device: DeviceRecord, prop, callback, post=True):
        command = Command(get_operation, prop, device.handle, device, None, device_level=True)
        command.callback = self._record_tracker(command, callback)
        return self._post(command) if post else command

    def _record_tracker(self, command: Command, callback):
        property_id = command.property.id
        if property_id != PropertyIds.symbology_device and property_id not in _record_attributes:
            return callback

        def track(result, message):
            if succeeded(result):
                if command.get_operation:
                    value = message.property.value if message is not None and message.property else None
                else:
                    value = command.property.value
                if value is not None:
                    update_device_record(command.device_record, property_id, value)
            if callback is not None:
                callback(result, message)
        return track

    # session requests

    def post_get_session_version(self, callback=None):
        return self._session_command(True, Property(PropertyIds.session_version), callback)

    def post_set_confirmation_mode(self, mode, callback=None):
        """ chooses who confirms decoded data: one of ConfirmationModes """
        prop = Property(PropertyIds.session_data_confirmation_mode, PropertyTypes.byte, mode & 0xFF)
        return self._session_command(False, prop, callback)

    def post_abort(self, callback=None):
        """ ends the session. Any queued commands are discarded. """
        return self._session_command(False, Property(PropertyIds.session_abort), callback)

    # device requests

    def post_get_friendly_name(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.friendly_name_device), callback)

    def post_set_friendly_name(self, device: DeviceRecord, name, callback=None):
        prop = Property(PropertyIds.friendly_name_device, PropertyTypes.string, name)
        return self._device_command(False, device, prop, callback)

    def post_get_bluetooth_address(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.bluetooth_address_device), callback)

    def post_get_device_type(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.device_type), callback)

    def post_get_firmware_version(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.version_device), callback)

    def post_get_battery_level(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.battery_level_device), callback)

    def post_get_stand_config(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.stand_config_device), callback)

    def post_set_stand_config(self, device: DeviceRecord, stand_config, callback=None):
        prop = Property(PropertyIds.stand_config_device, PropertyTypes.ulong, stand_config)
        return self._device_command(False, device, prop, callback)

    def post_get_decode_action(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.decode_action_device), callback)

    def post_set_decode_action(self, device: DeviceRecord, decode_action, callback=None):
        """ :param decode_action: a combination of DecodeActions """
        prop = Property(PropertyIds.decode_action_device, PropertyTypes.byte, decode_action & 0xFF)
        return self._device_command(False, device, prop, callback)

    def post_get_local_acknowledgement(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.local_acknowledgement_device), callback)

    def post_set_local_acknowledgement(self, device: DeviceRecord, enabled, callback=None):
        value = LocalAcknowledgement.on if enabled else LocalAcknowledgement.off
        prop = Property(PropertyIds.local_acknowledgement_device, PropertyTypes.byte, value)
        return self._device_command(False, device, prop, callback)

    def post_get_data_confirmation(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.data_confirmation_device), callback)

    def post_set_data_confirmation(self, device: DeviceRecord, good_scan, callback=None):
        """
        acknowledges decoded data on the device with a good or bad beep and LED. The confirmation is sent
        ahead of other queued commands, as soon as the command in flight completes.
        """
        if good_scan:
            value = data_confirmation(DataConfirmation.rumble_none, DataConfirmation.beep_good,
                                      DataConfirmation.led_green)
        else:
            value = data_confirmation(DataConfirmation.rumble_none, DataConfirmation.beep_bad,
                                      DataConfirmation.led_red)
        prop = Property(PropertyIds.data_confirmation_device, PropertyTypes.ulong, value)
        command = self._device_command(False, device, prop, callback, post=False)
        self.queue.enqueue_confirmation(command)
        self.dispatcher.dispatch_next()
        return command

    def post_get_symbology(self, device: DeviceRecord, symbology_id, callback=None):
        _check_symbology_id(symbology_id)
        prop = Property(PropertyIds.symbology_device, PropertyTypes.symbology, Symbology(symbology_id))
        return self._device_command(True, device, prop, callback)

    def post_get_all_symbologies(self, device: DeviceRecord, callback=None):
        """ reads every symbology, one command each. The callback is called for each.
        :return: the list of commands
        """
        return [self.post_get_symbology(device, symbology_id, callback)
                for symbology_id in range(Symbologies.not_specified + 1, Symbologies.last_id)]

    def post_set_symbology(self, device: DeviceRecord, symbology_id, enabled, callback=None):
        _check_symbology_id(symbology_id)
        status = SymbologyStatus.enable if enabled else SymbologyStatus.disable
        prop = Property(PropertyIds.symbology_device, PropertyTypes.symbology, Symbology(symbology_id, status))
        return self._device_command(False, device, prop, callback)

    def post_get_device_specific(self, device: DeviceRecord, payload: bytes, callback=None):
        prop = Property(PropertyIds.device_specific, PropertyTypes.array, bytes(payload))
        return self._device_command(True, device, prop, callback)

    def post_set_device_specific(self, device: DeviceRecord, payload: bytes, callback=None):
        prop = Property(PropertyIds.device_specific, PropertyTypes.array, bytes(payload))
        return self._device_command(False, device, prop, callback)

    def post_get_timers(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.timers_device), callback)

    def post_set_timers(self, device: DeviceRecord, timers: bytes, callback=None):
        prop = Property(PropertyIds.timers_device, PropertyTypes.array, bytes(timers))
        return self._device_command(False, device, prop, callback)

    def post_get_data_store(self, device: DeviceRecord, index, callback=None):
        prop = Property(PropertyIds.data_store_device, PropertyTypes.array, bytes([index & 0xFF, 0]))
        return self._device_command(True, device, prop, callback)

    def post_start_decode(self, device: DeviceRecord, callback=None):
        prop = Property(PropertyIds.trigger_device, PropertyTypes.byte, Triggers.start)
        return self._device_command(False, device, prop, callback)

    def post_get_capabilities(self, device: DeviceRecord, callback=None):
        prop = Property(PropertyIds.capabilities_device, PropertyTypes.byte, CapabilityGroups.local_functions)
        return self._device_command(True, device, prop, callback)

    def post_get_postamble(self, device: DeviceRecord, callback=None):
        return self._device_command(True, device, Property(PropertyIds.postamble_device), callback)

    def post_set_postamble(self, device: DeviceRecord, suffix, callback=None):
        prop = Property(PropertyIds.postamble_device, PropertyTypes.string, suffix)
        return self._device_command(False, device, prop, callback)

    def post_set_sound_config(self, device: DeviceRecord, config: bytes, callback=None):
        prop = Property(PropertyIds.sound_config_device, PropertyTypes.array, bytes(config))
        return self._device_command(False, device, prop, callback)


def _check_symbology_id(symbology_id):
    if not Symbologies.not_specified < symbology_id < Symbologies.last_id:
        raise ValueError("invalid symbology id %s" % symbology_id)


class ReceiveLoop(AsyncLoop):
    """
    Drives a session from a background thread, calling receive_once() every period seconds.
    The loop stops by itself once the session has ended, or failed to open. It can be started again after the
    session is reopened.
    """

    def __init__(self, session: Session, period=None, log=logger):
        super().__init__(name="ScanSessionReceive", log=log)
        self.session = session
        self.period = period if period is not None else session.config.receive_period

    def loop(self):
        session = self.session
        if session.state.value == SessionStates.closed and session.initialized.done():
            self.stop_event.set()
            return
        try:
            session.receive_once()
        finally:
            self.stop_event.wait(self.period)
