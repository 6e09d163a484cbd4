"""
The boundary with the device layer: the scanner service that reports device arrival/removal, decoded data and
property completions as messages, and accepts property get/set requests that complete asynchronously.

The device layer itself is not implemented here. DeviceLayer describes the operations the session needs, and
the value classes describe what travels across the boundary.
"""
from abc import abstractmethod

from scansession.support.mixins import CommonEqualityMixin, StringerMixin


class Results:
    """ result codes passed through from the device layer. Zero and positive values are successes. """
    no_error = 0
    wait_timeout = 1
    general_error = -1
    not_supported = -15
    invalid_parameter = -18
    invalid_handle = -26


def succeeded(result):
    return result >= 0


class DeviceLayerError(IOError):
    """ Raised by a device layer implementation when a call fails at the transport level. """

    def __init__(self, result, message=None):
        super().__init__(message or "device layer error %s" % result)
        self.result = result


class MessageKinds:
    device_arrival = 1
    device_removal = 2
    terminate = 3
    set_complete = 4
    get_complete = 5
    event = 6


class EventKinds:
    error = 1
    decoded_data = 2
    power = 3
    buttons = 4


class EventDataTypes:
    none = 0
    byte = 1
    ulong = 2
    array = 3
    string = 4
    decoded_data = 5


class PropertyTypes:
    none = 0
    not_applicable = 1
    byte = 2
    ulong = 3
    array = 4
    string = 5
    version = 6
    symbology = 7


class PropertyIds:
    """ properties of the session itself (session_*) and of a connected device (*_device) """
    session_abort = 0x00000001
    session_version = 0x00000002
    session_data_confirmation_mode = 0x00000003

    version_device = 0x00010001
    device_type = 0x00010002
    device_specific = 0x00010003
    symbology_device = 0x00010004
    trigger_device = 0x00010005
    decode_action_device = 0x00010006
    capabilities_device = 0x00010007
    postamble_device = 0x00010008
    data_store_device = 0x00010009
    timers_device = 0x0001000A
    friendly_name_device = 0x0001000B
    local_acknowledgement_device = 0x0001000C
    data_confirmation_device = 0x0001000D
    battery_level_device = 0x0001000E
    sound_config_device = 0x0001000F
    bluetooth_address_device = 0x00010010
    stand_config_device = 0x00010011
    power_off_device = 0x00010012


class SymbologyFlags:
    status = 0x01
    param = 0x02


class SymbologyStatus:
    disable = 0
    enable = 1
    not_supported = 2


class Symbologies:
    """ symbology ids run from not_specified (0) to last_id (exclusive) """
    not_specified = 0
    last_id = 40


class Triggers:
    start = 1
    stop = 2
    enable = 3
    disable = 4


class LocalAcknowledgement:
    off = 0
    on = 1


class DecodeActions:
    none = 0
    beep = 1
    flash = 2
    rumble = 4


class ConfirmationModes:
    off = 0
    device = 1
    session = 2
    application = 3


class DataConfirmation:
    led_none = 0
    led_green = 1
    led_red = 2
    beep_none = 0
    beep_good = 1
    beep_bad = 2
    rumble_none = 0
    rumble_good = 1
    rumble_bad = 2


class CapabilityGroups:
    general = 0
    local_functions = 1


def data_confirmation(rumble, beep, led, reserved=0):
    """
    packs a data confirmation into the ulong carried by the data confirmation property.
    >>> data_confirmation(DataConfirmation.rumble_none, DataConfirmation.beep_good, DataConfirmation.led_green)
    5
    """
    return ((reserved & 0xFF) << 8) | ((rumble & 0x03) << 4) | ((beep & 0x03) << 2) | (led & 0x03)


def battery_levels(value):
    """
    unpacks the battery level ulong into its minimum, current and maximum levels.
    >>> battery_levels(0x00643200)
    (0, 50, 100)
    """
    return value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF


class Symbology(CommonEqualityMixin, StringerMixin):
    """ the value of a symbology property. """

    def __init__(self, id, status=SymbologyStatus.disable, name='', flags=SymbologyFlags.status):
        self.id = id
        self.status = status
        self.name = name
        self.flags = flags


class Property(CommonEqualityMixin, StringerMixin):
    """
    A property read or written through the device layer.

    The context is an opaque correlation token. The device layer echoes the
    context of the request in the property of the completion message.
    """

    def __init__(self, id, type=PropertyTypes.none, value=None, context=None):
        self.id = id
        self.type = type
        self.value = value
        self.context = context


class DecodedData(CommonEqualityMixin, StringerMixin):
    """ data decoded by a scanner """

    def __init__(self, data: bytes, symbology_id=Symbologies.not_specified, symbology_name=''):
        self.data = data
        self.symbology_id = symbology_id
        self.symbology_name = symbology_name

    def as_text(self, encoding='utf-8'):
        return self.data.decode(encoding, errors='replace')


class DeviceEvent(CommonEqualityMixin, StringerMixin):
    def __init__(self, kind, data=None, data_type=EventDataTypes.none):
        self.kind = kind
        self.data = data
        self.data_type = data_type


class Message(CommonEqualityMixin, StringerMixin):
    """
    A message delivered by the device layer.

    :param kind: one of MessageKinds
    :param result: the result code of the operation the message reports
    :param device: the device handle the message relates to, if any
    :param device_name: for arrivals, the friendly name of the device
    :param device_identity: for arrivals, the identity used to open a session with the device
    :param device_type: for arrivals, the device type
    :param event: for events, the DeviceEvent
    :param property: for get/set completions, the property including the echoed context
    """

    def __init__(self, kind, result=Results.no_error, device=None, device_name=None, device_identity=None,
                 device_type=None, event: DeviceEvent = None, property: Property = None):
        self.kind = kind
        self.result = result
        self.device = device
        self.device_name = device_name
        self.device_identity = device_identity
        self.device_type = device_type
        self.event = event
        self.property = property


class DeviceLayer:
    """ The operations the session requires from the device layer. Handles are opaque to the session. """

    @abstractmethod
    def open(self, config=None) -> int:
        """ performs the initialization handshake. Blocks until it completes.
        :return: the result code
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError

    @abstractmethod
    def wait_for_message(self, timeout):
        """
        waits up to timeout milliseconds for the next message.
        :return: a tuple (message, result). The message is None when the result is not no_error,
            such as wait_timeout.
        """
        raise NotImplementedError

    def release_message(self, message: Message):
        """ hands a message back to the device layer once it has been handled. """

    @abstractmethod
    def get_property(self, device, prop: Property) -> int:
        """
        starts reading a property. The value arrives later in a get_complete message.
        :param device: the device handle, or None for a property of the session
        """
        raise NotImplementedError

    @abstractmethod
    def set_property(self, device, prop: Property) -> int:
        """
        starts writing a property. The outcome arrives later in a set_complete message.
        :param device: the device handle, or None for a property of the session
        """
        raise NotImplementedError

    @abstractmethod
    def open_device_session(self, identity):
        """
        :return: a tuple (handle, result)
        """
        raise NotImplementedError

    @abstractmethod
    def close_device_session(self, device):
        raise NotImplementedError
