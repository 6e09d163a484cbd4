"""
The devices connected through the session.

A DeviceRecord holds what is known about one connected scanner. Its setters fire DeviceRecordChangedEvent
to the record's `changed` observers, so a UI can follow updates as command completions arrive.

The DeviceRegistry keeps the records in arrival order. When configured with a no-device text, it holds a
placeholder record in place of an empty list, which suits a UI list that should always show something.
"""
import logging
import threading

from scansession.commands import CommandQueue
from scansession.protocol.device_layer import DeviceLayer, Symbologies, SymbologyStatus, succeeded
from scansession.support.events import EventSource
from scansession.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)


class DeviceTypes:
    none = 0
    scanner_7 = 0x00020001
    scanner_7x = 0x00020002
    scanner_7xi = 0x00020003
    scanner_9 = 0x00020004
    scanner_8ci = 0x00020005
    scanner_8qi = 0x00020006
    scanner_d750 = 0x00020007
    scanner_d730 = 0x00020008
    scanner_d700 = 0x00020009

    names = {
        scanner_7: "CHS Scanner",
        scanner_7x: "CHS 7X Scanner",
        scanner_7xi: "CHS 7Xi/Qi Scanner",
        scanner_9: "CRS Scanner",
        scanner_8ci: "SocketScan S800 Scanner",
        scanner_8qi: "SocketScan S850 Scanner",
        scanner_d750: "DuraScan D750",
        scanner_d730: "DuraScan D730",
        scanner_d700: "DuraScan D700",
    }

    @classmethod
    def name_of(cls, device_type):
        return cls.names.get(device_type, "Unknown scanner type!")


class DeviceRecordChangedEvent(CommonEqualityMixin, StringerMixin):
    """ an attribute of a device record was set """

    def __init__(self, device, attribute, value):
        self.device = device
        self.attribute = attribute
        self.value = value


class SymbologyInfo(CommonEqualityMixin):
    def __init__(self, id, name='', status=SymbologyStatus.disable):
        self.id = id
        self.name = name
        self.status = status

    def __str__(self):
        return self.name


class DeviceRecord:
    """
    Live state for one connected device.

    :param name: the display name
    :param handle: the device layer handle for the device, None for the placeholder record
    :param device_type: one of DeviceTypes
    """

    def __init__(self, name, handle, device_type=DeviceTypes.none):
        self.handle = handle
        self.device_type = device_type
        self.changed = EventSource()
        self._name = name
        self._address = "Not available"
        self._version = "Unknown"
        self._battery_level = "Unknown"
        self._suffix = "\n"
        self._decode_action = 0
        self._local_acknowledgement = True
        self._symbologies = [SymbologyInfo(i) for i in range(Symbologies.last_id)]

    def _set(self, attribute, value):
        setattr(self, '_' + attribute, value)
        self.changed.fire(DeviceRecordChangedEvent(self, attribute, value))

    @property
    def type_name(self):
        return DeviceTypes.name_of(self.device_type)

    @property
    def name(self):
        return self._name

    @name.setter
    def name(self, value):
        self._set('name', value)

    @property
    def address(self):
        return self._address

    @address.setter
    def address(self, value):
        self._set('address', value)

    @property
    def version(self):
        return self._version

    @version.setter
    def version(self, value):
        self._set('version', value)

    @property
    def battery_level(self):
        return self._battery_level

    @battery_level.setter
    def battery_level(self, value):
        self._set('battery_level', value)

    @property
    def suffix(self):
        return self._suffix

    @suffix.setter
    def suffix(self, value):
        self._set('suffix', value)

    @property
    def decode_action(self):
        return self._decode_action

    @decode_action.setter
    def decode_action(self, value):
        self._set('decode_action', value)

    @property
    def local_acknowledgement(self):
        return self._local_acknowledgement

    @local_acknowledgement.setter
    def local_acknowledgement(self, value):
        self._set('local_acknowledgement', value)

    @property
    def symbologies(self):
        return tuple(self._symbologies)

    def symbology(self, symbology_id) -> SymbologyInfo:
        if not 0 <= symbology_id < len(self._symbologies):
            raise ValueError("symbology id out of range: %s" % symbology_id)
        return self._symbologies[symbology_id]

    def set_symbology_status(self, symbology_id, status):
        self.symbology(symbology_id).status = status
        self.changed.fire(DeviceRecordChangedEvent(self, 'symbology_status', (symbology_id, status)))

    def set_symbology_name(self, symbology_id, name):
        self.symbology(symbology_id).name = name
        self.changed.fire(DeviceRecordChangedEvent(self, 'symbology_name', (symbology_id, name)))

    @property
    def is_placeholder(self):
        return self.handle is None

    def __str__(self):
        return self._name

    def __repr__(self):
        return "DeviceRecord(%r, handle=%r)" % (self._name, self.handle)


class DeviceRegistry:
    """
    The connected devices, and the placeholder record when there are none.

    Lookups are linear over the few devices a host typically has connected.
    The registry lock is never held while calling the device layer.

    :param device_layer: used to open and close device sessions
    :param no_device_text: the placeholder's name. The placeholder is only used when this is not empty.
    """

    def __init__(self, device_layer: DeviceLayer, no_device_text='', log=logger):
        self.device_layer = device_layer
        self.logger = log
        self.placeholder = DeviceRecord(no_device_text or '', None)
        self._devices = []
        self._lock = threading.RLock()
        self._update_placeholder()

    @property
    def no_device_text(self):
        return self.placeholder.name

    @no_device_text.setter
    def no_device_text(self, text):
        with self._lock:
            self.placeholder.name = text or ''
            self._update_placeholder()

    @property
    def devices(self):
        """ a snapshot of the records, including the placeholder when present """
        with self._lock:
            return list(self._devices)

    @property
    def connected_devices(self):
        with self._lock:
            return [d for d in self._devices if d is not self.placeholder]

    @property
    def is_device_connected(self):
        return len(self.connected_devices) > 0

    def __len__(self):
        with self._lock:
            return len(self._devices)

    def __iter__(self):
        return iter(self.devices)

    def reset(self):
        """ forgets all records, leaving just the placeholder if one is configured. """
        with self._lock:
            self._devices.clear()
            self._update_placeholder()

    def find(self, handle) -> DeviceRecord:
        if handle is None:
            return None
        with self._lock:
            for device in self._devices:
                if device.handle == handle:
                    return device
        return None

    def on_arrival(self, identity, name, device_type):
        """
        opens a session with a newly arrived device and records it.
        :return: a tuple (result, record). The record is None when the device session could not be opened.
        """
        handle, result = self.device_layer.open_device_session(identity)
        if not succeeded(result):
            self.logger.error("unable to open device %s (%s): %s" % (name, identity, result))
            return result, None
        record = DeviceRecord(name, handle, device_type)
        with self._lock:
            self._devices.append(record)
            if self.placeholder in self._devices:
                self._devices.remove(self.placeholder)
        self.logger.info("device connected: %s" % name)
        return result, record

    def on_removal(self, handle, queue: CommandQueue = None):
        """
        forgets the device with the given handle and cancels its queued commands.
        The device layer handle is closed whether or not a record was found.
        :return: the removed record, or None
        """
        with self._lock:
            found = self.find(handle)
            if found is not None:
                self._devices.remove(found)
                self._update_placeholder()
        try:
            if found is not None:
                if queue is not None:
                    removed = queue.remove_by_device(handle)
                    if removed:
                        self.logger.debug("cancelled %d commands for %s" % (len(removed), found))
                self.logger.info("device disconnected: %s" % found)
            else:
                self.logger.debug("removal of unknown device %r" % handle)
        finally:
            self.device_layer.close_device_session(handle)
        return found

    def close_all(self):
        """ closes the sessions of all connected devices and forgets them. """
        with self._lock:
            closing = [d for d in self._devices if d is not self.placeholder]
            self._devices.clear()
            self._update_placeholder()
        for device in closing:
            self.device_layer.close_device_session(device.handle)
        return closing

    def _update_placeholder(self):
        """ the placeholder is present iff there are no real devices and it has a name """
        real = any(d is not self.placeholder for d in self._devices)
        wanted = not real and len(self.placeholder.name) > 0
        present = self.placeholder in self._devices
        if wanted and not present:
            self._devices.append(self.placeholder)
        elif present and not wanted:
            self._devices.remove(self.placeholder)
