"""
Detects cameras attached to the host's USB ports.
Devices are recognised by their USB vendor id.
"""

import logging

import usb.core

from goprobridge.discovery.resource import PolledResourceDiscovery
from goprobridge.errors import PlatformError
from goprobridge.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

GOPRO_VENDOR_ID = 0x2672


class UsbDeviceInfo(CommonEqualityMixin, StringerMixin):
    """ Describes a device attached to a USB bus. """

    def __init__(self, bus, address, vendor_id, product_id):
        self.bus = bus
        self.address = address
        self.vendor_id = vendor_id
        self.product_id = product_id

    @property
    def key(self):
        """
        >>> UsbDeviceInfo(1, 7, 0x2672, 0x59).key
        '1:7'
        """
        return "%s:%s" % (self.bus, self.address)

    @staticmethod
    def from_usb(device):
        """ builds the info from a pyusb device """
        return UsbDeviceInfo(device.bus, device.address, device.idVendor, device.idProduct)

    def describe(self):
        return "VendorID: 0x%04x, ProductID: 0x%04x" % (self.vendor_id, self.product_id)


class UsbDeviceInventory:
    """
    Lists the devices presently attached to the host.
    :param backend the pyusb backend to use, or None to let pyusb choose.
    """

    def __init__(self, backend=None):
        self.backend = backend

    def devices(self) -> tuple:
        """
        :return: a tuple of UsbDeviceInfo for each attached device.
        :raises PlatformError: when the host USB backend is not available.
        """
        try:
            return tuple(UsbDeviceInfo.from_usb(d) for d in usb.core.find(find_all=True, backend=self.backend))
        except (usb.core.NoBackendError, usb.core.USBError) as e:
            raise PlatformError("unable to enumerate USB devices: %s" % e) from e


def is_vendor_device(device, vendor_id=GOPRO_VENDOR_ID):
    return device.vendor_id == vendor_id


def is_device_present(devices=None, vendor_id=GOPRO_VENDOR_ID) -> bool:
    """
    Determines if a device from the given vendor is attached.
    :param devices: the attached devices. When None, the host's devices are enumerated.
        A host with no usable USB backend has no devices.
    """
    if devices is None:
        try:
            devices = UsbDeviceInventory().devices()
        except PlatformError as e:
            logger.warning("%s" % e)
            return False

    logger.debug("Checking %d USB devices" % len(devices))
    for device in devices:
        logger.debug("Device - %s" % device.describe())
        if is_vendor_device(device, vendor_id):
            logger.debug("Found device from vendor 0x%04x" % vendor_id)
            return True
    return False


class UsbDeviceDiscovery(PolledResourceDiscovery):
    """
    Monitors the host's USB devices for devices from a given vendor.
    Each call to update() fires ResourceAvailableEvent for newly attached devices and
    ResourceUnavailableEvent for detached devices.
    """

    def __init__(self, inventory: UsbDeviceInventory=None, vendor_id=GOPRO_VENDOR_ID):
        super().__init__()
        self.inventory = inventory or UsbDeviceInventory()
        self.vendor_id = vendor_id

    def _is_allowed(self, key, device: UsbDeviceInfo):
        return is_vendor_device(device, self.vendor_id)

    def _fetch_available(self):
        return {d.key: d for d in self.inventory.devices()}

    def attached(self, key, device):
        logger.info("device attached: %s %s" % (key, device.describe()))

    def detached(self, key, device):
        logger.info("device detached: %s %s" % (key, device.describe()))

    def update(self):
        """
        Scans the attached devices. A failed scan leaves the known devices unchanged.
        """
        try:
            super().update()
        except PlatformError as e:
            logger.warning("USB scan failed: %s" % e)
