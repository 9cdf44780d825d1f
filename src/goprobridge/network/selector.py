"""
Chooses the host network that reaches a USB-attached camera and binds outbound traffic to it.

The camera's USB network appears on the host as an ordinary interface, usually named after the
USB networking driver (usb0, rndis0, ncm0, eth1...) and holding an address in 172.2X.1YZ.0/24.
Selection is a heuristic: interfaces that look like the camera's are tried first, then any
non-cellular interface.
"""
import ipaddress
import logging
import re
import socket
import threading
from abc import abstractmethod

import psutil

from goprobridge.errors import BindError, PlatformError
from goprobridge.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

TETHER_PATTERNS = ("usb", "rndis", "ncm", "eth")
CELLULAR_PATTERNS = ("rmnet", "ccmni", "wwan", "pdp", "cellular")

# 172.2X.1YZ.*
DEVICE_NETWORK = re.compile(r"^172\.2\d\.1\d\d\.\d{1,3}$")


class NetworkCandidate(CommonEqualityMixin, StringerMixin):
    """ A host network interface that outbound traffic could be bound to. """

    def __init__(self, interface_name, addresses=(), is_cellular=False):
        self.interface_name = interface_name
        self.addresses = tuple(addresses)
        self.is_cellular = is_cellular

    @property
    def ipv4_addresses(self):
        return tuple(a for a in self.addresses if _version(a) == 4)


def _version(address):
    try:
        return ipaddress.ip_address(address.split('%')[0]).version
    except ValueError:
        return None


def _is_loopback(address):
    try:
        return ipaddress.ip_address(address.split('%')[0]).is_loopback
    except ValueError:
        return False


def matches_any(name, patterns):
    """
    >>> matches_any("USB0", ("usb", "ncm"))
    True
    >>> matches_any("wlan0", ("usb", "ncm"))
    False
    """
    name = (name or "").lower()
    return any(p in name for p in patterns)


def on_device_network(candidate: NetworkCandidate):
    """ determines if the candidate holds an address on a camera's USB network. """
    return any(DEVICE_NETWORK.match(a) for a in candidate.ipv4_addresses)


class NetworkInventory:
    """
    Lists the host's network interfaces that are up, using psutil.
    psutil does not report the transport type, so cellular interfaces are recognised by name.
    """

    def __init__(self, cellular_patterns=CELLULAR_PATTERNS):
        self.cellular_patterns = tuple(cellular_patterns)

    def candidates(self) -> list:
        """
        :raises PlatformError: when the interfaces cannot be listed.
        """
        try:
            interfaces = psutil.net_if_addrs()
            stats = psutil.net_if_stats()
        except (OSError, psutil.Error) as e:
            raise PlatformError("unable to list network interfaces: %s" % e) from e

        candidates = []
        for name, nics in sorted(interfaces.items()):
            stat = stats.get(name)
            if stat is None or not stat.isup:
                continue
            addresses = tuple(n.address for n in nics if n.family in (socket.AF_INET, socket.AF_INET6))
            if addresses and all(_is_loopback(a) for a in addresses):
                continue
            candidates.append(NetworkCandidate(name, addresses, matches_any(name, self.cellular_patterns)))
        return candidates


class NetworkBinder:
    """ Binds the process's outbound traffic to a network. """

    @abstractmethod
    def bind(self, candidate: NetworkCandidate):
        """
        Binds all subsequent outbound traffic to the candidate network.
        :raises BindError: when the host rejects the binding.
        """
        raise NotImplementedError


class ProcessNetworkBinding(NetworkBinder):
    """
    Holds the network that outbound connections are made from.
    The binding applies to every connection made through create_connection(), until it is
    replaced by another bind() or removed by unbind().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._bound = None
        self._source_address = None

    @property
    def bound(self) -> NetworkCandidate:
        return self._bound

    @property
    def source_address(self):
        return self._source_address

    def bind(self, candidate: NetworkCandidate):
        addresses = candidate.ipv4_addresses
        if not addresses:
            raise BindError("interface %s has no IPv4 address" % candidate.interface_name)
        source = addresses[0]
        try:
            # proves the address is held by the host and can source traffic
            probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                probe.bind((source, 0))
            finally:
                probe.close()
        except OSError as e:
            raise BindError("cannot bind to %s (%s): %s" % (candidate.interface_name, source, e)) from e
        with self._lock:
            self._bound = candidate
            self._source_address = source
        logger.info("bound to network %s (%s)" % (candidate.interface_name, source))

    def unbind(self):
        with self._lock:
            self._bound = None
            self._source_address = None

    def create_connection(self, address, timeout=5):
        """
        opens a TCP connection to address (host, port), sourced from the bound network if there is one.
        """
        source = self._source_address
        return socket.create_connection(address, timeout, source_address=(source, 0) if source else None)


class ConnectivityProber:
    """
    Selects the network most likely to reach the camera and binds to it.

    :param inventory  lists the candidate networks.
    :param binder  performs the binding. The binding is process-wide, so one binder should be shared
        by everything that connects to the camera.
    :param tether_patterns  interface name fragments that identify USB networking interfaces.
    """

    def __init__(self, inventory: NetworkInventory=None, binder: NetworkBinder=None,
                 tether_patterns=TETHER_PATTERNS):
        self.inventory = inventory or NetworkInventory()
        self.binder = binder or ProcessNetworkBinding()
        self.tether_patterns = tuple(tether_patterns)

    def is_device_candidate(self, candidate: NetworkCandidate):
        return matches_any(candidate.interface_name, self.tether_patterns) or on_device_network(candidate)

    def _try_bind(self, candidate):
        try:
            self.binder.bind(candidate)
            return True
        except BindError as e:
            logger.info("Failed to bind to %s: %s" % (candidate.interface_name, e))
            return False

    def select_network(self) -> bool:
        """
        :return: True if outbound traffic is now bound to a network.
        """
        try:
            candidates = tuple(self.inventory.candidates())
        except PlatformError as e:
            logger.warning("%s" % e)
            return False

        logger.info("Found %d networks, scanning for the camera network" % len(candidates))
        for candidate in candidates:
            logger.debug("Network interface: %s addresses: %s" % (candidate.interface_name,
                                                                   ", ".join(candidate.addresses)))
            if self.is_device_candidate(candidate):
                logger.info("Found potential camera network: %s" % candidate.interface_name)
                if self._try_bind(candidate):
                    return True

        logger.info("No USB network found, trying all non-cellular networks")
        for candidate in candidates:
            if not candidate.is_cellular and self._try_bind(candidate):
                return True

        logger.info("Could not bind to any network")
        return False
