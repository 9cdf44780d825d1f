"""
Time-bounded discovery of a camera advertised over mDNS.

A DiscoverySession browses for one service type using zeroconf. Each advertised service name is
searched for a serial number, and the first serial found is converted to the camera's address.
The session completes exactly once: with the address, when the timeout elapses, when browsing
cannot start, or when the session is cancelled.
"""
import logging
import threading
from concurrent.futures import Future
from enum import Enum

from zeroconf import ServiceBrowser, Zeroconf

from goprobridge.device.serial_number import SerialNumberMatcher, derive_address
from goprobridge.support.events import OneShot
from goprobridge.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = "gopro-web"
DEFAULT_TIMEOUT = 10.0
# no name filtering; platforms that need it configure a marker
DEFAULT_NAME_MARKER = ""
FALLBACK_ADDRESS = "172.28.183.51"

# what a session delivers when it times out
NO_RESULT = "none"
FALLBACK = "fallback"


class SessionState(Enum):
    IDLE = "idle"
    BROWSING = "browsing"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


def qualify_service_type(service_type):
    """
    >>> qualify_service_type("gopro-web")
    '_gopro-web._tcp.local.'
    >>> qualify_service_type("_gopro-web._tcp")
    '_gopro-web._tcp.local.'
    >>> qualify_service_type("_gopro-web._tcp.local.")
    '_gopro-web._tcp.local.'
    """
    if service_type.endswith("."):
        return service_type
    if service_type.startswith("_"):
        return service_type + ".local."
    return "_" + service_type + "._tcp.local."


class ServiceAdvertisement(CommonEqualityMixin):
    """ A service instance announced on the local network. """

    def __init__(self, name, type):
        self.name = name
        self.type = type

    @staticmethod
    def from_service(svc_type, svc_name):
        """
        builds the advertisement from the names zeroconf reports. The instance name is
        the service name without the trailing service type.

        >>> ServiceAdvertisement.from_service("_gopro-web._tcp.local.", "GoPro-C3601370011883._gopro-web._tcp.local.").name
        'GoPro-C3601370011883'
        """
        suffix = "." + svc_type
        name = svc_name[:-len(suffix)] if svc_name.endswith(suffix) else svc_name
        return ServiceAdvertisement(name, svc_type)


class DiscoverySession:
    """
    Browses for a camera until an advertisement yields an address or the timeout elapses.

    The session is a zeroconf service listener. zeroconf calls add_service/update_service
    on its own thread and the timeout runs on a timer thread, so completion is guarded by a latch:
    whichever happens first completes the session, and the other is ignored.

    :param service_type  the service type to browse. A bare subtype such as "gopro-web" is
        qualified as a local TCP service.
    :param timeout  seconds to browse before giving up.
    :param name_marker  when set, only services whose name contains the marker (ignoring case)
        are considered.
    :param on_timeout  NO_RESULT to deliver None on timeout, FALLBACK to deliver fallback_address.
    :param strict_address  when True, a serial that does not end in digits is ignored.
    :param zeroconf  a Zeroconf instance to browse with. When None, the session creates one and
        closes it when the session ends.
    """

    def __init__(self, service_type=DEFAULT_SERVICE_TYPE, timeout=DEFAULT_TIMEOUT,
                 name_marker=DEFAULT_NAME_MARKER, matcher=None, on_timeout=NO_RESULT,
                 fallback_address=FALLBACK_ADDRESS, strict_address=False, zeroconf=None,
                 zeroconf_factory=Zeroconf, browser_factory=ServiceBrowser, timer_factory=threading.Timer):
        if on_timeout not in (NO_RESULT, FALLBACK):
            raise ValueError("on_timeout must be '%s' or '%s', not %r" % (NO_RESULT, FALLBACK, on_timeout))
        self.service_type = qualify_service_type(service_type)
        self.timeout = timeout
        self.name_marker = name_marker
        self.matcher = matcher or SerialNumberMatcher()
        self.on_timeout = on_timeout
        self.fallback_address = fallback_address
        self.strict_address = strict_address
        self.state = SessionState.IDLE
        self.result = Future()
        self._zeroconf = zeroconf
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory
        self._timer_factory = timer_factory
        self._callback = None
        self._latch = OneShot()
        self._lock = threading.Lock()
        self._timer = None
        self._browser = None
        self._owned_zeroconf = None

    @property
    def done(self):
        return self._latch.tripped

    def start(self, callback=None) -> Future:
        """
        Starts browsing. Returns immediately.
        :param callback: called once with the address, or with None/the fallback address
            when no camera is found.
        :return: a future for the same value passed to the callback.
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError("discovery session already started")
        self._callback = callback
        self.state = SessionState.BROWSING
        logger.info("Discovery started for %s" % self.service_type)

        timer = self._timer_factory(self.timeout, self._timed_out)
        timer.daemon = True
        self._timer = timer
        timer.start()

        try:
            zc = self._zeroconf
            if zc is None:
                zc = self._owned_zeroconf = self._zeroconf_factory()
            browser = self._browser_factory(zc, self.service_type, listener=self)
        except Exception as e:
            logger.warning("Discovery start failed: %s" % e)
            self._complete(SessionState.FAILED, None)
            return self.result

        with self._lock:
            self._browser = browser
        if self.done:
            # completed while the browser was being created
            self.stop()
        return self.result

    def add_service(self, zc, type_, name):
        """ notification from the service browser that a service has been added """
        self._advertised(ServiceAdvertisement.from_service(type_, name))

    def update_service(self, zc, type_, name):
        """ notification from the service browser that a service has been updated """
        self._advertised(ServiceAdvertisement.from_service(type_, name))

    def remove_service(self, zc, type_, name):
        logger.info("Service lost: %s" % name)

    def _advertised(self, advertisement: ServiceAdvertisement):
        if self.done:
            return
        name = advertisement.name
        logger.info("Service found: %s" % name)
        if self.name_marker and self.name_marker.lower() not in name.lower():
            logger.debug("ignoring service %s" % name)
            return
        serial = self.matcher(name)
        if serial is None:
            logger.debug("no serial number in service name %s" % name)
            return
        try:
            address = derive_address(serial, self.strict_address)
        except ValueError as e:
            logger.warning("ignoring service %s: %s" % (name, e))
            return
        if self._complete(SessionState.RESOLVED, address):
            logger.info("Serial: %s, constructed IP: %s" % (serial, address))

    def _timed_out(self):
        value = self.fallback_address if self.on_timeout == FALLBACK else None
        if self._complete(SessionState.TIMED_OUT, value):
            logger.info("Service discovery timed out after %ss, result %s" % (self.timeout, value))

    def cancel(self):
        """
        Cancels the session. A session that has not completed completes with None.
        Calling cancel on a completed session does nothing.
        """
        if self._complete(SessionState.CANCELLED, None):
            logger.info("Discovery cancelled")

    def _complete(self, state, value):
        """
        Completes the session the first time it is called.
        :return: True if this call completed the session.
        """
        if not self._latch.trip():
            return False
        self.state = state
        self.stop()
        self.result.set_result(value)
        callback = self._callback
        if callback is not None:
            try:
                callback(value)
            except Exception as e:
                logger.exception(e)
        return True

    def stop(self):
        """
        Stops browsing and cancels the timeout. Safe to call any number of times, from any thread.
        """
        with self._lock:
            timer, self._timer = self._timer, None
            browser, self._browser = self._browser, None
            zc, self._owned_zeroconf = self._owned_zeroconf, None
        if timer is not None:
            timer.cancel()
        if browser is None and zc is None:
            return
        if browser is not None and browser is threading.current_thread():
            # the browser cannot be joined from its own thread
            threading.Thread(target=self._close, args=(browser, zc), daemon=True).start()
        else:
            self._close(browser, zc)

    @staticmethod
    def _close(browser, zc):
        if browser is not None:
            try:
                browser.cancel()
            except Exception as e:
                logger.debug("Error stopping discovery: %s" % e)
        if zc is not None:
            try:
                zc.close()
            except Exception as e:
                logger.debug("Error closing zeroconf: %s" % e)
        logger.info("Discovery stopped")


def discover_address(service_type=DEFAULT_SERVICE_TYPE, timeout=DEFAULT_TIMEOUT, callback=None, **kwargs):
    """
    Starts a discovery session.
    :return: the session. Its result attribute is a future for the discovered address.
    """
    session = DiscoverySession(service_type, timeout, **kwargs)
    session.start(callback)
    return session
