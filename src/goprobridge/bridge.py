"""
The application-facing surface of the bridge.

- MethodChannel: request/response calls by name. Each call is answered through a MethodResult:
  isGoProConnected -> bool, discoverGoProIP -> address or None, bindToGoProNetwork -> bool.
- EventChannel: a push stream to a single subscriber of True/False as cameras are attached/detached.

No exception raised while handling a call crosses the channel; the caller always receives a result.
"""
import logging
import threading
from concurrent.futures import Future

from goprobridge.config.config import BridgeSettings
from goprobridge.device.usb_discovery import UsbDeviceDiscovery, UsbDeviceInventory, is_device_present
from goprobridge.discovery.resource import ResourceAvailableEvent, ResourceUnavailableEvent
from goprobridge.discovery.service_discovery import DiscoverySession
from goprobridge.errors import BridgeError, PlatformError
from goprobridge.network.selector import ConnectivityProber, NetworkInventory, ProcessNetworkBinding
from goprobridge.support.async_loop import AsyncLoop
from goprobridge.support.events import OneShot
from goprobridge.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)

METHOD_CHANNEL = "gopro_usb/methods"
EVENT_CHANNEL = "gopro_usb/events"

IS_CONNECTED = "isGoProConnected"
DISCOVER_IP = "discoverGoProIP"
BIND_NETWORK = "bindToGoProNetwork"


class MethodCallError(BridgeError):
    """ The handler answered a method call with an error. """
    def __init__(self, code, message=None, details=None):
        super().__init__(code if message is None else "%s: %s" % (code, message))
        self.code = code
        self.message = message
        self.details = details


class MethodNotImplementedError(BridgeError):
    """ No handler recognised the method. """


class MethodCall(CommonEqualityMixin):
    def __init__(self, method, arguments=None):
        self.method = method
        self.arguments = arguments


class MethodResult:
    """ Receives the reply to a method call. Exactly one of the methods is called, once. """

    def success(self, value):
        raise NotImplementedError

    def error(self, code, message=None, details=None):
        raise NotImplementedError

    def not_implemented(self):
        raise NotImplementedError


class FutureMethodResult(MethodResult):
    """
    Delivers the reply through a future. Errors are set as the future's exception.
    Replies after the first are ignored.
    """

    def __init__(self, method=None):
        self.method = method
        self.future = Future()
        self._replied = OneShot()

    def success(self, value):
        if self._replied.trip():
            self.future.set_result(value)

    def error(self, code, message=None, details=None):
        if self._replied.trip():
            self.future.set_exception(MethodCallError(code, message, details))

    def not_implemented(self):
        if self._replied.trip():
            self.future.set_exception(MethodNotImplementedError(self.method))

    def result(self, timeout=None):
        return self.future.result(timeout)


class MethodChannel:
    """
    Dispatches named calls to a handler. The handler is called with a MethodCall and a MethodResult.
    """

    def __init__(self, name=METHOD_CHANNEL):
        self.name = name
        self._handler = None

    def set_method_call_handler(self, handler):
        self._handler = handler

    def invoke(self, method, arguments=None, result: MethodResult=None) -> MethodResult:
        """
        Calls the named method.
        :param result: receives the reply. When None, a FutureMethodResult is created.
        :return: the result passed in or created.
        """
        result = result or FutureMethodResult(method)
        handler = self._handler
        if handler is None:
            result.not_implemented()
            return result
        try:
            handler(MethodCall(method, arguments), result)
        except Exception as e:
            logger.exception(e)
            result.error("PLATFORM_ERROR", str(e))
        return result


class Subscription:
    """ A cancellable registration with an EventChannel. """

    def __init__(self, on_cancel):
        self._on_cancel = on_cancel
        self._cancelled = OneShot()

    @property
    def cancelled(self):
        return self._cancelled.tripped

    def cancel(self):
        """ releases the subscription. Further calls do nothing. """
        if self._cancelled.trip():
            self._on_cancel(self)


class EventChannel:
    """
    Streams camera attach (True) and detach (False) notifications to a single subscriber.

    While subscribed, the USB discovery is polled on a background thread, and the subscriber is
    called on that thread. Cameras already attached when the subscription starts are reported as
    attached by the first poll. A new subscription replaces the previous one.
    """

    def __init__(self, discovery: UsbDeviceDiscovery, poll_period=1.0, name=EVENT_CHANNEL, loop_factory=AsyncLoop):
        self.name = name
        self.discovery = discovery
        self.poll_period = poll_period
        self._loop_factory = loop_factory
        self._lock = threading.Lock()
        self._subscription = None
        self._sink = None
        self._loop = None

    @property
    def subscription(self) -> Subscription:
        return self._subscription

    def listen(self, sink) -> Subscription:
        """
        :param sink: a callable that receives True or False.
        :return: the subscription. Cancel it to stop the stream.
        """
        self.cancel()
        subscription = Subscription(self._release)
        loop = self._loop_factory(self.discovery.update, period=self.poll_period)
        with self._lock:
            self._subscription = subscription
            self._sink = sink
            self._loop = loop
            self.discovery.reset()
            self.discovery.listeners.add(self._resource_event)
        logger.debug("EventChannel listener attached")
        loop.start()
        return subscription

    def cancel(self):
        """ cancels the current subscription, if any. """
        subscription = self._subscription
        if subscription is not None:
            subscription.cancel()

    def _release(self, subscription):
        with self._lock:
            if subscription is not self._subscription:
                return
            self._subscription = None
            self._sink = None
            loop, self._loop = self._loop, None
            self.discovery.listeners.remove(self._resource_event)
        if loop is not None:
            loop.stop()
        logger.debug("EventChannel listener cancelled")

    def _resource_event(self, event):
        sink = self._sink
        if sink is None:
            return
        if type(event) is ResourceAvailableEvent:
            sink(True)
        elif type(event) is ResourceUnavailableEvent:
            sink(False)


class GoProBridge:
    """
    Implements the bridge operations and wires them to a method channel and an event channel.

    :param settings: the BridgeSettings. When None, they are loaded from the configuration files.
    :param binder: the process-wide network binding. Share it with whatever connects to the camera.
    """

    def __init__(self, settings: BridgeSettings=None, usb_inventory: UsbDeviceInventory=None,
                 network_inventory: NetworkInventory=None, binder=None, session_factory=DiscoverySession):
        self.settings = settings = settings or BridgeSettings.load()
        self.usb_inventory = usb_inventory or UsbDeviceInventory()
        self.binder = binder or ProcessNetworkBinding()
        self.prober = ConnectivityProber(network_inventory or NetworkInventory(settings.cellular_patterns),
                                         self.binder, settings.tether_patterns)
        self._session_factory = session_factory
        self._sessions = set()
        self._lock = threading.Lock()

        self.methods = MethodChannel()
        self.methods.set_method_call_handler(self.handle)
        self.events = EventChannel(UsbDeviceDiscovery(self.usb_inventory, settings.vendor_id),
                                   settings.poll_period)

    def is_gopro_connected(self) -> bool:
        try:
            devices = self.usb_inventory.devices()
        except PlatformError as e:
            logger.warning("%s" % e)
            return False
        connected = is_device_present(devices, self.settings.vendor_id)
        logger.info("isGoProConnected: %s" % connected)
        return connected

    def discover_gopro_ip(self, callback=None) -> DiscoverySession:
        """
        Starts discovering the camera's address. The callback receives the address, or the
        configured no-result value when no camera is found within the timeout.
        :return: the running session; its result attribute is a future for the same value.
        """
        s = self.settings
        session = self._session_factory(service_type=s.service_type, timeout=s.timeout,
                                        name_marker=s.name_marker, on_timeout=s.on_timeout,
                                        fallback_address=s.fallback_address, strict_address=s.strict_address)
        with self._lock:
            self._sessions.add(session)
        session.result.add_done_callback(lambda f: self._forget(session))
        session.start(callback)
        return session

    def _forget(self, session):
        with self._lock:
            self._sessions.discard(session)

    def bind_to_gopro_network(self) -> bool:
        return self.prober.select_network()

    def handle(self, call: MethodCall, result: MethodResult):
        method = call.method
        logger.debug("%s called" % method)
        if method == IS_CONNECTED:
            result.success(self.is_gopro_connected())
        elif method == DISCOVER_IP:
            self.discover_gopro_ip(result.success)
        elif method == BIND_NETWORK:
            result.success(self.bind_to_gopro_network())
        else:
            result.not_implemented()

    def dispose(self):
        """ cancels running discoveries and the event subscription. """
        with self._lock:
            sessions = tuple(self._sessions)
        for session in sessions:
            session.cancel()
        self.events.cancel()
