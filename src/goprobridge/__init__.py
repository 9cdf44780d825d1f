"""


Camera Bridge

- presence check - lists the host's USB devices and looks for the camera's vendor id.
    is_device_present, UsbDeviceInventory
- attach/detach monitoring - UsbDeviceDiscovery is a polled resource discovery. Each poll diffs
    the attached cameras against the previous poll and posts
    ResourceAvailableEvent, ResourceUnavailableEvent.
- service discovery - DiscoverySession browses mDNS for the camera's web service. The service
    name carries the camera serial number, and the serial fixes the camera's USB network address
    (172.2X.1YZ.51 from the last three characters.)
- network selection - ConnectivityProber picks the host interface that reaches the camera and
    binds outbound traffic to it through a NetworkBinder.
- channels - GoProBridge exposes the operations on a MethodChannel and streams attach/detach
    as True/False on an EventChannel.


## Threading

zeroconf runs its browser on its own thread and calls the session listener from there.
The discovery timeout runs on a timer thread. Either may complete the session; a one-shot latch
makes sure only the first does.

USB monitoring runs on an AsyncLoop background thread while the event channel has a subscriber.
Subscribers are called on that thread.

Network binding is process-wide state held by the binder. The bridge owns one binder and
everything connecting to the camera should share it.


"""
