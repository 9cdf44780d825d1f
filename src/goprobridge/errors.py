"""
Errors raised inside the bridge. None of these cross the channel boundary: each component
absorbs them, logs them, and reports a negative result (None or False) to its caller.

A device or service that cannot be found is a valid negative result, not an error.
"""


class BridgeError(Exception):
    """ base class for bridge errors. """


class BindError(BridgeError):
    """ The host rejected binding process traffic to a network interface. """


class PlatformError(BridgeError):
    """ An operating system facility (USB backend, mDNS, interface introspection) failed. """
