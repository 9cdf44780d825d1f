"""
Maps the name a camera advertises over mDNS to the address of its USB network.

Cameras advertise a service instance whose name carries the 14 character serial number,
e.g. "GoPro-C3601370011883". The camera's USB network address is fixed by the last three
characters of that serial: 172.2X.1YZ.51.
"""
import re

SERIAL_PATTERN = r"[A-Z0-9]{14}"

# 172.2<X>.1<Y><Z>.51
ADDRESS_TEMPLATE = "172.2%s.1%s%s.51"


class SerialNumberMatcher:
    """
    Finds a serial number in a free-form service name.
    The serial must be a complete run of the pattern's alphabet: a longer or shorter run is not a match.
    """

    def __init__(self, pattern=SERIAL_PATTERN):
        # bounded so that a run of 15 characters does not yield its first 14
        self.regex = re.compile(r"(?<![A-Z0-9])" + pattern + r"(?![A-Z0-9])")

    def extract(self, name):
        """
        >>> SerialNumberMatcher().extract("GoPro-C3601370011883")
        'C3601370011883'
        >>> SerialNumberMatcher().extract("GoPro-short") is None
        True
        """
        match = self.regex.search(name or "")
        return match.group(0) if match else None

    def __call__(self, name):
        return self.extract(name)


_default_matcher = SerialNumberMatcher()


def extract_serial(name):
    """ retrieves the first serial number in the given name, or None. """
    return _default_matcher.extract(name)


def derive_address(serial, strict=False):
    """
    Computes the USB network address of the camera with the given serial number.
    The trailing characters are substituted as they are, unless strict is set,
    in which case a serial that does not end in three digits is rejected.

    >>> derive_address("C3601370011883")
    '172.28.183.51'
    """
    if serial is None or len(serial) < 3:
        raise ValueError("serial %r is too short to derive an address" % serial)
    x, y, z = serial[-3:]
    if strict and not (x + y + z).isdigit():
        raise ValueError("serial %s does not end in three digits" % serial)
    return ADDRESS_TEMPLATE % (x, y, z)
