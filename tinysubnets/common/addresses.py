"""
Address and duration value types shared by the engine, broker and client.

Addresses travel over the wire as dotted quads and durations as strings like
"1h0m0s"; everything inside the engine works with 32-bit integers and
timedelta objects.
"""

import ipaddress
import re
from datetime import timedelta

# Only /30 blocks are handed out: network, router, host, broadcast
BLOCK_SIZE = 4
SUBNET_MASK = '255.255.255.252'
HOST_OFFSET = 2

MISSING_NAME = 'DefaultMissingName'

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]+')
_MAC_PATTERN = re.compile(r'^[0-9a-f]{2}([:-]?)[0-9a-f]{2}(\1[0-9a-f]{2}){4}$')
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')

_UNIT_SECONDS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1,
    'm': 60,
    'h': 3600,
}


def ip_to_int(ip):
    """Convert IP string to integer"""
    return int(ipaddress.IPv4Address(ip))


def int_to_ip(ip_int):
    """Convert integer to IP string"""
    return str(ipaddress.IPv4Address(ip_int & 0xFFFFFFFF))


def parse_ipv4(text):
    """Parse a dotted-quad IPv4 address, raising ValueError on anything else"""
    if not isinstance(text, str):
        raise ValueError(f"invalid IPv4 address: {text!r}")
    try:
        return ipaddress.IPv4Address(text.strip())
    except ipaddress.AddressValueError as e:
        raise ValueError(f"invalid IPv4 address: {text!r}") from e


def router_for(ip):
    """The router of a /30 block sits directly below the host address"""
    return int_to_ip(ip_to_int(ip) - 1)


def parse_duration(text):
    """Parse a duration string such as "12h", "1h30m" or "90s" into a timedelta.

    The accepted grammar is a sequence of decimal numbers, each with a unit
    suffix (ns, us, ms, s, m, h). A bare "0" is also accepted. Negative
    durations are rejected.
    """
    if not isinstance(text, str):
        raise ValueError(f"invalid duration: {text!r}")
    value = text.strip()
    if value in ('0', '+0'):
        return timedelta(0)
    if value.startswith('+'):
        value = value[1:]
    if not value:
        raise ValueError(f"invalid duration: {text!r}")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if not match:
            raise ValueError(f"invalid duration: {text!r}")
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()

    return timedelta(seconds=total)


def format_duration(duration):
    """Format a timedelta the way parse_duration reads it back, e.g. "1h0m0s"."""
    total = duration.total_seconds()
    if total < 0:
        raise ValueError(f"negative duration: {duration}")
    if total == 0:
        return '0s'
    if total < 1:
        return f"{_trim(total * 1000)}ms"

    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    seconds = _trim(seconds)
    if hours:
        return f"{int(hours)}h{int(minutes)}m{seconds}s"
    if minutes:
        return f"{int(minutes)}m{seconds}s"
    return f"{seconds}s"


def _trim(number):
    # 30.0 -> "30", 1.5 -> "1.5"
    text = f"{number:.6f}".rstrip('0').rstrip('.')
    return text or '0'


def normalize_mac(mac_address):
    """Return the MAC as lowercase colon-separated octets or raise ValueError"""
    if not isinstance(mac_address, str):
        raise ValueError(f"invalid hardware address: {mac_address!r}")
    value = mac_address.strip().lower()
    if not _MAC_PATTERN.match(value):
        raise ValueError(f"invalid hardware address: {mac_address!r}")
    hex_digits = value.replace(':', '').replace('-', '')
    return ':'.join(hex_digits[i:i + 2] for i in range(0, 12, 2))


def sanitize(text):
    """Strip everything but letters, digits, '.', '-' and '_'"""
    if not text:
        return ''
    return _UNSAFE_CHARS.sub('', str(text))


def sanitize_hostname(hostname):
    """Sanitize a client supplied hostname, substituting a placeholder when nothing is left"""
    return sanitize(hostname) or MISSING_NAME


def block_size_from_mask(mask):
    """Number of addresses described by a dotted-quad netmask (0 for no mask)"""
    if not mask:
        return 0
    network = ipaddress.IPv4Network(f"0.0.0.0/{mask}")
    return network.num_addresses
