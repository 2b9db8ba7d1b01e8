# src/netspamlock/census/classifier.py
import ipaddress, socket
import psutil
from netspamlock.errors import ConfigError
from netspamlock.utils.logger import get_logger

_logger = get_logger()

# "No address" is 255.255.255.255 for IPv4, which is also the broadcast
# address. IPv6 has no broadcast and its "none" form is ::, already present.
SENTINELS = (
    ipaddress.IPv4Address("0.0.0.0"),
    ipaddress.IPv6Address("::"),
    ipaddress.IPv4Address("127.0.0.1"),
    ipaddress.IPv6Address("::1"),
)
BROADCAST_SENTINEL = ipaddress.IPv4Address("255.255.255.255")


def normalize(value):
    """
    Return the canonical ipaddress object for a textual or parsed address.
    Zone ids are dropped and IPv4-mapped IPv6 addresses become IPv4, so
    equal bytes always compare and hash equal.
    """
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        text = str(value)
    else:
        text = str(value).strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
    text = text.split("%", 1)[0]
    addr = ipaddress.ip_address(text)
    if addr.version == 6 and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def _interface_addresses():
    found = set()
    for iface, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            try:
                found.add(normalize(addr.address))
            except ValueError:
                _logger.warning(f"[CLASSIFY] Skipping odd address {addr.address!r} on {iface}")
    return found


def _hostname_addresses():
    found = set()
    hostname = socket.gethostname()
    try:
        infos = socket.getaddrinfo(hostname, None)
    except (socket.gaierror, socket.herror, UnicodeError) as e:
        _logger.warning(f"[CLASSIFY] Could not resolve own hostname {hostname}: {e}")
        return found
    for family, _, _, _, sockaddr in infos:
        if family in (socket.AF_INET, socket.AF_INET6):
            found.add(normalize(sockaddr[0]))
    return found


def build_self_set(extra=(), include_broadcast=True):
    """Collect every address that belongs to this host, plus sentinels."""
    self_set = set(SENTINELS)
    if include_broadcast:
        self_set.add(BROADCAST_SENTINEL)
    try:
        self_set |= _interface_addresses()
    except (psutil.Error, OSError) as e:
        _logger.warning(f"[CLASSIFY] Could not list interface addresses: {e}")
    self_set |= _hostname_addresses()
    for value in extra:
        try:
            self_set.add(normalize(value))
        except ValueError:
            raise ConfigError(f"SelfAddresses entry {value!r} is not an IP address")
    return frozenset(self_set)


def is_self(addr, self_set):
    addr = normalize(addr)
    if addr.is_loopback or addr.is_unspecified:
        return True
    return addr in self_set


def filter_remote(observed, self_set):
    """Drop self addresses from `observed` and return the normalized rest."""
    remote = set()
    for value in observed:
        addr = normalize(value)
        if not is_self(addr, self_set):
            remote.add(addr)
    return remote
