# src/netspamlock/firewall/rules.py
import fcntl, ipaddress
from contextlib import contextmanager
from dataclasses import dataclass, replace

from netspamlock.census.classifier import normalize
from netspamlock.errors import StoreError

ACTION_BLOCK = "block"
DIRECTION_IN = "in"
INTERFACES_ALL = "all"
RULE_DESCRIPTION = "Rule added by NetSpamLock to ban malicious IPs."


@dataclass
class BlockRule:
    name: str
    description: str = RULE_DESCRIPTION
    action: str = ACTION_BLOCK
    direction: str = DIRECTION_IN
    enabled: bool = True
    interfaces: str = INTERFACES_ALL
    addresses: str = ""

    def with_defaults(self, addresses):
        """Copy with the block fields re-asserted and a new address list."""
        return replace(self, action=ACTION_BLOCK, direction=DIRECTION_IN,
                       enabled=True, interfaces=INTERFACES_ALL,
                       addresses=format_addresses(addresses))


def parse_addresses(wire):
    """
    Split a comma-joined address field into a set. Parseable entries become
    ipaddress objects; anything else (ranges, subnets) is kept verbatim so a
    rewrite never drops it.
    """
    entries = set()
    for token in (wire or "").split(","):
        token = token.strip()
        if not token:
            continue
        try:
            entries.add(normalize(token))
        except ValueError:
            entries.add(token)
    return entries


def _sort_key(entry):
    if isinstance(entry, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return (entry.version, int(entry), "")
    return (10, 0, entry)


def format_addresses(entries):
    return ",".join(str(e) for e in sorted(set(entries), key=_sort_key))


class RuleStore:
    """
    Persistence for named block rules. get_rule raises RuleNotFound when the
    name is unknown; every other failure is a StoreError.
    """

    def __init__(self, lock_path=None):
        self.lock_path = lock_path

    def get_rule(self, name):
        raise NotImplementedError

    def add_rule(self, rule):
        raise NotImplementedError

    def update_rule(self, rule):
        raise NotImplementedError

    @contextmanager
    def locked(self):
        """Hold an exclusive advisory lock around a fetch-modify-write cycle."""
        if not self.lock_path:
            yield
            return
        try:
            fh = open(self.lock_path, "a")
        except OSError as e:
            raise StoreError(f"Cannot open lock file {self.lock_path}: {e}")
        try:
            fcntl.flock(fh, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)
            fh.close()
