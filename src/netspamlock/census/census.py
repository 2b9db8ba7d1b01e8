# src/netspamlock/census/census.py
from collections import Counter, namedtuple
import psutil
from netspamlock.census.classifier import build_self_set, is_self, normalize
from netspamlock.errors import OsQueryError
from netspamlock.utils.logger import get_logger

_logger = get_logger()

TcpRecord = namedtuple("TcpRecord", "local_ip local_port remote_ip remote_port status")

# states that never describe a live peer
IGNORED_STATES = {psutil.CONN_LISTEN, psutil.CONN_NONE, psutil.CONN_CLOSE}


class ConnectionSource:
    """Read access to the host's TCP connection table."""

    def connections(self):
        raise NotImplementedError

    def self_addresses(self, extra=(), include_broadcast=True):
        return build_self_set(extra, include_broadcast)


class PsutilConnectionSource(ConnectionSource):
    def connections(self):
        try:
            conns = psutil.net_connections(kind="tcp")
        except (psutil.Error, OSError) as e:
            raise OsQueryError(f"Cannot read the TCP connection table: {e}")
        records = []
        for conn in conns:
            laddr = conn.laddr or ("", 0)
            raddr = conn.raddr or ("", 0)
            records.append(TcpRecord(laddr[0], laddr[1], raddr[0], raddr[1], conn.status))
        return records


class ConnectionCensus:
    def __init__(self, source=None, inbound_only=True, extra_self=(), include_broadcast=True):
        self.source = source or PsutilConnectionSource()
        self.inbound_only = inbound_only
        self.extra_self = tuple(extra_self)
        self.include_broadcast = include_broadcast

    def census(self):
        """
        Take one snapshot of the connection table and count live connections
        per remote peer. Self addresses never appear in the result.
        """
        records = list(self.source.connections())
        self_set = self.source.self_addresses(self.extra_self, self.include_broadcast)
        listening = {r.local_port for r in records if r.status == psutil.CONN_LISTEN}

        counts = Counter()
        for r in records:
            if not r.remote_ip or r.status in IGNORED_STATES:
                continue
            if self.inbound_only and r.local_port not in listening:
                continue
            try:
                addr = normalize(r.remote_ip)
            except ValueError:
                _logger.warning(f"[CENSUS] Unparseable remote address {r.remote_ip!r}")
                continue
            if is_self(addr, self_set):
                continue
            counts[addr] += 1

        _logger.info(f"[CENSUS] {sum(counts.values())} connections from {len(counts)} remote peers")
        return dict(counts)


def ranked(counts):
    """Census entries by descending count; ties ordered by address."""
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0].version, int(kv[0])))
