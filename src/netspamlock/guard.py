# src/netspamlock/guard.py
from netspamlock.census.census import ConnectionCensus, ranked
from netspamlock.census.detection import select
from netspamlock.firewall.ipset_store import IpsetRuleStore
from netspamlock.firewall.json_store import JsonRuleStore
from netspamlock.firewall.reconciler import BlocklistReconciler
from netspamlock.utils.logger import get_logger
from netspamlock.utils.persistence import append_block_events

_logger = get_logger()


def build_census(config, source=None):
    return ConnectionCensus(source, inbound_only=config.inbound_only,
                            extra_self=config.self_addresses,
                            include_broadcast=config.include_broadcast)


def build_store(config):
    if config.store_backend == "json":
        return JsonRuleStore(config.store_path, lock_path=config.lock_path)
    return IpsetRuleStore(lock_path=config.lock_path)


def record_blocked(addresses, path):
    """Audit lines are best effort: a failed write never stops blocking."""
    try:
        return append_block_events(sorted(addresses, key=lambda a: (a.version, int(a))), path)
    except OSError as e:
        _logger.error(f"[AUDIT] Could not write {path}: {e}")
        return None


def scan_and_block(config, census, store):
    """One census, one selection, one reconciliation."""
    threshold = config.threshold()
    rule_name = config.require_rule_name()
    counts = census.census()
    flagged = select(counts, threshold)
    if flagged:
        record_blocked(flagged, config.blocked_log)
    return BlocklistReconciler(store, rule_name).reconcile(flagged)


def connection_report(census):
    lines = ["List of active connections by number:"]
    for addr, count in ranked(census.census()):
        lines.append(f"{count}\t{addr}")
    return lines
