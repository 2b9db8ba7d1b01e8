# src/netspamlock/census/detection.py
from netspamlock.config import parse_threshold
from netspamlock.utils.logger import get_logger

_logger = get_logger()


def select(census, threshold):
    """
    Return the addresses whose connection count meets or exceeds threshold.
    """
    threshold = parse_threshold(threshold)
    flagged = {addr for addr, count in census.items() if count >= threshold}
    for addr in sorted(flagged, key=lambda a: (a.version, int(a))):
        _logger.info(f"[DETECT] {addr} holds {census[addr]} connections (threshold {threshold})")
    return flagged
