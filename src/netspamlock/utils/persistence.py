# src/netspamlock/utils/persistence.py
from datetime import datetime
from pathlib import Path

DEFAULT_BLOCKED_LOG = "Blocked.log"

def append_block_events(addresses, path=DEFAULT_BLOCKED_LOG, now=None):
    """Append one `<timestamp>\\t<address>` line per blocked address."""
    ts = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines = [f"{ts}\t{addr}\n" for addr in addresses]
    if not lines:
        return None
    path = Path(path)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.writelines(lines)
    return str(path)
