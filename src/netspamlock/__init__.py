# src/netspamlock/__init__.py
"""NetSpamLock: block remote hosts that hold too many TCP connections."""

__version__ = "2.0.0"
