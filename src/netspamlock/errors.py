# src/netspamlock/errors.py


class NetSpamLockError(Exception):
    """Base class for every failure the tool reports to the operator."""


class ConfigError(NetSpamLockError):
    pass


class OsQueryError(NetSpamLockError):
    """The active TCP connection table could not be read."""


class StoreError(NetSpamLockError):
    """The firewall rule store refused or failed a read or write."""


class RuleNotFound(StoreError):
    """Raised by a rule store when no rule carries the requested name."""

    def __init__(self, name):
        super().__init__(f"No firewall rule named {name!r}")
        self.name = name


class LookupFailure(NetSpamLockError):
    pass
