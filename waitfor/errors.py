from __future__ import annotations


class WaitforError(Exception):
    """Base for everything this package raises on purpose."""


class UsageError(WaitforError):
    pass


class ConfigError(WaitforError):
    pass


class TopologyError(ConfigError):
    pass


class TransientConnectError(WaitforError):
    """One connection attempt failed; the retrier will try again."""


class UnclassifiedConnectError(WaitforError):
    """Attempt budget exhausted; terminal for the caller."""


class ConnectCancelled(WaitforError):
    pass
