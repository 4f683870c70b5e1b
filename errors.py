"""
Error taxonomy for adb-insight.

Only FatalConfigurationError is allowed to stop the process, and only at
startup.  Channel and persistence errors are recovered where they happen;
parse failures never raise at all (they surface as None fields).
"""


class AdbInsightError(Exception):
    """Base class for every error raised by this package."""


class ChannelError(AdbInsightError):
    """The device channel could not run a command."""


class ChannelUnavailableError(ChannelError):
    """The transport itself is missing (no adb binary, no device)."""


class PersistenceError(AdbInsightError):
    """The durable telemetry backend failed to read or write."""


class FatalConfigurationError(AdbInsightError):
    """Required configuration is absent or malformed at startup."""


class InvalidInputError(AdbInsightError, ValueError):
    """A caller supplied input that can never produce a result."""
