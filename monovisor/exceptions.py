from __future__ import annotations


class MonovisorError(Exception):
    """Base exception for all monovisor errors."""


class BadConfig(MonovisorError):
    """
    Raised when the supervisor configuration is invalid.

    This covers:
    - a missing child command,
    - an unknown `autorestart` value,
    - malformed exit code lists or negative counts,
    - two log streams pointing at the same file.
    """


class BadSize(BadConfig):
    """
    Raised when a size string such as "50MB" cannot be parsed.
    """


class SpawnFailure(MonovisorError):
    """
    Raised when the operating system refuses to start the child program.

    Spawn failures are never retried; the supervisor exits.
    """


class SinkIOError(MonovisorError):
    """
    Raised for read, write, flush or rename failures on a log sink.

    While streaming, these are reported on the supervisor's error stream and
    suppressed. Only opening a sink propagates one (see `BadPath`).
    """


class BadPath(SinkIOError):
    """
    Raised when a log file cannot be opened for appending.
    """


class AlertDeliveryError(MonovisorError):
    """
    Raised when an alert could not be delivered.

    The dispatcher logs and swallows it. It never reaches the supervision loop.
    """
