from __future__ import annotations

"""
Supervisor configuration.

Everything the supervisor needs is parsed and validated once, up front, by
`build_config(...)`. Invalid input raises `BadConfig` before any child is
started.
"""

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import BadConfig
from .size import parse_size
from .supervision import DEFAULT_EXPECTED_CODES, RestartMode, RestartPolicy

DEFAULT_MAX_BYTES = "50MB"
DEFAULT_BACKUPS = 10
DEFAULT_SUBJECT = "$program_name unexpected exit"
DEFAULT_SMTP_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class LogFileConfig:
    """
    Where one child stream goes.

    Attributes
    ----------
    path:
        The primary log file, or None to discard the stream.
    max_bytes:
        Rotation budget in bytes; 0 for unlimited.
    backups:
        Number of rotated files to keep.
    """

    path: Path | None = None
    max_bytes: int = 50 * 1024 * 1024
    backups: int = DEFAULT_BACKUPS

    @property
    def enabled(self) -> bool:
        return self.path is not None


@dataclass(frozen=True, slots=True)
class MailConfig:
    """
    Delivery settings for unexpected-exit notifications.

    `server` is "host" or "host:port". When `sender` is empty the message is
    sent from `username`.
    """

    enabled: bool = False
    server: str = ""
    username: str = ""
    password: str = ""
    sender: str = ""
    receivers: tuple[str, ...] = ()
    subject: str = DEFAULT_SUBJECT
    timeout: float = DEFAULT_SMTP_TIMEOUT

    @property
    def from_addr(self) -> str:
        return self.sender or self.username


@dataclass(frozen=True, slots=True)
class SupervisorConfig:
    """Root configuration for one supervised program."""

    command: tuple[str, ...]
    process_name: str | None = None
    stdout: LogFileConfig = field(default_factory=LogFileConfig)
    stderr: LogFileConfig = field(default_factory=LogFileConfig)
    policy: RestartPolicy = field(default_factory=RestartPolicy)
    mail: MailConfig = field(default_factory=MailConfig)

    @property
    def program_name(self) -> str:
        """
        The configured process name, or the basename of the executable.
        """
        return self.process_name or os.path.basename(self.command[0])


def split_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated flag value, dropping empty items."""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_exit_codes(raw: str | Sequence[int]) -> frozenset[int]:
    """
    Parse the expected exit codes, e.g. "0,2".

    An empty value yields the default set {0}.
    """
    if isinstance(raw, str):
        items: Sequence[str | int] = split_list(raw)
    else:
        items = raw

    codes: set[int] = set()
    for item in items:
        try:
            codes.add(int(item))
        except (TypeError, ValueError):
            raise BadConfig(f"invalid exit code {item!r}") from None
    return frozenset(codes) or DEFAULT_EXPECTED_CODES


def _single_line(name: str, value: str) -> str:
    if "\r" in value or "\n" in value:
        raise BadConfig(f"{name} must not contain line breaks")
    return value


def _log_file(name: str, path: str, maxbytes: str, backups: int) -> LogFileConfig:
    if backups < 0:
        raise BadConfig(f"{name}_logfile_backups must be >= 0")
    return LogFileConfig(
        path=Path(path) if path else None,
        max_bytes=parse_size(maxbytes),
        backups=backups,
    )


def build_config(
    command: Sequence[str],
    *,
    process_name: str = "",
    stdout_logfile: str = "",
    stdout_logfile_maxbytes: str = DEFAULT_MAX_BYTES,
    stdout_logfile_backups: int = DEFAULT_BACKUPS,
    stderr_logfile: str = "",
    stderr_logfile_maxbytes: str = DEFAULT_MAX_BYTES,
    stderr_logfile_backups: int = DEFAULT_BACKUPS,
    autorestart: str = RestartMode.UNEXPECTED.value,
    exitcodes: str | Sequence[int] = "0",
    startretries: int = 3,
    startsecs: float = 1,
    mail_alert: bool = False,
    mail_server: str = "",
    mail_username: str = "",
    mail_password: str = "",
    mail_sender: str = "",
    mail_receivers: str | Sequence[str] = "",
    mail_subject: str = DEFAULT_SUBJECT,
) -> SupervisorConfig:
    """
    Validate raw flag values and build a `SupervisorConfig`.

    Raises
    ------
    BadConfig
        On a missing command, an unknown autorestart value, a bad size or exit
        code, a negative count, duplicate log paths, a line break in the
        process name or mail subject, or alerting enabled without a server
        or receivers.
    """
    if not command:
        raise BadConfig("No program command specified.")
    if startretries < 0:
        raise BadConfig("startretries must be >= 0")
    if startsecs < 0:
        raise BadConfig("startsecs must be >= 0")

    stdout = _log_file("stdout", stdout_logfile, stdout_logfile_maxbytes, stdout_logfile_backups)
    stderr = _log_file("stderr", stderr_logfile, stderr_logfile_maxbytes, stderr_logfile_backups)
    if stdout.path is not None and stderr.path is not None:
        if stdout.path.resolve() == stderr.path.resolve():
            raise BadConfig(f"stdout and stderr cannot share the log file {stdout.path}")

    policy = RestartPolicy(
        mode=RestartMode.parse(autorestart),
        expected_codes=parse_exit_codes(exitcodes),
        start_secs=float(startsecs),
        start_retries=startretries,
    )

    receivers = split_list(mail_receivers) if isinstance(mail_receivers, str) else tuple(mail_receivers)
    mail = MailConfig(
        enabled=mail_alert,
        server=mail_server,
        username=mail_username,
        password=mail_password,
        sender=mail_sender,
        receivers=receivers,
        subject=_single_line("mail_subject", mail_subject),
    )
    if mail.enabled and not (mail.server and mail.receivers):
        raise BadConfig("mail_alert requires mail_server and mail_receivers")

    return SupervisorConfig(
        command=tuple(command),
        process_name=_single_line("process_name", process_name) or None,
        stdout=stdout,
        stderr=stderr,
        policy=policy,
        mail=mail,
    )
