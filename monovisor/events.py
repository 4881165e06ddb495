from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime


def format_timestamp(moment: datetime) -> str:
    """
    Render a timestamp as RFC 1123 with a numeric zone, e.g.
    "Mon, 02 Jan 2006 15:04:05 -0700". Naive datetimes are taken as local time.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return format_datetime(moment)


@dataclass(slots=True, frozen=True)
class ExitRecord:
    """
    Facts about one child termination.

    One record is produced per supervision cycle, after the restart decision
    has been made. Unexpected records are handed to the alert dispatcher.

    Attributes
    ----------
    program_name : str
        The name the supervised program is known by.
    exit_code : int
        The exit status. Termination by signal N is reported as 128 + N.
    unexpected : bool
        True if `exit_code` is not one of the expected codes.
    start_time : datetime
        Wall-clock time just before the child was spawned.
    exit_time : datetime
        Wall-clock time just after the child was reaped.
    lifetime : float
        Seconds the child ran, measured on a monotonic clock.
    retry : int
        The consecutive short-lifetime counter when the child exited.
    restart : bool
        Whether the supervisor spawns another child after this exit.
    """

    program_name: str
    exit_code: int
    unexpected: bool
    start_time: datetime
    exit_time: datetime
    lifetime: float
    retry: int
    restart: bool

    def summary(self) -> str:
        """
        The exit facts as "Key: value" lines, one per field.
        """
        return (
            f"ExitCode: {self.exit_code}\n"
            f"StartTime: {format_timestamp(self.start_time)}\n"
            f"ExitTime: {format_timestamp(self.exit_time)}\n"
            f"Retry: {self.retry}\n"
            f"Restart: {str(self.restart).lower()}\n"
        )
