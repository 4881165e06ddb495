from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(slots=True)
class SinkMetrics:
    """
    Operational counters for a single rotating log sink.

    Attributes:
        bytes_written (int): Bytes accepted by the primary file.
        writes (int): Number of completed `write` calls.
        rotations (int): Number of times the backup ring was shifted.
        write_errors (int): Write, flush or rotation failures.
        read_errors (int): Failed reads on the upstream pipe.
    """

    bytes_written: int = 0
    writes: int = 0
    rotations: int = 0

    write_errors: int = 0
    read_errors: int = 0

    def reset(self) -> None:
        """
        Reset all counters to zero.
        """
        self.bytes_written = 0
        self.writes = 0
        self.rotations = 0
        self.write_errors = 0
        self.read_errors = 0

    def snapshot(self) -> Mapping[str, int]:
        """
        Return a read-only copy of the current counters.
        """
        return {
            "bytes_written": self.bytes_written,
            "writes": self.writes,
            "rotations": self.rotations,
            "write_errors": self.write_errors,
            "read_errors": self.read_errors,
        }
