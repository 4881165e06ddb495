from __future__ import annotations

"""
Process launching for the supervision loop.

The loop only needs "spawn a child, give me its output streams, let me wait
for it". `Launcher` is that contract; `AnyioLauncher` implements it with
`anyio.open_process`, and tests substitute scripted fakes.
"""

import logging
import subprocess
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import anyio
import anyio.abc

from .exceptions import SpawnFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class ChildProcess(Protocol):
    """
    The parts of a running child the supervisor uses.

    `anyio.abc.Process` satisfies this protocol.
    """

    @property
    def pid(self) -> int: ...

    @property
    def stdout(self) -> anyio.abc.ByteReceiveStream | None: ...

    @property
    def stderr(self) -> anyio.abc.ByteReceiveStream | None: ...

    async def wait(self) -> int:
        """
        Wait for the child to exit and return its raw return code.
        """
        ...

    async def aclose(self) -> None:
        """
        Release the child's streams and reap it. Kills it if cancelled.
        """
        ...


@runtime_checkable
class Launcher(Protocol):
    async def spawn(
        self,
        argv: Sequence[str],
        *,
        capture_stdout: bool,
        capture_stderr: bool,
    ) -> ChildProcess:
        """
        Start `argv` as a child process.

        Streams that are not captured are discarded.

        Raises
        ------
        SpawnFailure
            If the operating system refuses to start the program.
        """
        ...


class AnyioLauncher:
    """Launches children with `anyio.open_process`."""

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        capture_stdout: bool,
        capture_stderr: bool,
    ) -> ChildProcess:
        try:
            process = await anyio.open_process(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_stdout else subprocess.DEVNULL,
                stderr=subprocess.PIPE if capture_stderr else subprocess.DEVNULL,
            )
        except OSError as e:
            raise SpawnFailure(f"start program {argv[0]!r} fail: {e}") from e

        logger.debug("spawned %s with pid %s", argv[0], process.pid)
        return process


def exit_code_from_returncode(returncode: int) -> int:
    """
    Normalize a return code into an exit code.

    POSIX children killed by signal N report a return code of -N; those are
    mapped to 128 + N, the convention shells use.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode
