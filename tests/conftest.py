from __future__ import annotations

from collections.abc import Sequence
from email.message import EmailMessage
from typing import Any

import anyio
import anyio.abc
import pytest

from monovisor.config import MailConfig
from monovisor.exceptions import AlertDeliveryError, SpawnFailure


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeStream(anyio.abc.ByteReceiveStream):
    """
    A byte stream that replays scripted items.

    Items are either bytes (returned as one read) or exceptions (raised by one
    read). End-of-stream follows the last item.
    """

    def __init__(self, items: Sequence[bytes | BaseException] = ()) -> None:
        self._items = list(items)
        self.closed = False

    async def receive(self, max_bytes: int = 65536) -> bytes:
        await anyio.sleep(0)
        if not self._items:
            raise anyio.EndOfStream
        item = self._items.pop(0)
        if isinstance(item, BaseException):
            raise item
        assert len(item) <= max_bytes
        return item

    async def aclose(self) -> None:
        self.closed = True


class FakeProcess:
    def __init__(
        self,
        pid: int,
        returncode: int,
        lifetime: float,
        stdout: FakeStream | None = None,
        stderr: FakeStream | None = None,
    ) -> None:
        self.pid = pid
        self.returncode = returncode
        self.lifetime = lifetime
        self.stdout = stdout
        self.stderr = stderr
        self.closed = False

    async def wait(self) -> int:
        await anyio.sleep(self.lifetime)
        return self.returncode

    async def aclose(self) -> None:
        self.closed = True


class ScriptedLauncher:
    """
    Launches one fake child per scripted exit, then refuses to spawn.

    Each exit is a tuple (returncode, lifetime) or a dict of FakeProcess
    keyword arguments.
    """

    def __init__(self, exits: Sequence[tuple[int, float] | dict[str, Any]]) -> None:
        self._exits = list(exits)
        self.calls: list[dict[str, Any]] = []
        self.processes: list[FakeProcess] = []

    @property
    def spawns(self) -> int:
        return len(self.processes)

    async def spawn(self, argv, *, capture_stdout: bool, capture_stderr: bool) -> FakeProcess:
        self.calls.append(
            {"argv": tuple(argv), "capture_stdout": capture_stdout, "capture_stderr": capture_stderr}
        )
        if not self._exits:
            # Leave in-flight alerts time to finish before the run unwinds.
            await anyio.sleep(0.05)
            raise SpawnFailure("script exhausted")

        spec = self._exits.pop(0)
        if isinstance(spec, tuple):
            spec = {"returncode": spec[0], "lifetime": spec[1]}
        process = FakeProcess(pid=1000 + len(self.processes), **spec)
        self.processes.append(process)
        return process


class RecordingTransport:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[MailConfig, EmailMessage]] = []

    def send(self, config: MailConfig, message: EmailMessage) -> None:
        if self.fail:
            raise AlertDeliveryError("relay refused")
        self.sent.append((config, message))


@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def scripted_launcher():
    return ScriptedLauncher


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)
