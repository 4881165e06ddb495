from __future__ import annotations

"""
Supervisor: spawn, pump, wait, classify, decide.

This is the runtime entry-point. Each supervision cycle:
- opens one rotating sink per enabled log stream,
- spawns the child with pipes for exactly those streams,
- pumps each pipe into its sink in its own task,
- waits for the child, records the exit and applies the restart policy,
- hands unexpected exits to the alert dispatcher,
- joins the pumps before the next cycle so no trailing output is lost.
"""

import logging
from datetime import datetime
from typing import Optional

import anyio
import anyio.abc

from .alert import AlertDispatcher, Transport
from .config import LogFileConfig, SupervisorConfig
from .events import ExitRecord
from .launcher import AnyioLauncher, ChildProcess, Launcher, exit_code_from_returncode
from .pump import pump
from .sink import RotatingSink
from .supervision import decide, is_unexpected

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().astimezone()


class Supervisor:
    """
    Supervises one program until the restart policy says stop.

    Parameters
    ----------
    config:
        The validated configuration.
    launcher:
        How children are started. Defaults to `AnyioLauncher`.
    transport:
        How alerts are delivered. Defaults to SMTP.

    Notes
    -----
    - `retry` counts consecutive children that died within the grace period.
    - `history` keeps every exit record, oldest first.
    """

    def __init__(
        self,
        config: SupervisorConfig,
        *,
        launcher: Optional[Launcher] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        self.config = config
        self.retry: int = 0
        self.spawns: int = 0
        self.history: list[ExitRecord] = []

        self._launcher: Launcher = launcher or AnyioLauncher()
        self._alerts = AlertDispatcher(config.mail, transport=transport)

    @property
    def program_name(self) -> str:
        return self.config.program_name

    async def run(self) -> ExitRecord:
        """
        Run supervision cycles until the policy stops.

        Returns
        -------
        ExitRecord
            The record of the last child.

        Raises
        ------
        SpawnFailure
            If a child cannot be started. Never retried.
        BadPath
            If a log file cannot be opened.
        """
        async with self._alerts:
            while True:
                record = await self._cycle()
                if not record.restart:
                    return record

    async def _cycle(self) -> ExitRecord:
        sinks = await self._open_sinks()
        stdout_sink, stderr_sink = sinks

        start_time = _now()
        started = anyio.current_time()
        try:
            process = await self._launcher.spawn(
                self.config.command,
                capture_stdout=stdout_sink is not None,
                capture_stderr=stderr_sink is not None,
            )
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self._close_sinks(sinks)
            raise

        self.spawns += 1
        logger.info("spawned %s with pid %s", self.program_name, process.pid)

        try:
            async with anyio.create_task_group() as tg:
                self._start_pumps(tg, process, stdout_sink, stderr_sink)

                returncode = await process.wait()
                record = self._classify(
                    exit_code_from_returncode(returncode),
                    start_time=start_time,
                    lifetime=anyio.current_time() - started,
                )
                self._alerts.dispatch(record)
        finally:
            with anyio.CancelScope(shield=True):
                await self._close_sinks(sinks)
            # Kills the child when the run is being cancelled
            await process.aclose()

        return record

    def _classify(self, exit_code: int, *, start_time: datetime, lifetime: float) -> ExitRecord:
        policy = self.config.policy
        unexpected = is_unexpected(exit_code, policy.expected_codes)
        decision = decide(policy, unexpected=unexpected, lifetime=lifetime, retry=self.retry)

        record = ExitRecord(
            program_name=self.program_name,
            exit_code=exit_code,
            unexpected=unexpected,
            start_time=start_time,
            exit_time=_now(),
            lifetime=lifetime,
            retry=self.retry,
            restart=decision.restart,
        )
        self.retry = decision.retry
        self.history.append(record)

        logger.info(
            "%s exited with code %d after %.3fs (%s)",
            self.program_name,
            exit_code,
            lifetime,
            "unexpected" if unexpected else "expected",
        )
        if decision.restart:
            logger.info("restarting %s", self.program_name)
        elif 0 < policy.start_retries <= self.retry:
            logger.warning("%s failed to start %d times in a row, giving up", self.program_name, self.retry)
        return record

    async def _open_sinks(self) -> tuple[RotatingSink | None, RotatingSink | None]:
        stdout_sink = await self._open_sink(self.config.stdout)
        try:
            stderr_sink = await self._open_sink(self.config.stderr)
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self._close_sinks((stdout_sink, None))
            raise
        return stdout_sink, stderr_sink

    async def _open_sink(self, cfg: LogFileConfig) -> RotatingSink | None:
        if cfg.path is None:
            return None
        return await RotatingSink.open(cfg.path, max_bytes=cfg.max_bytes, backups=cfg.backups)

    def _start_pumps(
        self,
        tg: anyio.abc.TaskGroup,
        process: ChildProcess,
        stdout_sink: RotatingSink | None,
        stderr_sink: RotatingSink | None,
    ) -> None:
        for stream, sink in ((process.stdout, stdout_sink), (process.stderr, stderr_sink)):
            if sink is None:
                continue
            if stream is None:
                logger.warning("%s has no pipe for %s, output is discarded", self.program_name, sink.path)
                continue
            tg.start_soon(pump, stream, sink)

    async def _close_sinks(self, sinks: tuple[RotatingSink | None, RotatingSink | None]) -> None:
        for sink in sinks:
            if sink is not None:
                await sink.close()
