from __future__ import annotations

import logging
import os
from pathlib import Path

import anyio
import anyio.abc

from .exceptions import BadPath, SinkIOError
from .metrics import SinkMetrics
from .size import UNLIMITED

logger = logging.getLogger(__name__)

ErrorKind = tuple[str, type[BaseException]]


class RotatingSink:
    """
    An append-only byte sink bounded by a size budget, with numbered-suffix rotation.

    The sink owns one open handle on its primary file. Bytes are appended to the
    primary until it holds `max_bytes`; the write that would cross the budget is
    split, the primary is rotated into the backup ring and the remainder goes to a
    fresh primary.

    Rotation Strategy:
        - The primary file is located at `path`.
        - Backups are named with numerical suffixes: `path.1` ... `path.<backups>`.
        - `path.1` is the most recently rotated file.
        - When the primary needs rotation:
            1. The primary handle is closed.
            2. With `backups == 0` the primary is deleted outright.
            3. Otherwise the oldest backup is deleted, the others are shifted
               (.2 becomes .3, .1 becomes .2) and the primary is renamed to .1.
            4. A new, empty primary is opened.

    Error Reporting:
        The sink never raises while streaming. Failures are logged through
        `report_error`, which emits the first of a run of identical failures
        and stays silent until a successful operation calls `clear_error`.

    Attributes:
        path (Path): The primary file.
        max_bytes (int): The budget in bytes; 0 disables rotation.
        backups (int): How many rotated files to keep.
        size (int): Current length of the primary file.
        last_error (ErrorKind | None): The failure most recently reported.
    """

    def __init__(self, path: str | Path, *, max_bytes: int = UNLIMITED, backups: int = 0) -> None:
        if max_bytes < 0:
            raise ValueError("max_bytes must be >= 0")
        if backups < 0:
            raise ValueError("backups must be >= 0")

        self.path = Path(path)
        self.max_bytes = int(max_bytes)
        self.backups = int(backups)
        self.size: int = 0
        self.last_error: ErrorKind | None = None

        self._file: anyio.AsyncFile[bytes] | None = None
        self._closed: bool = False
        self._metrics = SinkMetrics()

    @classmethod
    async def open(cls, path: str | Path, max_bytes: int = UNLIMITED, backups: int = 0) -> RotatingSink:
        """
        Open (or create) the primary file for appending.

        On an existing file the sink adopts its current length, so the first
        rotation may happen in the middle of the first write.

        Args:
            path (str | Path): The primary file.
            max_bytes (int): Budget in bytes, 0 for unlimited.
            backups (int): Depth of the backup ring.

        Raises:
            BadPath: If the file cannot be opened for appending.
        """
        sink = cls(path, max_bytes=max_bytes, backups=backups)
        try:
            await anyio.Path(sink.path.parent).mkdir(parents=True, exist_ok=True)
            await sink._open()
        except OSError as e:
            raise BadPath(f"cannot open log file {sink.path}: {e}") from e
        return sink

    @property
    def metrics(self) -> SinkMetrics:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    def backup_path(self, index: int) -> Path:
        """
        Return the path of backup number `index`, e.g. `app.log.1` for index 1.
        """
        return self.path.with_name(f"{self.path.name}.{index}")

    def report_error(self, operation: str, exc: BaseException) -> None:
        """
        Log a failure unless the same kind of failure is already outstanding.
        """
        kind: ErrorKind = (operation, type(exc))
        if self.last_error == kind:
            return
        self.last_error = kind
        logger.error("%s %s failed: %s", operation, self.path, exc)

    def clear_error(self) -> None:
        self.last_error = None

    async def write(self, data: bytes) -> None:
        """
        Append `data`, rotating as many times as the budget requires.

        A chunk that exactly fills the primary does not rotate; the next
        non-empty write does. Failures are reported and end the write early.
        """
        if self._closed:
            return
        if self._file is None and not await self._reopen():
            return

        view = memoryview(data)
        while self.max_bytes != UNLIMITED and self.size + len(view) > self.max_bytes:
            remain = max(self.max_bytes - self.size, 0)
            if remain and not await self._write_chunk(view[:remain]):
                return
            if not await self._rotate():
                return
            view = view[remain:]

        if not await self._write_chunk(view):
            return
        if not await self._sync():
            return

        self._metrics.writes += 1
        self.clear_error()

    async def close(self) -> None:
        """
        Close the primary handle. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        if self._file is None:
            return
        file, self._file = self._file, None
        try:
            await file.aclose()
        except OSError as e:
            self.report_error("close", e)

    async def _open(self) -> None:
        try:
            self.size = (await anyio.Path(self.path).stat()).st_size
        except FileNotFoundError:
            self.size = 0
        self._file = await anyio.open_file(self.path, "ab")

    async def _reopen(self) -> bool:
        try:
            await self._open()
        except OSError as e:
            self._metrics.write_errors += 1
            self.report_error("open", e)
            return False
        return True

    async def _write_chunk(self, chunk: memoryview) -> bool:
        if not chunk:
            return True
        if self._file is None:
            self._metrics.write_errors += 1
            self.report_error("write", SinkIOError("file is not open"))
            return False
        try:
            written = await self._file.write(bytes(chunk))
        except OSError as e:
            self._metrics.write_errors += 1
            self.report_error("write", e)
            return False

        written = len(chunk) if written is None else written
        self.size += written
        self._metrics.bytes_written += written
        return True

    async def _sync(self) -> bool:
        if self._file is None:
            self._metrics.write_errors += 1
            self.report_error("sync", SinkIOError("file is not open"))
            return False
        try:
            await self._file.flush()
            await anyio.to_thread.run_sync(os.fsync, self._file.wrapped.fileno())
        except OSError as e:
            self._metrics.write_errors += 1
            self.report_error("sync", e)
            return False
        return True

    async def _rotate(self) -> bool:
        """
        Shift the backup ring and reopen an empty primary.

        The primary is reopened even when a rename fails, so the sink keeps
        accepting bytes; `size` then reflects whatever is left on disk.
        """
        file, self._file = self._file, None
        try:
            if file is not None:
                await file.aclose()

            if self.backups == 0:
                await anyio.Path(self.path).unlink(missing_ok=True)
            else:
                await anyio.Path(self.backup_path(self.backups)).unlink(missing_ok=True)

                # Highest index first so no surviving backup is overwritten
                for i in range(self.backups - 1, 0, -1):
                    try:
                        await anyio.Path(self.backup_path(i)).rename(self.backup_path(i + 1))
                    except FileNotFoundError:
                        continue

                await anyio.Path(self.path).rename(self.backup_path(1))
        except OSError as e:
            self._metrics.write_errors += 1
            self.report_error("rotate", e)
            await self._reopen()
            return False

        if not await self._reopen():
            return False

        self._metrics.rotations += 1
        logger.debug("rotated %s", self.path)
        return True
