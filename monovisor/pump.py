from __future__ import annotations

"""
Pipe pumps drain a child's output stream into a rotating sink.

One pump runs per captured stream. It forwards every chunk exactly as read,
in order, and finishes when the child closes its end of the pipe.
"""

import logging

import anyio
import anyio.abc

from .sink import RotatingSink

logger = logging.getLogger(__name__)

BUFFER_SIZE = 10240
READ_COOLDOWN = 0.0001


async def pump(stream: anyio.abc.ByteReceiveStream, sink: RotatingSink) -> None:
    """
    Copy `stream` into `sink` until end-of-stream.

    Parameters
    ----------
    stream:
        The child's stdout or stderr.
    sink:
        The sink owned by this pump. It is closed when the pump returns,
        including on cancellation.

    Notes
    -----
    - Read errors are reported once per run through the sink, followed by a
      short cool-down before the next attempt.
    - An empty read clears the sink's error flag and cools down as well.
    """
    try:
        while True:
            try:
                chunk = await stream.receive(BUFFER_SIZE)
            except (anyio.EndOfStream, anyio.ClosedResourceError, anyio.BrokenResourceError):
                break
            except OSError as e:
                sink.metrics.read_errors += 1
                sink.report_error("read pipe for", e)
                await anyio.sleep(READ_COOLDOWN)
                continue

            if not chunk:
                sink.clear_error()
                await anyio.sleep(READ_COOLDOWN)
                continue

            await sink.write(chunk)
    finally:
        with anyio.CancelScope(shield=True):
            await sink.close()
            logger.debug("pump for %s finished", sink.path)
