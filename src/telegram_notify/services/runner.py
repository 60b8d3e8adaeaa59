"""Command runner: executes the wrapped program and tees its output."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Sequence
from typing import BinaryIO

from telegram_notify.models import CommandResult

CHUNK_SIZE = 64 * 1024

# Shell convention for a child terminated by signal N
SIGNAL_STATUS_BASE = 128
UNKNOWN_STATUS = 255


class InvalidArgument(ValueError):
    """No program was given to run."""


def derive_exit_status(returncode: int | None) -> int:
    """Map a process return code to the status a shell would report.

    asyncio reports a child killed by signal N as ``-N``; shells report
    ``128 + N``. A missing return code maps to a non-zero sentinel.
    """
    if returncode is None:
        return UNKNOWN_STATUS
    if returncode < 0:
        return SIGNAL_STATUS_BASE - returncode
    return returncode


async def _tee(stream: asyncio.StreamReader, sink: BinaryIO) -> bytes:
    """Copy a pipe to ``sink`` chunk by chunk while buffering everything read.

    Once the sink's reader goes away the copy stops, but the pipe is still
    drained into the buffer so the child never blocks on a full pipe.
    """
    buffer = bytearray()
    sink_open = True
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break
        if sink_open:
            try:
                sink.write(chunk)
                sink.flush()
            except BrokenPipeError:
                sink_open = False
        buffer.extend(chunk)
    return bytes(buffer)


class CommandRunner:
    """Run a program to completion, mirroring its stdout/stderr live."""

    def __init__(
        self,
        stdout_sink: BinaryIO | None = None,
        stderr_sink: BinaryIO | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.stdout_sink = stdout_sink
        self.stderr_sink = stderr_sink
        self.logger = logger or logging.getLogger(__name__)

    async def run(self, argv: Sequence[str]) -> CommandResult:
        """Execute ``argv`` and wait for it to exit.

        Launch failures are returned in ``CommandResult.execution_error``
        rather than raised.
        """
        if not argv:
            raise InvalidArgument("program not defined")

        args = tuple(argv)
        stdout_sink = self.stdout_sink if self.stdout_sink is not None else sys.stdout.buffer
        stderr_sink = self.stderr_sink if self.stderr_sink is not None else sys.stderr.buffer

        self.logger.debug("Running %s", args)
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            self.logger.debug("Failed to start %s: %s", args[0], e)
            return CommandResult(argv=args, execution_error=e, elapsed_ms=elapsed_ms)

        assert proc.stdout is not None and proc.stderr is not None
        stdout, stderr = await asyncio.gather(
            _tee(proc.stdout, stdout_sink),
            _tee(proc.stderr, stderr_sink),
        )
        returncode = await proc.wait()
        elapsed_ms = int((time.monotonic() - start) * 1000)

        exit_status = derive_exit_status(returncode)
        self.logger.debug("%s exited with status %d after %dms", args[0], exit_status, elapsed_ms)

        return CommandResult(
            argv=args,
            exit_status=exit_status,
            stdout=stdout,
            stderr=stderr,
            elapsed_ms=elapsed_ms,
        )
