"""FFmpegRunner — ProcessRunnerPort implementation using an asyncio subprocess."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import re
import shlex
from collections import deque
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from conversion.application.progress_parser import parse_line
from conversion.domain.enums import OutcomeStatus, RunnerState
from conversion.domain.errors import RunnerStateError
from conversion.domain.models import ConversionOutcome, ProgressEvent, StreamFormat
from conversion.domain.types import CommandLine

if TYPE_CHECKING:
    from conversion.app.settings import ConversionSettings
    from conversion.application.event_bus import ConversionEvents
    from conversion.domain.ports import ProcessRunnerPort

logger = logging.getLogger(__name__)

DEFAULT_TAIL_LINES: int = 20
DEFAULT_TERMINATE_TIMEOUT_SECONDS: float = 5.0
DEFAULT_READ_CHUNK_SIZE: int = 4096

# ffmpeg ends stats lines with a bare carriage return
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

_TERMINAL_STATES = {
    OutcomeStatus.SUCCEEDED: RunnerState.SUCCEEDED,
    OutcomeStatus.FAILED: RunnerState.FAILED,
    OutcomeStatus.CANCELLED: RunnerState.CANCELLED,
    OutcomeStatus.LAUNCH_ERROR: RunnerState.LAUNCH_ERROR,
}


class FFmpegRunner:
    """Run one encoder command line as a child process.

    Merged stdout/stderr is read line by line; each line is forwarded to
    output listeners, then parsed for progress. The run resolves to exactly
    one ConversionOutcome and a runner instance can run only once.
    """

    if TYPE_CHECKING:
        _protocol_check: ProcessRunnerPort

    def __init__(
        self,
        events: ConversionEvents,
        ffmpeg_path: str = "ffmpeg",
        tail_lines: int = DEFAULT_TAIL_LINES,
        terminate_timeout_seconds: float = DEFAULT_TERMINATE_TIMEOUT_SECONDS,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
    ) -> None:
        self._events = events
        self._ffmpeg_path = ffmpeg_path
        self._terminate_timeout_seconds = terminate_timeout_seconds
        self._read_chunk_size = read_chunk_size
        self._state = RunnerState.NOT_STARTED
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self._streams: list[StreamFormat] = []
        self._total: timedelta | None = None
        self._last_processed: timedelta | None = None
        self._cancel_event: asyncio.Event | None = None

    @classmethod
    def from_settings(cls, events: ConversionEvents, settings: ConversionSettings) -> FFmpegRunner:
        return cls(
            events,
            ffmpeg_path=settings.ffmpeg_path,
            tail_lines=settings.diagnostic_tail_lines,
            terminate_timeout_seconds=settings.terminate_timeout_seconds,
            read_chunk_size=settings.read_chunk_size,
        )

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def streams(self) -> tuple[StreamFormat, ...]:
        """Streams announced in the encoder's header so far."""
        return tuple(self._streams)

    async def run(
        self,
        command_line: CommandLine,
        cancel_event: asyncio.Event | None = None,
        total_duration: timedelta | None = None,
    ) -> ConversionOutcome:
        """Launch the encoder and await its outcome.

        ``total_duration`` enables percentage progress; without it the first
        ``Duration:`` header line is used. Setting ``cancel_event`` before the
        encoder's outcome is reported terminates it and resolves CANCELLED.
        No output or progress is published once the event is set.

        Raises RunnerStateError if this runner has already been used.
        """
        if self._state is not RunnerState.NOT_STARTED:
            raise RunnerStateError(f"Runner already used (state: {self._state.value})")
        self._state = RunnerState.RUNNING
        self._total = total_duration
        self._cancel_event = cancel_event

        if self._cancel_requested():
            logger.info("Conversion cancelled before launch")
            return self._finish(ConversionOutcome.cancelled())

        try:
            argv = shlex.split(command_line)
        except ValueError as exc:
            logger.error("Malformed command line %r: %s", command_line, exc)
            return self._finish(ConversionOutcome.launch_error(f"Malformed command line: {exc}"))

        try:
            proc = await asyncio.create_subprocess_exec(
                self._ffmpeg_path,
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            logger.error("Failed to start %s: %s", self._ffmpeg_path, exc)
            return self._finish(ConversionOutcome.launch_error(str(exc)))

        logger.info("Encoder started (pid %s)", proc.pid)
        try:
            return await self._supervise(proc, cancel_event)
        except asyncio.CancelledError:
            logger.warning("Conversion task cancelled, killing encoder (pid %s)", proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            self._state = RunnerState.CANCELLED
            raise

    async def _supervise(
        self, proc: asyncio.subprocess.Process, cancel_event: asyncio.Event | None
    ) -> ConversionOutcome:
        assert proc.stdout is not None
        reader = asyncio.create_task(self._pump_output(proc.stdout))
        exit_waiter = asyncio.create_task(proc.wait())
        watched: set[asyncio.Task[Any]] = {exit_waiter}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            watched.add(cancel_waiter)

        try:
            await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
            if self._cancel_requested():
                await self._terminate(proc, exit_waiter)
                await self._drain_after_stop(reader)
            else:
                await reader
            returncode = await exit_waiter
        finally:
            for task in (reader, exit_waiter, cancel_waiter):
                if task is not None and not task.done():
                    task.cancel()

        # a cancel signalled while buffered output was still being delivered also wins
        if self._cancel_requested():
            logger.info("Conversion cancelled (encoder exit code %s)", returncode)
            return self._finish(ConversionOutcome.cancelled(tuple(self._tail)))

        if returncode == 0:
            logger.info("Conversion succeeded")
            return self._finish(ConversionOutcome.success(self.streams))

        logger.warning("Encoder exited with code %d", returncode)
        return self._finish(ConversionOutcome.failure(returncode, tuple(self._tail), self.streams))

    def _cancel_requested(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _terminate(self, proc: asyncio.subprocess.Process, exit_waiter: asyncio.Task[int]) -> None:
        """Ask the encoder to stop; kill it if it outlives the grace period."""
        if exit_waiter.done():
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            async with asyncio.timeout(self._terminate_timeout_seconds):
                await asyncio.shield(exit_waiter)
        except TimeoutError:
            logger.warning("Encoder ignored terminate after %.1fs, killing", self._terminate_timeout_seconds)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await exit_waiter

    async def _drain_after_stop(self, reader: asyncio.Task[None]) -> None:
        """Collect remaining output; give up if a descendant keeps the pipe open."""
        try:
            async with asyncio.timeout(self._terminate_timeout_seconds):
                await asyncio.shield(reader)
        except TimeoutError:
            logger.warning(
                "Encoder output still open %.1fs after stop, abandoning drain", self._terminate_timeout_seconds
            )
            reader.cancel()

    async def _pump_output(self, stream: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while chunk := await stream.read(self._read_chunk_size):
            pending += decoder.decode(chunk)
            *lines, pending = _LINE_BREAK.split(pending)
            for line in lines:
                await self._handle_line(line)
        pending += decoder.decode(b"", final=True)
        for line in _LINE_BREAK.split(pending):
            await self._handle_line(line)

    async def _handle_line(self, line: str) -> None:
        if not line or self._state is not RunnerState.RUNNING:
            return
        self._tail.append(line)
        if self._cancel_requested():
            return
        await self._events.publish_output(line)

        parsed = parse_line(line)
        if parsed.is_empty:
            return
        if parsed.stream is not None:
            logger.debug("Detected %s stream: %s", parsed.stream.kind, parsed.stream.codec)
            self._streams.append(parsed.stream)
        if parsed.total is not None and self._total is None:
            self._total = parsed.total
        if parsed.processed is None or self._cancel_requested():
            return
        if self._last_processed is not None and parsed.processed <= self._last_processed:
            return
        self._last_processed = parsed.processed
        await self._events.publish_progress(ProgressEvent(processed=parsed.processed, total=self._total, message=line))

    def _finish(self, outcome: ConversionOutcome) -> ConversionOutcome:
        self._state = _TERMINAL_STATES[outcome.status]
        return outcome
