"""Integration tests for FFmpegRunner against real child processes.

The current Python interpreter plays the encoder: each test writes a small
script that prints ffmpeg-like diagnostics and exits the way the scenario
needs.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from datetime import timedelta

import pytest

from conversion.application.event_bus import ConversionEvents
from conversion.domain.enums import OutcomeStatus, RunnerState
from conversion.domain.models import ProgressEvent, StreamFormat
from conversion.domain.types import CommandLine
from conversion.infrastructure.adapters.ffmpeg_runner import FFmpegRunner

ENCODE_SCRIPT = """
    import sys
    sys.stderr.write("Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'in.mp4':\\n")
    sys.stderr.write("  Duration: 00:00:10.00, start: 0.000000, bitrate: 100 kb/s\\n")
    sys.stderr.write("    Stream #0:0(und): Video: h264 (High), yuv420p, 1280x720\\n")
    for second in (2, 4, 4, 6, 8):
        sys.stderr.write(f"frame={second * 25} fps=25 q=28.0 time=00:00:{second:02d}.00 bitrate=1kbits/s speed=1x\\r")
        sys.stderr.flush()
    sys.stderr.write("\\n")
    print("done")
"""

HANG_SCRIPT = """
    import signal, sys, time
    {signal_setup}
    sys.stderr.write("frame=25 fps=25 time=00:00:01.00 bitrate=1kbits/s\\n")
    sys.stderr.flush()
    time.sleep(30)
"""


class Recorder:
    def __init__(self) -> None:
        self.progress: list[ProgressEvent] = []
        self.lines: list[str] = []

    async def on_progress(self, event: ProgressEvent) -> None:
        self.progress.append(event)

    async def on_output(self, line: str) -> None:
        self.lines.append(line)


def _runner(events: ConversionEvents, **kwargs: object) -> FFmpegRunner:
    return FFmpegRunner(events, ffmpeg_path=sys.executable, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def events(recorder: Recorder) -> ConversionEvents:
    events = ConversionEvents()
    events.subscribe_progress(recorder.on_progress)
    events.subscribe_output(recorder.on_output)
    return events


class TestSuccessfulRun:
    async def test_succeeds_with_increasing_progress(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        runner = _runner(events)

        outcome = await runner.run(CommandLine(fake_encoder(ENCODE_SCRIPT)))

        assert outcome.status is OutcomeStatus.SUCCEEDED
        assert runner.state is RunnerState.SUCCEEDED
        processed = [event.processed.total_seconds() for event in recorder.progress]
        assert processed == [2.0, 4.0, 6.0, 8.0]
        assert [event.percent for event in recorder.progress] == pytest.approx([20.0, 40.0, 60.0, 80.0])

    async def test_stream_formats_reported(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents
    ) -> None:
        outcome = await _runner(events).run(CommandLine(fake_encoder(ENCODE_SCRIPT)))
        assert outcome.streams == (StreamFormat(kind="Video", codec="h264"),)

    async def test_raw_lines_forwarded_in_order(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        await _runner(events).run(CommandLine(fake_encoder(ENCODE_SCRIPT)))

        assert recorder.lines[0].startswith("Input #0")
        stats = [line for line in recorder.lines if line.startswith("frame=")]
        assert len(stats) == 5
        assert "done" in recorder.lines
        assert all(event.message in recorder.lines for event in recorder.progress)

    async def test_explicit_total_overrides_header(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        await _runner(events).run(CommandLine(fake_encoder(ENCODE_SCRIPT)), total_duration=timedelta(seconds=20))
        assert recorder.progress[0].total == timedelta(seconds=20)
        assert recorder.progress[0].percent == pytest.approx(10.0)

    async def test_no_events_after_outcome(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        await _runner(events).run(CommandLine(fake_encoder(ENCODE_SCRIPT)))
        seen = (len(recorder.lines), len(recorder.progress))

        await asyncio.sleep(0.1)

        assert (len(recorder.lines), len(recorder.progress)) == seen


class TestFailedRun:
    async def test_non_zero_exit_is_failure_with_tail(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents
    ) -> None:
        script = """
            import sys
            sys.stderr.write("Unknown encoder 'libnope'\\n")
            sys.exit(1)
        """
        runner = _runner(events)

        outcome = await runner.run(CommandLine(fake_encoder(script)))

        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.exit_code == 1
        assert outcome.diagnostic_tail == ("Unknown encoder 'libnope'",)
        assert runner.state is RunnerState.FAILED

    async def test_tail_keeps_last_lines(self, fake_encoder: Callable[[str], str], events: ConversionEvents) -> None:
        script = """
            import sys
            for i in range(50):
                sys.stderr.write(f"line {i}\\n")
            sys.exit(3)
        """
        outcome = await _runner(events, tail_lines=5).run(CommandLine(fake_encoder(script)))

        assert outcome.exit_code == 3
        assert outcome.diagnostic_tail == tuple(f"line {i}" for i in range(45, 50))


class TestCancelledRun:
    async def _run_and_cancel(
        self, runner: FFmpegRunner, events: ConversionEvents, command_line: str
    ) -> OutcomeStatus:
        cancel_event = asyncio.Event()

        async def cancel_on_first_line(line: str) -> None:
            cancel_event.set()

        events.subscribe_output(cancel_on_first_line)
        outcome = await asyncio.wait_for(runner.run(CommandLine(command_line), cancel_event=cancel_event), 10)
        return outcome.status

    async def test_cancel_terminates_encoder(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents
    ) -> None:
        runner = _runner(events)
        command_line = fake_encoder(HANG_SCRIPT.format(signal_setup="pass"))

        status = await self._run_and_cancel(runner, events, command_line)

        assert status is OutcomeStatus.CANCELLED
        assert runner.state is RunnerState.CANCELLED

    async def test_cancel_wins_over_clean_exit(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents
    ) -> None:
        setup = "signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))"
        command_line = fake_encoder(HANG_SCRIPT.format(signal_setup=setup))

        status = await self._run_and_cancel(_runner(events), events, command_line)

        assert status is OutcomeStatus.CANCELLED

    async def test_kills_encoder_ignoring_terminate(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents
    ) -> None:
        setup = "signal.signal(signal.SIGTERM, signal.SIG_IGN)"
        command_line = fake_encoder(HANG_SCRIPT.format(signal_setup=setup))
        runner = _runner(events, terminate_timeout_seconds=0.2)

        status = await self._run_and_cancel(runner, events, command_line)

        assert status is OutcomeStatus.CANCELLED

    async def test_task_cancellation_kills_encoder(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        runner = _runner(events)
        task = asyncio.create_task(runner.run(CommandLine(fake_encoder(HANG_SCRIPT.format(signal_setup="pass")))))
        for _ in range(200):
            if recorder.lines:
                break
            await asyncio.sleep(0.05)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert runner.state is RunnerState.CANCELLED

    async def test_cancel_while_delivering_buffered_output(
        self, fake_encoder: Callable[[str], str], events: ConversionEvents, recorder: Recorder
    ) -> None:
        script = """
            import sys
            for i in range(1, 201):
                sys.stderr.write(f"frame={i} time=00:00:{i // 25:02d}.{i % 25 * 4:02d} speed=1x\\n")
        """
        cancel_event = asyncio.Event()

        async def cancel_slowly(line: str) -> None:
            if len(recorder.lines) == 20:
                await asyncio.sleep(0.5)
                cancel_event.set()

        events.subscribe_output(cancel_slowly)
        runner = _runner(events)

        outcome = await asyncio.wait_for(
            runner.run(CommandLine(fake_encoder(script)), cancel_event=cancel_event), 10
        )

        assert outcome.status is OutcomeStatus.CANCELLED
        assert runner.state is RunnerState.CANCELLED
        assert len(recorder.lines) == 20
        assert len(recorder.progress) == 19
