"""Shared test fixtures for the conversion test suite."""

from __future__ import annotations

import asyncio
import textwrap
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import pytest

from conversion.application.argument_assembler import Conversion
from conversion.application.event_bus import ConversionEvents
from conversion.domain.models import ConversionOutcome
from conversion.domain.types import CommandLine


class RecordingRunner:
    """ProcessRunnerPort double that records its call and returns a fixed outcome."""

    def __init__(self, events: ConversionEvents, outcome: ConversionOutcome) -> None:
        self.events = events
        self.outcome = outcome
        self.calls: list[tuple[CommandLine, asyncio.Event | None, timedelta | None]] = []

    async def run(
        self,
        command_line: CommandLine,
        cancel_event: asyncio.Event | None = None,
        total_duration: timedelta | None = None,
    ) -> ConversionOutcome:
        self.calls.append((command_line, cancel_event, total_duration))
        return self.outcome


@pytest.fixture
def runners() -> list[RecordingRunner]:
    """Every RecordingRunner created by the ``conversion`` fixture, in order."""
    return []


@pytest.fixture
def conversion(runners: list[RecordingRunner], tmp_path: Path) -> Conversion:
    """Empty Conversion whose runs are recorded instead of executed."""

    def factory(events: ConversionEvents) -> RecordingRunner:
        runner = RecordingRunner(events, ConversionOutcome.success())
        runners.append(runner)
        return runner

    return Conversion(runner_factory=factory, concat_dir=tmp_path)


@pytest.fixture
def fake_encoder(tmp_path: Path) -> Callable[[str], str]:
    """Write a Python script standing in for ffmpeg; return its quoted command line.

    The runner is pointed at ``sys.executable`` so the command line's first
    token is the script path.
    """

    def write(body: str) -> str:
        script = tmp_path / "fake_ffmpeg.py"
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return f'"{script}"'

    return write
