"""Domain ports — Protocol interfaces for the process-execution boundary."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

from conversion.domain.models import ConversionOutcome, ProgressEvent
from conversion.domain.types import CommandLine

# Async listeners receiving progress events or raw encoder output lines
ProgressListener = Callable[[ProgressEvent], Coroutine[Any, Any, None]]
OutputListener = Callable[[str], Coroutine[Any, Any, None]]


@runtime_checkable
class ProcessRunnerPort(Protocol):
    """Execute one encoder command line and resolve its outcome."""

    async def run(
        self,
        command_line: CommandLine,
        cancel_event: asyncio.Event | None = None,
        total_duration: timedelta | None = None,
    ) -> ConversionOutcome: ...
