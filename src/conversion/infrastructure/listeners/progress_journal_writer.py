"""ProgressJournalWriter — append progress events to a log file."""

from __future__ import annotations

import logging
from pathlib import Path

import aiofiles

from conversion.application.argument_assembler import format_time
from conversion.domain.models import ProgressEvent

logger = logging.getLogger(__name__)


class ProgressJournalWriter:
    """Append one formatted entry per progress event.

    Format: ``<processed> | <total or none> | <percent or none> | <message>``
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = log_path

    async def __call__(self, event: ProgressEvent) -> None:
        """Append event to the journal log file."""
        total_str = format_time(event.total) if event.total is not None else "none"
        percent = event.percent
        percent_str = f"{percent:.1f}" if percent is not None else "none"
        line = f"{format_time(event.processed)} | {total_str} | {percent_str} | {event.message.strip()}\n"

        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self._log_path, "a") as f:
            await f.write(line)
