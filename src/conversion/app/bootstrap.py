"""Bootstrap — composition root wiring the builder to the ffmpeg runner."""

from __future__ import annotations

import logging
from functools import partial

from conversion.app.settings import ConversionSettings
from conversion.application.argument_assembler import Conversion
from conversion.infrastructure.adapters.ffmpeg_runner import FFmpegRunner
from conversion.infrastructure.listeners.progress_journal_writer import ProgressJournalWriter

logger = logging.getLogger(__name__)


def create_conversion(settings: ConversionSettings | None = None) -> Conversion:
    """Return an empty Conversion whose runs execute through FFmpegRunner."""
    if settings is None:
        settings = ConversionSettings()

    conversion = Conversion(
        runner_factory=partial(FFmpegRunner.from_settings, settings=settings),
        concat_dir=settings.concat_dir,
    )

    if settings.progress_log_path is not None:
        conversion.on_progress(ProgressJournalWriter(settings.progress_log_path))
        logger.info("Progress journal enabled: %s", settings.progress_log_path)

    return conversion
