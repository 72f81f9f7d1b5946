"""Domain models — frozen dataclasses for builder state, progress and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from conversion.domain.enums import OutcomeStatus
from conversion.domain.errors import ConversionCancelledError, EncodeFailedError, EncoderLaunchError


@dataclass(frozen=True)
class ConversionSpec:
    """One pre-formatted argument fragment per option category.

    ``None`` means the category is unset. Field order mirrors the order
    fragments are emitted on the command line.
    """

    input: str | None = None
    watermark: str | None = None
    scale: str | None = None
    video: str | None = None
    speed: str | None = None
    audio: str | None = None
    threads: str | None = None
    disabled: str | None = None
    size: str | None = None
    format: str | None = None
    bitstream_filter: str | None = None
    copy: str | None = None
    seek: str | None = None
    frame_count: str | None = None
    loop: str | None = None
    reverse: str | None = None
    rotate: str | None = None
    shortest: str | None = None
    video_speed: str | None = None
    audio_speed: str | None = None
    split: str | None = None
    output: str | None = None
    split_duration: timedelta | None = None


@dataclass(frozen=True)
class FrameSize:
    """Explicit output frame dimensions in pixels."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"width and height must be positive, got ({self.width}, {self.height})")


@dataclass(frozen=True)
class StreamFormat:
    """A stream announced in ffmpeg's header, e.g. ``Video: h264``."""

    kind: str
    codec: str


@dataclass(frozen=True)
class ProgressEvent:
    """Processed media time reported by the encoder for one diagnostic line."""

    processed: timedelta
    total: timedelta | None = None
    message: str = ""

    @property
    def percent(self) -> float | None:
        """Completion percentage clamped to 0-100, or None when the total is unknown."""
        if self.total is None or self.total <= timedelta(0):
            return None
        return max(0.0, min(100.0, self.processed / self.total * 100))


@dataclass(frozen=True)
class ConversionOutcome:
    """Terminal result of a run. Exactly one is produced per start."""

    status: OutcomeStatus
    exit_code: int | None = None
    diagnostic_tail: tuple[str, ...] = field(default_factory=tuple)
    error: str = ""
    streams: tuple[StreamFormat, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    @classmethod
    def success(cls, streams: tuple[StreamFormat, ...] = ()) -> ConversionOutcome:
        return cls(status=OutcomeStatus.SUCCEEDED, exit_code=0, streams=streams)

    @classmethod
    def failure(
        cls,
        exit_code: int,
        diagnostic_tail: tuple[str, ...],
        streams: tuple[StreamFormat, ...] = (),
    ) -> ConversionOutcome:
        return cls(
            status=OutcomeStatus.FAILED,
            exit_code=exit_code,
            diagnostic_tail=diagnostic_tail,
            error=f"Encoder exited with code {exit_code}",
            streams=streams,
        )

    @classmethod
    def cancelled(cls, diagnostic_tail: tuple[str, ...] = ()) -> ConversionOutcome:
        return cls(status=OutcomeStatus.CANCELLED, diagnostic_tail=diagnostic_tail, error="Conversion cancelled")

    @classmethod
    def launch_error(cls, error: str) -> ConversionOutcome:
        return cls(status=OutcomeStatus.LAUNCH_ERROR, error=error)

    def raise_for_status(self) -> None:
        """Raise the matching ConversionError subclass unless the run succeeded."""
        if self.status is OutcomeStatus.SUCCEEDED:
            return
        if self.status is OutcomeStatus.LAUNCH_ERROR:
            raise EncoderLaunchError(f"Encoder could not be started: {self.error}")
        if self.status is OutcomeStatus.CANCELLED:
            raise ConversionCancelledError(self.error)
        detail = "\n".join(self.diagnostic_tail)
        message = f"{self.error}: {detail}" if detail else self.error
        raise EncodeFailedError(message, self.exit_code, self.diagnostic_tail)
