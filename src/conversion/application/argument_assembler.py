"""Conversion — fluent builder that compiles options into one ffmpeg command line."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from conversion.application.event_bus import ConversionEvents
from conversion.domain.enums import (
    AudioCodec,
    AudioQuality,
    BitstreamFilter,
    Channel,
    Position,
    RotateDegrees,
    Speed,
    VideoCodec,
    VideoSize,
)
from conversion.domain.errors import UnsupportedOptionError
from conversion.domain.models import ConversionOutcome, ConversionSpec, FrameSize
from conversion.domain.types import CommandLine

if TYPE_CHECKING:
    import asyncio

    from conversion.domain.ports import OutputListener, ProcessRunnerPort, ProgressListener

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[ConversionEvents], "ProcessRunnerPort"]

_K = TypeVar("_K")

_OVERLAYS: Mapping[Position, str] = {
    Position.BOTTOM: "(main_w-overlay_w)/2:main_h-overlay_h",
    Position.CENTER: "x=(main_w-overlay_w)/2:y=(main_h-overlay_h)/2",
    Position.BOTTOM_LEFT: "5:main_h-overlay_h",
    Position.UPPER_LEFT: "5:5",
    Position.BOTTOM_RIGHT: "(main_w-overlay_w):main_h-overlay_h",
    Position.UPPER_RIGHT: "(main_w-overlay_w):5",
    Position.LEFT: "5:(main_h-overlay_h)/2",
    Position.RIGHT: "(main_w-overlay_w-5):(main_h-overlay_h)/2",
    Position.UP: "(main_w-overlay_w)/2:5",
}

_DISABLE_FLAGS: Mapping[Channel, str] = {Channel.VIDEO: "-vn ", Channel.AUDIO: "-an "}
_BITSTREAM_FLAGS: Mapping[Channel, str] = {Channel.VIDEO: "-bsf:v", Channel.AUDIO: "-bsf:a"}
_COPY_FLAGS: Mapping[Channel, str] = {
    Channel.VIDEO: "-c:v copy ",
    Channel.AUDIO: "-c:a copy ",
    Channel.BOTH: "-c copy ",
}
_REVERSE_FLAGS: Mapping[Channel, str] = {
    Channel.VIDEO: "-vf reverse ",
    Channel.AUDIO: "-af areverse ",
    Channel.BOTH: "-vf reverse -af areverse ",
}


def _lookup(table: Mapping[_K, str], key: _K, option: str) -> str:
    try:
        return table[key]
    except (KeyError, TypeError):
        raise UnsupportedOptionError(f"{option} does not support {key!r}") from None


def _name(value: Enum | str) -> str:
    """Lower-cased ffmpeg token for an enum member or a free-form string."""
    if isinstance(value, Enum):
        return str(value.value).lower()
    return value.lower()


def format_time(value: timedelta) -> str:
    """Format a timedelta as ``HH:MM:SS`` with microseconds only when present.

    Hours are not folded into days, so ``timedelta(hours=26)`` is ``26:00:00``.
    """
    total_us = value // timedelta(microseconds=1)
    sign = "-" if total_us < 0 else ""
    seconds, micro = divmod(abs(total_us), 1_000_000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if micro:
        text += f".{micro:06d}"
    return text


def _one_decimal(value: float) -> str:
    """One fractional digit, midpoints rounded away from zero, no digit grouping."""
    return format(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP), "f")


def _escape_concat_path(path: str) -> str:
    """Escape a path for the concat demuxer list (single quotes -> '\\'')."""
    escaped = path.replace("'", "'\\''")
    return f"file '{escaped}'"


class Conversion:
    """Accumulate ffmpeg options and run them as a single encoder invocation.

    Each option category holds at most one fragment; calling a setter again
    replaces that category only. Setters return ``self`` for chaining.
    State lives in an immutable ConversionSpec that setters swap out, so
    ``build()`` always reads one consistent snapshot.

    One instance describes one conversion job. It holds no process handle
    and can be started any number of times.
    """

    def __init__(self, runner_factory: RunnerFactory, concat_dir: Path | None = None) -> None:
        self._runner_factory = runner_factory
        self._concat_dir = concat_dir
        self._spec = ConversionSpec()
        self._events = ConversionEvents()

    @property
    def spec(self) -> ConversionSpec:
        """Current option snapshot."""
        return self._spec

    def _set(self, **fragments: object) -> Conversion:
        self._spec = replace(self._spec, **fragments)
        return self

    # -- subscriptions ---------------------------------------------------

    def on_progress(self, listener: ProgressListener) -> Conversion:
        """Register an async listener for progress events of every run."""
        self._events.subscribe_progress(listener)
        return self

    def on_output(self, listener: OutputListener) -> Conversion:
        """Register an async listener for every raw encoder output line."""
        self._events.subscribe_output(listener)
        return self

    # -- inputs and outputs ----------------------------------------------

    def set_input(self, *inputs: str | os.PathLike[str]) -> Conversion:
        """Replace the input fragment with one ``-i`` per path, in order."""
        return self._set(input="".join(f'-i "{os.fspath(path)}" ' for path in inputs))

    def concat(self, *paths: str | os.PathLike[str]) -> Conversion:
        """Join inputs through the concat demuxer using a temporary list file.

        The list file gets a unique name and is left on disk. OSError from
        writing it propagates and leaves the input fragment unchanged.
        """
        fd, list_path = tempfile.mkstemp(prefix="concat_", suffix=".txt", dir=self._concat_dir)
        with open(fd, "w", encoding="utf-8") as f:
            f.writelines(_escape_concat_path(os.fspath(path)) + "\n" for path in paths)
        logger.debug("Wrote concat list with %d entries to %s", len(paths), list_path)
        return self._set(input=f'-f concat -safe 0 -i "{list_path}" -c copy ')

    def set_output(self, output_path: str | os.PathLike[str]) -> Conversion:
        return self._set(output=f'"{os.fspath(output_path)}"')

    def set_watermark(self, image_path: str | os.PathLike[str], position: Position) -> Conversion:
        """Overlay an image at one of the fixed positions."""
        overlay = _lookup(_OVERLAYS, position, "Watermark")
        return self._set(watermark=f'-i "{os.fspath(image_path)}" -filter_complex "overlay={overlay}" ')

    # -- codecs and encoding ---------------------------------------------

    def set_video(self, codec: VideoCodec | str, bitrate: int = 0) -> Conversion:
        fragment = f"-codec:v {_name(codec)} "
        if bitrate > 0:
            fragment += f"-b:v {bitrate}k "
        return self._set(video=fragment)

    def set_audio(self, codec: AudioCodec | str, bitrate: AudioQuality) -> Conversion:
        return self._set(audio=f"-codec:a {_name(codec)} -b:a {bitrate.value}k -strict experimental ")

    def set_speed(self, speed: Speed | int) -> Conversion:
        """Set an encoder preset, or a libvpx ``-cpu-used`` level when given an int."""
        if isinstance(speed, Speed):
            return self._set(speed=f"-preset {speed.value} ")
        return self._set(speed=f"-quality good -cpu-used {speed} -deadline realtime ")

    def use_multi_thread(self, multi_thread: bool) -> Conversion:
        thread_count = (os.cpu_count() or 1) if multi_thread else 1
        return self._set(threads=f"-threads {thread_count} ")

    def set_format(self, fmt: VideoCodec | str) -> Conversion:
        """Force the container format (``-f``)."""
        return self._set(format=f"-f {_name(fmt)} ")

    def set_bitstream_filter(self, channel: Channel, bitstream_filter: BitstreamFilter | str) -> Conversion:
        flag = _lookup(_BITSTREAM_FLAGS, channel, "Bitstream filter")
        return self._set(bitstream_filter=f"{flag} {_name(bitstream_filter)} ")

    def stream_copy(self, channel: Channel) -> Conversion:
        return self._set(copy=_lookup(_COPY_FLAGS, channel, "Stream copy"))

    def disable_channel(self, channel: Channel) -> Conversion:
        return self._set(disabled=_lookup(_DISABLE_FLAGS, channel, "Disable channel"))

    # -- geometry ----------------------------------------------------------

    def set_scale(self, size: VideoSize | str | None) -> Conversion:
        """Scale to a resolution. A missing or blank resolution is ignored."""
        resolution = size.value if isinstance(size, VideoSize) else size
        if not resolution or not resolution.strip():
            return self
        return self._set(scale=f"-vf scale={resolution} ")

    def set_size(self, size: FrameSize | tuple[int, int] | None) -> Conversion:
        """Set explicit frame dimensions. None is ignored."""
        if size is None:
            return self
        if not isinstance(size, FrameSize):
            size = FrameSize(*size)
        return self._set(size=f"-s {size.width}x{size.height} ")

    def rotate(self, degrees: RotateDegrees) -> Conversion:
        if not isinstance(degrees, RotateDegrees):
            raise UnsupportedOptionError(f"Rotate does not support {degrees!r}")
        if degrees is RotateDegrees.INVERT:
            return self._set(rotate='-vf "transpose=2,transpose=2" ')
        return self._set(rotate=f'-vf "transpose={degrees.value}" ')

    # -- timing ------------------------------------------------------------

    def set_seek(self, seek: timedelta | None) -> Conversion:
        """Seek the input. None is ignored."""
        if seek is None:
            return self
        return self._set(seek=f"-ss {format_time(seek)} ")

    def split(self, start_time: timedelta, duration: timedelta) -> Conversion:
        """Keep only ``duration`` of media starting at ``start_time``."""
        return self._set(
            split=f"-ss {format_time(start_time)} -t {format_time(duration)} ",
            split_duration=duration,
        )

    def set_output_frames_count(self, number: int) -> Conversion:
        return self._set(frame_count=f"-frames:v {number} ")

    def set_loop(self, count: int, delay: int = 0) -> Conversion:
        """Loop the output ``count`` times.

        ``delay`` is given in hundredths of a second and truncated to whole
        seconds, so values below 100 produce no ``-final_delay``.
        """
        fragment = f"-loop {count} "
        if delay // 100 > 0:
            fragment += f"-final_delay {delay // 100} "
        return self._set(loop=fragment)

    def reverse(self, channel: Channel) -> Conversion:
        return self._set(reverse=_lookup(_REVERSE_FLAGS, channel, "Reverse"))

    def use_shortest(self, use_shortest: bool) -> Conversion:
        """Stop at the end of the shortest input. False leaves the option as it was."""
        if not use_shortest:
            return self
        return self._set(shortest="-shortest ")

    def change_video_speed(self, multiplication: float) -> Conversion:
        return self._set(video_speed=f"setpts={_one_decimal(multiplication)}*PTS ")

    def change_audio_speed(self, multiplication: float) -> Conversion:
        return self._set(audio_speed=f"atempo={_one_decimal(multiplication)} ")

    # -- assembly ------------------------------------------------------------

    def clear(self) -> None:
        """Reset every option category."""
        self._spec = ConversionSpec()

    def build(self) -> CommandLine:
        """Concatenate the configured fragments in ffmpeg's required order."""
        return _assemble(self._spec)

    async def start(
        self,
        parameters: str | None = None,
        cancel_event: asyncio.Event | None = None,
        total_duration: timedelta | None = None,
    ) -> ConversionOutcome:
        """Run the encoder with the built command line, or with raw ``parameters``.

        A split window's duration is used as the expected total when no
        explicit ``total_duration`` is given.
        """
        spec = self._spec
        if parameters is None:
            command_line = _assemble(spec)
            if total_duration is None:
                total_duration = spec.split_duration
        else:
            command_line = CommandLine(parameters)

        runner = self._runner_factory(self._events)
        logger.info("Starting conversion: %s", command_line)
        return await runner.run(command_line, cancel_event=cancel_event, total_duration=total_duration)


def _filter_chain(flag: str, body: str | None) -> str:
    return f"{flag} {body}" if body else ""


def _assemble(spec: ConversionSpec) -> CommandLine:
    fragments = (
        spec.input,
        spec.watermark,
        spec.scale,
        spec.video,
        spec.speed,
        spec.audio,
        spec.threads,
        spec.disabled,
        spec.size,
        spec.format,
        spec.bitstream_filter,
        spec.copy,
        spec.seek,
        spec.frame_count,
        spec.loop,
        spec.reverse,
        spec.rotate,
        spec.shortest,
        _filter_chain("-filter:v", spec.video_speed),
        _filter_chain("-filter:a", spec.audio_speed),
        spec.split,
        spec.output,
    )
    return CommandLine("".join(fragment for fragment in fragments if fragment))
