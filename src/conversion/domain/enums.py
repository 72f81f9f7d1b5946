"""Domain enums — closed option sets for ffmpeg arguments and run states."""

from enum import Enum, unique


@unique
class Channel(Enum):
    """Media stream a channel-scoped option applies to."""

    VIDEO = "video"
    AUDIO = "audio"
    BOTH = "both"


@unique
class Position(Enum):
    """Watermark placement on the output frame."""

    CENTER = "center"
    BOTTOM = "bottom"
    UP = "up"
    UPPER_LEFT = "upper_left"
    UPPER_RIGHT = "upper_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"
    LEFT = "left"
    RIGHT = "right"


@unique
class RotateDegrees(Enum):
    """Rotation mapped onto ffmpeg's ``transpose`` filter values."""

    COUNTER_CLOCKWISE_AND_FLIP = 0
    CLOCKWISE = 1
    COUNTER_CLOCKWISE = 2
    CLOCKWISE_AND_FLIP = 3
    INVERT = 4


@unique
class Speed(Enum):
    """x264-style encoding presets (``-preset``)."""

    VERY_SLOW = "veryslow"
    SLOWER = "slower"
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"
    FASTER = "faster"
    VERY_FAST = "veryfast"
    SUPER_FAST = "superfast"
    ULTRA_FAST = "ultrafast"


@unique
class VideoCodec(Enum):
    """Common ffmpeg video encoders and muxer names."""

    LIBX264 = "libx264"
    LIBX265 = "libx265"
    H264 = "h264"
    HEVC = "hevc"
    MPEG4 = "mpeg4"
    LIBVPX = "libvpx"
    LIBVPX_VP9 = "libvpx-vp9"
    LIBTHEORA = "libtheora"
    MPEGTS = "mpegts"
    GIF = "gif"
    PNG = "png"
    IMAGE2 = "image2"
    COPY = "copy"


@unique
class AudioCodec(Enum):
    """Common ffmpeg audio encoders."""

    AAC = "aac"
    LIBVORBIS = "libvorbis"
    LIBMP3LAME = "libmp3lame"
    LIBOPUS = "libopus"
    FLAC = "flac"
    COPY = "copy"


@unique
class AudioQuality(Enum):
    """Audio bitrate in kbit/s."""

    VERY_LOW = 64
    LOW = 96
    NORMAL = 128
    HD = 192
    ULTRA = 384


@unique
class BitstreamFilter(Enum):
    """Bitstream filters applied with ``-bsf:v`` / ``-bsf:a``."""

    H264_MP4TOANNEXB = "h264_mp4toannexb"
    HEVC_MP4TOANNEXB = "hevc_mp4toannexb"
    AAC_ADTSTOASC = "aac_adtstoasc"


@unique
class VideoSize(Enum):
    """Named output resolutions for ``-vf scale=``."""

    QVGA = "320x240"
    VGA = "640x480"
    SVGA = "800x600"
    HD480 = "852x480"
    HD720 = "1280x720"
    HD1080 = "1920x1080"
    UHD2160 = "3840x2160"


@unique
class OutcomeStatus(Enum):
    """Terminal result of a single encoder run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    LAUNCH_ERROR = "launch_error"


@unique
class RunnerState(Enum):
    """Lifecycle of a process runner. Every state but the first two is terminal."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    LAUNCH_ERROR = "launch_error"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunnerState.NOT_STARTED, RunnerState.RUNNING)
