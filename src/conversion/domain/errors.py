"""Domain errors — conversion exception hierarchy."""

from __future__ import annotations


class ConversionError(Exception):
    """Base error for all conversion operations.

    Use ``raise ConversionError("msg") from cause`` for exception chaining.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ConversionError):
    """Invalid settings file, environment values, or builder options."""


class UnsupportedOptionError(ConfigurationError):
    """An enum value outside the closed set a setter accepts."""


class RunnerStateError(ConversionError):
    """A process runner was asked to run more than once."""


class EncoderLaunchError(ConversionError):
    """The encoder binary could not be started (missing, not executable)."""


class EncodeFailedError(ConversionError):
    """The encoder exited with a non-zero code."""

    def __init__(self, message: str, exit_code: int | None, diagnostic_tail: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.diagnostic_tail = diagnostic_tail


class ConversionCancelledError(ConversionError):
    """The run was cancelled by the caller before the encoder exited."""
