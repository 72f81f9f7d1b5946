"""ConversionEvents — in-process fan-out of progress and raw encoder output."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine, Sequence
from typing import Any, TypeVar

from conversion.domain.models import ProgressEvent
from conversion.domain.ports import OutputListener, ProgressListener

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class ConversionEvents:
    """Publish-subscribe hub for one conversion's observers.

    Listeners are async callables. Every listener receives every
    notification, in the order notifications are published.
    Listener failures are logged but never block the publisher.
    """

    def __init__(self) -> None:
        self._progress_listeners: list[ProgressListener] = []
        self._output_listeners: list[OutputListener] = []

    def subscribe_progress(self, listener: ProgressListener) -> None:
        """Register an async listener for progress events."""
        self._progress_listeners.append(listener)

    def subscribe_output(self, listener: OutputListener) -> None:
        """Register an async listener for raw output lines."""
        self._output_listeners.append(listener)

    async def publish_progress(self, event: ProgressEvent) -> None:
        await _dispatch(self._progress_listeners, event, "progress")

    async def publish_output(self, line: str) -> None:
        await _dispatch(self._output_listeners, line, "output")

    @property
    def listener_count(self) -> int:
        """Number of registered listeners across both streams."""
        return len(self._progress_listeners) + len(self._output_listeners)


async def _dispatch(
    listeners: Sequence[Callable[[_T], Coroutine[Any, Any, None]]],
    payload: _T,
    stream: str,
) -> None:
    """Call each listener sequentially. Failures are logged and swallowed."""
    for listener in listeners:
        try:
            await listener(payload)
        except Exception:
            logger.exception(
                "Listener %s failed for %s notification",
                getattr(listener, "__name__", repr(listener)),
                stream,
            )
