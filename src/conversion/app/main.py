"""Command-line entry point — ``ffconv`` / ``python3 -m conversion.app.main``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import signal
import sys
from datetime import timedelta
from pathlib import Path

from conversion.app.bootstrap import create_conversion
from conversion.app.settings import load_settings
from conversion.domain.enums import OutcomeStatus
from conversion.domain.errors import ConfigurationError
from conversion.domain.models import ConversionOutcome, ProgressEvent

logger = logging.getLogger(__name__)

EXIT_CODES: dict[OutcomeStatus, int] = {
    OutcomeStatus.SUCCEEDED: 0,
    OutcomeStatus.FAILED: 1,
    OutcomeStatus.LAUNCH_ERROR: 2,
    OutcomeStatus.CANCELLED: 130,
}


def _build_parser() -> argparse.ArgumentParser:
    # long-only options, so every single-dash token is left for ffmpeg
    parser = argparse.ArgumentParser(
        prog="ffconv",
        usage="%(prog)s [--config PATH] [--total-seconds N] [--verbose] [--] PARAMETERS...",
        description="Run an ffmpeg argument string with progress.",
        epilog='PARAMETERS is either one quoted string (\'-i "in.mkv" -c copy "out.mp4"\') or separate arguments.',
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--help", action="help", help="Show this message and exit")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--total-seconds", type=float, default=None, help="Expected output duration")
    parser.add_argument("--verbose", action="store_true", help="Echo every encoder output line")
    return parser


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Split ffconv options from the ffmpeg parameters.

    A single remaining argument is used as a ready-made command line; several
    arguments are quoted back into one with ``shlex.join``.
    """
    parser = _build_parser()
    args, rest = parser.parse_known_args(argv)
    if rest and rest[0] == "--":
        rest = rest[1:]
    if not rest:
        parser.error("the following arguments are required: PARAMETERS")
    args.parameters = rest[0] if len(rest) == 1 else shlex.join(rest)
    return args


async def _print_progress(event: ProgressEvent) -> None:
    percent = event.percent
    if percent is None:
        print(f"processed {event.processed}", flush=True)
    else:
        print(f"{percent:5.1f}%", flush=True)


async def _echo_line(line: str) -> None:
    print(line, file=sys.stderr)


async def run(args: argparse.Namespace) -> ConversionOutcome:
    """Configure a conversion from CLI arguments and run it until Ctrl-C or exit."""
    settings = load_settings(args.config)
    conversion = create_conversion(settings).on_progress(_print_progress)
    if args.verbose:
        conversion.on_output(_echo_line)

    total = timedelta(seconds=args.total_seconds) if args.total_seconds is not None else None
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable, Ctrl-C will abort without cleanup")

    return await conversion.start(args.parameters, cancel_event=cancel_event, total_duration=total)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args = _parse_args(argv)
    try:
        outcome = asyncio.run(run(args))
    except ConfigurationError as exc:
        logger.error("%s", exc.message)
        return 2

    if outcome.status is OutcomeStatus.FAILED:
        for line in outcome.diagnostic_tail:
            print(line, file=sys.stderr)
    if outcome.error:
        logger.error("%s", outcome.error)
    return EXIT_CODES[outcome.status]


if __name__ == "__main__":
    sys.exit(main())
