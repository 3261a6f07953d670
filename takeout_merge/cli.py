"""Console runner: merge a takeout archive's sidecar metadata into its images."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable, List, Optional

from takeout_merge.config import Settings, load_settings
from takeout_merge.errors import ConfigError
from takeout_merge.services.channels import (
    CancelledEvent,
    DoneEvent,
    ErrorEvent,
    FailedEvent,
    PipelineChannels,
)
from takeout_merge.services.pipeline_runner import get_channels, start_pipeline_job
from takeout_merge.utils.paths import normalize_user_path

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

PROMPT = "[Enter] continue, [r] retry, [q] quit: "


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="takeout-merge",
        description="Write Google Photos takeout sidecar metadata (dates, description) into the images' EXIF")
    parser.add_argument("archive", help="Path to the takeout .zip archive")
    parser.add_argument("-c", "--config", help="Path to a JSON config file")
    parser.add_argument("-y", "--auto-ack", action="store_true", default=None,
                        help="Do not stop on errors; report them and carry on")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-file", help="Also write the log to this file")
    return parser


def configure_logging(settings: Settings) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    logging.basicConfig(level=settings.log_level.upper(),
                        format="%(asctime)s - %(levelname)s - %(message)s",
                        handlers=handlers,
                        force=True)


def ask_operator(event: ErrorEvent, read: Callable[[str], str] = input) -> str:
    """Return 'continue', 'retry' or 'quit' for an error the run stopped on."""
    print(f"\nError on {event.path}:\n  {event.error}")
    try:
        answer = read(PROMPT).strip().lower()
    except EOFError:
        return "continue"
    if answer.startswith("r"):
        return "retry"
    if answer.startswith("q"):
        return "quit"
    return "continue"


def drive(channels: PipelineChannels, settings: Settings,
          read: Callable[[str], str] = input) -> int:
    """Poll `channels` until the run ends, answering errors. Returns an exit code."""
    while True:
        event = channels.poll_event(timeout=settings.poll_interval or None)
        if event is None:
            continue
        if isinstance(event, ErrorEvent):
            if settings.auto_acknowledge:
                print(f"Error on {event.path}: {event.error}", file=sys.stderr)
                channels.acknowledge()
                continue
            choice = ask_operator(event, read)
            if choice == "quit":
                channels.cancel()
            else:
                channels.acknowledge(retry=choice == "retry")
        elif isinstance(event, DoneEvent):
            print("\nMetadata merge complete.")
            for key, value in event.summary.items():
                print(f"{key.replace('_', ' ').capitalize()}: {value}")
            return EXIT_OK
        elif isinstance(event, FailedEvent):
            print(f"\nFailed: {event.error}", file=sys.stderr)
            return EXIT_FAILED
        elif isinstance(event, CancelledEvent):
            print("\nCancelled.", file=sys.stderr)
            return EXIT_CANCELLED


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config).with_overrides(
            auto_acknowledge=args.auto_ack,
            log_level=args.log_level,
            log_file=args.log_file,
        )
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return EXIT_FAILED
    configure_logging(settings)

    archive = normalize_user_path(args.archive)
    if not archive or not os.path.isfile(archive):
        print(f"Archive doesn't exist: {args.archive}", file=sys.stderr)
        return EXIT_FAILED

    job_id = start_pipeline_job(archive, settings=settings)
    channels = get_channels(job_id)
    try:
        return drive(channels, settings)
    except KeyboardInterrupt:
        channels.cancel()
        return EXIT_CANCELLED


if __name__ == "__main__":
    raise SystemExit(main())
