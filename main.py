#!/usr/bin/env python3
"""
Audio Trimmer CLI
Cut a time window out of a remote audio file and save it as WAV.

Usage:
    python main.py https://example.com/song.mp3 --start 2 --end 5 -o clip.wav
    python main.py https://example.com/song.mp3 --start 30 --end 90 --auto-output
    python main.py https://example.com/song.mp3 --preset 30s --auto-output --fast
    python main.py https://example.com/song.mp3 --start 0 --end 600 --auto-output --fallback
"""

import argparse
import logging
import os
import sys
import time

from tqdm import tqdm

from application.domain.audio import EncodedArtifact, TimeRange
from application.domain.errors import PipelineCancelled, TrimError
from application.domain.status import ProcessingStatus
from application.dto.trim_dto import TrimSettingsDTO
from infrastructure.audio.pydub_sample_decoder import PydubSampleDecoder
from trimmer.core import TrimPipeline
from trimmer.printer import OutputPrinter
from trimmer.utils import (
    DEFAULT_SETTINGS,
    PRESET_TRIMS,
    SUPPORTED_OUTPUT_FORMATS,
    format_time,
    get_output_path,
    parse_time_range,
    preset_time_range,
    validate_source_url,
)


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="audio-trimmer",
        description="Trim a time window out of a remote audio file and save it as WAV.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py https://example.com/song.mp3 --start 2 --end 5 -o clip.wav
  python main.py https://example.com/song.mp3 --preset 60s --auto-output
  python main.py https://example.com/song.mp3 --start 10 --end 9999 --auto-output
        """,
    )

    parser.add_argument(
        "source",
        metavar="SOURCE_URL",
        help="http(s) URL of the audio file to trim.",
    )
    parser.add_argument(
        "output",
        nargs="?",
        default=None,
        metavar="OUTPUT",
        help="Output WAV path (or use --auto-output).",
    )

    range_group = parser.add_argument_group("Trim Range")
    range_group.add_argument(
        "--start",
        "-s",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Start of the window in seconds.",
    )
    range_group.add_argument(
        "--end",
        "-e",
        type=float,
        default=None,
        metavar="SECONDS",
        help="End of the window in seconds (values past the end trim to the end).",
    )
    range_group.add_argument(
        "--preset",
        choices=[p["label"] for p in PRESET_TRIMS],
        default=None,
        help="Trim the first 15s/30s/60s/2min/5min instead of --start/--end.",
    )

    run_group = parser.add_argument_group("Processing")
    run_group.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_SETTINGS["timeout"],
        metavar="SECS",
        help=f"Encode stage deadline in seconds (default: {DEFAULT_SETTINGS['timeout']:g}).",
    )
    run_group.add_argument(
        "--fast",
        action="store_true",
        help="Skip fine-grained download/copy/encode progress.",
    )
    run_group.add_argument(
        "--fallback",
        action="store_true",
        help="If encoding times out, save the original untrimmed audio instead.",
    )

    out_group = parser.add_argument_group("Output Options")
    out_group.add_argument(
        "--auto-output",
        action="store_true",
        help="Name the file trimmed_audio_<start>s_to_<end>s.wav in the current directory.",
    )
    out_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress all output except errors.",
    )
    out_group.add_argument(
        "--no-color",
        "-n",
        action="store_true",
        help="Disable colored output (also auto-disabled when NO_COLOR env var is set).",
    )
    out_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log pipeline details to stderr.",
    )

    return parser


def resolve_time_range(parser: argparse.ArgumentParser, args: argparse.Namespace) -> TimeRange:
    if args.preset is not None:
        return preset_time_range(args.preset)
    if args.start is None or args.end is None:
        parser.error("Provide --start and --end, or pick a --preset.")
    return parse_time_range(args.start, args.end)


def resolve_output_path(parser: argparse.ArgumentParser, args: argparse.Namespace, time_range: TimeRange) -> str:
    if args.output is not None:
        ext: str = os.path.splitext(args.output)[1].lower()
        if ext not in SUPPORTED_OUTPUT_FORMATS:
            return os.path.splitext(args.output)[0] + ".wav"
        return args.output
    if args.auto_output:
        return get_output_path(os.getcwd(), time_range.start, time_range.end)
    parser.error("Provide an OUTPUT path, or use --auto-output to generate one automatically.")


def write_artifact(path: str, artifact: EncodedArtifact) -> None:
    with open(path, "wb") as f:
        f.write(artifact.data)


def run_with_progress(pipeline: TrimPipeline, source: str, time_range: TimeRange, quiet: bool) -> EncodedArtifact:
    if quiet:
        return pipeline.run(source, time_range)

    with tqdm(total=100, desc="Starting", unit="%") as pbar:

        def cli_callback(status: ProcessingStatus) -> None:
            pbar.set_description(status.message)
            if status.progress > pbar.n:
                pbar.update(status.progress - pbar.n)

        return pipeline.run(source, time_range, progress_callback=cli_callback)


def save_original(printer: OutputPrinter, pipeline: TrimPipeline, exc: TrimError, filename: str, output_dir: str) -> None:
    """Write the untrimmed source next to the requested output after a recoverable failure."""
    printer.warning(exc.message, hint=f"Saving the original audio ({filename}) instead.")
    try:
        original: EncodedArtifact = pipeline.download_original()
    except TrimError as fallback_exc:
        printer.trim_error(fallback_exc)
        sys.exit(1)
    original_path: str = os.path.join(output_dir, original.filename)
    write_artifact(original_path, original)
    printer.success(
        title=original_path,
        details={"Trimmed": "no (original audio)", "Size": f"{original.size / (1024 * 1024):.2f} MB"},
    )


def main() -> None:
    parser: argparse.ArgumentParser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    printer: OutputPrinter = OutputPrinter(
        quiet=args.quiet,
        no_color=args.no_color,
    )

    try:
        validate_source_url(args.source)
        time_range: TimeRange = resolve_time_range(parser, args)
    except TrimError as exc:
        printer.trim_error(exc)
        sys.exit(1)
    except ValueError as exc:
        printer.error(str(exc))
        sys.exit(1)

    output_path: str = resolve_output_path(parser, args, time_range)
    output_dir: str = os.path.dirname(os.path.abspath(output_path))
    if not os.path.isdir(output_dir):
        printer.error(
            f"Output directory does not exist: '{output_dir}'.",
            hint="Create the directory first, or choose an existing path.",
        )
        sys.exit(1)

    settings: TrimSettingsDTO = TrimSettingsDTO(
        encode_timeout_s=args.timeout,
        stream_progress=not args.fast,
    )
    pipeline: TrimPipeline = TrimPipeline(PydubSampleDecoder(), settings=settings)

    printer.info(f"Trimming {format_time(time_range.start)} → {format_time(time_range.end)} from {args.source}")

    start_time = time.time()
    try:
        artifact: EncodedArtifact = run_with_progress(pipeline, args.source, time_range, args.quiet)
        write_artifact(output_path, artifact)

        elapsed: float = time.time() - start_time
        printer.success(
            title=output_path,
            details={
                "Window": f"{format_time(time_range.start)} → {format_time(time_range.end)}",
                "Size": f"{artifact.size / (1024 * 1024):.2f} MB",
                "Time": f"{elapsed:.1f}s",
            },
        )

    except TrimError as exc:
        offer = pipeline.offer_fallback() if exc.recoverable else None
        if not (args.fallback and offer):
            printer.trim_error(exc)
            sys.exit(1)
        save_original(printer, pipeline, exc, offer.filename, output_dir)
    except (KeyboardInterrupt, PipelineCancelled):
        printer.warning("Trim cancelled.", hint="Output file was not saved.")
        sys.exit(130)


if __name__ == "__main__":
    main()
