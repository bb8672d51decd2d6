"""Command-line adapter: run the quality search on a file from a terminal."""

from __future__ import annotations

import argparse
import logging
import tempfile
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from .auto_quality import AutoQualityResult, Outcome, run_auto_quality
from .config import ConfigError, SearchConfig, load_overrides
from .display import display_results_table
from .encoder_config import EncoderModel, VideoStreamConfig
from .encoder_type import DEFAULT_ENCODER
from .media import ContentMetadata, parse_genres
from .probe import ProbeError, probe_video_info
from .progress import AutoQualityDisplay
from .utils import TempWorkspace, ensure_dir, format_command, log_section

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="autoquality",
        description="Find the highest CRF that still meets a VMAF target using short samples",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _ = p.add_argument("input", type=Path, help="Input video path")
    _ = p.add_argument(
        "--codec",
        default=DEFAULT_ENCODER,
        help=f"Target ffmpeg encoder, e.g. libx265, hevc_nvenc, h264_qsv (default: {DEFAULT_ENCODER})",
    )

    # -------------------------------------------------------------------------
    # Search Options
    # -------------------------------------------------------------------------
    search_group = p.add_argument_group("Search Options")
    _ = search_group.add_argument(
        "--target",
        default=None,
        help="Target VMAF score, or 'auto' for a content-aware target (default: auto)",
    )
    _ = search_group.add_argument("--min-crf", type=int, default=None, help="Lowest CRF to test")
    _ = search_group.add_argument("--max-crf", type=int, default=None, help="Highest CRF to test")
    _ = search_group.add_argument(
        "--max-iterations", type=int, default=None, help="Maximum search iterations"
    )
    _ = search_group.add_argument(
        "--no-prefer-smaller",
        action="store_true",
        help="Stop at the first CRF meeting the target instead of pushing for smaller files",
    )
    _ = search_group.add_argument(
        "--preset", default=None, help="Encoder preset for test encodes (default: fast)"
    )

    # -------------------------------------------------------------------------
    # Sampling Options
    # -------------------------------------------------------------------------
    sampling_group = p.add_argument_group("Sampling Options")
    _ = sampling_group.add_argument(
        "--samples", type=int, default=None, help="Number of samples per CRF (default: 3)"
    )
    _ = sampling_group.add_argument(
        "--sample-duration",
        type=float,
        default=None,
        help="Sample length in seconds (default: 8)",
    )
    _ = sampling_group.add_argument(
        "--no-luminance", action="store_true", help="Skip dark scene detection"
    )

    # -------------------------------------------------------------------------
    # Content Metadata
    # -------------------------------------------------------------------------
    content_group = p.add_argument_group("Content Metadata")
    _ = content_group.add_argument("--year", type=int, default=None, help="Release year")
    _ = content_group.add_argument(
        "--genre", default=None, help="Genres, comma or pipe separated (e.g. 'Animation,Comedy')"
    )

    # -------------------------------------------------------------------------
    # Paths & Logging
    # -------------------------------------------------------------------------
    paths_group = p.add_argument_group("Paths & Logging")
    _ = paths_group.add_argument(
        "--overrides", type=Path, default=None, help="YAML file with override keys"
    )
    _ = paths_group.add_argument("--ffmpeg", default="ffmpeg", help="Path to ffmpeg")
    _ = paths_group.add_argument("--ffprobe", default="ffprobe", help="Path to ffprobe")
    _ = paths_group.add_argument(
        "--workdir", type=Path, default=None, help="Directory for temporary samples"
    )
    _ = paths_group.add_argument("--log-file", type=Path, default=None, help="Write a log file")
    verbosity = paths_group.add_mutually_exclusive_group()
    _ = verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    _ = verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings only")
    return p


def configure_logging(verbose: bool, quiet: bool, log_file: Path | None) -> None:
    """File-only logging; console output is driven by the Rich UI."""
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.NullHandler()],
        force=True,
    )
    if log_file is None:
        return
    try:
        _ = ensure_dir(log_file.parent)
        fh = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        logger.warning("Could not attach file logger at %s: %s", log_file, e)
        return
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    logging.getLogger().addHandler(fh)


def explicit_settings(args: argparse.Namespace) -> dict[str, object]:
    """Config values given on the command line (None = not given)."""
    return {
        "target_score": args.target,
        "min_level": args.min_crf,
        "max_level": args.max_crf,
        "max_iterations": args.max_iterations,
        "prefer_smaller_file": False if args.no_prefer_smaller else None,
        "sample_count": args.samples,
        "sample_duration": args.sample_duration,
        "preset": args.preset,
        "luminance_analysis": False if args.no_luminance else None,
    }


def print_result(console: Console, result: AutoQualityResult, model: EncoderModel) -> None:
    if result.metric is not None and result.target is not None:
        display_results_table(
            console, result.results, result.target, result.level, result.metric
        )

    style = {
        Outcome.APPLIED: "green",
        Outcome.UNCHANGED: "yellow",
        Outcome.COPY: "cyan",
        Outcome.ERROR: "red",
    }[result.outcome]
    lines = [f"[bold]Outcome:[/bold] [{style}]{result.outcome.value}[/{style}]"]
    for key, value in result.to_variables().items():
        if key == "AutoQuality_Results":
            continue
        lines.append(f"[dim]{key}[/dim] = {value}")
    stream = model.first_video_stream
    if stream is not None and result.outcome is Outcome.APPLIED:
        lines.append(f"[bold]Encoder arguments:[/bold] {format_command(stream.encoding_parameters)}")
    if result.degraded:
        lines.append("[yellow]No CRF met the target; the best measured CRF was applied.[/yellow]")
    console.print(Panel("\n".join(lines), title="Auto Quality", border_style=style))


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    configure_logging(bool(args.verbose), bool(args.quiet), args.log_file)
    display = AutoQualityDisplay(show_title=not args.quiet)
    console = display.console

    input_path: Path = args.input
    if not input_path.exists():
        parser.error(f"Input not found: {input_path}")

    try:
        overrides = load_overrides(args.overrides) if args.overrides else {}
        config = SearchConfig.resolve(explicit_settings(args), overrides)
    except ConfigError as e:
        parser.error(str(e))

    log_section(logger, "Initialization")
    logger.info("Input: %s", input_path)
    logger.info("Target encoder: %s", args.codec)

    try:
        video_info = probe_video_info(input_path, ffprobe_bin=args.ffprobe)
    except ProbeError as e:
        console.print(f"[red]Could not probe input:[/red] {e}")
        logger.error("Probe failed: %s", e)
        return 1

    model = EncoderModel(
        video_streams=[VideoStreamConfig(codec=args.codec, encoding_parameters=["-c:v", args.codec])]
    )
    metadata = ContentMetadata(year=args.year, genres=parse_genres(args.genre))
    workdir: Path = args.workdir or Path(tempfile.gettempdir()) / "autoquality"

    with display.stage("Auto Quality") as stage:
        result = run_auto_quality(
            model,
            video_info,
            input_path,
            config=config,
            metadata=metadata,
            file_size=input_path.stat().st_size,
            ffmpeg=args.ffmpeg,
            workspace=TempWorkspace(ensure_dir(workdir)),
            reporter=stage,
        )

    print_result(console, result, model)
    return 1 if result.outcome is Outcome.ERROR else 0
