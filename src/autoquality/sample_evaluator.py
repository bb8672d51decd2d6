from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .constants import (
    DEFAULT_TEST_PRESET,
    LUMINANCE_ANALYSIS_SECONDS,
    LUMINANCE_MAX_SAMPLES,
    SSIM_DECIMALS,
    SVT_AV1_PRESETS,
    TIMEOUT_ENCODE,
    TIMEOUT_EXTRACT,
    TIMEOUT_FILTER_CHECK,
    TIMEOUT_LUMINANCE,
    TIMEOUT_SCORE,
    VMAF_DECIMALS,
    VMAF_MAX_THREADS,
    VMAF_THREAD_CPU_FRACTION,
)
from .encoder_type import EncoderTarget
from .media import MediaAsset
from .sampling import SamplePosition
from .tool_parsers import parse_ssim_output, parse_vmaf_log, parse_vmaf_output, parse_yavg_values
from .utils import (
    TempWorkspace,
    ToolRunner,
    cleanup_files,
    escape_filter_path,
    get_cpu_count,
    run_tool,
)

logger = logging.getLogger(__name__)


class QualityMetric(str, Enum):
    """Full-reference metric used to score samples."""

    VMAF = "VMAF"
    SSIM = "SSIM"

    @property
    def decimals(self) -> int:
        return VMAF_DECIMALS if self is QualityMetric.VMAF else SSIM_DECIMALS

    def format(self, score: float) -> str:
        return f"{score:.{self.decimals}f}"


def detect_quality_metric(ffmpeg: str, runner: ToolRunner = run_tool) -> QualityMetric:
    """Use VMAF when ffmpeg was built with libvmaf, SSIM otherwise."""
    result = runner(
        [ffmpeg, "-hide_banner", "-loglevel", "error", "-h", "filter=libvmaf"],
        TIMEOUT_FILTER_CHECK,
    )
    output = result.output.lower()
    if result.ok and "libvmaf" in output and "unknown filter" not in output:
        logger.info("Quality metric: VMAF (libvmaf available)")
        return QualityMetric.VMAF

    logger.debug(
        "libvmaf not available (exit=%d, output=%d chars)", result.exit_code, len(output)
    )
    logger.warning("Quality metric: SSIM (libvmaf not available, using fallback)")
    logger.info("For better quality detection, install FFmpeg with --enable-libvmaf")
    return QualityMetric.SSIM


@dataclass(frozen=True)
class EvaluationResult:
    """Aggregate score of one candidate level over all samples.

    ``score`` is the mean of the samples that produced a score, or None when
    none did.
    """

    score: float | None
    sample_scores: tuple[float, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.score is not None

    @classmethod
    def from_scores(cls, scores: Sequence[float]) -> EvaluationResult:
        if not scores:
            return cls(score=None)
        return cls(score=sum(scores) / len(scores), sample_scores=tuple(scores))


def vmaf_thread_count() -> int:
    cpu_count = get_cpu_count()
    return min(max(1, int(cpu_count * VMAF_THREAD_CPU_FRACTION)), VMAF_MAX_THREADS)


def build_score_filter(
    metric: QualityMetric,
    width: int,
    height: int,
    pix_fmt: str = "yuv420p",
    log_path: Path | None = None,
    n_threads: int = 4,
) -> str:
    """Build the comparison filter graph (input 0 = reference, input 1 = encode).

    Both inputs are scaled to the source resolution with bicubic filtering so
    the metric compares like with like.
    """
    final = f"format={pix_fmt},setpts=PTS-STARTPTS"
    pre = f"scale={width}:{height}:flags=bicubic"
    ref_chain = f"[0:v]{pre},{final}[ref]"
    dis_chain = f"[1:v]{pre},{final}[dis]"

    if metric is QualityMetric.SSIM:
        return f"{ref_chain};{dis_chain};[dis][ref]ssim"

    vmaf_opts = f"libvmaf=shortest=true:ts_sync_mode=nearest:n_threads={n_threads}"
    if log_path is not None:
        vmaf_opts += f":log_fmt=json:log_path={escape_filter_path(log_path)}"
    return f"{ref_chain};{dis_chain};[dis][ref]{vmaf_opts}"


def build_extract_command(
    ffmpeg: str, source: Path, position: SamplePosition, pix_fmt: str, output: Path
) -> list[str]:
    """Lossless FFV1 reference clip of one sample position."""
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-ss",
        str(position.seek_seconds),
        "-i",
        str(source),
        "-t",
        f"{position.duration:g}",
        "-c:v",
        "ffv1",
        "-level",
        "3",
        "-pix_fmt",
        pix_fmt,
        "-an",
        "-sn",
        str(output),
    ]


def encoder_preset(encoder: str, preset: str) -> str:
    """Preset value in the form the encoder accepts.

    libsvtav1 takes a number, so named presets are mapped onto its scale.
    """
    if encoder == "libsvtav1":
        return str(SVT_AV1_PRESETS.get(preset, SVT_AV1_PRESETS[DEFAULT_TEST_PRESET]))
    return preset


def build_encode_command(
    ffmpeg: str,
    reference: Path,
    encoder: str,
    level: int,
    preset: str,
    pix_fmt: str,
    output: Path,
) -> list[str]:
    """Test encode of a reference clip at a candidate level."""
    cmd = [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(reference),
        "-c:v",
        encoder,
        "-crf",
        str(level),
        "-preset",
        encoder_preset(encoder, preset),
        "-pix_fmt",
        pix_fmt,
    ]
    is_10bit = pix_fmt.endswith("10le")
    if encoder == "libx265":
        cmd += ["-tag:v", "hvc1"]
        if is_10bit:
            cmd += ["-profile:v", "main10"]
    elif encoder == "libx264" and is_10bit:
        cmd += ["-profile:v", "high10"]
    cmd += ["-an", str(output)]
    return cmd


def build_score_command(ffmpeg: str, reference: Path, encoded: Path, filter_graph: str) -> list[str]:
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "info",
        "-y",
        "-i",
        str(reference),
        "-i",
        str(encoded),
        "-filter_complex",
        filter_graph,
        "-f",
        "null",
        "-",
    ]


def analyze_luminance(
    ffmpeg: str,
    source: Path,
    positions: Sequence[SamplePosition],
    workspace: TempWorkspace,
    runner: ToolRunner = run_tool,
) -> float | None:
    """Average luma (0-255) over the first few sample positions.

    Each position is analysed for a couple of seconds with ``signalstats``;
    per-frame metadata goes to a temp file that is removed afterwards.

    Returns:
        Mean YAVG across analysed positions, or None if nothing could be read
    """
    averages: list[float] = []
    for i, position in enumerate(positions[:LUMINANCE_MAX_SAMPLES]):
        metadata_file = workspace.path_for(
            workspace.unique_stem("autoquality_signalstats"), ".txt"
        )
        try:
            result = runner(
                [
                    ffmpeg,
                    "-hide_banner",
                    "-loglevel",
                    "error",
                    "-ss",
                    str(position.seek_seconds),
                    "-i",
                    str(source),
                    "-t",
                    str(LUMINANCE_ANALYSIS_SECONDS),
                    "-vf",
                    f"signalstats,metadata=print:file={escape_filter_path(metadata_file)}",
                    "-f",
                    "null",
                    "-",
                ],
                TIMEOUT_LUMINANCE,
            )
            output = result.output
            if metadata_file.exists():
                output += "\n" + metadata_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Luminance analysis failed for sample %d: %s", i + 1, e)
            continue
        finally:
            cleanup_files([metadata_file])

        values = parse_yavg_values(output)
        if not values:
            logger.debug("Luminance sample %d: no YAVG values (exit=%d)", i + 1, result.exit_code)
            continue
        sample_avg = sum(values) / len(values)
        averages.append(sample_avg)
        logger.debug(
            "Luminance sample %d at %ds: avg Y = %.1f", i + 1, position.seek_seconds, sample_avg
        )

    if not averages:
        return None
    return sum(averages) / len(averages)


class SampleEvaluator:
    """Renders and scores the sample set at a given level.

    Samples are processed one at a time. For each one the evaluator extracts a
    lossless reference, encodes it with the software encoder of the target
    family and scores the encode against the reference. A failing step skips
    only that sample; every temp file of a sample is removed before moving on.
    """

    def __init__(
        self,
        ffmpeg: str,
        source: Path,
        asset: MediaAsset,
        encoder: EncoderTarget,
        metric: QualityMetric,
        workspace: TempWorkspace,
        runner: ToolRunner = run_tool,
        preset: str = DEFAULT_TEST_PRESET,
    ):
        self.ffmpeg: str = ffmpeg
        self.source: Path = source
        self.asset: MediaAsset = asset
        self.encoder: EncoderTarget = encoder
        self.metric: QualityMetric = metric
        self.workspace: TempWorkspace = workspace
        self.runner: ToolRunner = runner
        self.preset: str = preset

    def evaluate(self, level: int, positions: Sequence[SamplePosition]) -> EvaluationResult:
        scores: list[float] = []
        for i, position in enumerate(positions):
            score = self._evaluate_sample(level, i, position)
            if score is not None:
                scores.append(score)
                logger.debug("Sample %d: %s %s", i + 1, self.metric.value, self.metric.format(score))

        result = EvaluationResult.from_scores(scores)
        if not result.ok:
            logger.warning("No samples could be scored at CRF %d", level)
        return result

    def _evaluate_sample(self, level: int, index: int, position: SamplePosition) -> float | None:
        stem = self.workspace.unique_stem("autoquality")
        reference = self.workspace.path_for(f"{stem}_reference", ".mkv")
        encoded = self.workspace.path_for(f"{stem}_encoded", ".mkv")
        vmaf_log = self.workspace.path_for(f"{stem}_vmaf", ".json")
        pix_fmt = self.asset.pix_fmt

        try:
            extract = self.runner(
                build_extract_command(self.ffmpeg, self.source, position, pix_fmt, reference),
                TIMEOUT_EXTRACT,
            )
            if not extract.ok:
                logger.warning("Failed to extract reference sample at %ds", position.seek_seconds)
                return None

            encode = self.runner(
                build_encode_command(
                    self.ffmpeg,
                    reference,
                    self.encoder.test_encoder,
                    level,
                    self.preset,
                    pix_fmt,
                    encoded,
                ),
                TIMEOUT_ENCODE,
            )
            if not encode.ok:
                logger.warning(
                    "Failed to encode sample at CRF %d, pos %ds", level, position.seek_seconds
                )
                return None

            filter_graph = build_score_filter(
                self.metric,
                self.asset.width,
                self.asset.height,
                pix_fmt,
                log_path=vmaf_log if self.metric is QualityMetric.VMAF else None,
                n_threads=vmaf_thread_count(),
            )
            scored = self.runner(
                build_score_command(self.ffmpeg, reference, encoded, filter_graph),
                TIMEOUT_SCORE,
            )
            score = self._parse_score(scored.output, vmaf_log)
            if score is None:
                logger.warning(
                    "Could not parse %s score for sample %d", self.metric.value, index + 1
                )
                logger.debug("Output snippet: %s", scored.output[:500].replace("\n", " "))
            return score
        finally:
            cleanup_files([reference, encoded, vmaf_log])

    def _parse_score(self, output: str, vmaf_log: Path) -> float | None:
        if self.metric is QualityMetric.SSIM:
            return parse_ssim_output(output)

        if vmaf_log.exists():
            try:
                score = parse_vmaf_log(vmaf_log.read_text(encoding="utf-8"))
            except OSError as e:
                logger.debug("Could not read VMAF log %s: %s", vmaf_log, e)
                score = None
            if score is not None:
                return score
        return parse_vmaf_output(output)
