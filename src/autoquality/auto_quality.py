"""Auto quality: pick the cheapest CRF that still meets a quality target.

Runs between the encoder builder's start and executor stages. Short samples
of the source are encoded at candidate levels and scored against a lossless
reference; the winning level is appended to the builder's video parameters.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import SearchConfig
from .constants import MIN_SAMPLING_DURATION
from .crf_search import CandidateResult, SearchOutcome, run_search
from .display import log_results_table
from .encoder_config import EncoderModel, apply_quality
from .encoder_type import EncoderTarget
from .media import ContentMetadata, HostRecord, MediaAsset, max_acceptable_bitrate
from .progress import NullReporter, ProgressReporter, SafeReporter
from .quality_target import (
    EffectiveTarget,
    apply_luminance_boost,
    luminance_boost,
    resolve_target,
    to_ssim_target,
)
from .sample_evaluator import (
    QualityMetric,
    SampleEvaluator,
    analyze_luminance,
    detect_quality_metric,
)
from .sampling import plan_samples
from .utils import TempWorkspace, ToolRunner, log_section, run_tool

logger = logging.getLogger(__name__)

ToolLocator = Callable[[str], str | None]


class Outcome(str, Enum):
    """How the run ended, with the number reported to the host."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    COPY = "copy"
    ERROR = "error"

    @property
    def host_code(self) -> int:
        return {"applied": 1, "unchanged": 1, "copy": 2, "error": -1}[self.value]


class AutoQualityError(Exception):
    """Base class for auto quality failures."""

    pass


class PreconditionError(AutoQualityError):
    """Raised when the run cannot proceed; carries the reported outcome and reason."""

    outcome: Outcome
    reason: str

    def __init__(self, outcome: Outcome, reason: str, message: str):
        self.outcome = outcome
        self.reason = reason
        super().__init__(message)


@dataclass(frozen=True)
class AutoQualityResult:
    outcome: Outcome
    reason: str | None = None
    level: int | None = None
    score: float | None = None
    target: float | None = None
    target_vmaf: float | None = None
    metric: QualityMetric | None = None
    iterations: int = 0
    degraded: bool = False
    results: tuple[CandidateResult, ...] = field(default_factory=tuple)
    avg_luminance: float | None = None
    luminance_boost: int = 0
    applied_tokens: tuple[str, ...] = field(default_factory=tuple)

    @property
    def exit_code(self) -> int:
        return self.outcome.host_code

    @property
    def crf_value(self) -> int | str | None:
        """The applied level, or the ``unchanged`` / ``copy`` sentinel."""
        if self.level is not None:
            return self.level
        if self.outcome is Outcome.UNCHANGED:
            return "unchanged"
        if self.outcome is Outcome.COPY:
            return "copy"
        return None

    def to_variables(self) -> dict[str, object]:
        """Render the ``AutoQuality_*`` variables stored by the host."""
        variables: dict[str, object] = {}
        crf = self.crf_value
        if crf is not None:
            variables["AutoQuality_CRF"] = crf
        if self.reason is not None:
            variables["AutoQuality_Reason"] = self.reason
        if self.metric is not None:
            variables["AutoQuality_Metric"] = self.metric.value
        if self.target is not None:
            variables["AutoQuality_AvgLuminance"] = (
                self.avg_luminance if self.avg_luminance is not None else -1
            )
            variables["AutoQuality_LuminanceBoost"] = self.luminance_boost
        if self.level is not None:
            variables["AutoQuality_Score"] = self.score
            variables["AutoQuality_Target"] = self.target
            variables["AutoQuality_TargetVMAF"] = self.target_vmaf
            variables["AutoQuality_Iterations"] = self.iterations
            variables["AutoQuality_Results"] = json.dumps([r.to_dict() for r in self.results])
            variables["AutoQuality_Degraded"] = self.degraded
        return variables


def default_workspace() -> TempWorkspace:
    return TempWorkspace(Path(tempfile.gettempdir()) / "autoquality")


def _require_context(
    encoder_model: EncoderModel | None, video_info: HostRecord | None
) -> EncoderModel:
    if encoder_model is None:
        raise PreconditionError(
            Outcome.ERROR,
            "no_encoder_model",
            "Encoder model not found. Ensure the encoder builder start stage ran first.",
        )
    if encoder_model.first_video_stream is None:
        raise PreconditionError(Outcome.ERROR, "no_video_stream", "No video stream found")
    if video_info is None:
        raise PreconditionError(
            Outcome.ERROR,
            "no_video_info",
            "VideoInfo not available. Ensure the video file stage ran first.",
        )
    return encoder_model


def _check_duration(asset: MediaAsset) -> None:
    if asset.duration <= 0:
        raise PreconditionError(
            Outcome.UNCHANGED,
            "unknown_duration",
            "Could not determine video duration. Leaving quality settings unchanged.",
        )
    if asset.duration < MIN_SAMPLING_DURATION:
        raise PreconditionError(
            Outcome.UNCHANGED,
            "short_video",
            "Video too short for reliable sampling. Leaving quality settings unchanged.",
        )


def is_already_optimal(asset: MediaAsset, target: EncoderTarget, force_encode: bool) -> bool:
    """True when the source already uses the target codec at a sane bitrate."""
    if force_encode or not asset.codec:
        return False
    source_codec = asset.codec.replace("h.264", "h264")
    target_base = target.base_codec
    if not target_base or (source_codec != target_base and target_base not in source_codec):
        return False
    return asset.bitrate <= max_acceptable_bitrate(asset.width, asset.height)


def _effective_target(
    config: SearchConfig,
    metadata: ContentMetadata,
    asset: MediaAsset,
    metric: QualityMetric,
) -> EffectiveTarget:
    explicit = None if config.is_auto_target else config.target_score
    vmaf = resolve_target(explicit, metadata, asset)
    if metric is QualityMetric.SSIM:
        ssim = to_ssim_target(vmaf)
        logger.info("Target: VMAF %s -> SSIM %.3f", vmaf, ssim)
        return EffectiveTarget(score=ssim, vmaf=vmaf)
    logger.info("Target VMAF: %s", vmaf)
    return EffectiveTarget(score=vmaf, vmaf=vmaf)


def run_auto_quality(
    encoder_model: EncoderModel | None,
    video_info: HostRecord | None,
    source: Path | str,
    *,
    config: SearchConfig | None = None,
    metadata: ContentMetadata | None = None,
    video_vars: HostRecord | None = None,
    file_size: int | None = None,
    ffmpeg: str = "ffmpeg",
    runner: ToolRunner = run_tool,
    workspace: TempWorkspace | None = None,
    reporter: ProgressReporter | None = None,
    locate_tool: ToolLocator = shutil.which,
) -> AutoQualityResult:
    """Search for the best quality level and apply it to the encoder model.

    Args:
        encoder_model: Encoder builder state; its first video stream is mutated
        video_info: Host VideoInfo record of the source
        source: Original (untouched) source file to sample from
        config: Search configuration (defaults when None)
        metadata: Content metadata for the automatic target
        video_vars: Host per-file video variables (duration / size fallbacks)
        file_size: Source size in bytes (duration fallback)
        ffmpeg: ffmpeg executable; ``config.ffmpeg_path`` takes precedence
        runner: Tool invocation facility
        workspace: Temp directory and unique-name provider
        reporter: Host progress and telemetry sink
        locate_tool: Resolves the ffmpeg executable, None when missing

    Returns:
        AutoQualityResult. Failures are reported through its outcome, never raised.
    """
    config = config or SearchConfig()
    metadata = metadata or ContentMetadata()
    workspace = workspace or default_workspace()
    telemetry = SafeReporter(reporter or NullReporter())

    log_section(logger, "Auto Quality")
    try:
        return _run(
            _require_context(encoder_model, video_info),
            video_info or {},
            Path(source),
            config,
            metadata,
            video_vars,
            file_size,
            config.ffmpeg_path or ffmpeg,
            runner,
            workspace,
            telemetry,
            locate_tool,
        )
    except PreconditionError as e:
        if e.outcome is Outcome.ERROR:
            logger.error("Auto quality: %s", e)
        else:
            logger.warning("Auto quality: %s", e)
        return AutoQualityResult(outcome=e.outcome, reason=e.reason)


def _run(
    encoder_model: EncoderModel,
    video_info: HostRecord,
    source: Path,
    config: SearchConfig,
    metadata: ContentMetadata,
    video_vars: HostRecord | None,
    file_size: int | None,
    ffmpeg: str,
    runner: ToolRunner,
    workspace: TempWorkspace,
    telemetry: ProgressReporter,
    locate_tool: ToolLocator,
) -> AutoQualityResult:
    stream = encoder_model.first_video_stream
    assert stream is not None

    ffmpeg_path = locate_tool(ffmpeg)
    if ffmpeg_path is None:
        raise PreconditionError(
            Outcome.ERROR, "ffmpeg_not_found", f"FFmpeg executable not found: {ffmpeg}"
        )
    logger.info("Using FFmpeg: %s", ffmpeg_path)

    metric = detect_quality_metric(ffmpeg_path, runner)

    asset = MediaAsset.from_host(video_info, video_vars, file_size)
    logger.info(
        "Source: %s, %.3gfps, %dkbps, codec=%s, HDR=%s, 10bit=%s, duration=%ds",
        asset.resolution,
        asset.fps,
        round(asset.bitrate / 1000),
        asset.codec,
        asset.is_hdr,
        asset.is_10bit,
        round(asset.duration),
    )
    _check_duration(asset)

    target_encoder = stream.target
    family = target_encoder.family
    logger.info(
        "Target encoder: %s (%s), CRF argument: %s",
        target_encoder.codec,
        family.codec_name if family is not None else "unknown codec",
        target_encoder.quality_argument.value,
    )
    if target_encoder.is_hardware:
        logger.info(
            "Hardware target %s probed with %s", target_encoder.codec, target_encoder.test_encoder
        )

    target = _effective_target(config, metadata, asset, metric)

    if config.skip_if_optimal and is_already_optimal(
        asset, target_encoder, encoder_model.force_encode
    ):
        logger.info("Video already in %s at acceptable bitrate. Skipping encode.", asset.codec)
        if config.use_tags:
            telemetry.add_tags(["Copy"])
        return AutoQualityResult(
            outcome=Outcome.COPY, reason="already_optimal", metric=metric
        )

    positions = plan_samples(asset.duration, config.sample_count, config.sample_duration)
    logger.info(
        "Sample positions: %s", ", ".join(f"{round(p.start)}s" for p in positions)
    )

    avg_luminance: float | None = None
    if config.luminance_analysis:
        avg_luminance = analyze_luminance(ffmpeg_path, source, positions, workspace, runner)
        if avg_luminance is None:
            logger.warning("Dark scene detection: could not analyze luminance, skipping adjustment")
        else:
            boost = luminance_boost(avg_luminance)
            logger.info(
                "Dark scene detection: avg luma %.1f -> boosting quality by %d",
                avg_luminance,
                boost,
            )
            target = apply_luminance_boost(target, boost, metric is QualityMetric.SSIM)

    evaluator = SampleEvaluator(
        ffmpeg_path,
        source,
        asset,
        target_encoder,
        metric,
        workspace,
        runner=runner,
        preset=config.preset,
    )

    def on_iteration(iteration: int, max_iterations: int, level: int) -> None:
        telemetry.record_info("Auto Quality", f"CRF {level}")
        telemetry.update_percent(round(iteration / max_iterations * 100))

    logger.info(
        "Starting %s-based CRF search: CRF %d-%d, target %s %s",
        metric.value,
        config.min_level,
        config.max_level,
        metric.value,
        metric.format(target.score),
    )
    outcome: SearchOutcome = run_search(
        config,
        target.score,
        lambda level: evaluator.evaluate(level, positions).score,
        on_iteration=on_iteration,
        format_score=lambda s: f"{metric.value} {metric.format(s)}",
    )

    winner = outcome.winner
    log_results_table(
        logger,
        outcome.results,
        target.score,
        winner.level if winner is not None else None,
        metric,
    )

    if winner is None:
        logger.error(
            "%s search failed completely. Leaving quality settings unchanged.", metric.value
        )
        return AutoQualityResult(
            outcome=Outcome.UNCHANGED,
            reason="quality_search_failed",
            metric=metric,
            target=target.score,
            target_vmaf=target.vmaf,
            iterations=outcome.iterations,
            avg_luminance=avg_luminance,
            luminance_boost=target.boost,
        )

    tokens = apply_quality(stream, target_encoder, winner.level)

    telemetry.record_info("CRF", winner.level)
    telemetry.record_info(metric.value, metric.format(winner.score))
    if config.use_tags:
        tag_score = (
            f"{winner.score:.3f}" if metric is QualityMetric.SSIM else str(round(winner.score))
        )
        telemetry.add_tags([f"CRF {winner.level}", f"{metric.value} {tag_score}"])

    logger.info(
        "Auto quality complete: CRF %d (%s %s, target was %s)",
        winner.level,
        metric.value,
        metric.format(winner.score),
        metric.format(target.score),
    )
    return AutoQualityResult(
        outcome=Outcome.APPLIED,
        level=winner.level,
        score=winner.score,
        target=target.score,
        target_vmaf=target.vmaf,
        metric=metric,
        iterations=outcome.iterations,
        degraded=outcome.degraded,
        results=outcome.results,
        avg_luminance=avg_luminance,
        luminance_boost=target.boost,
        applied_tokens=tuple(tokens),
    )
