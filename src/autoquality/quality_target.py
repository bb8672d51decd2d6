"""Content-aware quality targets.

Older and animated content tolerates lower scores without visible loss;
documentaries, HDR and UHD sources are held to a stricter bar. Dark content
gets an additional boost since banding in shadows is easy to spot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .constants import (
    BASE_TARGET,
    LUMINANCE_THRESHOLDS,
    MAX_AUTO_TARGET,
    MAX_BOOSTED_VMAF,
    SSIM_BASE,
    SSIM_BOOST_PER_STEP,
    SSIM_MAX_TARGET,
    SSIM_MIN_TARGET,
    SSIM_PER_VMAF_POINT,
    UHD_WIDTH_THRESHOLD,
)
from .media import ContentMetadata, MediaAsset

logger = logging.getLogger(__name__)


def _animation_target(year: int) -> float:
    if year <= 1995:
        return 93.0
    if year <= 2010:
        return 94.0
    return float(BASE_TARGET)


def _live_action_target(year: int) -> float:
    if year <= 1990:
        return 93.0
    if year <= 2005:
        return 94.0
    if year <= 2015:
        return float(BASE_TARGET)
    return float(BASE_TARGET + 1)


def resolve_target(
    explicit_target: float | str | None,
    metadata: ContentMetadata,
    asset: MediaAsset,
) -> float:
    """Pick the VMAF target for an asset.

    Args:
        explicit_target: A number is returned unchanged; ``None``, ``0`` or
            ``"auto"`` select the content-aware table
        metadata: Release year and genres (year defaults to 2015)
        asset: Source properties (HDR / Dolby Vision / width)

    Returns:
        Target VMAF score
    """
    if isinstance(explicit_target, (int, float)) and explicit_target > 0:
        return float(explicit_target)

    year = metadata.effective_year
    if metadata.is_animation:
        target = _animation_target(year)
        logger.info("Content type: Animation (%d) -> target VMAF %s", year, target)
    elif metadata.is_documentary:
        target = float(BASE_TARGET + 1)
        logger.info("Content type: Documentary -> target VMAF %s", target)
    else:
        target = _live_action_target(year)
        logger.info("Content type: Live action (%d) -> target VMAF %s", year, target)

    if asset.is_hdr or asset.is_dolby_vision:
        target = min(target + 1, MAX_AUTO_TARGET)
        logger.info("HDR content detected -> target VMAF %s", target)

    if asset.width >= UHD_WIDTH_THRESHOLD:
        target = min(target + 1, MAX_AUTO_TARGET)
        logger.info("4K content detected -> target VMAF %s", target)

    return target


def to_ssim_target(vmaf_target: float) -> float:
    """Approximate SSIM equivalent of a VMAF target (93 -> 0.972, 97 -> 0.988)."""
    ssim = SSIM_BASE + (vmaf_target - 90) * SSIM_PER_VMAF_POINT
    return max(SSIM_MIN_TARGET, min(SSIM_MAX_TARGET, ssim))


def luminance_boost(avg_luminance: float | None) -> int:
    """Target boost steps for dark content (0 when unknown or bright)."""
    if avg_luminance is None:
        return 0
    for threshold, boost in LUMINANCE_THRESHOLDS:
        if avg_luminance < threshold:
            return boost
    return 0


@dataclass(frozen=True)
class EffectiveTarget:
    """Target in the active metric's scale, with its VMAF-scale counterpart."""

    score: float
    vmaf: float
    boost: int = 0


def apply_luminance_boost(target: EffectiveTarget, boost: int, is_ssim: bool) -> EffectiveTarget:
    """Raise a target by ``boost`` steps.

    VMAF targets gain one point per step (capped at 99); SSIM targets gain
    0.005 per step (capped at 0.999). The VMAF-scale value is always raised
    by whole points so it stays comparable across metrics.
    """
    if boost <= 0:
        return target
    vmaf = min(target.vmaf + boost, MAX_BOOSTED_VMAF)
    if is_ssim:
        score = min(target.score + boost * SSIM_BOOST_PER_STEP, SSIM_MAX_TARGET)
    else:
        score = min(target.score + boost, MAX_BOOSTED_VMAF)
    return EffectiveTarget(score=score, vmaf=vmaf, boost=boost)
