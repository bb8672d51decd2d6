"""Centralized parsing utilities for external tool output.

This module provides shared regex patterns and helper functions for parsing
output from ffmpeg's libvmaf, ssim and signalstats filters and from ffprobe.
"""

from __future__ import annotations

import json
import re
from typing import cast

# =============================================================================
# Score Patterns
# =============================================================================

# libvmaf summary: "VMAF score: 95.123" or "VMAF score = 95.123"
VMAF_SCORE_RE = re.compile(r"VMAF\s*score\s*[:=]\s*([\d.]+)", re.IGNORECASE)

# libvmaf JSON fragment printed to the log: '"vmaf": 95.123'
VMAF_JSON_RE = re.compile(r'"vmaf":\s*([\d.]+)', re.IGNORECASE)

# ssim summary: "SSIM Y:0.98 (19.1) U:0.99 V:0.99 All:0.989012 (19.5)"
SSIM_ALL_RE = re.compile(r"All:\s*([\d.]+)", re.IGNORECASE)

# signalstats metadata: "lavfi.signalstats.YAVG=123.456"
YAVG_RE = re.compile(r"YAVG[=:](\d+\.?\d*)", re.IGNORECASE)


# =============================================================================
# Dict Extraction Helpers - for parsing JSON output from tools
# =============================================================================


def get_str(d: dict[str, object], key: str) -> str | None:
    """Extract string value from dict, returning None if not a string.

    Args:
        d: Dictionary to extract from
        key: Key to look up

    Returns:
        String value or None if key doesn't exist or value isn't a string
    """
    val = d.get(key)
    return str(val) if isinstance(val, str) else None


def get_int(d: dict[str, object], key: str) -> int | None:
    """Extract int value from dict, handling int/float/str types.

    Args:
        d: Dictionary to extract from
        key: Key to look up

    Returns:
        Integer value or None if key doesn't exist or value can't be converted
    """
    val = d.get(key)
    if isinstance(val, bool):
        return None
    if isinstance(val, int):
        return val
    if isinstance(val, float):
        return int(val)
    if isinstance(val, str):
        try:
            return int(float(val))
        except ValueError:
            return None
    return None


def get_float(d: dict[str, object], key: str) -> float | None:
    """Extract float value from dict, handling int/float/str types.

    Args:
        d: Dictionary to extract from
        key: Key to look up

    Returns:
        Float value or None if key doesn't exist or value can't be converted
    """
    val = d.get(key)
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    if isinstance(val, str):
        try:
            return float(val)
        except ValueError:
            return None
    return None


def get_dict(d: dict[str, object], key: str) -> dict[str, object]:
    """Extract a nested dict, returning an empty dict when absent or mistyped."""
    val = d.get(key)
    if isinstance(val, dict):
        return cast(dict[str, object], val)
    return {}


# =============================================================================
# Specialized Parsers
# =============================================================================


def parse_fraction(rate: str) -> float:
    """Parse a fraction string like '30000/1001' into a float.

    Also handles plain numeric strings.

    Args:
        rate: String containing either a fraction (num/den) or plain number

    Returns:
        Parsed float value, or 0.0 if parsing fails
    """
    if "/" in rate:
        num, den = rate.split("/", 1)
        try:
            n = float(num)
            d = float(den)
            return 0.0 if d == 0 else n / d
        except ValueError:
            return 0.0
    try:
        return float(rate)
    except ValueError:
        return 0.0


def parse_vmaf_log(text: str) -> float | None:
    """Extract the pooled VMAF mean from a libvmaf JSON log.

    Falls back to averaging per-frame scores when the pooled block is absent.

    Args:
        text: Contents of the log written with ``log_fmt=json``

    Returns:
        Mean VMAF score, or None if the log has no usable score
    """
    try:
        raw = cast(object, json.loads(text))
    except ValueError:
        return None
    if not isinstance(raw, dict):
        return None
    data = cast(dict[str, object], raw)

    pooled = get_dict(get_dict(data, "pooled_metrics"), "vmaf")
    mean = get_float(pooled, "mean")
    if mean is not None:
        return mean

    aggregate = get_float(get_dict(data, "aggregate"), "vmaf")
    if aggregate is not None:
        return aggregate

    frames_raw = data.get("frames")
    if not isinstance(frames_raw, list):
        return None
    scores: list[float] = []
    for frame in cast(list[object], frames_raw):
        if not isinstance(frame, dict):
            continue
        score = get_float(get_dict(cast(dict[str, object], frame), "metrics"), "vmaf")
        if score is not None:
            scores.append(score)
    if not scores:
        return None
    return sum(scores) / len(scores)


def parse_vmaf_output(output: str) -> float | None:
    """Extract a VMAF score from ffmpeg's diagnostic output."""
    match = VMAF_SCORE_RE.search(output) or VMAF_JSON_RE.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_ssim_output(output: str) -> float | None:
    """Extract the combined ("All") SSIM score from ffmpeg's diagnostic output."""
    match = SSIM_ALL_RE.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_yavg_values(output: str) -> list[float]:
    """Collect valid (0-255) YAVG luminance values from signalstats output."""
    values: list[float] = []
    for match in YAVG_RE.finditer(output):
        try:
            val = float(match.group(1))
        except ValueError:
            continue
        if 0.0 <= val <= 255.0:
            values.append(val)
    return values

