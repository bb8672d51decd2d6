"""Constants used throughout autoquality."""

from __future__ import annotations

# =============================================================================
# Search Range Constants
# =============================================================================

# Default quality level bracket (CRF-style: lower = better quality, larger file)
DEFAULT_MIN_LEVEL: int = 18
DEFAULT_MAX_LEVEL: int = 28

# Default iteration budget for the binary search
DEFAULT_MAX_ITERATIONS: int = 6

# Sentinel accepted for "derive the target from content attributes"
AUTO_TARGET: str = "auto"

# =============================================================================
# Sampling Constants
# =============================================================================

DEFAULT_SAMPLE_COUNT: int = 3
DEFAULT_SAMPLE_DURATION: float = 8.0

# Assets shorter than this are not sampled at all
MIN_SAMPLING_DURATION: float = 30.0

# Intro/outro exclusion: max(seconds, fraction of duration) at each end
EXCLUSION_MIN_SECONDS: float = 30.0
EXCLUSION_FRACTION: float = 0.1

# Lower clamp for the single midpoint sample
MIDPOINT_MIN_OFFSET: float = 10.0

# =============================================================================
# Quality Target Constants
# =============================================================================

BASE_TARGET: int = 95
MAX_AUTO_TARGET: int = 97
DEFAULT_CONTENT_YEAR: int = 2015

# Width at or above which the asset counts as 4K
UHD_WIDTH_THRESHOLD: int = 3800

# Upper bound after the dark-scene boost
MAX_BOOSTED_VMAF: float = 99.0

# SSIM fallback mapping: VMAF 90-100 -> SSIM 0.96-1.0
SSIM_BASE: float = 0.96
SSIM_PER_VMAF_POINT: float = 0.004
SSIM_MIN_TARGET: float = 0.95
SSIM_MAX_TARGET: float = 0.999
SSIM_BOOST_PER_STEP: float = 0.005

# =============================================================================
# Luminance Constants
# =============================================================================

# Average luma (0-255) thresholds and the boost applied below each one
LUMINANCE_THRESHOLDS: tuple[tuple[float, int], ...] = ((40.0, 3), (60.0, 2), (80.0, 1))
LUMINANCE_MAX_SAMPLES: int = 3
LUMINANCE_ANALYSIS_SECONDS: int = 2

# =============================================================================
# Tool Timeouts (seconds)
# =============================================================================

TIMEOUT_FILTER_CHECK: int = 30
TIMEOUT_LUMINANCE: int = 60
TIMEOUT_EXTRACT: int = 180
TIMEOUT_ENCODE: int = 300
TIMEOUT_SCORE: int = 300
TIMEOUT_PROBE: int = 60

# =============================================================================
# Encoding Constants
# =============================================================================

# Preset used for test encodes
DEFAULT_TEST_PRESET: str = "fast"

# libsvtav1 only takes numeric presets (higher = faster)
SVT_AV1_PRESETS: dict[str, int] = {
    "ultrafast": 12,
    "superfast": 11,
    "veryfast": 10,
    "faster": 9,
    "fast": 8,
    "medium": 6,
    "slow": 4,
    "slower": 3,
    "veryslow": 2,
}

# Thread calculation for libvmaf: use this fraction of CPU cores
VMAF_THREAD_CPU_FRACTION: float = 0.5
VMAF_MAX_THREADS: int = 16

# Max acceptable source bitrate (bps) before a same-codec source is re-encoded
MAX_BITRATE_4K: int = 25_000_000
MAX_BITRATE_1080P: int = 12_000_000
MAX_BITRATE_720P: int = 6_000_000
MAX_BITRATE_SD: int = 3_000_000

# Share of overall bitrate assumed per audio stream without a known bitrate
AUDIO_BITRATE_FALLBACK_FRACTION: float = 0.05

# =============================================================================
# Display Constants
# =============================================================================

# Decimal places for VMAF / SSIM scores
VMAF_DECIMALS: int = 2
SSIM_DECIMALS: int = 4

# Progress bar width in characters
PROGRESS_BAR_WIDTH: int = 40

# Log section separator
LOG_SEPARATOR_WIDTH: int = 60
LOG_SEPARATOR_CHAR: str = "="
