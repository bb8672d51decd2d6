"""Search configuration and override resolution.

Values come from three places. Precedence, highest first:

1. explicit arguments passed by the caller (``None`` means "not given")
2. override keys (host variables or a YAML overrides file)
3. a named preset (``AutoQualityPreset``: quality / balanced / compression)

and finally the built-in defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import cast

import yaml

from .constants import (
    AUTO_TARGET,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_LEVEL,
    DEFAULT_MIN_LEVEL,
    DEFAULT_SAMPLE_COUNT,
    DEFAULT_SAMPLE_DURATION,
    DEFAULT_TEST_PRESET,
)

logger = logging.getLogger(__name__)

TargetScore = float | str

VALID_PRESETS: tuple[str, ...] = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)

# Named bundles selected by the AutoQualityPreset override key
QUALITY_PRESETS: dict[str, dict[str, object]] = {
    "quality": {"target_score": 97.0, "min_level": 16, "max_level": 24},
    "balanced": {"target_score": 95.0, "min_level": 18, "max_level": 26},
    "compression": {"target_score": 93.0, "min_level": 20, "max_level": 30},
}

PRESET_KEY = "AutoQualityPreset"

# Host variable names accepted as aliases for config fields. The host's own
# "Preset" variable is the final-encode preset and is not read here.
OVERRIDE_KEYS: dict[str, str] = {
    "TargetVMAF": "target_score",
    "MinCRF": "min_level",
    "MaxCRF": "max_level",
    "AutoQuality_TestPreset": "preset",
    "ffmpeg_vmaf": "ffmpeg_path",
}


class ConfigError(Exception):
    """Raised for invalid search configuration values."""

    pass


@dataclass(frozen=True)
class SearchConfig:
    """Parameters of one quality search run."""

    min_level: int = DEFAULT_MIN_LEVEL
    max_level: int = DEFAULT_MAX_LEVEL
    target_score: TargetScore = AUTO_TARGET
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    prefer_smaller_file: bool = True
    sample_count: int = DEFAULT_SAMPLE_COUNT
    sample_duration: float = DEFAULT_SAMPLE_DURATION
    preset: str = DEFAULT_TEST_PRESET
    ffmpeg_path: str | None = None
    luminance_analysis: bool = True
    skip_if_optimal: bool = True
    use_tags: bool = False

    def __post_init__(self) -> None:
        self._validate()

    @property
    def is_auto_target(self) -> bool:
        return self.target_score == AUTO_TARGET

    def _validate(self) -> None:
        if self.min_level > self.max_level:
            raise ConfigError(
                f"min_level ({self.min_level}) must not exceed max_level ({self.max_level})"
            )
        if self.min_level < 0:
            raise ConfigError(f"min_level must be >= 0, got {self.min_level}")
        if not self.is_auto_target:
            if isinstance(self.target_score, str):
                raise ConfigError(
                    f"target_score must be a number or '{AUTO_TARGET}', got '{self.target_score}'"
                )
            if not 0.0 <= self.target_score <= 100.0:
                raise ConfigError(
                    f"target_score must be within [0, 100], got {self.target_score}"
                )
        if self.max_iterations < 1:
            raise ConfigError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.sample_count < 1:
            raise ConfigError(f"sample_count must be >= 1, got {self.sample_count}")
        if self.sample_duration <= 0:
            raise ConfigError(f"sample_duration must be positive, got {self.sample_duration}")
        if self.preset not in VALID_PRESETS:
            raise ConfigError(
                f"Invalid preset '{self.preset}'. Valid presets: {', '.join(VALID_PRESETS)}"
            )

    @classmethod
    def resolve(
        cls,
        explicit: Mapping[str, object] | None = None,
        overrides: Mapping[str, object] | None = None,
    ) -> SearchConfig:
        """Build a config from explicit arguments, overrides and defaults.

        Args:
            explicit: Field name -> value; ``None`` values are treated as absent
            overrides: Host variables or YAML keys. Accepts field names, the
                aliases in OVERRIDE_KEYS and ``AutoQualityPreset``

        Returns:
            Validated SearchConfig

        Raises:
            ConfigError: If a value cannot be converted or is out of range
        """
        values: dict[str, object] = {}

        preset_name = _preset_name(overrides)
        if preset_name is not None:
            bundle = QUALITY_PRESETS.get(preset_name)
            if bundle is None:
                logger.warning(
                    "Unknown %s '%s' ignored. Valid: %s",
                    PRESET_KEY,
                    preset_name,
                    ", ".join(QUALITY_PRESETS),
                )
            else:
                values.update(bundle)

        values.update(_normalize_overrides(overrides))
        values.update({k: v for k, v in (explicit or {}).items() if v is not None})

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        return cls(**_coerce_all(values))  # pyright: ignore[reportArgumentType]


def _preset_name(overrides: Mapping[str, object] | None) -> str | None:
    if not overrides:
        return None
    raw = overrides.get(PRESET_KEY)
    if raw is None or raw == "":
        return None
    return str(raw).strip().lower()


def _normalize_overrides(overrides: Mapping[str, object] | None) -> dict[str, object]:
    """Map host keys onto field names, dropping empty ("unset") values."""
    if not overrides:
        return {}
    known = {f.name for f in fields(SearchConfig)}
    result: dict[str, object] = {}
    for key, value in overrides.items():
        if key == PRESET_KEY or value is None or value == "":
            continue
        name = OVERRIDE_KEYS.get(key, key)
        if name in known:
            result[name] = value
        else:
            logger.debug("Ignoring unrelated override key '%s'", key)
    return result


def _coerce_all(values: dict[str, object]) -> dict[str, object]:
    coerced: dict[str, object] = {}
    for key, value in values.items():
        if key in ("min_level", "max_level", "max_iterations", "sample_count"):
            coerced[key] = _to_int(key, value)
        elif key == "sample_duration":
            coerced[key] = _to_float(key, value)
        elif key == "target_score":
            coerced[key] = parse_target(value)
        elif key in ("prefer_smaller_file", "luminance_analysis", "skip_if_optimal", "use_tags"):
            coerced[key] = _to_bool(value)
        elif key == "preset":
            coerced[key] = str(value).strip().lower()
        else:
            coerced[key] = str(value)
    return coerced


def parse_target(value: object) -> TargetScore:
    """Parse a target score; ``"auto"``, ``0`` and empty select content-aware targeting."""
    if value is None:
        return AUTO_TARGET
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("", AUTO_TARGET, "0"):
            return AUTO_TARGET
        return _to_float("target_score", text)
    number = _to_float("target_score", value)
    return AUTO_TARGET if number == 0 else number


def _to_int(key: str, value: object) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    try:
        return int(float(cast(str, value)))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be an integer, got {value!r}") from e


def _to_float(key: str, value: object) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    try:
        return float(cast(str, value))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from e


def _to_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_overrides(path: Path) -> dict[str, object]:
    """Load an overrides mapping from a YAML file.

    Args:
        path: YAML file with a top-level mapping of override keys

    Returns:
        The mapping (empty for an empty file)

    Raises:
        ConfigError: If the file is missing, unparsable or not a mapping
    """
    if not path.exists():
        raise ConfigError(f"Overrides file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = cast(object, yaml.safe_load(f))
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse overrides file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Overrides file {path} must contain a mapping")
    return {str(k): v for k, v in cast(dict[object, object], data).items()}
