"""Typed views of the host's media records.

The host hands over loosely typed records (nested mappings with optional,
sometimes missing, fields). They are read once here into frozen dataclasses;
nothing past this module touches the raw records.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import cast

from .constants import (
    AUDIO_BITRATE_FALLBACK_FRACTION,
    DEFAULT_CONTENT_YEAR,
    MAX_BITRATE_1080P,
    MAX_BITRATE_4K,
    MAX_BITRATE_720P,
    MAX_BITRATE_SD,
)
from .tool_parsers import get_float, get_int, get_str

logger = logging.getLogger(__name__)

HostRecord = Mapping[str, object]

ANIMATION_KEYWORDS: tuple[str, ...] = ("animation", "anime", "cartoon")
DOCUMENTARY_KEYWORDS: tuple[str, ...] = ("documentary",)


def _as_record(value: object) -> dict[str, object]:
    if isinstance(value, Mapping):
        return dict(cast(Mapping[str, object], value))
    return {}


def _first_record(value: object) -> dict[str, object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and value:
        return _as_record(cast(Sequence[object], value)[0])
    return {}


def _records(value: object) -> list[dict[str, object]]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_as_record(v) for v in cast(Sequence[object], value)]
    return []


def _positive(value: float | None) -> float | None:
    return value if value is not None and value > 0 else None


def _flag(d: dict[str, object], key: str) -> bool:
    val = d.get(key)
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes")
    return bool(val)


@dataclass(frozen=True)
class MediaAsset:
    """Source video properties the search needs."""

    duration: float  # seconds, 0 when unknown
    width: int = 1920
    height: int = 1080
    fps: float = 24.0
    codec: str = ""
    is_10bit: bool = False
    is_hdr: bool = False
    is_dolby_vision: bool = False
    bitrate: float = 0.0  # video bits per second, 0 when unknown

    @property
    def pix_fmt(self) -> str:
        return "yuv420p10le" if self.is_10bit else "yuv420p"

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def from_host(
        cls,
        video_info: HostRecord,
        video_vars: HostRecord | None = None,
        file_size: int | None = None,
    ) -> MediaAsset:
        """Build from the host's VideoInfo record.

        Args:
            video_info: Record with ``VideoStreams``, ``AudioStreams``,
                ``Duration`` and ``Bitrate``
            video_vars: Optional per-file video variables (``Duration``,
                ``Width``, ``Height``) set by an earlier stage
            file_size: Source size in bytes, used to estimate duration

        Returns:
            MediaAsset with defaults for every missing field
        """
        info = _as_record(video_info)
        stream = _first_record(info.get("VideoStreams"))
        extra = _as_record(video_vars)

        bitrate = estimate_video_bitrate(info)
        duration = (
            _positive(get_float(stream, "Duration"))
            or _positive(get_float(extra, "Duration"))
            or _positive(get_float(info, "Duration"))
        )
        if duration is None:
            overall = _positive(get_float(info, "Bitrate"))
            if overall is not None and file_size:
                duration = file_size * 8 / overall
                logger.warning("Estimated duration from filesize/bitrate: %.0fs", duration)

        return cls(
            duration=duration or 0.0,
            width=get_int(stream, "Width") or get_int(extra, "Width") or 1920,
            height=get_int(stream, "Height") or get_int(extra, "Height") or 1080,
            fps=_positive(get_float(stream, "FramesPerSecond")) or 24.0,
            codec=(get_str(stream, "Codec") or "").lower(),
            is_10bit=_flag(stream, "Is10Bit") or get_int(stream, "Bits") == 10,
            is_hdr=_flag(stream, "HDR"),
            is_dolby_vision=_flag(stream, "DolbyVision"),
            bitrate=bitrate,
        )


def estimate_video_bitrate(video_info: HostRecord) -> float:
    """Video stream bitrate in bps.

    Uses the stream bitrate when present, otherwise the overall bitrate minus
    each audio stream's bitrate (or 5% of overall per audio stream without one).
    """
    info = _as_record(video_info)
    stream_bitrate = _positive(get_float(_first_record(info.get("VideoStreams")), "Bitrate"))
    if stream_bitrate is not None:
        return stream_bitrate

    overall = _positive(get_float(info, "Bitrate"))
    if overall is None:
        return 0.0
    calculated = overall
    for audio in _records(info.get("AudioStreams")):
        audio_bitrate = _positive(get_float(audio, "Bitrate"))
        if audio_bitrate is None:
            audio_bitrate = overall * AUDIO_BITRATE_FALLBACK_FRACTION
        calculated -= audio_bitrate
    return max(calculated, 0.0)


def max_acceptable_bitrate(width: int, height: int) -> int:
    """Bitrate (bps) above which a same-codec source is still worth re-encoding."""
    pixels = width * height
    if pixels >= 3840 * 2160:
        return MAX_BITRATE_4K
    if pixels >= 1920 * 1080:
        return MAX_BITRATE_1080P
    if pixels >= 1280 * 720:
        return MAX_BITRATE_720P
    return MAX_BITRATE_SD


def parse_genres(raw: object) -> tuple[str, ...]:
    """Normalize genres given as a list or a comma/pipe-delimited string."""
    if isinstance(raw, str):
        parts = re.split(r"[,|]", raw)
    elif isinstance(raw, Sequence) and not isinstance(raw, bytes):
        parts = [str(g) for g in cast(Sequence[object], raw)]
    else:
        return ()
    return tuple(p.strip() for p in parts if p.strip())


@dataclass(frozen=True)
class ContentMetadata:
    """Release year and genres from an upstream lookup stage."""

    year: int | None = None
    genres: tuple[str, ...] = field(default_factory=tuple)

    @property
    def effective_year(self) -> int:
        return self.year if self.year is not None else DEFAULT_CONTENT_YEAR

    @property
    def is_animation(self) -> bool:
        return self._matches(ANIMATION_KEYWORDS)

    @property
    def is_documentary(self) -> bool:
        return self._matches(DOCUMENTARY_KEYWORDS)

    def _matches(self, keywords: tuple[str, ...]) -> bool:
        return any(k in g.lower() for g in self.genres for k in keywords)

    @classmethod
    def from_host(cls, record: HostRecord | None) -> ContentMetadata:
        data = _as_record(record)
        year = get_int(data, "Year") or get_int(data, "year")
        genres = data.get("Genres")
        if genres is None:
            genres = data.get("genres")
        return cls(year=year or None, genres=parse_genres(genres))


METADATA_VARIABLES: tuple[str, ...] = ("VideoMetadata", "MovieInfo", "TVShowInfo")


def metadata_from_variables(variables: HostRecord | None) -> ContentMetadata:
    """Content metadata from the first lookup record present in the variable bag."""
    data = _as_record(variables)
    for key in METADATA_VARIABLES:
        record = data.get(key)
        if isinstance(record, Mapping):
            return ContentMetadata.from_host(cast(HostRecord, record))
    return ContentMetadata()
