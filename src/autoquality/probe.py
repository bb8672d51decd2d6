"""Build the host's VideoInfo record for a file on disk.

Used by the command-line adapter; a media host supplies this record itself.
Stream and container properties come from ffprobe, Dolby Vision and the
video stream bitrate from MediaInfo.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import cast

from pymediainfo import MediaInfo

from .constants import TIMEOUT_PROBE
from .tool_parsers import get_float, get_int, get_str, parse_fraction
from .utils import ToolRunner, format_command_error, run_tool

logger = logging.getLogger(__name__)

HDR_TRANSFERS: tuple[str, ...] = ("smpte2084", "arib-std-b67")


class ProbeError(Exception):
    """Raised when ffprobe cannot read the input."""

    pass


def run_ffprobe_json(
    input_path: Path, ffprobe_bin: str = "ffprobe", runner: ToolRunner = run_tool
) -> dict[str, object]:
    """Run ffprobe and return its ``-show_streams -show_format`` JSON.

    Raises:
        ProbeError: If ffprobe fails or prints something other than a JSON object
    """
    cmd = [
        ffprobe_bin,
        "-v",
        "error",
        "-show_streams",
        "-show_format",
        "-of",
        "json",
        str(input_path),
    ]
    result = runner(cmd, TIMEOUT_PROBE)
    if not result.ok:
        raise ProbeError(format_command_error(result.exit_code, cmd, result.stderr))
    try:
        raw = cast(object, json.loads(result.stdout))
    except json.JSONDecodeError as e:
        raise ProbeError(f"Failed to parse ffprobe JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ProbeError("Unexpected ffprobe output")
    return cast(dict[str, object], raw)


def _streams(data: dict[str, object], codec_type: str) -> list[dict[str, object]]:
    raw = data.get("streams")
    if not isinstance(raw, list):
        return []
    streams: list[dict[str, object]] = []
    for item in cast(list[object], raw):
        if isinstance(item, dict):
            stream = cast(dict[str, object], item)
            if stream.get("codec_type") == codec_type:
                streams.append(stream)
    return streams


def _has_dovi_side_data(stream: dict[str, object]) -> bool:
    side_data = stream.get("side_data_list")
    if not isinstance(side_data, list):
        return False
    for item in cast(list[object], side_data):
        if isinstance(item, dict):
            kind = get_str(cast(dict[str, object], item), "side_data_type") or ""
            if "dovi" in kind.lower() or "dolby vision" in kind.lower():
                return True
    return False


def video_info_from_ffprobe(data: dict[str, object]) -> dict[str, object]:
    """Translate ffprobe JSON into a VideoInfo record."""
    fmt_raw = data.get("format")
    fmt = cast(dict[str, object], fmt_raw) if isinstance(fmt_raw, dict) else {}

    video_streams: list[dict[str, object]] = []
    for stream in _streams(data, "video")[:1]:
        pix_fmt = get_str(stream, "pix_fmt") or ""
        bits = get_int(stream, "bits_per_raw_sample")
        is_10bit = "10" in pix_fmt or bits == 10
        transfer = (get_str(stream, "color_transfer") or "").lower()
        fps = parse_fraction(get_str(stream, "avg_frame_rate") or "")
        if fps <= 0:
            fps = parse_fraction(get_str(stream, "r_frame_rate") or "")
        video_streams.append(
            {
                "Codec": get_str(stream, "codec_name") or "",
                "Width": get_int(stream, "width") or 0,
                "Height": get_int(stream, "height") or 0,
                "FramesPerSecond": fps,
                "Duration": get_float(stream, "duration") or 0.0,
                "Bitrate": get_float(stream, "bit_rate") or 0.0,
                "Is10Bit": is_10bit,
                "Bits": 10 if is_10bit else 8,
                "HDR": transfer in HDR_TRANSFERS,
                "DolbyVision": _has_dovi_side_data(stream),
            }
        )

    audio_streams = [
        {"Codec": get_str(a, "codec_name") or "", "Bitrate": get_float(a, "bit_rate") or 0.0}
        for a in _streams(data, "audio")
    ]

    return {
        "Duration": get_float(fmt, "duration") or 0.0,
        "Bitrate": get_float(fmt, "bit_rate") or 0.0,
        "VideoStreams": video_streams,
        "AudioStreams": audio_streams,
    }


def enrich_with_mediainfo(input_path: Path, video_info: dict[str, object]) -> None:
    """Fill Dolby Vision and a missing stream bitrate from MediaInfo (in place)."""
    streams = video_info.get("VideoStreams")
    if not isinstance(streams, list) or not streams:
        return
    stream = cast(dict[str, object], cast(list[object], streams)[0])

    try:
        media_info = MediaInfo.parse(str(input_path))
    except (OSError, RuntimeError) as e:
        logger.warning("MediaInfo could not read %s: %s", input_path.name, e)
        return
    if not media_info.video_tracks:
        return
    video_track = media_info.video_tracks[0]

    hdr_format = cast(str | None, getattr(video_track, "hdr_format", None)) or ""
    if "dolby vision" in hdr_format.lower():
        stream["DolbyVision"] = True
        stream["HDR"] = True
        logger.debug("MediaInfo HDR format: %s", hdr_format)

    if not stream.get("Bitrate"):
        raw_bitrate = cast(float | int | str | None, getattr(video_track, "bit_rate", None))
        if raw_bitrate is not None:
            try:
                stream["Bitrate"] = float(raw_bitrate)
                logger.debug("Video bitrate from MediaInfo: %.0f kbps", float(raw_bitrate) / 1000)
            except (ValueError, TypeError):
                logger.warning("Failed to parse video bitrate: %s", raw_bitrate)


def probe_video_info(
    input_path: Path,
    ffprobe_bin: str = "ffprobe",
    runner: ToolRunner = run_tool,
    use_mediainfo: bool = True,
) -> dict[str, object]:
    """Probe a file into a VideoInfo record.

    Raises:
        ProbeError: If ffprobe fails
    """
    video_info = video_info_from_ffprobe(run_ffprobe_json(input_path, ffprobe_bin, runner))
    if use_mediainfo:
        enrich_with_mediainfo(input_path, video_info)
    return video_info
