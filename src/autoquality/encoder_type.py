"""Encoder families and quality-argument conventions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class EncoderFamily(str, Enum):
    """Codec families the search knows how to probe with a software encoder."""

    HEVC = "hevc"
    H264 = "h264"
    AV1 = "av1"

    @property
    def software_encoder(self) -> str:
        """ffmpeg software encoder used for test encodes of this family."""
        return {"hevc": "libx265", "h264": "libx264", "av1": "libsvtav1"}[self.value]

    @property
    def codec_name(self) -> str:
        """Human-readable codec name for display."""
        return {"hevc": "HEVC", "h264": "H.264", "av1": "AV1"}[self.value]


class QualityArgument(str, Enum):
    """ffmpeg option carrying the constant-quality value, by encoder backend."""

    CRF = "-crf"
    QP = "-qp"  # VAAPI
    CQ = "-cq"  # NVENC, needs "-rc vbr"
    GLOBAL_QUALITY = "-global_quality:v"  # QSV
    QP_I = "-qp_i"  # AMF


HARDWARE_SUFFIXES: tuple[str, ...] = ("_qsv", "_nvenc", "_vaapi", "_amf")

# Checked in order against the joined encoding parameters
_SIGNATURES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("hevc_qsv", "h265_qsv"), "hevc_qsv"),
    (("hevc_nvenc",), "hevc_nvenc"),
    (("hevc_vaapi",), "hevc_vaapi"),
    (("hevc_amf",), "hevc_amf"),
    (("libx265",), "libx265"),
    (("h264_qsv",), "h264_qsv"),
    (("h264_nvenc",), "h264_nvenc"),
    (("h264_vaapi",), "h264_vaapi"),
    (("libx264",), "libx264"),
    (("av1_qsv",), "av1_qsv"),
    (("av1_nvenc",), "av1_nvenc"),
    (("libsvtav1",), "libsvtav1"),
)

DEFAULT_ENCODER = "libx265"


def quality_argument_for(codec: str) -> QualityArgument:
    """Map an ffmpeg encoder name to its quality option."""
    codec = codec.lower()
    if "_vaapi" in codec:
        return QualityArgument.QP
    if "_nvenc" in codec:
        return QualityArgument.CQ
    if "_qsv" in codec:
        return QualityArgument.GLOBAL_QUALITY
    if "_amf" in codec:
        return QualityArgument.QP_I
    return QualityArgument.CRF


def family_for(codec: str) -> EncoderFamily | None:
    codec = codec.lower()
    if any(key in codec for key in ("hevc", "h265", "x265")):
        return EncoderFamily.HEVC
    if any(key in codec for key in ("h264", "x264", "avc")):
        return EncoderFamily.H264
    if "av1" in codec:
        return EncoderFamily.AV1
    return None


@dataclass(frozen=True)
class EncoderTarget:
    """The configured output encoder and the option that sets its quality."""

    codec: str
    quality_argument: QualityArgument

    @classmethod
    def for_codec(cls, codec: str) -> EncoderTarget:
        return cls(codec=codec, quality_argument=quality_argument_for(codec))

    @property
    def family(self) -> EncoderFamily | None:
        return family_for(self.codec)

    @property
    def is_hardware(self) -> bool:
        return any(suffix in self.codec for suffix in HARDWARE_SUFFIXES)

    @property
    def test_encoder(self) -> str:
        """Software encoder used for sample encodes.

        Hardware rate control is unreliable on short clips, so hardware
        targets are probed with the software encoder of the same family.
        """
        family = self.family
        return family.software_encoder if family is not None else self.codec

    @property
    def base_codec(self) -> str:
        """Bitstream codec name (``hevc``, ``h264``, ``av1``) for source comparison."""
        base = self.codec.lower()
        for token in (*HARDWARE_SUFFIXES, "lib"):
            base = base.replace(token, "")
        return base.replace("x264", "h264").replace("x265", "hevc").replace("svtav1", "av1")


def detect_encoder(encoding_parameters: Iterable[str], codec: str | None = None) -> EncoderTarget:
    """Resolve the target encoder from the builder's parameters.

    Looks for an encoder name in the parameter list first, then falls back to
    the stream codec, then to libx265.

    Args:
        encoding_parameters: Ordered ffmpeg arguments of the video stream
        codec: Codec identifier configured on the stream, if any

    Returns:
        EncoderTarget for the detected encoder
    """
    signature = " ".join(str(p) for p in encoding_parameters).lower()
    for needles, encoder in _SIGNATURES:
        if any(needle in signature for needle in needles):
            return EncoderTarget.for_codec(encoder)

    family = family_for(codec or "")
    if family is not None:
        return EncoderTarget.for_codec(family.software_encoder)
    return EncoderTarget.for_codec(DEFAULT_ENCODER)
