"""Host encoder-configuration model and quality parameter application."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import cast

from .encoder_type import EncoderTarget, QualityArgument, detect_encoder

logger = logging.getLogger(__name__)


@dataclass
class VideoStreamConfig:
    """A video stream of the encoder builder.

    ``encoding_parameters`` is the builder's own ordered argument list; it is
    mutated in place so the builder sees the change.
    """

    codec: str = ""
    encoding_parameters: list[str] = field(default_factory=list)

    @property
    def target(self) -> EncoderTarget:
        return detect_encoder(self.encoding_parameters, self.codec)

    @classmethod
    def from_host(cls, record: Mapping[str, object]) -> VideoStreamConfig:
        codec = record.get("Codec")
        params = record.get("EncodingParameters")
        if not isinstance(params, list):
            params = [] if params is None else [str(p) for p in cast(Sequence[object], params)]
        return cls(
            codec=codec if isinstance(codec, str) else "",
            encoding_parameters=cast(list[str], params),
        )


@dataclass
class EncoderModel:
    """The encoder builder's state: its video streams and force-encode flag."""

    video_streams: list[VideoStreamConfig] = field(default_factory=list)
    force_encode: bool = False

    @property
    def first_video_stream(self) -> VideoStreamConfig | None:
        return self.video_streams[0] if self.video_streams else None

    @classmethod
    def from_host(cls, record: Mapping[str, object]) -> EncoderModel:
        streams_raw = record.get("VideoStreams")
        streams: list[VideoStreamConfig] = []
        if isinstance(streams_raw, Sequence) and not isinstance(streams_raw, str):
            for item in cast(Sequence[object], streams_raw):
                if isinstance(item, Mapping):
                    streams.append(VideoStreamConfig.from_host(cast(Mapping[str, object], item)))
        return cls(video_streams=streams, force_encode=bool(record.get("ForceEncode")))


def quality_tokens(target: EncoderTarget, level: int, existing: Sequence[str] = ()) -> list[str]:
    """Arguments that set ``level`` on the target encoder.

    NVENC needs VBR rate control for ``-cq`` to take effect; ``-rc vbr`` is
    only added when the parameters don't already choose a rate-control mode.
    """
    tokens: list[str] = []
    if target.quality_argument is QualityArgument.CQ and "-rc" not in existing:
        tokens += ["-rc", "vbr"]
    tokens += [target.quality_argument.value, str(level)]
    return tokens


def apply_quality(stream: VideoStreamConfig, target: EncoderTarget, level: int) -> list[str]:
    """Append the quality setting to a stream's encoding parameters.

    Parameters already present are left alone; calling this twice appends
    the setting twice.

    Returns:
        The tokens that were appended
    """
    tokens = quality_tokens(target, level, stream.encoding_parameters)
    stream.encoding_parameters.extend(tokens)
    logger.info("Applied %s", " ".join(tokens))
    return tokens
