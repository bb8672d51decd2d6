"""Shared fakes for tests that drive ffmpeg through a ToolRunner."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from pathlib import Path

import pytest

from autoquality.utils import ToolResult

LOG_PATH_RE = re.compile(r"log_path=([^:]+)")
METADATA_FILE_RE = re.compile(r"metadata=print:file=(.+)$")


class FakeFFmpeg:
    """Scripted stand-in for ffmpeg.

    Creates the files ffmpeg would create so cleanup can be checked, and
    answers scoring calls from a level -> score table.
    """

    def __init__(
        self,
        scores: dict[int, float] | None = None,
        vmaf_available: bool = True,
        fail: Callable[[str, list[str]], bool] | None = None,
        luma: float | None = None,
        write_vmaf_log: bool = True,
    ):
        self.scores: dict[int, float] = scores or {}
        self.vmaf_available: bool = vmaf_available
        self.fail: Callable[[str, list[str]], bool] = fail or (lambda step, cmd: False)
        self.luma: float | None = luma
        self.write_vmaf_log: bool = write_vmaf_log
        self.calls: list[tuple[str, list[str], int]] = []
        self.encoded_levels: dict[str, int] = {}

    def encode_count(self, level: int) -> int:
        return sum(
            1
            for step, cmd, _ in self.calls
            if step == "encode" and cmd[cmd.index("-crf") + 1] == str(level)
        )

    def steps(self, name: str) -> list[list[str]]:
        return [cmd for step, cmd, _ in self.calls if step == name]

    def __call__(self, cmd: list[str], timeout: int) -> ToolResult:
        step = self._classify(cmd)
        self.calls.append((step, cmd, timeout))
        handler = getattr(self, f"_{step}")
        return handler(cmd)

    @staticmethod
    def _classify(cmd: list[str]) -> str:
        if "-h" in cmd:
            return "probe_filter"
        if any(arg.startswith("signalstats") for arg in cmd):
            return "luminance"
        if "ffv1" in cmd:
            return "extract"
        if "-crf" in cmd:
            return "encode"
        if "-filter_complex" in cmd:
            return "score"
        raise AssertionError(f"Unexpected command: {cmd}")

    def _probe_filter(self, cmd: list[str]) -> ToolResult:
        if self.vmaf_available:
            return ToolResult(0, stdout="Filter libvmaf\n  Calculate the VMAF between two video streams.\n")
        return ToolResult(0, stderr="Unknown filter 'libvmaf'.\n")

    def _luminance(self, cmd: list[str]) -> ToolResult:
        vf = cmd[cmd.index("-vf") + 1]
        match = METADATA_FILE_RE.search(vf)
        if match and self.luma is not None:
            Path(match.group(1)).write_text(
                f"frame:0 pts:0\nlavfi.signalstats.YAVG={self.luma}\n"
                + f"frame:1 pts:1\nlavfi.signalstats.YAVG={self.luma}\n",
                encoding="utf-8",
            )
        if self.fail("luminance", cmd):
            return ToolResult(1, stderr="analysis failed")
        return ToolResult(0)

    def _extract(self, cmd: list[str]) -> ToolResult:
        if self.fail("extract", cmd):
            return ToolResult(1, stderr="extract failed")
        Path(cmd[-1]).write_bytes(b"ffv1")
        return ToolResult(0)

    def _encode(self, cmd: list[str]) -> ToolResult:
        output = cmd[-1]
        Path(output).write_bytes(b"encoded")
        self.encoded_levels[output] = int(cmd[cmd.index("-crf") + 1])
        if self.fail("encode", cmd):
            return ToolResult(1, stderr="encode failed")
        return ToolResult(0)

    def _score(self, cmd: list[str]) -> ToolResult:
        if self.fail("score", cmd):
            return ToolResult(1, stderr="score failed")
        inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
        level = self.encoded_levels[inputs[1]]
        score = self.scores[level]
        graph = cmd[cmd.index("-filter_complex") + 1]

        if "libvmaf" in graph:
            match = LOG_PATH_RE.search(graph)
            if match and self.write_vmaf_log:
                Path(match.group(1)).write_text(
                    json.dumps({"pooled_metrics": {"vmaf": {"mean": score}}}), encoding="utf-8"
                )
                return ToolResult(0)
            return ToolResult(0, stderr=f"[libvmaf @ 0x1] VMAF score: {score}\n")
        return ToolResult(
            0, stderr=f"[Parsed_ssim_4 @ 0x1] SSIM Y:{score} (20.0) U:{score} V:{score} All:{score} (20.0)\n"
        )


@pytest.fixture
def fake_ffmpeg() -> type[FakeFFmpeg]:
    """The FakeFFmpeg class, for tests to instantiate with their own script."""
    return FakeFFmpeg
