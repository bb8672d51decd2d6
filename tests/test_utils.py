"""Tests for utils module."""

from __future__ import annotations

from pathlib import Path

from autoquality.utils import (
    TempWorkspace,
    ToolResult,
    cleanup_files,
    escape_filter_path,
    format_command_error,
    round_half_up,
    run_tool,
)


class TestRoundHalfUp:
    """Tests for half-up rounding."""

    def test_half_rounds_up(self):
        """Test that .5 rounds up where round() would round to even."""
        assert round_half_up(20.5) == 21
        assert round_half_up(22.5) == 23

    def test_below_half_rounds_down(self):
        """Test ordinary rounding below .5."""
        assert round_half_up(20.49) == 20

    def test_whole_numbers(self):
        """Test that integers are unchanged."""
        assert round_half_up(18.0) == 18


class TestTempWorkspace:
    """Tests for temp file naming."""

    def test_unique_stems(self, tmp_path: Path):
        """Test that each stem gets a fresh id."""
        ids = iter(["a", "b"])
        workspace = TempWorkspace(tmp_path, new_id=lambda: next(ids))
        assert workspace.unique_stem("vmaf") == "vmaf_a"
        assert workspace.unique_stem("vmaf") == "vmaf_b"

    def test_path_for_creates_directory(self, tmp_path: Path):
        """Test that the workspace directory is created on demand."""
        workspace = TempWorkspace(tmp_path / "nested" / "work")
        path = workspace.path_for("stem", "_reference.mkv")

        assert path == tmp_path / "nested" / "work" / "stem_reference.mkv"
        assert path.parent.is_dir()

    def test_default_ids_differ(self, tmp_path: Path):
        """Test that default ids do not collide."""
        workspace = TempWorkspace(tmp_path)
        assert workspace.unique_stem("x") != workspace.unique_stem("x")


class TestCleanupFiles:
    """Tests for temp file removal."""

    def test_removes_existing_and_ignores_missing(self, tmp_path: Path):
        """Test that present files are deleted and missing ones are skipped."""
        present = tmp_path / "a.mkv"
        _ = present.write_bytes(b"x")
        cleanup_files([present, tmp_path / "missing.json"])
        assert not present.exists()


class TestEscapeFilterPath:
    """Tests for filter option escaping."""

    def test_windows_path(self):
        """Test drive letter colon escaping and slash conversion."""
        assert escape_filter_path("C:\\temp\\log.json") == "C\\:/temp/log.json"

    def test_posix_path(self):
        """Test that POSIX paths pass through."""
        assert escape_filter_path(Path("/tmp/log.json")) == "/tmp/log.json"


class TestRunTool:
    """Tests for subprocess execution."""

    def test_missing_command(self):
        """Test that a missing executable is reported, not raised."""
        result = run_tool(["definitely-not-a-real-tool-7f3a"], 5)
        assert result.exit_code == -1
        assert not result.ok
        assert "Command not found" in result.stderr

    def test_tool_result_output_combines_streams(self):
        """Test that output joins stdout and stderr."""
        result = ToolResult(0, stdout="out", stderr="err")
        assert "out" in result.output and "err" in result.output

    def test_timed_out_is_not_ok(self):
        """Test that a timeout is a failure even with exit code 0."""
        assert not ToolResult(0, timed_out=True).ok


class TestFormatCommandError:
    """Tests for error message formatting."""

    def test_includes_code_and_output(self):
        """Test that the message carries the exit code, command and output."""
        msg = format_command_error(1, ["ffmpeg", "-i", "a b.mkv"], "boom")
        assert msg.startswith("Command failed (1): ffmpeg -i 'a b.mkv'")
        assert msg.endswith("boom")
