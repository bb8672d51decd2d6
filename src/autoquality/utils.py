import logging
import os
import shlex
import subprocess
import uuid
from collections.abc import Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from .constants import LOG_SEPARATOR_WIDTH, LOG_SEPARATOR_CHAR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one external tool invocation.

    Launch failures and timeouts are reported as ``exit_code == -1`` with the
    reason in ``stderr``; nothing is raised.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as scoring tools log to either."""
        return f"{self.stdout}\n{self.stderr}"


ToolRunner = Callable[[list[str], int], ToolResult]


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if it doesn't exist, then return it.

    Args:
        path: Directory path to create

    Returns:
        The same path, for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def format_command(cmd: list[str]) -> str:
    return " ".join(shlex.quote(c) for c in cmd)


def format_command_error(returncode: int, cmd: list[str], output: str = "") -> str:
    """Format a consistent error message for failed subprocess commands.

    Args:
        returncode: Process return code
        cmd: Command and arguments that failed
        output: Optional stdout/stderr output

    Returns:
        Formatted error message string
    """
    msg = f"Command failed ({returncode}): {format_command(cmd)}"
    if output:
        msg += f"\n\n{output}"
    return msg


def run_tool(cmd: list[str], timeout: int) -> ToolResult:
    """Run an external program and capture its output.

    Args:
        cmd: Command and arguments to execute
        timeout: Timeout in whole seconds (0 or less waits indefinitely)

    Returns:
        ToolResult with exit code and captured text
    """
    logger.debug("Running: %s", format_command(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout if timeout > 0 else None,
        )
    except FileNotFoundError:
        return ToolResult(exit_code=-1, stderr=f"Command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        logger.debug("Timed out after %ss: %s", timeout, format_command(cmd))
        return ToolResult(exit_code=-1, stderr="Process timed out", timed_out=True)
    except OSError as e:
        return ToolResult(exit_code=-1, stderr=f"Failed to start process: {e}")

    return ToolResult(exit_code=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


@dataclass
class TempWorkspace:
    """Writable directory plus collision-free names for per-sample temp files."""

    directory: Path
    new_id: Callable[[], str] = field(default=lambda: uuid.uuid4().hex)

    def path_for(self, stem: str, suffix: str) -> Path:
        _ = ensure_dir(self.directory)
        return self.directory / f"{stem}{suffix}"

    def unique_stem(self, prefix: str) -> str:
        return f"{prefix}_{self.new_id()}"


def cleanup_files(paths: Iterable[Path]) -> None:
    """Delete temp files, ignoring ones that are already gone."""
    for path in paths:
        with suppress(OSError):
            path.unlink(missing_ok=True)


def escape_filter_path(path: Path | str) -> str:
    """Escape a path for use as an ffmpeg filter option value.

    Uses forward slashes and escapes ':' (drive letters) since ':' separates
    filter options.
    """
    return str(path).replace("\\", "/").replace(":", "\\:")


def get_cpu_count() -> int:
    """Get number of CPU cores, with fallback to 8 if detection fails."""
    return os.cpu_count() or 8


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def log_section(log: logging.Logger, title: str) -> None:
    """Log a visual section separator with a title."""
    separator = LOG_SEPARATOR_CHAR * LOG_SEPARATOR_WIDTH
    log.info("")
    log.info(separator)
    log.info(" %s", title.upper())
    log.info(separator)
