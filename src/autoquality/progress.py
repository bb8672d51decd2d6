from __future__ import annotations

import logging
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import TracebackType
from typing import Protocol

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .constants import PROGRESS_BAR_WIDTH
from .version import __version__

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    """Telemetry sink of the host: progress, info entries and tags."""

    def update_percent(self, percent: int) -> None: ...

    def record_info(self, key: str, value: object) -> None: ...

    def add_tags(self, tags: Sequence[str]) -> None: ...


class NullReporter:
    """Reporter that discards everything."""

    def update_percent(self, percent: int) -> None:
        pass

    def record_info(self, key: str, value: object) -> None:
        pass

    def add_tags(self, tags: Sequence[str]) -> None:
        pass


class SafeReporter:
    """Forwards to a host reporter; telemetry errors never interrupt the search."""

    def __init__(self, inner: ProgressReporter):
        self.inner: ProgressReporter = inner

    def update_percent(self, percent: int) -> None:
        try:
            self.inner.update_percent(percent)
        except Exception as e:
            logger.debug("Progress update failed: %s", e)

    def record_info(self, key: str, value: object) -> None:
        try:
            self.inner.record_info(key, value)
        except Exception as e:
            logger.debug("Recording info '%s' failed: %s", key, e)

    def add_tags(self, tags: Sequence[str]) -> None:
        try:
            self.inner.add_tags(tags)
        except Exception as e:
            logger.debug("Adding tags failed: %s", e)


@dataclass
class AutoQualityDisplay:
    """Top-level helper that renders the app title and builds stages."""

    title: str = "AutoQuality"
    console: Console = field(default_factory=Console)
    show_title: bool = True

    def __post_init__(self) -> None:
        if self.show_title:
            self.console.print(
                Panel.fit(
                    f"[bold]{self.title}[/bold] [dim]v{__version__}[/dim]",
                    border_style="cyan",
                    padding=(0, 2),
                )
            )

    @contextmanager
    def stage(self, name: str, *, transient: bool = True) -> Generator[Stage, None, None]:
        stage = Stage(console=self.console, name=name, transient=transient)
        with stage:
            yield stage


class Stage:
    """Context manager showing a percentage bar for one step of the run.

    Also acts as a ProgressReporter so the search can drive it directly.
    """

    console: Console
    name: str
    transient: bool
    info: dict[str, object]
    tags: list[str]
    _progress: Progress | None
    _task_id: TaskID | None
    _closed: bool

    def __init__(self, *, console: Console, name: str, transient: bool = True) -> None:
        self.console = console
        self.name = name
        self.transient = transient
        self.info = {}
        self.tags = []
        self._progress = None
        self._task_id = None
        self._closed = False

    def __enter__(self) -> "Stage":
        progress = Progress(
            TextColumn("[cyan]{task.description}[/cyan]"),
            SpinnerColumn(),
            BarColumn(bar_width=PROGRESS_BAR_WIDTH),
            TextColumn("{task.percentage:>5.1f}%"),
            TimeElapsedColumn(),
            console=self.console,
            transient=self.transient,
            refresh_per_second=12,
        )
        self._progress = progress
        _ = progress.__enter__()
        self._task_id = progress.add_task(description=self.name, total=100.0)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        success = exc_type is None
        self.complete(success=success)
        if success and self.transient:
            self.console.print(f"[cyan]{self.name}[/cyan] [bold green]Done![/bold green]")

    def update_percent(self, percent: int) -> None:
        if self._progress is None or self._task_id is None:
            return
        bounded = min(max(0, percent), 100)
        self._progress.update(self._task_id, completed=bounded)

    def record_info(self, key: str, value: object) -> None:
        self.info[key] = value
        if self._progress is None or self._task_id is None:
            return
        self._progress.update(
            self._task_id, description=f"{self.name} [magenta]{value}[/magenta]"
        )

    def add_tags(self, tags: Sequence[str]) -> None:
        self.tags.extend(tags)

    def complete(self, *, success: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        if self._progress is not None:
            if success and self._task_id is not None:
                self._progress.update(self._task_id, completed=100.0)
            self._progress.__exit__(None, None, None)
            self._progress = None
