"""
Rich progress rendering for install runs.

One `rich.progress.Progress` display is shared by the whole run; every
installer gets its own RichProgressSink, which adds one bar per stage.
"""

from typing import Dict, Optional

from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from fontfin.download.interfaces import ProgressSink


def create_progress(transient: bool = True) -> Progress:
    """Build the progress display used by the CLI."""
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeRemainingColumn(),
        transient=transient,
    )


class RichProgressSink(ProgressSink):
    """Shows the stages of one installer as rows of a shared Progress display."""

    def __init__(self, progress: Progress, name: str):
        self.progress = progress
        self.name = name
        self._tasks: Dict[str, TaskID] = {}

    def _description(self, stage: str, suffix: str = "") -> str:
        return f"{self.name} {stage}{suffix}"

    def update(self, stage: str, done: int, total: Optional[int]) -> None:
        task = self._tasks.get(stage)
        if task is None:
            task = self.progress.add_task(self._description(stage), total=total)
            self._tasks[stage] = task
        self.progress.update(task, completed=done, total=total)

    def finish(self, stage: str, success: bool) -> None:
        task = self._tasks.get(stage)
        if task is None:
            return
        if success:
            self.progress.update(task, description=self._description(stage, " done"))
        else:
            self.progress.update(task, description=self._description(stage, " failed"))
        self.progress.stop_task(task)
