"""
Progress line for batch retries.

Writes a single updating line on a terminal and periodic lines otherwise.
"""

import sys
import time
from dataclasses import dataclass, field
from typing import TextIO


@dataclass
class BatchStats:
    """Counters for a running batch."""

    total: int
    done: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.done / self.total) * 100

    @property
    def eta(self) -> float | None:
        """Estimated seconds remaining, None until the first page finishes."""
        if self.done == 0 or self.elapsed == 0:
            return None
        return (self.total - self.done) * (self.elapsed / self.done)


def format_time(seconds: float | None) -> str:
    """Format seconds as human-readable time."""
    if seconds is None:
        return "--:--"
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m {int(seconds % 60)}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"


class BatchProgress:
    """Progress reporter for a batch of page retries.

    Usage:
        with BatchProgress(total=len(pages)) as progress:
            for page in pages:
                outcome = await processor.process(page.id)
                progress.update(success=outcome.success, item_name=page.filename)
    """

    def __init__(self, total: int, desc: str = "Retrying", output: TextIO | None = None, enabled: bool = True):
        self.stats = BatchStats(total=total)
        self.desc = desc
        self.enabled = enabled
        self._output = output or sys.stderr
        self._is_tty = hasattr(self._output, "isatty") and self._output.isatty()
        self._last_line_len = 0

    def __enter__(self):
        self.stats.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()

    def update(self, success: bool, item_name: str | None = None) -> None:
        self.stats.done += 1
        if success:
            self.stats.succeeded += 1
        else:
            self.stats.failed += 1
        self._render(item_name)

    def skip(self, n: int = 1) -> None:
        """Count pages that were never started (cancelled batch)."""
        self.stats.done += n
        self.stats.skipped += n

    def _render(self, item_name: str | None) -> None:
        if not self.enabled:
            return

        stats = self.stats
        bar_width = 20
        filled = int(bar_width * stats.percent / 100)
        bar = "█" * filled + "░" * (bar_width - filled)

        line = (
            f"{self.desc}: [{bar}] {stats.done}/{stats.total} "
            f"({stats.failed} failed) [{format_time(stats.elapsed)}<{format_time(stats.eta)}]"
        )
        if item_name:
            name = item_name if len(item_name) <= 25 else "..." + item_name[-22:]
            line += f" | {name}"

        if self._is_tty:
            clear = " " * max(0, self._last_line_len - len(line))
            self._output.write(f"\r{line}{clear}")
            self._last_line_len = len(line)
        elif stats.done == 1 or stats.done == stats.total or stats.done % max(1, stats.total // 10) == 0:
            self._output.write(line + "\n")
        self._output.flush()

    def finish(self) -> None:
        """Print summary."""
        if not self.enabled:
            return

        if self._is_tty:
            self._output.write("\n")

        stats = self.stats
        summary = (
            f"✓ {self.desc} complete: {stats.succeeded}/{stats.total} succeeded, "
            f"{stats.failed} failed"
        )
        if stats.skipped:
            summary += f", {stats.skipped} skipped"
        self._output.write(f"{summary} ({format_time(stats.elapsed)})\n")
        self._output.flush()
