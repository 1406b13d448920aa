"""Tests for progress reporting module."""

import io
import time

import pytest
from folioscan.progress import BatchProgress, BatchStats, format_time


class TestFormatTime:
    """Tests for time formatting."""

    def test_format_seconds(self):
        """Seconds should format as Xs."""
        assert format_time(5) == "5s"
        assert format_time(45) == "45s"

    def test_format_minutes(self):
        """Minutes should format as Xm Ys."""
        assert format_time(90) == "1m 30s"

    def test_format_hours(self):
        """Hours should format as Xh Ym."""
        assert format_time(3661) == "1h 1m"

    def test_format_none(self):
        """None should return --:--."""
        assert format_time(None) == "--:--"


class TestBatchStats:
    """Tests for batch statistics."""

    def test_percent(self):
        """Percentage of pages done."""
        assert BatchStats(total=4, done=1).percent == 25.0

    def test_percent_zero_total(self):
        """An empty batch is complete."""
        assert BatchStats(total=0).percent == 100.0

    def test_eta(self):
        """ETA extrapolates from pages done so far."""
        stats = BatchStats(total=10, done=5)
        stats.start_time = time.monotonic() - 5
        assert stats.eta == pytest.approx(5.0, rel=0.05)

    def test_eta_before_first_page(self):
        """No estimate until something finished."""
        assert BatchStats(total=10).eta is None


class TestBatchProgress:
    """Tests for the batch progress line."""

    def test_counts(self):
        """Successes, failures and skips are tracked separately."""
        with BatchProgress(total=4, output=io.StringIO()) as progress:
            progress.update(success=True, item_name="a.jpg")
            progress.update(success=False, item_name="b.jpg")
            progress.skip(2)
        assert progress.stats.done == 4
        assert progress.stats.succeeded == 1
        assert progress.stats.failed == 1
        assert progress.stats.skipped == 2

    def test_summary_written(self):
        """The summary line reports the outcome."""
        output = io.StringIO()
        with BatchProgress(total=2, output=output) as progress:
            progress.update(success=True)
            progress.skip()
        assert "1/2 succeeded" in output.getvalue()
        assert "1 skipped" in output.getvalue()

    def test_long_names_shortened(self):
        """Long filenames are cut from the left."""
        output = io.StringIO()
        with BatchProgress(total=1, output=output) as progress:
            progress.update(success=True, item_name="a_very_long_directory_name/IMG_20240101_120000.jpg")
        line = output.getvalue().splitlines()[0]
        assert line.endswith("| ...MG_20240101_120000.jpg")

    def test_disabled_is_silent(self):
        """Nothing is written when disabled."""
        output = io.StringIO()
        with BatchProgress(total=1, output=output, enabled=False) as progress:
            progress.update(success=True)
        assert output.getvalue() == ""
