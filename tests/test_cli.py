"""Tests for the command-line interface."""

import sys

from folioscan.cli import main


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["folioscan", *args])
    return main()


class TestLabelCommand:
    """folioscan label."""

    def test_found(self, monkeypatch, capsys):
        """Prints label and sort key."""
        assert run_cli(monkeypatch, "label", "- 56 -") == 0
        assert "label=56 sort_key=56" in capsys.readouterr().out

    def test_not_found(self, monkeypatch, capsys):
        """Exit code 1 when there is no number."""
        assert run_cli(monkeypatch, "label", "Frontispiece") == 1
        assert "No page number found" in capsys.readouterr().out


class TestRetryCommand:
    """folioscan retry."""

    def test_unknown_project(self, monkeypatch, tmp_path, capsys):
        """Errors are reported, not raised."""
        assert run_cli(monkeypatch, "retry", "7", "--data-dir", str(tmp_path)) == 1
        assert "Project 7 not found" in capsys.readouterr().err
