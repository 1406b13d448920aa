"""Tests for config module."""

from pathlib import Path

import pytest
from folioscan.config import ScanConfig


class TestScanConfig:
    """Defaults and validation."""

    def test_defaults(self):
        """Retry defaults: three attempts starting at one second."""
        config = ScanConfig()
        assert config.max_attempts == 3
        assert config.initial_delay == 1.0
        assert config.batch_workers == 1
        assert config.persist is False

    def test_paths(self, tmp_path):
        """Image directory and snapshot live under data_dir."""
        config = ScanConfig(data_dir=str(tmp_path))
        assert config.data_dir == Path(tmp_path)
        assert config.image_dir == Path(tmp_path) / "images"
        assert config.snapshot_path == Path(tmp_path) / "store.json"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"initial_delay": -1},
            {"request_timeout": 0},
            {"batch_workers": 0},
            {"llm_api_url": " "},
        ],
    )
    def test_invalid(self, kwargs):
        """Out-of-range values are rejected."""
        with pytest.raises(ValueError):
            ScanConfig(**kwargs)


class TestFromEnv:
    """Environment configuration."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        """Variables override defaults."""
        monkeypatch.setenv("FOLIOSCAN_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("LLM_API_URL", "http://gpu:9000/v1/chat/completions")
        monkeypatch.setenv("LLM_MODEL", "qwen2-vl")
        monkeypatch.setenv("FOLIOSCAN_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("FOLIOSCAN_INITIAL_DELAY", "0.5")
        monkeypatch.setenv("FOLIOSCAN_PERSIST", "true")

        config = ScanConfig.from_env()

        assert config.data_dir == tmp_path
        assert config.llm_api_url == "http://gpu:9000/v1/chat/completions"
        assert config.llm_model == "qwen2-vl"
        assert config.max_attempts == 5
        assert config.initial_delay == 0.5
        assert config.persist is True

    def test_overrides_win(self, monkeypatch):
        """Keyword arguments beat the environment."""
        monkeypatch.setenv("FOLIOSCAN_BATCH_WORKERS", "4")
        assert ScanConfig.from_env(batch_workers=2).batch_workers == 2

    def test_invalid_environment(self, monkeypatch):
        """Bad values fail validation."""
        monkeypatch.setenv("FOLIOSCAN_MAX_ATTEMPTS", "0")
        with pytest.raises(ValueError):
            ScanConfig.from_env()
