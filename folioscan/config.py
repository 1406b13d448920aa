"""
Configuration for the scanning pipeline.
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ScanConfig:
    """Configuration for the scanning pipeline.

    Attributes:
        data_dir: Directory for uploaded images and the store snapshot

        # Recognizer
        llm_api_url: OpenAI-compatible chat completions endpoint
        llm_model: Vision model name sent with each request
        llm_api_key: Bearer token for the endpoint (optional)
        request_timeout: Seconds allowed for a single recognizer call

        # Retry policy
        max_attempts: Total recognizer attempts per page (transient failures only)
        initial_delay: Seconds before the first retry; doubles after each attempt

        # Batch retry
        batch_workers: Pages retried at once (1 = strictly sequential)

        # Storage
        persist: Write a JSON snapshot of the store after each change
    """

    data_dir: Path = Path("./folioscan_data")

    # Recognizer
    llm_api_url: str = "http://localhost:8080/v1/chat/completions"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str | None = None
    request_timeout: float = 120.0

    # Retry policy
    max_attempts: int = 3
    initial_delay: float = 1.0

    # Batch retry
    batch_workers: int = 1

    # Storage
    persist: bool = False

    def __post_init__(self) -> None:
        """Validate and convert paths."""
        self.data_dir = Path(self.data_dir)

        if not self.llm_api_url or not self.llm_api_url.strip():
            raise ValueError("llm_api_url cannot be empty")

        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")

        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")

        if self.batch_workers < 1:
            raise ValueError(f"batch_workers must be >= 1, got {self.batch_workers}")

    @classmethod
    def from_env(cls, **overrides) -> "ScanConfig":
        """Build a config from environment variables.

        Reads LLM_API_URL, LLM_MODEL, LLM_API_KEY and the FOLIOSCAN_* variables.
        Keyword arguments take precedence over the environment.
        """
        env = os.environ
        values: dict = {}

        if "FOLIOSCAN_DATA_DIR" in env:
            values["data_dir"] = Path(env["FOLIOSCAN_DATA_DIR"])
        if "LLM_API_URL" in env:
            values["llm_api_url"] = env["LLM_API_URL"]
        if "LLM_MODEL" in env:
            values["llm_model"] = env["LLM_MODEL"]
        if "LLM_API_KEY" in env:
            values["llm_api_key"] = env["LLM_API_KEY"]
        if "FOLIOSCAN_TIMEOUT" in env:
            values["request_timeout"] = float(env["FOLIOSCAN_TIMEOUT"])
        if "FOLIOSCAN_MAX_ATTEMPTS" in env:
            values["max_attempts"] = int(env["FOLIOSCAN_MAX_ATTEMPTS"])
        if "FOLIOSCAN_INITIAL_DELAY" in env:
            values["initial_delay"] = float(env["FOLIOSCAN_INITIAL_DELAY"])
        if "FOLIOSCAN_BATCH_WORKERS" in env:
            values["batch_workers"] = int(env["FOLIOSCAN_BATCH_WORKERS"])
        if "FOLIOSCAN_PERSIST" in env:
            values["persist"] = env["FOLIOSCAN_PERSIST"].lower() in ("1", "true", "yes")

        values.update(overrides)
        return cls(**values)

    @property
    def image_dir(self) -> Path:
        """Directory for uploaded page images."""
        return self.data_dir / "images"

    @property
    def snapshot_path(self) -> Path:
        """Path to the JSON store snapshot."""
        return self.data_dir / "store.json"
