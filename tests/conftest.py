"""Shared fixtures: a scripted recognizer and a pipeline wired to it."""

import pytest

from folioscan.config import ScanConfig
from folioscan.errors import RecognitionPermanentError, RecognitionTransientError
from folioscan.models import Page
from folioscan.ocr import Recognizer, RecognizerOutput
from folioscan.pipeline import ScanPipeline
from folioscan.store import Store


class ScriptedRecognizer(Recognizer):
    """Recognizer that replays queued outcomes per image reference.

    An outcome is a RecognizerOutput or an exception instance. When the
    queue for an image is empty the recognizer succeeds with generic text.
    """

    def __init__(self):
        self.scripts: dict[str, list] = {}
        self.calls: list[str] = []

    def script(self, image_ref: str, *outcomes) -> None:
        self.scripts.setdefault(image_ref, []).extend(outcomes)

    def succeed(self, image_ref: str, text: str = "Some text.", label: str | None = None, confidence: float = 0.9):
        self.script(image_ref, RecognizerOutput(text=text, raw_label=label, confidence=confidence))

    def fail_transient(self, image_ref: str, times: int = 1):
        for _ in range(times):
            self.script(image_ref, RecognitionTransientError("Recognizer error 500 Internal Server Error"))

    def fail_permanent(self, image_ref: str):
        self.script(image_ref, RecognitionPermanentError("Recognizer error 400 Bad Request"))

    async def invoke(self, image_ref: str) -> RecognizerOutput:
        self.calls.append(image_ref)
        queue = self.scripts.get(image_ref)
        if queue:
            outcome = queue.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return RecognizerOutput(text=f"Text of {image_ref}", raw_label=None, confidence=0.8)


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recognizer():
    return ScriptedRecognizer()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def config(tmp_path):
    return ScanConfig(data_dir=tmp_path / "data", initial_delay=1.0, max_attempts=3)


@pytest.fixture
def pipeline(config, recognizer, sleeps):
    return ScanPipeline(config, recognizer=recognizer, store=Store(), sleep=sleeps)


def make_page(page_id: int, sort_key: int | None = None, position: int = 0, filename: str | None = None) -> Page:
    """Build a detached page for ordering tests."""
    return Page(
        id=page_id,
        project_id=1,
        filename=filename or f"upload-{page_id}.jpg",
        image_ref=f"img-{page_id}",
        page_label=str(sort_key) if sort_key is not None else None,
        sort_key=sort_key,
        sort_position=position,
    )
