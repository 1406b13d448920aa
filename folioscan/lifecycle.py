"""
Page status state machine and the single-page processing operation.

    pending ──► processing ──► completed
                  ▲     │
                  │     ▼
                  └── failed

A completed page is final. Retrying it is an InvalidTransitionError.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from .errors import InvalidTransitionError, RecognitionError
from .labels import extract_page_label
from .models import Page, PageStatus
from .ocr import OCRResult, RecognitionInvoker
from .store import Store

logger = logging.getLogger(__name__)

TRANSITIONS: dict[PageStatus, frozenset[PageStatus]] = {
    PageStatus.PENDING: frozenset({PageStatus.PROCESSING}),
    PageStatus.PROCESSING: frozenset({PageStatus.COMPLETED, PageStatus.FAILED}),
    PageStatus.FAILED: frozenset({PageStatus.PROCESSING}),
    PageStatus.COMPLETED: frozenset(),
}


def can_transition(current: PageStatus, target: PageStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(page: Page, target: PageStatus) -> None:
    """Raise InvalidTransitionError unless page may move to target."""
    if not can_transition(page.status, target):
        if page.status == PageStatus.COMPLETED:
            message = f"Page {page.id} is already completed; only failed or pending pages can be processed"
        else:
            message = f"Page {page.id} cannot go from {page.status.value} to {target.value}"
        raise InvalidTransitionError(message, current=page.status.value, target=target.value)


def start_processing(page: Page) -> None:
    """pending/failed -> processing."""
    check_transition(page, PageStatus.PROCESSING)
    page.status = PageStatus.PROCESSING


def mark_completed(page: Page, result: OCRResult) -> None:
    """processing -> completed, recording the recognition result.

    The page number is read from the recognizer's raw label when it gave
    one, otherwise from the full text. The caller bumps the project's
    processed-page counter.
    """
    check_transition(page, PageStatus.COMPLETED)

    label = extract_page_label(result.label_source)

    page.status = PageStatus.COMPLETED
    page.extracted_text = result.text
    page.page_label = label.label
    page.sort_key = label.sort_key
    page.formatting = list(result.formatting)
    page.confidence = result.confidence
    page.error_message = None


def mark_failed(page: Page, message: str) -> None:
    """processing -> failed."""
    check_transition(page, PageStatus.FAILED)
    page.status = PageStatus.FAILED
    page.error_message = message or "OCR processing failed"


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it.

    Usage:
        locks = KeyedLock()
        async with locks(page.id):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[object, asyncio.Lock] = {}
        self._users: dict[object, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: object) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def __call__(self, key: object) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


@dataclass
class ProcessOutcome:
    """Result of processing one page."""

    page_id: int
    success: bool
    error: str | None = None
    page: Page | None = None
    attempts: int = 0


class PageProcessor:
    """Runs the single-page operation: processing -> recognizer -> completed | failed.

    Recognition failures end up as a failed page and an unsuccessful
    ProcessOutcome; they are not raised. NotFoundError, UnauthorizedError and
    InvalidTransitionError are raised before anything is written.
    """

    def __init__(
        self,
        store: Store,
        invoker: RecognitionInvoker,
        locks: KeyedLock | None = None,
        on_completed: Callable[[Page], None] | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            store: Page and project store
            invoker: Recognition invoker
            locks: Per-page locks shared with other processors
            on_completed: Called with the stored page after each completion
        """
        self.store = store
        self.invoker = invoker
        self.locks = locks or KeyedLock()
        self.on_completed = on_completed

    async def process(self, page_id: int, owner_id: int | None = None) -> ProcessOutcome:
        """Process or retry a pending/failed page.

        Args:
            page_id: Page to process
            owner_id: If given, the page's project must belong to this owner

        Returns:
            ProcessOutcome describing the final state
        """
        async with self.locks(page_id):
            page = self.store.get_page(page_id)
            self.store.get_project(page.project_id, owner_id)

            start_processing(page)
            self.store.save_page(page)
            logger.info(f"Processing page {page.id} ({page.filename})")

            try:
                result = await self.invoker.recognize(page.image_ref)
            except RecognitionError as e:
                return self._fail(page_id, e.message, e.attempts)
            except asyncio.CancelledError:
                self._fail(page_id, "Processing was cancelled", 0)
                raise

            return self._complete(page_id, result)

    def _complete(self, page_id: int, result: OCRResult) -> ProcessOutcome:
        # Re-read: the ordering engine may have moved this page meanwhile
        page = self.store.get_page(page_id)
        mark_completed(page, result)
        self.store.save_page(page)
        self.store.increment_processed(page.project_id)

        logger.info(
            f"Page {page.id} completed (label={page.page_label!r}, "
            f"confidence={page.confidence:.2f}, attempts={result.attempts})"
        )

        if self.on_completed is not None:
            self.on_completed(page)
            page = self.store.get_page(page_id)

        return ProcessOutcome(page_id=page_id, success=True, page=page, attempts=result.attempts)

    def _fail(self, page_id: int, message: str, attempts: int) -> ProcessOutcome:
        page = self.store.get_page(page_id)
        mark_failed(page, message)
        self.store.save_page(page)

        logger.warning(f"Page {page.id} failed: {page.error_message}")
        return ProcessOutcome(
            page_id=page_id,
            success=False,
            error=page.error_message,
            page=page,
            attempts=attempts,
        )
