"""
Batch retry of failed and pending pages.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from .errors import FolioscanError
from .lifecycle import PageProcessor
from .models import Page
from .progress import BatchProgress

logger = logging.getLogger(__name__)


@dataclass
class PageRetryResult:
    """Outcome for one page of a batch."""

    page_id: int
    success: bool
    error: str | None = None
    skipped: bool = False  # Never started because the batch was cancelled


@dataclass
class BatchReport:
    """One result per input page, in input order.

    success_count is informational: the processed-page counter is already
    bumped by each page's own completion and must not be adjusted again.
    """

    results: list[PageRetryResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.skipped)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.skipped)


class BatchRetryCoordinator:
    """Retries many pages without letting one failure stop the rest.

    Pages run one at a time by default to keep load on the recognizer
    bounded and progress reporting simple. With workers > 1 up to that many
    pages run at once; per-page ordering still holds through the processor's
    page locks.
    """

    def __init__(self, processor: PageProcessor, workers: int = 1, show_progress: bool = False) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.processor = processor
        self.workers = workers
        self.show_progress = show_progress

    async def retry_batch(
        self,
        pages: list[Page],
        owner_id: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Retry each page.

        Args:
            pages: Pages to retry
            owner_id: If given, every page's project must belong to this owner
            cancel_event: When set, pages not yet started are skipped; a page
                already in flight finishes normally

        Returns:
            BatchReport with len(pages) entries
        """
        if not pages:
            return BatchReport()

        logger.info(f"Retrying {len(pages)} pages (workers={self.workers})")

        with BatchProgress(len(pages), enabled=self.show_progress) as progress:
            if self.workers == 1:
                results = []
                for page in pages:
                    results.append(await self._retry_one(page, owner_id, cancel_event, progress))
            else:
                semaphore = asyncio.Semaphore(self.workers)

                async def bounded(page: Page) -> PageRetryResult:
                    async with semaphore:
                        return await self._retry_one(page, owner_id, cancel_event, progress)

                results = list(await asyncio.gather(*(bounded(p) for p in pages)))

        report = BatchReport(
            results=results,
            cancelled=any(r.skipped for r in results),
        )

        logger.info(
            f"Batch retry finished: {report.success_count} succeeded, "
            f"{report.failure_count} failed, {report.skipped_count} skipped"
        )
        return report

    async def _retry_one(
        self,
        page: Page,
        owner_id: int | None,
        cancel_event: asyncio.Event | None,
        progress: BatchProgress,
    ) -> PageRetryResult:
        if cancel_event is not None and cancel_event.is_set():
            progress.skip()
            return PageRetryResult(page_id=page.id, success=False, error="Batch cancelled", skipped=True)

        try:
            outcome = await self.processor.process(page.id, owner_id)
        except FolioscanError as e:
            logger.warning(f"Page {page.id} could not be retried: {e.message}")
            progress.update(success=False, item_name=page.filename)
            return PageRetryResult(page_id=page.id, success=False, error=e.message)

        progress.update(success=outcome.success, item_name=page.filename)
        return PageRetryResult(page_id=page.id, success=outcome.success, error=outcome.error)
