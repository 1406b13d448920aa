"""
Main orchestration: projects, uploads, recognition, ordering and export.
"""

import asyncio
import logging
import uuid
from collections import Counter
from pathlib import Path
from typing import Any, Awaitable, Callable

from . import ordering
from .batch import BatchReport, BatchRetryCoordinator
from .config import ScanConfig
from .errors import NotFoundError
from .lifecycle import KeyedLock, PageProcessor, ProcessOutcome
from .models import Page, PageStatus, Project, ProjectStatus
from .ocr import HTTPRecognizer, RecognitionInvoker, Recognizer
from .store import Store

logger = logging.getLogger(__name__)


class ScanPipeline:
    """Entry point for everything done to a project and its pages.

    Usage:
        pipeline = ScanPipeline(ScanConfig.from_env())
        project = pipeline.create_project(owner_id=1, title="My Book")
        page = pipeline.upload_page(project.id, "IMG_0001.jpg", "/scans/IMG_0001.jpg")
        outcome = await pipeline.process_page(page.id)
        pipeline.reorder(project.id)
        pages = pipeline.export_pages(project.id)
    """

    def __init__(
        self,
        config: ScanConfig,
        recognizer: Recognizer | None = None,
        store: Store | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration
            recognizer: Recognizer to use (default: HTTPRecognizer from config)
            store: Store to use (default: new store, snapshotting if config.persist)
            sleep: Awaitable used for retry backoff
        """
        self.config = config
        self._setup_logging()

        self.store = store or Store(config.snapshot_path if config.persist else None)
        self.recognizer = recognizer or HTTPRecognizer(
            api_url=config.llm_api_url,
            model=config.llm_model,
            api_key=config.llm_api_key,
            timeout=config.request_timeout,
        )
        self.invoker = RecognitionInvoker(
            self.recognizer,
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            timeout=config.request_timeout,
            sleep=sleep,
        )
        self.locks = KeyedLock()
        self.processor = PageProcessor(
            self.store,
            self.invoker,
            locks=self.locks,
            on_completed=self._place_late_page,
        )
        self.batch = BatchRetryCoordinator(self.processor, workers=config.batch_workers)

    def _setup_logging(self) -> None:
        """Ensure logging is configured.

        Only sets up a basic config if no handlers are configured,
        allowing the CLI to control logging setup.
        """
        if not logging.root.handlers:
            logging.basicConfig(
                level=logging.INFO,
                format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )

    async def aclose(self) -> None:
        """Release the recognizer's HTTP client."""
        if isinstance(self.recognizer, HTTPRecognizer):
            await self.recognizer.aclose()

    # Projects

    def create_project(self, owner_id: int, title: str, description: str = "") -> Project:
        return self.store.create_project(owner_id, title, description)

    def list_projects(self, owner_id: int) -> list[Project]:
        return self.store.list_projects(owner_id)

    def get_project(self, project_id: int, owner_id: int | None = None) -> tuple[Project, list[Page]]:
        """A project and its pages in document order."""
        project = self.store.get_project(project_id, owner_id)
        return project, self.store.pages_for_project(project_id)

    def delete_project(self, project_id: int, owner_id: int | None = None) -> None:
        self.store.get_project(project_id, owner_id)
        self.store.delete_project(project_id)
        logger.info(f"Deleted project {project_id}")

    def update_project_status(
        self,
        project_id: int,
        status: ProjectStatus | str,
        owner_id: int | None = None,
    ) -> Project:
        """Set the project's overall status.

        Raises:
            ValueError: If status is not a known project status
        """
        project = self.store.get_project(project_id, owner_id)
        project.status = ProjectStatus(status)
        self.store.save_project(project)
        logger.info(f"Project {project_id} status set to {project.status.value}")
        return project

    def status_counts(self, project_id: int, owner_id: int | None = None) -> dict[str, int]:
        """Number of pages per status."""
        self.store.get_project(project_id, owner_id)
        counts = Counter(p.status.value for p in self.store.pages_for_project(project_id))
        return {status.value: counts.get(status.value, 0) for status in PageStatus}

    def recount(self, project_id: int, owner_id: int | None = None) -> Project:
        """Rebuild the project's cached counters from page statuses."""
        self.store.get_project(project_id, owner_id)
        return self.store.recount(project_id)

    # Pages

    def upload_page(self, project_id: int, filename: str, image_ref: str, owner_id: int | None = None) -> Page:
        """Register an image as a new pending page."""
        self.store.get_project(project_id, owner_id)
        page = self.store.create_page(project_id, filename, image_ref)
        logger.info(f"Registered page {page.id} ({filename}) in project {project_id}")
        return page

    def save_upload(self, project_id: int, filename: str, data: bytes, owner_id: int | None = None) -> Page:
        """Store uploaded image bytes under the image directory and register the page."""
        self.store.get_project(project_id, owner_id)

        target_dir = self.config.image_dir / str(project_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        image_path = target_dir / f"{uuid.uuid4().hex[:12]}-{_safe_filename(filename)}"
        image_path.write_bytes(data)

        return self.upload_page(project_id, filename, str(image_path.absolute()), owner_id)

    async def process_page(self, page_id: int, owner_id: int | None = None) -> ProcessOutcome:
        """Process a pending page or retry a failed one."""
        return await self.processor.process(page_id, owner_id)

    async def process_pending(
        self,
        project_id: int,
        owner_id: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Run every pending page of a project."""
        return await self._run_batch(project_id, PageStatus.PENDING, owner_id, cancel_event)

    async def retry_failed(
        self,
        project_id: int,
        owner_id: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Retry every failed page of a project."""
        return await self._run_batch(project_id, PageStatus.FAILED, owner_id, cancel_event)

    async def _run_batch(
        self,
        project_id: int,
        status: PageStatus,
        owner_id: int | None,
        cancel_event: asyncio.Event | None,
    ) -> BatchReport:
        self.store.get_project(project_id, owner_id)
        pages = [p for p in self.store.pages_for_project(project_id) if p.status == status]
        if not pages:
            logger.info(f"No {status.value} pages in project {project_id}")
            return BatchReport()
        return await self.batch.retry_batch(pages, owner_id, cancel_event)

    # Ordering

    def reorder(self, project_id: int, owner_id: int | None = None) -> list[Page]:
        """Order all pages by detected page number and mark the project ordered."""
        project = self.store.get_project(project_id, owner_id)
        pages = ordering.reorder(self.store.pages_for_project(project_id))
        self.store.save_pages(pages)

        project.ordered = True
        project.ordered_through = max((p.id for p in pages), default=0)
        self.store.save_project(project)
        return pages

    def update_order(self, project_id: int, page_orders: dict[int, int], owner_id: int | None = None) -> list[Page]:
        """Apply a manual order (page id -> position)."""
        self.store.get_project(project_id, owner_id)
        pages = ordering.move_pages(self.store.pages_for_project(project_id), page_orders)
        self.store.save_pages(pages)
        return pages

    def confirm_placement(self, page_id: int, owner_id: int | None = None) -> Page:
        """Accept a best-guess placement as correct."""
        page = self.store.get_page(page_id)
        self.store.get_project(page.project_id, owner_id)
        ordering.confirm_placement(page)
        self.store.save_page(page)
        return page

    def pages_needing_review(self, project_id: int, owner_id: int | None = None) -> list[Page]:
        self.store.get_project(project_id, owner_id)
        return ordering.needs_review(self.store.pages_for_project(project_id))

    def _place_late_page(self, page: Page) -> None:
        """Position a page added after the project was ordered.

        Pages that were already present at the last reorder (retried ones)
        keep their position until the next full reorder.
        """
        project = self.store.get_project(page.project_id)
        if not project.ordered or page.id <= project.ordered_through:
            return

        pages, placement = ordering.insert(page, self.store.pages_for_project(page.project_id))
        self.store.save_pages(pages)
        logger.info(
            f"Placed page {page.id} at position {placement.position} "
            f"({'confident' if placement.confident else 'needs review'})"
        )

    # Export

    def export_pages(self, project_id: int, owner_id: int | None = None) -> list[Page]:
        """Completed pages in document order, for the rendering backends.

        Raises:
            NotFoundError: If no page is completed yet
        """
        self.store.get_project(project_id, owner_id)
        pages = [p for p in self.store.pages_for_project(project_id) if p.status == PageStatus.COMPLETED]
        if not pages:
            raise NotFoundError(f"No completed pages to export in project {project_id}")
        return pages


def _safe_filename(filename: str) -> str:
    """Filesystem-safe version of an upload filename."""
    name = Path(filename).name
    safe = "".join(c if c.isalnum() or c in ".-_" else "_" for c in name)
    return safe.strip("._")[:100] or "page"
