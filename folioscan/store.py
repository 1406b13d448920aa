"""
In-memory project and page store with optional JSON snapshots.

The store is a plain key/value accessor: it hands out copies of records,
writes whole records back, and guarantees nothing beyond single-record
atomicity. Status rules live in lifecycle.py, ordering in ordering.py.
"""

import copy
import json
import logging
from pathlib import Path

from .errors import NotFoundError, UnauthorizedError
from .models import Page, PageStatus, Project

logger = logging.getLogger(__name__)


class Store:
    """Projects and pages keyed by id.

    Args:
        snapshot_path: If set, the full store is written here as JSON after
            every change and loaded from here on construction.
    """

    def __init__(self, snapshot_path: Path | None = None) -> None:
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._projects: dict[int, Project] = {}
        self._pages: dict[int, Page] = {}
        self._next_project_id = 1
        self._next_page_id = 1

        if self.snapshot_path and self.snapshot_path.exists():
            self._load()

    # Projects

    def create_project(self, owner_id: int, title: str, description: str = "") -> Project:
        if not title or not title.strip():
            raise ValueError("title cannot be empty")

        project = Project(
            id=self._next_project_id,
            owner_id=owner_id,
            title=title.strip(),
            description=description,
        )
        self._next_project_id += 1
        self._projects[project.id] = project
        self._save()

        logger.info(f"Created project {project.id}: {project.title}")
        return copy.deepcopy(project)

    def get_project(self, project_id: int, owner_id: int | None = None) -> Project:
        """Fetch a project.

        Args:
            project_id: Project id
            owner_id: If given, the project must belong to this owner

        Raises:
            NotFoundError: Unknown project
            UnauthorizedError: Project belongs to another owner
        """
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        if owner_id is not None and project.owner_id != owner_id:
            raise UnauthorizedError(f"Project {project_id} does not belong to user {owner_id}")
        return copy.deepcopy(project)

    def list_projects(self, owner_id: int) -> list[Project]:
        return [copy.deepcopy(p) for p in self._projects.values() if p.owner_id == owner_id]

    def save_project(self, project: Project) -> None:
        if project.id not in self._projects:
            raise NotFoundError(f"Project {project.id} not found")
        self._projects[project.id] = copy.deepcopy(project)
        self._save()

    def delete_project(self, project_id: int) -> None:
        """Remove a project together with all of its pages."""
        if self._projects.pop(project_id, None) is None:
            raise NotFoundError(f"Project {project_id} not found")
        self._pages = {pid: p for pid, p in self._pages.items() if p.project_id != project_id}
        self._save()

    def increment_processed(self, project_id: int, n: int = 1) -> Project:
        """Bump the cached processed-page counter."""
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        project.processed_pages += n
        self._save()
        return copy.deepcopy(project)

    def recount(self, project_id: int) -> Project:
        """Rebuild a project's counters from its page statuses.

        Recovery path for a crash between a page's status write and the
        counter update.
        """
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        pages = [p for p in self._pages.values() if p.project_id == project_id]
        completed = sum(1 for p in pages if p.status == PageStatus.COMPLETED)

        if project.processed_pages != completed or project.total_pages != len(pages):
            logger.warning(
                f"Project {project_id} counters drifted: processed {project.processed_pages} -> {completed}, "
                f"total {project.total_pages} -> {len(pages)}"
            )

        project.processed_pages = completed
        project.total_pages = len(pages)
        self._save()
        return copy.deepcopy(project)

    # Pages

    def create_page(self, project_id: int, filename: str, image_ref: str) -> Page:
        """Register a new pending page at the end of the project."""
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        page = Page(
            id=self._next_page_id,
            project_id=project_id,
            filename=filename,
            image_ref=image_ref,
            sort_position=project.total_pages,
        )
        self._next_page_id += 1
        self._pages[page.id] = page
        project.total_pages += 1
        self._save()
        return copy.deepcopy(page)

    def get_page(self, page_id: int) -> Page:
        page = self._pages.get(page_id)
        if page is None:
            raise NotFoundError(f"Page {page_id} not found")
        return copy.deepcopy(page)

    def save_page(self, page: Page) -> None:
        if page.id not in self._pages:
            raise NotFoundError(f"Page {page.id} not found")
        self._pages[page.id] = copy.deepcopy(page)
        self._save()

    def save_pages(self, pages: list[Page]) -> None:
        for page in pages:
            if page.id not in self._pages:
                raise NotFoundError(f"Page {page.id} not found")
            self._pages[page.id] = copy.deepcopy(page)
        self._save()

    def pages_for_project(self, project_id: int) -> list[Page]:
        """All pages of a project in sort-position order (ties by id)."""
        pages = [copy.deepcopy(p) for p in self._pages.values() if p.project_id == project_id]
        pages.sort(key=lambda p: (p.sort_position, p.id))
        return pages

    # Persistence

    def _save(self) -> None:
        if not self.snapshot_path:
            return

        data = {
            "next_project_id": self._next_project_id,
            "next_page_id": self._next_page_id,
            "projects": [p.to_dict() for p in self._projects.values()],
            "pages": [p.to_dict() for p in self._pages.values()],
        }
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.snapshot_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.snapshot_path)

    def _load(self) -> None:
        data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        self._projects = {p["id"]: Project.from_dict(p) for p in data.get("projects", [])}
        self._pages = {p["id"]: Page.from_dict(p) for p in data.get("pages", [])}
        self._next_project_id = data.get("next_project_id", max(self._projects, default=0) + 1)
        self._next_page_id = data.get("next_page_id", max(self._pages, default=0) + 1)
        logger.info(
            f"Loaded {len(self._projects)} projects and {len(self._pages)} pages from {self.snapshot_path}"
        )
