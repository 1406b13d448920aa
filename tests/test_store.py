"""Tests for store module."""

import json

import pytest
from folioscan.errors import NotFoundError, UnauthorizedError
from folioscan.models import FormattingBlock, PageStatus, ProjectStatus
from folioscan.store import Store


class TestProjects:
    """Project records."""

    def test_create_and_get(self):
        """Ids start at 1 and titles are trimmed."""
        store = Store()
        project = store.create_project(owner_id=7, title="  Moby Dick ")
        assert project.id == 1
        assert store.get_project(1).title == "Moby Dick"

    def test_empty_title(self):
        """A project needs a title."""
        with pytest.raises(ValueError):
            Store().create_project(owner_id=1, title="   ")

    def test_ownership(self):
        """Other owners are refused; unknown ids are not found."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        with pytest.raises(UnauthorizedError):
            store.get_project(project.id, owner_id=2)
        with pytest.raises(NotFoundError):
            store.get_project(99)

    def test_list_by_owner(self):
        """Only the caller's projects are listed."""
        store = Store()
        store.create_project(owner_id=1, title="Mine")
        store.create_project(owner_id=2, title="Theirs")
        assert [p.title for p in store.list_projects(1)] == ["Mine"]

    def test_delete_removes_pages(self):
        """Deleting a project deletes its pages."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        page = store.create_page(project.id, "p.jpg", "img")
        store.delete_project(project.id)
        with pytest.raises(NotFoundError):
            store.get_page(page.id)

    def test_records_are_copies(self):
        """Changes to a fetched record need save_* to stick."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        project.title = "Changed"
        assert store.get_project(project.id).title == "Book"


class TestPages:
    """Page records."""

    def test_create_appends(self):
        """New pages are pending, at the end, and counted."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        first = store.create_page(project.id, "a.jpg", "img-a")
        second = store.create_page(project.id, "b.jpg", "img-b")

        assert first.status == PageStatus.PENDING
        assert (first.sort_position, second.sort_position) == (0, 1)
        assert store.get_project(project.id).total_pages == 2

    def test_unknown_project(self):
        """Pages need an existing project."""
        with pytest.raises(NotFoundError):
            Store().create_page(5, "a.jpg", "img")

    def test_pages_in_position_order(self):
        """pages_for_project sorts by position."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        a = store.create_page(project.id, "a.jpg", "img-a")
        b = store.create_page(project.id, "b.jpg", "img-b")
        a.sort_position, b.sort_position = 1, 0
        store.save_pages([a, b])
        assert [p.id for p in store.pages_for_project(project.id)] == [b.id, a.id]


class TestCounters:
    """Processed-page counter and recount."""

    def test_increment(self):
        """increment_processed bumps the cached counter."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        assert store.increment_processed(project.id).processed_pages == 1

    def test_recount_restores_drift(self, caplog):
        """Recount rebuilds counters from page statuses."""
        store = Store()
        project = store.create_project(owner_id=1, title="Book")
        for i in range(3):
            page = store.create_page(project.id, f"{i}.jpg", f"img-{i}")
            if i < 2:
                page.status = PageStatus.COMPLETED
                store.save_page(page)

        # Simulate a crash between a status write and the counter update
        store.increment_processed(project.id)

        with caplog.at_level("WARNING", logger="folioscan.store"):
            project = store.recount(project.id)

        assert project.processed_pages == 2
        assert project.total_pages == 3
        assert "drifted" in caplog.text


class TestSnapshot:
    """JSON persistence."""

    def test_round_trip(self, tmp_path):
        """A new store reads back what the previous one wrote."""
        path = tmp_path / "store.json"
        store = Store(path)
        project = store.create_project(owner_id=1, title="Book")
        page = store.create_page(project.id, "a.jpg", "img-a")
        page.status = PageStatus.FAILED
        page.error_message = "Recognizer error 503"
        page.formatting = [FormattingBlock(type="heading", content="I", level=1)]
        store.save_page(page)

        reloaded = Store(path)
        restored = reloaded.get_page(page.id)
        assert restored.status == PageStatus.FAILED
        assert restored.error_message == "Recognizer error 503"
        assert restored.formatting[0].level == 1
        assert reloaded.get_project(project.id).total_pages == 1

        # Ids continue where they left off
        assert reloaded.create_page(project.id, "b.jpg", "img-b").id == page.id + 1

    def test_project_fields_round_trip(self, tmp_path):
        """Project status and reorder watermark survive a reload."""
        path = tmp_path / "store.json"
        store = Store(path)
        project = store.create_project(owner_id=1, title="Book")
        project.status = ProjectStatus.PROCESSING
        project.ordered = True
        project.ordered_through = 12
        store.save_project(project)

        restored = Store(path).get_project(project.id)
        assert restored.status == ProjectStatus.PROCESSING
        assert restored.ordered_through == 12
        assert json.loads(path.read_text(encoding="utf-8"))["projects"][0]["status"] == "processing"

    def test_status_stored_as_text(self, tmp_path):
        """The snapshot holds plain status strings."""
        path = tmp_path / "store.json"
        store = Store(path)
        project = store.create_project(owner_id=1, title="Book")
        store.create_page(project.id, "a.jpg", "img-a")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["pages"][0]["status"] == "pending"
