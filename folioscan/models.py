"""
Data model for projects and their pages.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class PageStatus(Enum):
    """Processing state of a page."""

    PENDING = "pending"  # Registered, never sent to the recognizer
    PROCESSING = "processing"  # Recognizer call in flight
    COMPLETED = "completed"  # Text extracted
    FAILED = "failed"  # Recognizer gave up, see error_message


class ProjectStatus(Enum):
    """Overall state of a project, set by the client as work moves along."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class FormattingBlock:
    """A structural block of page text as reported by the recognizer."""

    type: str  # heading, paragraph, list or quote
    content: str
    level: int | None = None  # Heading level 1-6
    bold: bool = False
    italic: bool = False


@dataclass
class Page:
    """A scanned page: a unit of work and a fragment of the final document.

    Attributes:
        id: Page identity; ids grow with creation order
        project_id: Owning project
        filename: Upload filename, used as a secondary ordering hint
        image_ref: URL, data URL or local path of the raw image
        status: Current processing state
        extracted_text: Recognized text (set once completed)
        page_label: Page number as printed, e.g. "iv" or "42"
        sort_key: Numeric value of page_label
        sort_position: Zero-based position in the document
        placement_uncertain: Position is a best guess awaiting confirmation
        error_message: Last failure message (set only while failed)
        formatting: Structural blocks returned by the recognizer
        confidence: Recognizer confidence in [0, 1]
    """

    id: int
    project_id: int
    filename: str
    image_ref: str
    status: PageStatus = PageStatus.PENDING
    extracted_text: str | None = None
    page_label: str | None = None
    sort_key: int | None = None
    sort_position: int = 0
    placement_uncertain: bool = False
    error_message: str | None = None
    formatting: list[FormattingBlock] = field(default_factory=list)
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Page":
        data = dict(data)
        data["status"] = PageStatus(data.get("status", "pending"))
        data["formatting"] = [FormattingBlock(**b) for b in data.get("formatting") or []]
        return cls(**data)


@dataclass
class Project:
    """An ordered collection of pages plus cached counters.

    processed_pages mirrors the number of completed pages; it is kept
    incrementally and can be rebuilt with Store.recount().

    ordered_through is the highest page id present at the last full reorder.
    Only pages with a larger id are placed incrementally; older pages keep
    their position until the next reorder.
    """

    id: int
    owner_id: int
    title: str
    description: str = ""
    status: ProjectStatus = ProjectStatus.UPLOADING
    total_pages: int = 0
    processed_pages: int = 0
    ordered: bool = False  # True once a full reorder has been applied
    ordered_through: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        data = dict(data)
        data["status"] = ProjectStatus(data.get("status", "uploading"))
        return cls(**data)
