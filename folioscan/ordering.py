"""
Page ordering: full reorder by page number and best-effort placement of
pages added later.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath

from .errors import NotFoundError
from .models import Page

logger = logging.getLogger(__name__)

# Phone camera filenames with embedded capture time
FILENAME_TIMESTAMP_PATTERNS = [
    # IMG_YYYYMMDD_HHMMSS, PXL_YYYYMMDD_HHMMSS, YYYYMMDD_HHMMSS
    re.compile(r'(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})'),
    # YYYY-MM-DD_HH-MM-SS
    re.compile(r'(\d{4})-(\d{2})-(\d{2})_(\d{2})-(\d{2})-(\d{2})'),
]

# Last run of digits in the stem: scan_0042, page-7, 0012
TRAILING_NUMBER = re.compile(r'(\d+)(?!.*\d)')

# Hint kinds; hints only compare meaningfully within a kind
HINT_SEQUENCE = 0
HINT_TIMESTAMP = 1


@dataclass
class Placement:
    """Where a late page goes and how sure we are.

    Attributes:
        position: Zero-based index in the project's order
        confident: False when a human should confirm the position
        reason: Why this position was chosen
    """

    position: int
    confident: bool
    reason: str


def creation_order_key(page: Page) -> tuple:
    """Sort key of the final order: numbered pages first, by number, then by id."""
    return (page.sort_key is None, page.sort_key if page.sort_key is not None else 0, page.id)


def _by_position(pages: list[Page]) -> list[Page]:
    return sorted(pages, key=lambda p: (p.sort_position, p.id))


def reorder(pages: list[Page]) -> list[Page]:
    """Order all pages of a project by page number.

    Pages with a sort key come first, ascending; pages without one follow in
    creation order. Ties between equal keys go by creation order. Every page
    gets a contiguous zero-based sort_position.

    Args:
        pages: All pages of one project

    Returns:
        The same page objects, in their new order
    """
    ordered = sorted(pages, key=creation_order_key)
    for position, page in enumerate(ordered):
        page.sort_position = position
        page.placement_uncertain = False

    unnumbered = sum(1 for p in ordered if p.sort_key is None)
    logger.info(f"Reordered {len(ordered)} pages ({unnumbered} without a page number)")
    return ordered


def filename_hint(filename: str | None) -> tuple[int, int] | None:
    """Derive an ordering hint from an upload filename.

    Capture timestamps win over plain numbers. Returns None when the name
    carries no digits.
    """
    if not filename:
        return None

    stem = PurePath(filename).stem

    for pattern in FILENAME_TIMESTAMP_PATTERNS:
        match = pattern.search(stem)
        if match:
            return HINT_TIMESTAMP, int("".join(match.groups()))

    match = TRAILING_NUMBER.search(stem)
    if match:
        return HINT_SEQUENCE, int(match.group(1))

    return None


def _position_by_hint(new_page: Page, ordered: list[Page], start: int, end: int) -> int | None:
    """Slot in ordered[start:end] after the last page with a smaller or equal hint."""
    hint = filename_hint(new_page.filename)
    if hint is None:
        return None

    hinted = []
    for i in range(start, end):
        other = filename_hint(ordered[i].filename)
        if other is not None and other[0] == hint[0]:
            hinted.append((i, other))

    if not hinted:
        return None

    position = start
    for i, other in hinted:
        if other <= hint:
            position = i + 1
    return position


def place(new_page: Page, existing: list[Page]) -> Placement:
    """Decide where a page added after ordering belongs.

    With a page number, the page goes between its numeric neighbours. The
    placement is confident when those neighbours sit next to each other, or
    when the page extends the sequence by one at either end. Collisions,
    gaps filled with other pages and missing page numbers fall back to
    filename hints, then to the end of the document.

    Args:
        new_page: Page being added
        existing: Pages already ordered (the new page itself is ignored)

    Returns:
        Placement; never drops the page
    """
    ordered = [p for p in _by_position(existing) if p.id != new_page.id]
    size = len(ordered)
    key = new_page.sort_key

    if key is None:
        position = _position_by_hint(new_page, ordered, 0, size)
        if position is not None:
            return Placement(position, False, "No page number; placed by filename")
        return Placement(size, False, "No page number; appended at the end")

    keyed = [(i, p) for i, p in enumerate(ordered) if p.sort_key is not None]
    if not keyed:
        position = _position_by_hint(new_page, ordered, 0, size)
        if position is not None:
            return Placement(position, False, "No numbered pages to anchor to; placed by filename")
        return Placement(size, False, "No numbered pages to anchor to; appended at the end")

    same = [i for i, p in keyed if p.sort_key == key]
    if same:
        return Placement(same[-1] + 1, False, f"Page number {new_page.page_label or key} already present")

    lower = [(i, p) for i, p in keyed if p.sort_key < key]
    higher = [(i, p) for i, p in keyed if p.sort_key > key]
    pred = max(lower, key=lambda ip: (ip[1].sort_key, ip[0])) if lower else None
    succ = min(higher, key=lambda ip: (ip[1].sort_key, ip[0])) if higher else None

    if pred and succ:
        pred_idx, pred_page = pred
        succ_idx, succ_page = succ
        between = f"pages {pred_page.page_label or pred_page.sort_key} and {succ_page.page_label or succ_page.sort_key}"

        if succ_idx == pred_idx + 1:
            return Placement(succ_idx, True, f"Between {between}")

        if succ_idx > pred_idx + 1:
            position = _position_by_hint(new_page, ordered, pred_idx + 1, succ_idx)
            if position is None:
                position = pred_idx + 1
            return Placement(position, False, f"Other pages sit between {between}")

        return Placement(pred_idx + 1, False, f"Neighbouring {between} are out of order")

    if pred:
        pred_idx, pred_page = pred
        if key == pred_page.sort_key + 1:
            return Placement(pred_idx + 1, True, f"Follows last page {pred_page.page_label or pred_page.sort_key}")
        return Placement(pred_idx + 1, False, f"Gap after last page {pred_page.page_label or pred_page.sort_key}")

    succ_idx, succ_page = succ
    if key == succ_page.sort_key - 1:
        return Placement(succ_idx, True, f"Precedes first page {succ_page.page_label or succ_page.sort_key}")
    return Placement(succ_idx, False, f"Gap before first page {succ_page.page_label or succ_page.sort_key}")


def insert(new_page: Page, existing: list[Page]) -> tuple[list[Page], Placement]:
    """Place a page and renumber positions.

    Args:
        new_page: Page being added
        existing: Pages already ordered

    Returns:
        Tuple of (all pages in their new order, placement decision)
    """
    placement = place(new_page, existing)

    ordered = [p for p in _by_position(existing) if p.id != new_page.id]
    ordered.insert(placement.position, new_page)
    for position, page in enumerate(ordered):
        page.sort_position = position

    new_page.placement_uncertain = not placement.confident
    if not placement.confident:
        logger.warning(
            f"Page {new_page.id} placed at position {placement.position} needs review: {placement.reason}"
        )
    else:
        logger.debug(f"Page {new_page.id} placed at position {placement.position}: {placement.reason}")

    return ordered, placement


def move_pages(pages: list[Page], page_orders: dict[int, int]) -> list[Page]:
    """Apply a manual order.

    Moved pages land at their requested positions (clamped, first free slot
    on collision); the rest keep their relative order in the remaining
    slots. Moving a page confirms its placement.

    Args:
        pages: All pages of one project
        page_orders: page id -> requested position

    Raises:
        NotFoundError: If a page id is not part of pages
    """
    ordered = _by_position(pages)
    by_id = {p.id: p for p in ordered}
    unknown = set(page_orders) - set(by_id)
    if unknown:
        raise NotFoundError(f"Pages not in project: {sorted(unknown)}")

    size = len(ordered)
    slots: list[Page | None] = [None] * size

    for page_id, requested in sorted(page_orders.items(), key=lambda kv: (kv[1], kv[0])):
        position = min(max(requested, 0), size - 1)
        free = [i for i in range(position, size) if slots[i] is None]
        if not free:
            free = [i for i in range(position, -1, -1) if slots[i] is None]
        slots[free[0]] = by_id[page_id]
        by_id[page_id].placement_uncertain = False

    rest = iter(p for p in ordered if p.id not in page_orders)
    result = [slot if slot is not None else next(rest) for slot in slots]

    for position, page in enumerate(result):
        page.sort_position = position
    return result


def confirm_placement(page: Page) -> None:
    """Mark a best-guess placement as checked by a human."""
    page.placement_uncertain = False


def needs_review(pages: list[Page]) -> list[Page]:
    """Pages whose placement still awaits confirmation, in order."""
    return [p for p in _by_position(pages) if p.placement_uncertain]
