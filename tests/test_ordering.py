"""Tests for ordering module."""

import pytest
from folioscan.errors import NotFoundError
from folioscan.ordering import (
    HINT_SEQUENCE,
    HINT_TIMESTAMP,
    confirm_placement,
    filename_hint,
    insert,
    move_pages,
    needs_review,
    place,
    reorder,
)

from conftest import make_page


def sequence(*keys):
    """Ordered pages with the given sort keys, ids 1..n."""
    return [make_page(i + 1, key, position=i) for i, key in enumerate(keys)]


class TestReorder:
    """Full reorder by page number."""

    def test_keyed_before_unkeyed(self):
        """Numbered pages come first, ascending; unnumbered keep creation order."""
        pages = [
            make_page(1, None),
            make_page(2, 30),
            make_page(3, None),
            make_page(4, 4),
            make_page(5, 12),
            make_page(6, None),
        ]
        ordered = reorder(pages)
        assert [p.id for p in ordered] == [4, 5, 2, 1, 3, 6]
        assert [p.sort_position for p in ordered] == [0, 1, 2, 3, 4, 5]

    def test_equal_keys_by_creation_order(self):
        """Duplicate page numbers keep creation order."""
        ordered = reorder([make_page(3, 5), make_page(1, 5), make_page(2, 1)])
        assert [p.id for p in ordered] == [2, 1, 3]

    def test_idempotent(self):
        """Reordering the output again changes nothing."""
        pages = [make_page(i, key) for i, key in enumerate([9, None, 2, 2, None, 40], start=1)]
        first = {p.id: p.sort_position for p in reorder(pages)}
        second = {p.id: p.sort_position for p in reorder(pages)}
        assert first == second

    def test_clears_uncertainty(self):
        """A full reorder supersedes earlier best-guess placements."""
        page = make_page(1, 3)
        page.placement_uncertain = True
        reorder([page])
        assert page.placement_uncertain is False

    def test_empty(self):
        """No pages, nothing to do."""
        assert reorder([]) == []


class TestPlace:
    """Placement of a page added after ordering."""

    def test_between_adjacent_neighbours(self):
        """15 into [10, 20, 30] goes between 10 and 20, confidently."""
        placement = place(make_page(9, 15), sequence(10, 20, 30))
        assert placement.position == 1
        assert placement.confident is True

    def test_no_page_number(self):
        """A page without a number is never placed confidently."""
        placement = place(make_page(9, None), sequence(10, 20, 30))
        assert placement.confident is False
        assert placement.position == 3

    def test_collision(self):
        """Same page number as an existing page: after it, unconfident."""
        placement = place(make_page(9, 20), sequence(10, 20, 30))
        assert placement.position == 2
        assert placement.confident is False

    def test_extends_end_by_one(self):
        """max + 1 is appended confidently."""
        placement = place(make_page(9, 31), sequence(10, 20, 30))
        assert placement.position == 3
        assert placement.confident is True

    def test_extends_start_by_one(self):
        """min - 1 is prepended confidently."""
        placement = place(make_page(9, 9), sequence(10, 20, 30))
        assert placement.position == 0
        assert placement.confident is True

    def test_gap_at_end(self):
        """Far past the last page: appended but flagged."""
        placement = place(make_page(9, 80), sequence(10, 20, 30))
        assert placement.position == 3
        assert placement.confident is False

    def test_gap_at_start(self):
        """Far before the first page: prepended but flagged."""
        placement = place(make_page(9, 2), sequence(10, 20, 30))
        assert placement.position == 0
        assert placement.confident is False

    def test_neighbours_separated_by_unnumbered_page(self):
        """Other pages between the numeric neighbours make it a guess."""
        existing = [make_page(1, 10, 0), make_page(2, None, 1), make_page(3, 20, 2)]
        placement = place(make_page(9, 15, filename="late.jpg"), existing)
        assert placement.confident is False
        assert placement.position == 1

    def test_filename_hint_inside_window(self):
        """Within a gap the filename sequence decides."""
        existing = [
            make_page(1, 10, 0, "scan_010.jpg"),
            make_page(2, None, 1, "scan_011.jpg"),
            make_page(3, None, 2, "scan_013.jpg"),
            make_page(4, 20, 3, "scan_014.jpg"),
        ]
        placement = place(make_page(9, 15, filename="scan_012.jpg"), existing)
        assert placement.position == 2
        assert placement.confident is False

    def test_unnumbered_uses_filename_hint(self):
        """Without a page number the filename picks the slot."""
        existing = [
            make_page(1, 1, 0, "IMG_20240101_100000.jpg"),
            make_page(2, 2, 1, "IMG_20240101_100200.jpg"),
        ]
        placement = place(make_page(9, None, filename="IMG_20240101_100100.jpg"), existing)
        assert placement.position == 1
        assert placement.confident is False

    def test_no_numbered_pages(self):
        """Nothing to anchor to: appended, flagged."""
        existing = [make_page(1, None, 0), make_page(2, None, 1)]
        placement = place(make_page(9, 5, filename="photo.jpg"), existing)
        assert placement.position == 2
        assert placement.confident is False

    def test_into_empty_project(self):
        """The first page goes to position 0."""
        placement = place(make_page(1, 1), [])
        assert placement.position == 0

    def test_ignores_itself(self):
        """The new page may already be in the list it is placed into."""
        existing = sequence(10, 20, 30)
        new_page = make_page(9, 15, position=3)
        placement = place(new_page, existing + [new_page])
        assert placement.position == 1
        assert placement.confident is True


class TestInsert:
    """Applying a placement."""

    def test_renumbers_contiguously(self):
        """Positions stay 0..n-1 after insertion."""
        new_page = make_page(9, 15)
        ordered, placement = insert(new_page, sequence(10, 20, 30))
        assert [p.sort_key for p in ordered] == [10, 15, 20, 30]
        assert [p.sort_position for p in ordered] == [0, 1, 2, 3]
        assert new_page.placement_uncertain is False
        assert placement.confident

    def test_flags_uncertain_page(self):
        """An unconfident placement marks the page for review."""
        new_page = make_page(9, None)
        ordered, placement = insert(new_page, sequence(10, 20))
        assert ordered[-1] is new_page
        assert new_page.placement_uncertain is True
        assert needs_review(ordered) == [new_page]

    def test_warns_on_uncertain_placement(self, caplog):
        """Ambiguous placements are logged as warnings."""
        with caplog.at_level("WARNING", logger="folioscan.ordering"):
            insert(make_page(9, 20), sequence(10, 20, 30))
        assert "needs review" in caplog.text

    def test_confirm_placement(self):
        """Human confirmation clears the flag."""
        new_page = make_page(9, None)
        insert(new_page, sequence(1, 2))
        confirm_placement(new_page)
        assert new_page.placement_uncertain is False


class TestFilenameHint:
    """Ordering hints from upload filenames."""

    def test_camera_timestamp(self):
        """IMG_YYYYMMDD_HHMMSS yields a timestamp hint."""
        assert filename_hint("IMG_20240315_142530.jpg") == (HINT_TIMESTAMP, 20240315142530)

    def test_dashed_timestamp(self):
        """YYYY-MM-DD_HH-MM-SS yields a timestamp hint."""
        assert filename_hint("2024-03-15_14-25-30.png") == (HINT_TIMESTAMP, 20240315142530)

    def test_trailing_number(self):
        """The last digit run is a sequence hint."""
        assert filename_hint("book2_scan_0042.tif") == (HINT_SEQUENCE, 42)

    def test_no_digits(self):
        """No digits, no hint."""
        assert filename_hint("cover.jpg") is None
        assert filename_hint(None) is None


class TestMovePages:
    """Manual ordering."""

    def test_move_to_front(self):
        """Moved page takes its slot; the rest keep their order."""
        pages = sequence(1, 2, 3, 4)
        result = move_pages(pages, {4: 0})
        assert [p.id for p in result] == [4, 1, 2, 3]
        assert [p.sort_position for p in result] == [0, 1, 2, 3]

    def test_swap(self):
        """Two pages can trade places."""
        result = move_pages(sequence(1, 2, 3), {1: 2, 3: 0})
        assert [p.id for p in result] == [3, 2, 1]

    def test_out_of_range_clamped(self):
        """Requested positions past the end go last."""
        result = move_pages(sequence(1, 2, 3), {1: 99})
        assert [p.id for p in result] == [2, 3, 1]

    def test_clears_uncertainty_on_moved_pages(self):
        """Moving a page is a human decision about its place."""
        pages = sequence(1, 2)
        pages[1].placement_uncertain = True
        move_pages(pages, {2: 0})
        assert pages[1].placement_uncertain is False

    def test_unknown_page(self):
        """Ids outside the project are rejected."""
        with pytest.raises(NotFoundError):
            move_pages(sequence(1, 2), {7: 0})
