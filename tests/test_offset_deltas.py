"""Tests for translating diffs into per-suggestion offset deltas."""

from __future__ import annotations

from draftsync.editor.content_diff import calculate_content_diff
from draftsync.editor.models import ContentDiff, DiffType
from draftsync.editor.offset_deltas import OffsetDeltaCalculator, calculate_deltas, sort_diffs

CONTENT = "I like cats. I like dogs."


class TestOffsetDeltaCalculator:
    def test_suggestion_after_insert_is_shifted(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        new_content = CONTENT.replace("I like cats", "I like tiny cats")
        diffs = calculate_content_diff(CONTENT, new_content)

        (delta,) = calculate_deltas(diffs, [dogs])

        assert delta.is_valid
        assert delta.requires_update
        assert (delta.old_start_offset, delta.old_end_offset) == (dogs.start_offset, dogs.end_offset)
        assert delta.new_start_offset == new_content.index("dogs")
        assert new_content[delta.new_start_offset : delta.new_end_offset] == "dogs"

    def test_suggestion_before_edit_is_unchanged(self, make_suggestion) -> None:
        cats = make_suggestion("cats", CONTENT, "cats")
        new_content = CONTENT.replace("dogs", "wolves")

        (delta,) = calculate_deltas(calculate_content_diff(CONTENT, new_content), [cats])

        assert delta.is_valid
        assert not delta.requires_update
        assert (delta.new_start_offset, delta.new_end_offset) == (cats.start_offset, cats.end_offset)

    def test_edit_inside_anchor_invalidates(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        new_content = CONTENT.replace("dogs", "")

        (delta,) = calculate_deltas(calculate_content_diff(CONTENT, new_content), [dogs])

        assert not delta.is_valid
        assert not delta.requires_update
        assert (delta.new_start_offset, delta.new_end_offset) == (dogs.start_offset, dogs.end_offset)

    def test_insert_at_anchor_start_shifts_instead_of_invalidating(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        insert = ContentDiff(DiffType.INSERT, dogs.start_offset, dogs.start_offset, "", "big ")

        (delta,) = calculate_deltas([insert], [dogs])

        assert delta.is_valid
        assert delta.new_start_offset == dogs.start_offset + 4

    def test_insert_at_anchor_end_leaves_it_in_place(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        insert = ContentDiff(DiffType.INSERT, dogs.end_offset, dogs.end_offset, "", "!!")

        (delta,) = calculate_deltas([insert], [dogs])

        assert delta.is_valid
        assert not delta.requires_update

    def test_insert_strictly_inside_anchor_invalidates(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        insert = ContentDiff(DiffType.INSERT, dogs.start_offset + 2, dogs.start_offset + 2, "", "x")

        (delta,) = calculate_deltas([insert], [dogs])

        assert not delta.is_valid

    def test_multiple_diffs_accumulate(self, make_suggestion) -> None:
        dogs = make_suggestion("dogs", CONTENT, "dogs")
        diffs = [
            ContentDiff(DiffType.INSERT, 0, 0, "", "Well, ", timestamp=1.0),
            ContentDiff(DiffType.DELETE, 7, 12, "cats.", "", timestamp=2.0),
        ]

        (delta,) = OffsetDeltaCalculator().calculate_deltas(diffs, [dogs])

        assert delta.is_valid
        assert delta.new_start_offset == dogs.start_offset + 6 - 5

    def test_one_delta_per_suggestion_in_input_order(self, make_suggestion) -> None:
        suggestions = [make_suggestion("dogs", CONTENT, "dogs"), make_suggestion("cats", CONTENT, "cats")]
        deltas = calculate_deltas([], suggestions)
        assert [delta.suggestion_id for delta in deltas] == ["dogs", "cats"]
        assert not any(delta.requires_update for delta in deltas)


def test_sort_diffs_orders_by_timestamp_then_position() -> None:
    late = ContentDiff(DiffType.INSERT, 0, 0, "", "a", timestamp=2.0)
    early_far = ContentDiff(DiffType.INSERT, 9, 9, "", "b", timestamp=1.0)
    early_near = ContentDiff(DiffType.INSERT, 3, 3, "", "c", timestamp=1.0)
    assert sort_diffs([late, early_far, early_near]) == [early_near, early_far, late]
