"""
Tests for half-open time range arithmetic.

The in-memory predicates and the ORM filters must agree, including on the
boundary where one range ends exactly when the next begins.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from marketplace.exceptions import ValidationError
from marketplace.models import AvailabilitySlot
from marketplace.timeranges import (
    TimeRange,
    contains,
    containing_filter,
    overlap_filter,
    overlaps,
    validate_range,
)

T0 = datetime(2030, 1, 1, 8, 0, tzinfo=dt_timezone.utc)


def at(hours):
    return T0 + timedelta(hours=hours)


class TestOverlaps:

    def test_adjacent_ranges_do_not_overlap(self):
        assert not overlaps(TimeRange(at(1), at(3)), TimeRange(at(3), at(5)))
        assert not overlaps(TimeRange(at(3), at(5)), TimeRange(at(1), at(3)))

    def test_partial_overlap(self):
        assert overlaps(TimeRange(at(1), at(3)), TimeRange(at(2), at(4)))

    def test_nested_range_overlaps(self):
        assert overlaps(TimeRange(at(0), at(10)), TimeRange(at(2), at(3)))
        assert overlaps(TimeRange(at(2), at(3)), TimeRange(at(0), at(10)))

    def test_identical_ranges_overlap(self):
        assert overlaps(TimeRange(at(1), at(2)), TimeRange(at(1), at(2)))

    def test_disjoint_ranges(self):
        assert not overlaps(TimeRange(at(0), at(1)), TimeRange(at(5), at(6)))

    def test_symmetry(self):
        pairs = [
            (TimeRange(at(0), at(2)), TimeRange(at(1), at(3))),
            (TimeRange(at(0), at(2)), TimeRange(at(2), at(3))),
            (TimeRange(at(0), at(5)), TimeRange(at(1), at(2))),
        ]
        for a, b in pairs:
            assert overlaps(a, b) == overlaps(b, a)


class TestContains:

    def test_window_contains_itself(self):
        window = TimeRange(at(0), at(4))
        assert contains(window, window)

    def test_inner_range_contained(self):
        assert contains(TimeRange(at(0), at(4)), TimeRange(at(1), at(3)))

    def test_range_sticking_out_not_contained(self):
        assert not contains(TimeRange(at(0), at(4)), TimeRange(at(3), at(5)))
        assert not contains(TimeRange(at(1), at(4)), TimeRange(at(0), at(2)))


class TestValidateRange:

    def test_valid_range_passes(self):
        validate_range(at(0), at(1))

    def test_zero_length_range_rejected(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_range(at(1), at(1))
        assert 'end_time' in excinfo.value.detail

    def test_inverted_range_rejected(self):
        with pytest.raises(ValidationError):
            validate_range(at(2), at(1))

    def test_missing_bound_rejected(self):
        with pytest.raises(ValidationError):
            validate_range(None, at(1))


@pytest.mark.django_db
class TestOrmFilters:
    """The ORM filters select exactly the rows the predicates accept."""

    def test_overlap_filter_excludes_adjacent_rows(self, active_spot, base_time):
        before = AvailabilitySlot.objects.create(
            spot=active_spot, start_time=base_time, end_time=base_time + timedelta(hours=2)
        )
        inside = AvailabilitySlot.objects.create(
            spot=active_spot,
            start_time=base_time + timedelta(hours=3),
            end_time=base_time + timedelta(hours=4),
        )
        after = AvailabilitySlot.objects.create(
            spot=active_spot,
            start_time=base_time + timedelta(hours=5),
            end_time=base_time + timedelta(hours=6),
        )

        start = base_time + timedelta(hours=2)
        end = base_time + timedelta(hours=5)
        matched = set(
            AvailabilitySlot.objects.filter(overlap_filter(start, end)).values_list('pk', flat=True)
        )

        assert matched == {inside.pk}
        for slot in (before, inside, after):
            expected = overlaps(TimeRange(slot.start_time, slot.end_time), TimeRange(start, end))
            assert (slot.pk in matched) == expected

    def test_containing_filter_matches_exact_and_wider_windows(self, active_spot, base_time):
        exact = AvailabilitySlot.objects.create(
            spot=active_spot,
            start_time=base_time + timedelta(hours=1),
            end_time=base_time + timedelta(hours=2),
        )
        short = AvailabilitySlot.objects.create(
            spot=active_spot,
            start_time=base_time + timedelta(hours=3),
            end_time=base_time + timedelta(hours=4),
        )

        matched = set(
            AvailabilitySlot.objects.filter(
                containing_filter(base_time + timedelta(hours=1), base_time + timedelta(hours=2))
            ).values_list('pk', flat=True)
        )

        assert exact.pk in matched
        assert short.pk not in matched
