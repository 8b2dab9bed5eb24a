"""
Half-open time range arithmetic shared by bookings and availability slots.

A range ``[start, end)`` includes its start and excludes its end, so a booking
ending at 11:00 and another starting at 11:00 do not overlap. The in-memory
predicates and the ORM filters below encode the same rule.
"""

from typing import NamedTuple
from datetime import datetime

from django.db.models import Q

from .exceptions import ValidationError


class TimeRange(NamedTuple):
    start: datetime
    end: datetime


def validate_range(start, end):
    """
    Reject missing, zero-length and inverted ranges.

    Raises:
        ValidationError: If either bound is missing or end <= start
    """
    if start is None or end is None:
        raise ValidationError('Both start and end times are required.')

    if end <= start:
        raise ValidationError({
            'end_time': ['End time must be after start time.']
        })


def overlaps(existing: TimeRange, candidate: TimeRange) -> bool:
    """Return True if the two half-open ranges share any instant."""
    return existing.start < candidate.end and candidate.start < existing.end


def contains(window: TimeRange, candidate: TimeRange) -> bool:
    """Return True if ``candidate`` lies entirely inside ``window``."""
    return window.start <= candidate.start and window.end >= candidate.end


def overlap_filter(start, end) -> Q:
    """ORM equivalent of :func:`overlaps` against ``start_time``/``end_time`` columns."""
    return Q(start_time__lt=end, end_time__gt=start)


def containing_filter(start, end) -> Q:
    """ORM equivalent of :func:`contains` with the row as the window."""
    return Q(start_time__lte=start, end_time__gte=end)
