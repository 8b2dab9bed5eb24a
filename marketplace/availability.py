"""
Availability ledger: the windows in which each spot can be booked.

Every write locks the spot row first (``SELECT ... FOR UPDATE``), so ledger
changes and booking creation for one spot are applied one at a time while
other spots proceed independently. ``carve`` and ``release`` are called only
by ``marketplace.bookings`` from inside its own spot-locked transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import transaction
from django.utils import timezone

from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .models import AvailabilitySlot, Booking, ParkingSpot
from .state_machine import BLOCKING_STATUSES
from .timeranges import containing_filter, overlap_filter, validate_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotUpdate:
    """Fields to change on a slot. ``None`` leaves a field untouched."""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_booked: Optional[bool] = None


def lock_spot(spot_id):
    """
    Lock and return a spot row for the rest of the current transaction.

    Raises:
        NotFoundError: If the spot does not exist
    """
    try:
        return ParkingSpot.objects.select_for_update().get(pk=spot_id)
    except ParkingSpot.DoesNotExist:
        raise NotFoundError(f'Parking spot with ID {spot_id} does not exist.')


def _ensure_can_manage(spot, user):
    if not (user.is_platform_admin() or spot.homeowner_id == user.pk):
        raise ForbiddenError('Only the owner of this spot can manage its availability.')


def _find_overlapping_open_slot(spot, start, end, exclude_pk=None):
    queryset = AvailabilitySlot.objects.filter(spot=spot, is_booked=False).filter(
        overlap_filter(start, end)
    )
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    return queryset.order_by('start_time').first()


def declare(spot_id, user, start, end, now=None):
    """
    Open a new bookable window on a spot.

    Args:
        spot_id: Spot primary key
        user: Requesting user (spot owner or administrator)
        start: Window start (inclusive)
        end: Window end (exclusive)
        now: Current time, defaults to timezone.now()

    Returns:
        AvailabilitySlot: The created, unbooked slot

    Raises:
        ValidationError: end <= start, or the window has already ended
        NotFoundError: Spot does not exist
        ForbiddenError: User does not own the spot
        ConflictError: Window overlaps another unbooked slot of the spot
    """
    validate_range(start, end)
    now = now or timezone.now()
    if end <= now:
        raise ValidationError({'end_time': ['Availability must end in the future.']})

    with transaction.atomic():
        spot = lock_spot(spot_id)
        _ensure_can_manage(spot, user)

        clash = _find_overlapping_open_slot(spot, start, end)
        if clash is not None:
            logger.warning(
                f"Availability overlap on spot {spot.pk}: requested {start} - {end}, "
                f"existing slot {clash.pk} ({clash.start_time} - {clash.end_time}), "
                f"User ID: {user.pk}"
            )
            raise ConflictError(
                'This window overlaps an existing open availability slot for the spot.'
            )

        slot = AvailabilitySlot.objects.create(spot=spot, start_time=start, end_time=end)

    logger.info(
        f"Availability declared. Slot ID: {slot.pk}, Spot ID: {spot.pk}, "
        f"{start} - {end}, User ID: {user.pk}"
    )
    return slot


def query(spot_id, start=None, end=None):
    """
    List a spot's slots, booked and unbooked, ordered by start time.

    When bounds are given only slots intersecting them are returned.

    Raises:
        NotFoundError: Spot does not exist
        ValidationError: Both bounds given and end <= start
    """
    if not ParkingSpot.objects.filter(pk=spot_id).exists():
        raise NotFoundError(f'Parking spot with ID {spot_id} does not exist.')

    queryset = AvailabilitySlot.objects.filter(spot_id=spot_id)

    if start is not None and end is not None:
        validate_range(start, end)
        queryset = queryset.filter(overlap_filter(start, end))
    elif start is not None:
        queryset = queryset.filter(end_time__gt=start)
    elif end is not None:
        queryset = queryset.filter(start_time__lt=end)

    return queryset.order_by('start_time', 'pk')


def update(slot_id, user, changes):
    """
    Apply a :class:`SlotUpdate` to a slot.

    Bounds of a booked slot are fixed because a booking occupies exactly that
    range. Reopening a booked slot is refused while a booking still holds the
    range. Whenever the resulting slot is unbooked it must not overlap any
    other unbooked slot of the spot.

    Returns:
        AvailabilitySlot: The updated slot

    Raises:
        NotFoundError: Slot does not exist
        ForbiddenError: User does not own the spot
        ValidationError: Resulting end <= start
        InvalidStateError: Moving a booked slot, or reopening one still held by a booking
        ConflictError: Resulting open slot overlaps another open slot
    """
    spot_id = AvailabilitySlot.objects.filter(pk=slot_id).values_list('spot_id', flat=True).first()
    if spot_id is None:
        raise NotFoundError(f'Availability slot with ID {slot_id} does not exist.')

    with transaction.atomic():
        spot = lock_spot(spot_id)
        _ensure_can_manage(spot, user)
        try:
            slot = AvailabilitySlot.objects.select_for_update().get(pk=slot_id)
        except AvailabilitySlot.DoesNotExist:
            raise NotFoundError(f'Availability slot with ID {slot_id} does not exist.')

        start = changes.start_time if changes.start_time is not None else slot.start_time
        end = changes.end_time if changes.end_time is not None else slot.end_time
        is_booked = changes.is_booked if changes.is_booked is not None else slot.is_booked
        validate_range(start, end)

        bounds_changed = start != slot.start_time or end != slot.end_time

        if slot.is_booked and bounds_changed:
            raise InvalidStateError('The time range of a booked slot cannot be changed.')

        if slot.is_booked and not is_booked:
            held = Booking.objects.filter(
                spot=spot,
                start_time=slot.start_time,
                end_time=slot.end_time,
                booking_status__in=BLOCKING_STATUSES,
            ).exists()
            if held:
                raise InvalidStateError('This slot is still held by an active booking.')

        if not is_booked and (bounds_changed or slot.is_booked):
            clash = _find_overlapping_open_slot(spot, start, end, exclude_pk=slot.pk)
            if clash is not None:
                raise ConflictError(
                    'This window overlaps an existing open availability slot for the spot.'
                )

        slot.start_time = start
        slot.end_time = end
        slot.is_booked = is_booked
        slot.save()

    logger.info(
        f"Availability updated. Slot ID: {slot.pk}, Spot ID: {spot.pk}, "
        f"{start} - {end}, booked={is_booked}, User ID: {user.pk}"
    )
    return slot


def remove(slot_id, user):
    """
    Delete an unbooked slot.

    Raises:
        NotFoundError: Slot does not exist
        ForbiddenError: User does not own the spot
        InvalidStateError: Slot is booked
    """
    spot_id = AvailabilitySlot.objects.filter(pk=slot_id).values_list('spot_id', flat=True).first()
    if spot_id is None:
        raise NotFoundError(f'Availability slot with ID {slot_id} does not exist.')

    with transaction.atomic():
        spot = lock_spot(spot_id)
        _ensure_can_manage(spot, user)
        try:
            slot = AvailabilitySlot.objects.select_for_update().get(pk=slot_id)
        except AvailabilitySlot.DoesNotExist:
            raise NotFoundError(f'Availability slot with ID {slot_id} does not exist.')

        if slot.is_booked:
            raise InvalidStateError('Booked availability slots cannot be deleted.')

        slot.delete()

    logger.info(f"Availability removed. Slot ID: {slot_id}, Spot ID: {spot_id}, User ID: {user.pk}")


def find_covering_slot(spot, start, end):
    """Return the unbooked slot that fully contains ``[start, end)``, if any."""
    return (
        AvailabilitySlot.objects.filter(spot=spot, is_booked=False)
        .filter(containing_filter(start, end))
        .order_by('start_time')
        .first()
    )


def covers_booking(spot_id, start, end):
    """True iff an unbooked slot of the spot fully contains ``[start, end)``."""
    return find_covering_slot(spot_id, start, end) is not None


def carve(spot, start, end):
    """
    Consume ``[start, end)`` from the unbooked slot that covers it.

    The covering slot becomes the booked slot for exactly the booking range;
    any time left before or after it is kept as new unbooked slots. Must be
    called with the spot row already locked.

    Returns:
        AvailabilitySlot or None: The booked slot, or None when no slot covers the range
    """
    slot = find_covering_slot(spot, start, end)
    if slot is None:
        return None

    if slot.start_time < start:
        AvailabilitySlot.objects.create(spot=spot, start_time=slot.start_time, end_time=start)
    if slot.end_time > end:
        AvailabilitySlot.objects.create(spot=spot, start_time=end, end_time=slot.end_time)

    slot.start_time = start
    slot.end_time = end
    slot.is_booked = True
    slot.save()
    return slot


def release(spot, start, end):
    """
    Return a booked range to the ledger after its booking ended early.

    The booked slot matching the range becomes unbooked again. If the owner
    has since opened another window overlapping that range, the booked slot
    is dropped instead so open slots never overlap. Must be called with the
    spot row already locked.

    Returns:
        AvailabilitySlot or None: The reopened slot, or None if nothing was reopened
    """
    slot = (
        AvailabilitySlot.objects.filter(spot=spot, start_time=start, end_time=end, is_booked=True)
        .order_by('-pk')
        .first()
    )
    if slot is None:
        return None

    if _find_overlapping_open_slot(spot, start, end) is not None:
        logger.info(
            f"Booked slot {slot.pk} on spot {spot.pk} overlaps a newer open slot; removing it."
        )
        slot.delete()
        return None

    slot.is_booked = False
    slot.save()
    return slot
