"""
Booking coordinator.

The only code that writes bookings together with the availability ledger.
Each operation runs in one transaction holding the spot row lock, which
serializes everything that can change what a spot is booked for.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import availability
from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .models import Booking
from .signals import booking_created, booking_status_changed
from .state_machine import (
    BLOCKING_STATUSES,
    RELEASING_STATUSES,
    apply_transition,
    resolve_actor,
)
from .timeranges import overlap_filter, validate_range

logger = logging.getLogger(__name__)


def blocking_bookings(spot, start, end):
    """Bookings that hold any part of ``[start, end)`` on ``spot``."""
    return Booking.objects.filter(
        spot=spot,
        booking_status__in=BLOCKING_STATUSES,
    ).filter(overlap_filter(start, end))


def create_booking(spot_id, driver, start, end, price, now=None):
    """
    Reserve a spot for a driver.

    Steps, all inside one transaction with the spot row locked:
    1. Resolve the spot (404 if missing)
    2. Validate the range, price, driver and spot state
    3. Refuse if any blocking booking overlaps the range (409)
    4. Refuse if no open availability slot covers the range (409)
    5. Insert the booking as pending/pending and carve the covering slot

    Args:
        spot_id: Spot primary key
        driver: Driver user making the booking
        start: Booking start (inclusive)
        end: Booking end (exclusive)
        price: Total price, must be > 0
        now: Current time, defaults to timezone.now()

    Returns:
        Booking: The created booking

    Raises:
        NotFoundError: Spot does not exist
        ValidationError: Bad range, start in the past, or non-positive price
        ForbiddenError: User is not a driver
        InvalidStateError: Spot is not active or not available
        ConflictError: Range overlaps a blocking booking or is not covered by open availability
    """
    now = now or timezone.now()
    require_window = getattr(settings, 'PARKING_REQUIRE_AVAILABILITY_WINDOW', True)

    with transaction.atomic():
        spot = availability.lock_spot(spot_id)

        validate_range(start, end)
        if start < now:
            raise ValidationError({'start_time': ['Booking cannot start in the past.']})

        price = Decimal(str(price)) if price is not None else None
        if price is None or price <= 0:
            raise ValidationError({'total_price': ['Total price must be greater than 0.']})

        if not driver.is_driver():
            raise ForbiddenError('Only drivers can create bookings.')

        if not spot.accepts_bookings():
            raise InvalidStateError('This parking spot is not accepting bookings.')

        conflict = blocking_bookings(spot, start, end).order_by('start_time').first()
        if conflict is not None:
            logger.warning(
                f"Booking conflict detected. Spot ID: {spot.pk}, "
                f"Requested: {start} - {end}, "
                f"Conflicting Booking ID: {conflict.pk} "
                f"({conflict.start_time} - {conflict.end_time}, {conflict.booking_status}), "
                f"Driver ID: {driver.pk}"
            )
            raise ConflictError(
                'This spot is already booked during the requested time. '
                'Please choose a different time or spot.'
            )

        if require_window and availability.find_covering_slot(spot, start, end) is None:
            logger.warning(
                f"Booking outside declared availability. Spot ID: {spot.pk}, "
                f"Requested: {start} - {end}, Driver ID: {driver.pk}"
            )
            raise ConflictError(
                'The requested time is not within an open availability window for this spot.'
            )

        booking = Booking.objects.create(
            spot=spot,
            driver=driver,
            homeowner_id=spot.homeowner_id,
            start_time=start,
            end_time=end,
            total_price=price,
            booking_status=Booking.STATUS_PENDING,
            payment_status=Booking.PAYMENT_PENDING,
        )

        availability.carve(spot, start, end)

        booking_created.send(sender=Booking, booking=booking)

    logger.info(
        f"Booking created successfully. Booking ID: {booking.pk}, "
        f"Spot ID: {spot.pk}, Homeowner ID: {booking.homeowner_id}, "
        f"Driver ID: {driver.pk}, {start} - {end}, Price: {price}"
    )
    return booking


def transition_booking(booking_id, user, target, now=None):
    """
    Move a booking to ``target`` status on behalf of ``user``.

    Rejected and cancelled bookings give their time back to the availability
    ledger in the same transaction.

    Returns:
        Booking: The updated booking

    Raises:
        NotFoundError: Booking does not exist
        ForbiddenError: User is not a party, or the wrong party for the change
        InvalidTransitionError: The change is not allowed from the current status
    """
    spot_id = Booking.objects.filter(pk=booking_id).values_list('spot_id', flat=True).first()
    if spot_id is None:
        raise NotFoundError(f'Booking with ID {booking_id} does not exist.')

    with transaction.atomic():
        spot = availability.lock_spot(spot_id)
        booking = Booking.objects.select_for_update().get(pk=booking_id)

        actor = resolve_actor(booking, user)
        previous_status = booking.booking_status
        changed = apply_transition(booking, target, actor, now=now)
        booking.save(update_fields=changed)

        if target in RELEASING_STATUSES:
            availability.release(spot, booking.start_time, booking.end_time)

        booking_status_changed.send(
            sender=Booking,
            booking=booking,
            previous_status=previous_status,
            actor=actor,
        )

    logger.info(
        f"Booking status updated. Booking ID: {booking.pk}, "
        f"Old Status: {previous_status}, New Status: {booking.booking_status}, "
        f"Actor: {actor.role} (User ID: {user.pk})"
    )
    return booking


def get_booking_for(booking_id, user):
    """
    Fetch a booking visible to ``user`` (its driver, its homeowner or an admin).

    Raises:
        NotFoundError: Booking does not exist
        ForbiddenError: User is not a party to the booking
    """
    try:
        booking = Booking.objects.select_related('spot', 'driver', 'homeowner').get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f'Booking with ID {booking_id} does not exist.')

    resolve_actor(booking, user)
    return booking
