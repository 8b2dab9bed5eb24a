"""
Booking lifecycle rules.

Lifecycle::

    pending -> confirmed -> checked_in -> checked_out -> completed
    pending -> rejected
    pending | confirmed -> cancelled_by_driver | cancelled_by_homeowner
    pending -> checked_in            (arrival before confirmation)

Each target status has one rule naming the statuses it may be reached from,
the role allowed to request it and the timestamp recorded when it happens.
Administrators pass every role check and may complete a booking from any
non-terminal status; every other precondition applies to them as well.
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from django.utils import timezone

from .exceptions import ForbiddenError, InvalidTransitionError
from .models import Booking

DRIVER = 'driver'
HOMEOWNER = 'homeowner'
ADMIN = 'admin'

TERMINAL_STATUSES = frozenset({
    Booking.STATUS_REJECTED,
    Booking.STATUS_CANCELLED_BY_DRIVER,
    Booking.STATUS_CANCELLED_BY_HOMEOWNER,
    Booking.STATUS_COMPLETED,
})

# Statuses that hold the spot for their time range. checked_out still blocks
# until the homeowner completes the booking.
BLOCKING_STATUSES = frozenset(
    value for value, _label in Booking.STATUS_CHOICES if value not in TERMINAL_STATUSES
)

# Terminal statuses that hand the booked time back to the availability ledger.
RELEASING_STATUSES = frozenset({
    Booking.STATUS_REJECTED,
    Booking.STATUS_CANCELLED_BY_DRIVER,
    Booking.STATUS_CANCELLED_BY_HOMEOWNER,
})


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[str]
    actor: str
    timestamp_field: Optional[str] = None
    admin_bypasses_sources: bool = False


TRANSITIONS = {
    Booking.STATUS_CONFIRMED: TransitionRule(
        sources=frozenset({Booking.STATUS_PENDING}),
        actor=HOMEOWNER,
        timestamp_field='homeowner_confirm_time',
    ),
    Booking.STATUS_REJECTED: TransitionRule(
        sources=frozenset({Booking.STATUS_PENDING}),
        actor=HOMEOWNER,
        timestamp_field='homeowner_reject_time',
    ),
    Booking.STATUS_CANCELLED_BY_DRIVER: TransitionRule(
        sources=frozenset({Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED}),
        actor=DRIVER,
    ),
    Booking.STATUS_CANCELLED_BY_HOMEOWNER: TransitionRule(
        sources=frozenset({Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED}),
        actor=HOMEOWNER,
    ),
    Booking.STATUS_CHECKED_IN: TransitionRule(
        sources=frozenset({Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED}),
        actor=DRIVER,
        timestamp_field='driver_check_in_time',
    ),
    Booking.STATUS_CHECKED_OUT: TransitionRule(
        sources=frozenset({Booking.STATUS_CHECKED_IN}),
        actor=DRIVER,
        timestamp_field='driver_check_out_time',
    ),
    Booking.STATUS_COMPLETED: TransitionRule(
        sources=frozenset({Booking.STATUS_CHECKED_OUT}),
        actor=HOMEOWNER,
        admin_bypasses_sources=True,
    ),
}


@dataclass(frozen=True)
class Actor:
    """A user together with the role they play on one booking."""
    user: object
    role: str

    @property
    def is_admin(self):
        return self.role == ADMIN


def resolve_actor(booking, user):
    """
    Work out which role ``user`` plays on ``booking``.

    Returns:
        Actor: role 'admin', 'driver' or 'homeowner'

    Raises:
        ForbiddenError: If the user is not a party to the booking
    """
    if user.is_platform_admin():
        return Actor(user=user, role=ADMIN)
    if user.pk == booking.driver_id:
        return Actor(user=user, role=DRIVER)
    if user.pk == booking.homeowner_id:
        return Actor(user=user, role=HOMEOWNER)
    raise ForbiddenError('You do not have permission to modify this booking.')


def check_transition(booking, target, actor):
    """
    Validate a requested status change without applying it.

    Checks run in this order: terminal status, known target, actor role,
    source status.

    Args:
        booking: Booking instance (current status is read from it)
        target: Requested booking status
        actor: Actor requesting the change

    Returns:
        TransitionRule: The rule that allows the change

    Raises:
        InvalidTransitionError: Terminal source, unknown target or wrong source status
        ForbiddenError: Actor role does not match the rule
    """
    current = booking.booking_status

    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f'Cannot change a booking that is already {current}.'
        )

    rule = TRANSITIONS.get(target)
    if rule is None:
        raise InvalidTransitionError(
            f'Invalid status transition from {current} to {target}.'
        )

    if not actor.is_admin and actor.role != rule.actor:
        raise ForbiddenError(f'Only the {rule.actor} can set a booking to {target}.')

    if current not in rule.sources and not (actor.is_admin and rule.admin_bypasses_sources):
        allowed = ', '.join(sorted(rule.sources))
        raise InvalidTransitionError(
            f'Cannot change booking from {current} to {target}. '
            f'Allowed only from: {allowed}.'
        )

    return rule


def apply_transition(booking, target, actor, now=None):
    """
    Validate and apply a status change to ``booking`` in memory.

    The caller saves the booking; the returned field names are suitable for
    ``save(update_fields=...)``.

    Returns:
        list: Names of the fields that changed
    """
    rule = check_transition(booking, target, actor)

    booking.booking_status = target
    changed = ['booking_status', 'updated_at']

    if rule.timestamp_field:
        setattr(booking, rule.timestamp_field, now or timezone.now())
        changed.append(rule.timestamp_field)

    return changed
