"""
Tests for the booking lifecycle rules.

Covers:
- Every allowed transition and the timestamp it records
- Role checks (driver vs homeowner vs administrator)
- Terminal statuses accept no further change
- Check order: terminal, unknown target, role, source
"""

from datetime import datetime, timezone as dt_timezone

import pytest
from django.contrib.auth import get_user_model

from marketplace.exceptions import ForbiddenError, InvalidTransitionError
from marketplace.models import Booking
from marketplace.state_machine import (
    ADMIN,
    BLOCKING_STATUSES,
    DRIVER,
    HOMEOWNER,
    RELEASING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    Actor,
    apply_transition,
    check_transition,
    resolve_actor,
)

User = get_user_model()

NOW = datetime(2030, 5, 1, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def driver():
    return User(id=1, username='d', email='d@test.com', user_type='driver')


@pytest.fixture
def homeowner():
    return User(id=2, username='h', email='h@test.com', user_type='homeowner')


@pytest.fixture
def admin():
    return User(id=3, username='a', email='a@test.com', user_type='admin')


@pytest.fixture
def stranger():
    return User(id=4, username='s', email='s@test.com', user_type='driver')


def booking_in(status):
    return Booking(id=10, driver_id=1, homeowner_id=2, spot_id=5, booking_status=status)


class TestStatusSets:

    def test_checked_out_is_not_terminal_but_blocks(self):
        assert Booking.STATUS_CHECKED_OUT not in TERMINAL_STATUSES
        assert Booking.STATUS_CHECKED_OUT in BLOCKING_STATUSES

    def test_blocking_and_terminal_partition_all_statuses(self):
        all_statuses = {value for value, _ in Booking.STATUS_CHOICES}
        assert BLOCKING_STATUSES | TERMINAL_STATUSES == all_statuses
        assert not BLOCKING_STATUSES & TERMINAL_STATUSES

    def test_completed_does_not_release_time(self):
        assert Booking.STATUS_COMPLETED not in RELEASING_STATUSES


class TestResolveActor:

    def test_roles(self, driver, homeowner, admin):
        booking = booking_in(Booking.STATUS_PENDING)
        assert resolve_actor(booking, driver).role == DRIVER
        assert resolve_actor(booking, homeowner).role == HOMEOWNER
        assert resolve_actor(booking, admin).role == ADMIN

    def test_superuser_is_admin(self):
        superuser = User(id=9, username='root', email='r@test.com', user_type='driver', is_superuser=True)
        assert resolve_actor(booking_in(Booking.STATUS_PENDING), superuser).is_admin

    def test_stranger_forbidden(self, stranger):
        with pytest.raises(ForbiddenError):
            resolve_actor(booking_in(Booking.STATUS_PENDING), stranger)


class TestAllowedTransitions:

    @pytest.mark.parametrize('source,target,role,timestamp_field', [
        ('pending', 'confirmed', HOMEOWNER, 'homeowner_confirm_time'),
        ('pending', 'rejected', HOMEOWNER, 'homeowner_reject_time'),
        ('pending', 'cancelled_by_driver', DRIVER, None),
        ('confirmed', 'cancelled_by_driver', DRIVER, None),
        ('pending', 'cancelled_by_homeowner', HOMEOWNER, None),
        ('confirmed', 'cancelled_by_homeowner', HOMEOWNER, None),
        ('pending', 'checked_in', DRIVER, 'driver_check_in_time'),
        ('confirmed', 'checked_in', DRIVER, 'driver_check_in_time'),
        ('checked_in', 'checked_out', DRIVER, 'driver_check_out_time'),
        ('checked_out', 'completed', HOMEOWNER, None),
    ])
    def test_transition_applies(self, source, target, role, timestamp_field, driver, homeowner):
        user = driver if role == DRIVER else homeowner
        booking = booking_in(source)

        changed = apply_transition(booking, target, Actor(user=user, role=role), now=NOW)

        assert booking.booking_status == target
        assert 'booking_status' in changed
        if timestamp_field:
            assert getattr(booking, timestamp_field) == NOW
            assert timestamp_field in changed


class TestRejectedTransitions:

    @pytest.mark.parametrize('terminal', sorted(TERMINAL_STATUSES))
    def test_terminal_statuses_accept_nothing(self, terminal, admin):
        for target in TRANSITIONS:
            with pytest.raises(InvalidTransitionError):
                check_transition(booking_in(terminal), target, Actor(user=admin, role=ADMIN))

    def test_terminal_checked_before_role(self, driver):
        # A driver confirming a rejected booking fails on the terminal status, not the role
        with pytest.raises(InvalidTransitionError):
            check_transition(
                booking_in(Booking.STATUS_REJECTED),
                Booking.STATUS_CONFIRMED,
                Actor(user=driver, role=DRIVER),
            )

    def test_unknown_target(self, homeowner):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('pending'), 'teleported', Actor(user=homeowner, role=HOMEOWNER))

    def test_pending_cannot_go_back_to_pending(self, homeowner):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('confirmed'), 'pending', Actor(user=homeowner, role=HOMEOWNER))

    def test_driver_cannot_confirm(self, driver):
        with pytest.raises(ForbiddenError):
            check_transition(booking_in('pending'), 'confirmed', Actor(user=driver, role=DRIVER))

    def test_homeowner_cannot_check_in(self, homeowner):
        with pytest.raises(ForbiddenError):
            check_transition(booking_in('confirmed'), 'checked_in', Actor(user=homeowner, role=HOMEOWNER))

    def test_role_checked_before_source(self, driver):
        # Wrong role and wrong source together report the role
        with pytest.raises(ForbiddenError):
            check_transition(booking_in('checked_in'), 'confirmed', Actor(user=driver, role=DRIVER))

    def test_reject_only_from_pending(self, homeowner):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('confirmed'), 'rejected', Actor(user=homeowner, role=HOMEOWNER))

    def test_checkout_requires_check_in(self, driver):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('confirmed'), 'checked_out', Actor(user=driver, role=DRIVER))

    def test_cannot_cancel_after_check_in(self, driver):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('checked_in'), 'cancelled_by_driver', Actor(user=driver, role=DRIVER))

    def test_homeowner_cannot_complete_before_checkout(self, homeowner):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('confirmed'), 'completed', Actor(user=homeowner, role=HOMEOWNER))


class TestAdministratorTransitions:

    @pytest.mark.parametrize('source', ['pending', 'confirmed', 'checked_in', 'checked_out'])
    def test_admin_completes_from_any_open_status(self, source, admin):
        booking = booking_in(source)
        apply_transition(booking, 'completed', Actor(user=admin, role=ADMIN), now=NOW)
        assert booking.booking_status == 'completed'

    def test_admin_still_bound_by_sources_for_other_targets(self, admin):
        with pytest.raises(InvalidTransitionError):
            check_transition(booking_in('checked_in'), 'confirmed', Actor(user=admin, role=ADMIN))

    def test_admin_can_confirm_pending(self, admin):
        booking = booking_in('pending')
        apply_transition(booking, 'confirmed', Actor(user=admin, role=ADMIN), now=NOW)
        assert booking.homeowner_confirm_time == NOW
