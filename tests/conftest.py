"""
Shared fixtures for the parking marketplace test suite.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from marketplace.models import AvailabilitySlot, Booking, ParkingSpot

User = get_user_model()


def hours_from(base, hours):
    return base + timedelta(hours=hours)


def auth_client(user):
    """Return an APIClient authenticated as ``user`` with a JWT access token."""
    client = APIClient()
    token = RefreshToken.for_user(user).access_token
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    return client


@pytest.fixture
def api_client():
    """Return API client for testing."""
    return APIClient()


@pytest.fixture
def base_time():
    """Top of the hour two days from now; all scenario times are offsets from it."""
    return (timezone.now() + timedelta(days=2)).replace(minute=0, second=0, microsecond=0)


@pytest.fixture
def driver_user(db):
    return User.objects.create_user(
        username='driver',
        email='driver@test.com',
        password='TestPass123!',
        user_type='driver',
        phone_number='+251911000001',
    )


@pytest.fixture
def another_driver(db):
    return User.objects.create_user(
        username='driver2',
        email='driver2@test.com',
        password='TestPass123!',
        user_type='driver',
    )


@pytest.fixture
def homeowner_user(db):
    return User.objects.create_user(
        username='homeowner',
        email='homeowner@test.com',
        password='TestPass123!',
        user_type='homeowner',
        phone_number='+251911000002',
    )


@pytest.fixture
def another_homeowner(db):
    return User.objects.create_user(
        username='homeowner2',
        email='homeowner2@test.com',
        password='TestPass123!',
        user_type='homeowner',
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        username='admin',
        email='admin@test.com',
        password='TestPass123!',
        user_type='admin',
    )


@pytest.fixture
def active_spot(db, homeowner_user):
    return ParkingSpot.objects.create(
        homeowner=homeowner_user,
        spot_name='Bole Driveway',
        address_line_1='Bole Road 12',
        city='Addis Ababa',
        sub_city='Bole',
        price_per_hour=Decimal('20.00'),
        amenities=['covered', 'cctv'],
        status=ParkingSpot.STATUS_ACTIVE,
    )


@pytest.fixture
def open_slot(db, active_spot, base_time):
    """Open availability for the twelve hours starting at base_time."""
    return AvailabilitySlot.objects.create(
        spot=active_spot,
        start_time=base_time,
        end_time=hours_from(base_time, 12),
    )


@pytest.fixture
def make_booking(db, active_spot, driver_user):
    """
    Factory writing a booking row directly, bypassing the coordinator.

    Use it to set up a booking in a given status; tests of booking creation
    go through ``marketplace.bookings.create_booking`` or the API instead.
    """
    def _make(start, end, status=Booking.STATUS_PENDING, driver=None, spot=None, **extra):
        spot = spot or active_spot
        return Booking.objects.create(
            spot=spot,
            driver=driver or driver_user,
            homeowner=spot.homeowner,
            start_time=start,
            end_time=end,
            total_price=extra.pop('total_price', Decimal('40.00')),
            booking_status=status,
            **extra
        )
    return _make


@pytest.fixture
def client_for():
    """Factory returning an authenticated APIClient for any user."""
    return auth_client


@pytest.fixture
def driver_client(driver_user):
    return auth_client(driver_user)


@pytest.fixture
def homeowner_client(homeowner_user):
    return auth_client(homeowner_user)


@pytest.fixture
def admin_client_jwt(admin_user):
    return auth_client(admin_user)
