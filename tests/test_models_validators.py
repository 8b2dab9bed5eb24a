"""
Tests for model validation and the field validators.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from marketplace.models import AvailabilitySlot, Booking, ParkingSpot, Transaction, User
from marketplace.validators import (
    normalize_phone,
    validate_amenities,
    validate_payout_details,
    validate_phone_number,
)


class TestPhoneValidation:

    @pytest.mark.parametrize('value', ['+251 91 123 4567', '+1 (234) 567-8900', '0911234567'])
    def test_valid_numbers(self, value):
        validate_phone_number(value)

    @pytest.mark.parametrize('value', ['12345', '+251-91-abc-4567', '0000000000', '1' * 16])
    def test_invalid_numbers(self, value):
        with pytest.raises(ValidationError):
            validate_phone_number(value)

    def test_normalize_strips_separators(self):
        assert normalize_phone('+251 (91) 123-4567') == '+251911234567'
        assert normalize_phone(None) == ''


class TestAmenities:

    def test_known_amenities(self):
        validate_amenities(['covered', 'ev_charging'])
        validate_amenities([])

    def test_not_a_list(self):
        with pytest.raises(ValidationError):
            validate_amenities('covered')

    def test_unknown_amenity(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_amenities(['covered', 'valet'])
        assert 'valet' in excinfo.value.messages[0]


class TestPayoutDetails:

    def test_empty_is_allowed(self):
        validate_payout_details({})

    def test_bank_transfer(self):
        validate_payout_details({
            'method': 'bank_transfer',
            'account_name': 'Hana Tesfaye',
            'account_number': '1000456789',
            'bank_name': 'Commercial Bank of Ethiopia',
        })

    @pytest.mark.parametrize('details', [
        {'method': 'bank_transfer', 'account_name': 'Hana', 'account_number': '12AB', 'bank_name': 'CBE'},
        {'method': 'bank_transfer', 'account_name': 'Hana', 'account_number': '1000456789'},
        {'method': 'mobile_money', 'account_name': 'Hana', 'phone_number': '123'},
        {'method': 'mobile_money', 'account_name': 'Hana', 'phone_number': '+251911555666', 'pin': '1234'},
        {'method': 'paypal', 'account_name': 'Hana'},
        ['bank_transfer'],
    ])
    def test_invalid_details(self, details):
        with pytest.raises(ValidationError):
            validate_payout_details(details)


@pytest.mark.django_db
class TestUserModel:

    def test_email_lowercased_and_phone_normalized(self):
        user = User.objects.create_user(
            username='mixed', email='Mixed@Case.COM', password='TestPass123!',
            user_type='driver', phone_number='+251 922 000 111',
        )

        assert user.email == 'mixed@case.com'
        assert user.phone_number == '+251922000111'

    def test_blank_phone_stored_as_null(self):
        first = User.objects.create_user(username='a1', email='a1@test.com', password='x', user_type='driver')
        second = User.objects.create_user(
            username='a2', email='a2@test.com', password='x', user_type='driver', phone_number=''
        )

        assert first.phone_number is None
        assert second.phone_number is None

    def test_duplicate_email_is_integrity_error(self, driver_user):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                User.objects.create_user(
                    username='other', email='driver@test.com', password='x', user_type='driver'
                )

    def test_user_type_is_fixed(self, driver_user):
        driver_user.user_type = User.HOMEOWNER

        with pytest.raises(ValidationError):
            driver_user.save()


@pytest.mark.django_db
class TestSpotAndBookingModels:

    def test_only_homeowners_list_spots(self, driver_user):
        with pytest.raises(ValidationError):
            ParkingSpot.objects.create(
                homeowner=driver_user, spot_name='Mine', address_line_1='Road 1',
                city='Addis Ababa', price_per_hour=Decimal('10.00'),
            )

    def test_spot_defaults_to_pending_verification(self, homeowner_user):
        spot = ParkingSpot.objects.create(
            homeowner=homeowner_user, spot_name='New', address_line_1='Road 2',
            city='Addis Ababa', price_per_hour=Decimal('10.00'),
        )

        assert spot.status == ParkingSpot.STATUS_PENDING_VERIFICATION
        assert spot.accepts_bookings() is False

    def test_slot_end_after_start(self, active_spot, base_time):
        with pytest.raises(ValidationError):
            AvailabilitySlot.objects.create(spot=active_spot, start_time=base_time, end_time=base_time)

    def test_only_drivers_book(self, active_spot, homeowner_user, base_time):
        with pytest.raises(ValidationError):
            Booking.objects.create(
                spot=active_spot, driver=homeowner_user, homeowner=homeowner_user,
                start_time=base_time, end_time=base_time + timedelta(hours=1),
                total_price=Decimal('20.00'),
            )

    def test_booking_price_positive(self, make_booking, base_time):
        with pytest.raises(ValidationError):
            make_booking(base_time, base_time + timedelta(hours=1), total_price=Decimal('0.00'))

    def test_transaction_status_transition_enforced(self, admin_user):
        record = Transaction.objects.create(
            created_by=admin_user, amount=Decimal('5.00'), transaction_type=Transaction.TYPE_PLATFORM_FEE,
        )
        record.status = Transaction.STATUS_REFUNDED

        with pytest.raises(ValidationError):
            record.save()
