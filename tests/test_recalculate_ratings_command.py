"""
Tests for the recalculate_ratings management command.
"""

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from marketplace.models import Booking, ParkingSpot, Review


@pytest.fixture
def reviewed_spot(active_spot, make_booking, another_driver, driver_user, base_time):
    """Spot with reviews of 5 and 2 whose stored aggregates have drifted."""
    first = make_booking(base_time, base_time + timedelta(hours=1), status=Booking.STATUS_COMPLETED)
    second = make_booking(
        base_time + timedelta(hours=1),
        base_time + timedelta(hours=2),
        status=Booking.STATUS_COMPLETED,
        driver=another_driver,
    )
    Review.objects.create(booking=first, reviewer=driver_user, spot=active_spot, rating=5)
    Review.objects.create(booking=second, reviewer=another_driver, spot=active_spot, rating=2)

    ParkingSpot.objects.filter(pk=active_spot.pk).update(rating_average=Decimal('1.00'), total_reviews=7)
    return active_spot


@pytest.mark.django_db
class TestRecalculateRatingsCommand:

    def test_recalculates_drifted_aggregates(self, reviewed_spot):
        out = StringIO()
        call_command('recalculate_ratings', stdout=out)

        reviewed_spot.refresh_from_db()
        assert reviewed_spot.rating_average == Decimal('3.50')
        assert reviewed_spot.total_reviews == 2
        assert 'Processed 1 spots total.' in out.getvalue()
        assert 'Recalculation completed successfully.' in out.getvalue()

    def test_dry_run_changes_nothing(self, reviewed_spot):
        out = StringIO()
        call_command('recalculate_ratings', '--dry-run', stdout=out)

        reviewed_spot.refresh_from_db()
        assert reviewed_spot.rating_average == Decimal('1.00')
        assert reviewed_spot.total_reviews == 7
        assert f'[DRY-RUN] Spot {reviewed_spot.pk}' in out.getvalue()
        assert 'Dry run completed. No changes saved.' in out.getvalue()

    def test_spot_without_reviews_reset_to_zero(self, active_spot):
        ParkingSpot.objects.filter(pk=active_spot.pk).update(rating_average=Decimal('4.20'), total_reviews=3)

        call_command('recalculate_ratings', stdout=StringIO())

        active_spot.refresh_from_db()
        assert active_spot.rating_average == Decimal('0.00')
        assert active_spot.total_reviews == 0

    def test_small_batches(self, reviewed_spot, homeowner_user):
        ParkingSpot.objects.create(
            homeowner=homeowner_user, spot_name='Second', address_line_1='Road 9',
            city='Addis Ababa', price_per_hour=Decimal('5.00'),
        )

        out = StringIO()
        call_command('recalculate_ratings', '--batch-size', '1', stdout=out)

        reviewed_spot.refresh_from_db()
        assert reviewed_spot.total_reviews == 2
        assert 'Processed 2 spots total.' in out.getvalue()

    def test_invalid_batch_size(self, db):
        with pytest.raises(CommandError):
            call_command('recalculate_ratings', '--batch-size', '0', stdout=StringIO())
