"""
Tests for the signal receivers that keep spot ratings and notifications in step.

Uses TransactionTestCase so that on_commit callbacks run the way they do in
production, after the real commit.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TransactionTestCase
from django.utils import timezone

from marketplace import bookings
from marketplace.models import Booking, Notification, ParkingSpot, Review

User = get_user_model()


class ReviewSignalTests(TransactionTestCase):
    """Spot rating aggregates follow review inserts."""

    def setUp(self):
        self.homeowner = User.objects.create_user(
            username='homeowner1',
            email='homeowner1@test.com',
            password='testpass123',
            user_type='homeowner'
        )
        self.spot = ParkingSpot.objects.create(
            homeowner=self.homeowner,
            spot_name='Piassa Courtyard',
            address_line_1='Churchill Avenue 3',
            city='Addis Ababa',
            price_per_hour=Decimal('15.00'),
            status=ParkingSpot.STATUS_ACTIVE
        )
        self.start = timezone.now() - timedelta(days=3)

    def make_completed_booking(self, index):
        driver = User.objects.create_user(
            username=f'driver{index}',
            email=f'driver{index}@test.com',
            password='testpass123',
            user_type='driver'
        )
        booking = Booking.objects.create(
            spot=self.spot,
            driver=driver,
            homeowner=self.homeowner,
            start_time=self.start + timedelta(hours=index),
            end_time=self.start + timedelta(hours=index + 1),
            total_price=Decimal('15.00'),
            booking_status=Booking.STATUS_COMPLETED
        )
        return driver, booking

    def review(self, index, rating):
        driver, booking = self.make_completed_booking(index)
        return Review.objects.create(
            booking=booking,
            reviewer=driver,
            spot=self.spot,
            rating=rating,
            comment=f'Review {index}'
        )

    def test_first_review_sets_average(self):
        self.spot.refresh_from_db()
        self.assertEqual(self.spot.rating_average, Decimal('0.00'))
        self.assertEqual(self.spot.total_reviews, 0)

        self.review(1, 4)

        self.spot.refresh_from_db()
        self.assertEqual(self.spot.rating_average, Decimal('4.00'))
        self.assertEqual(self.spot.total_reviews, 1)

    def test_multiple_reviews_average(self):
        # (5 + 3 + 4) / 3 = 4.00
        for index, rating in enumerate([5, 3, 4], start=1):
            self.review(index, rating)

        self.spot.refresh_from_db()
        self.assertEqual(self.spot.rating_average, Decimal('4.00'))
        self.assertEqual(self.spot.total_reviews, 3)

    def test_average_is_rounded_to_two_places(self):
        # (5 + 4 + 4) / 3 = 4.333...
        for index, rating in enumerate([5, 4, 4], start=1):
            self.review(index, rating)

        self.spot.refresh_from_db()
        self.assertEqual(self.spot.rating_average, Decimal('4.33'))

    def test_duplicate_review_leaves_aggregates_unchanged(self):
        first = self.review(1, 5)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Review.objects.create(
                    booking=first.booking,
                    reviewer=first.reviewer,
                    spot=self.spot,
                    rating=1
                )

        self.spot.refresh_from_db()
        self.assertEqual(self.spot.total_reviews, 1)
        self.assertEqual(self.spot.rating_average, Decimal('5.00'))

    def test_homeowner_notified_of_review(self):
        review = self.review(1, 5)

        notification = Notification.objects.get(recipient=self.homeowner, related_entity_type='review')
        self.assertEqual(notification.related_entity_id, review.pk)
        self.assertIn('5-star', notification.message)


class BookingSignalTests(TransactionTestCase):
    """Booking and payment signals notify the parties after commit."""

    def setUp(self):
        self.homeowner = User.objects.create_user(
            username='homeowner1',
            email='homeowner1@test.com',
            password='testpass123',
            user_type='homeowner'
        )
        self.driver = User.objects.create_user(
            username='driver1',
            email='driver1@test.com',
            password='testpass123',
            user_type='driver'
        )
        self.spot = ParkingSpot.objects.create(
            homeowner=self.homeowner,
            spot_name='Sarbet Lot',
            address_line_1='Sarbet Square',
            city='Addis Ababa',
            price_per_hour=Decimal('10.00'),
            status=ParkingSpot.STATUS_ACTIVE
        )
        self.start = (timezone.now() + timedelta(days=1)).replace(minute=0, second=0, microsecond=0)
        self.spot.availability_slots.create(start_time=self.start, end_time=self.start + timedelta(hours=6))

    def test_new_booking_notifies_homeowner_only(self):
        booking = bookings.create_booking(
            self.spot.pk, self.driver, self.start, self.start + timedelta(hours=2), Decimal('20.00')
        )

        self.assertEqual(
            list(Notification.objects.values_list('recipient_id', 'related_entity_id')),
            [(self.homeowner.pk, booking.pk)]
        )

    def test_confirmation_notifies_driver(self):
        booking = bookings.create_booking(
            self.spot.pk, self.driver, self.start, self.start + timedelta(hours=2), Decimal('20.00')
        )
        Notification.objects.all().delete()

        bookings.transition_booking(booking.pk, self.homeowner, Booking.STATUS_CONFIRMED)

        notification = Notification.objects.get()
        self.assertEqual(notification.recipient_id, self.driver.pk)
        self.assertIn('confirmed', notification.message)

    def test_rolled_back_booking_sends_nothing(self):
        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                bookings.create_booking(
                    self.spot.pk, self.driver, self.start, self.start + timedelta(hours=2), Decimal('20.00')
                )
                raise RuntimeError('abort')

        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Notification.objects.exists())
