"""
Signals raised by the booking and payment services, and their receivers.

Receivers here keep derived data in step with the core records:
- spot rating aggregates follow new reviews
- booking parties are notified of booking and payment changes
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from .models import Booking, ParkingSpot, Review
from .notifications import notify

logger = logging.getLogger(__name__)

# Sent by marketplace.bookings.create_booking after the booking row is written.
# kwargs: booking
booking_created = Signal()

# Sent after a booking status transition is saved.
# kwargs: booking, previous_status, actor
booking_status_changed = Signal()

# Sent after a booking's payment status changes.
# kwargs: booking, previous_status
payment_status_changed = Signal()


STATUS_MESSAGES = {
    Booking.STATUS_CONFIRMED: 'Your booking #{id} at {spot} has been confirmed.',
    Booking.STATUS_REJECTED: 'Your booking #{id} at {spot} has been rejected.',
    Booking.STATUS_CANCELLED_BY_DRIVER: 'Booking #{id} at {spot} was cancelled by the driver.',
    Booking.STATUS_CANCELLED_BY_HOMEOWNER: 'Booking #{id} at {spot} was cancelled by the homeowner.',
    Booking.STATUS_CHECKED_IN: 'The driver has checked in for booking #{id} at {spot}.',
    Booking.STATUS_CHECKED_OUT: 'The driver has checked out of booking #{id} at {spot}.',
    Booking.STATUS_COMPLETED: 'Booking #{id} at {spot} is complete. You can now leave a review.',
}


@receiver(booking_created)
def notify_homeowner_of_new_booking(sender, booking, **kwargs):
    notify(
        booking.homeowner_id,
        'booking',
        booking.pk,
        f'New booking request #{booking.pk} for {booking.spot.spot_name} '
        f'from {booking.start_time:%Y-%m-%d %H:%M} to {booking.end_time:%Y-%m-%d %H:%M}.',
    )


@receiver(booking_status_changed)
def notify_parties_of_status_change(sender, booking, previous_status, actor, **kwargs):
    """
    Tell the other party about a status change.

    When an administrator makes the change both parties are told.
    """
    template = STATUS_MESSAGES.get(booking.booking_status)
    if template is None:
        return

    message = template.format(id=booking.pk, spot=booking.spot.spot_name)

    recipients = {booking.driver_id, booking.homeowner_id}
    recipients.discard(actor.user.pk)
    for recipient_id in sorted(recipients):
        notify(recipient_id, 'booking', booking.pk, message)


@receiver(payment_status_changed)
def notify_parties_of_payment(sender, booking, previous_status, **kwargs):
    message = (
        f'Payment for booking #{booking.pk} is now {booking.payment_status} '
        f'(was {previous_status}).'
    )
    for recipient_id in (booking.driver_id, booking.homeowner_id):
        notify(recipient_id, 'booking', booking.pk, message)


@receiver(post_save, sender=Review)
def update_spot_rating_on_review(sender, instance, created, **kwargs):
    """
    Recalculate the reviewed spot's rating average and review count.

    Runs in the same transaction as the review insert with the spot row
    locked, so concurrent reviews of one spot are applied one at a time.
    If this fails the review is rolled back with it.
    """
    if not created:
        return

    try:
        with transaction.atomic():
            spot = ParkingSpot.objects.select_for_update().get(pk=instance.spot_id)
            stats = Review.objects.filter(spot=spot).aggregate(
                avg=Avg('rating'),
                total=Count('id'),
            )
            average = stats['avg']
            ParkingSpot.objects.filter(pk=spot.pk).update(
                rating_average=(
                    Decimal(str(average)).quantize(Decimal('0.01'))
                    if average is not None else Decimal('0.00')
                ),
                total_reviews=stats['total'],
            )

        logger.info(
            f"Updated rating for spot {instance.spot_id} after review {instance.pk}: "
            f"rating={instance.rating}, total={stats['total']}"
        )
    except Exception as e:
        logger.error(
            f"Error updating rating for review {instance.pk}: {e}",
            exc_info=True
        )
        raise

    notify(
        spot.homeowner_id,
        'review',
        instance.pk,
        f'{spot.spot_name} received a new {instance.rating}-star review.',
    )
