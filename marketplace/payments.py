"""
Payment capture and reconciliation.

``payment_status`` on a booking is changed only here. Payment never changes
``booking_status``; the booking lifecycle stays with the state machine.

Gateway outcomes can arrive more than once (client confirmation, webhook
retries). Applying the same (booking, reference, outcome) again is a no-op:
no second ledger transaction and no second notification.
"""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import Booking, Transaction
from .signals import payment_status_changed
from .state_machine import DRIVER, TERMINAL_STATUSES, resolve_actor

logger = logging.getLogger(__name__)

SUCCEEDED = 'succeeded'
FAILED = 'failed'
OUTCOMES = (SUCCEEDED, FAILED)

# Manual payment status changes by the homeowner or an administrator.
PAYMENT_TRANSITIONS = {
    Booking.PAYMENT_PENDING: {Booking.PAYMENT_PAID, Booking.PAYMENT_FAILED},
    Booking.PAYMENT_FAILED: {Booking.PAYMENT_PAID, Booking.PAYMENT_PENDING},
    Booking.PAYMENT_PAID: {Booking.PAYMENT_REFUNDED},
    Booking.PAYMENT_REFUNDED: set(),
}


@dataclass(frozen=True)
class PaymentIntent:
    reference: str
    amount: str
    currency: str
    client_secret: Optional[str] = None


class PaymentGateway:
    """
    Capability interface for an external payment provider.

    Subclasses create intents and report the outcome for a reference. The
    marketplace only consumes a success/failure outcome and a reference id.
    """

    name = 'gateway'

    def create_intent(self, booking, currency):
        raise NotImplementedError

    def confirm_outcome(self, reference):
        """Return SUCCEEDED or FAILED for a gateway reference."""
        raise NotImplementedError

    def verify_webhook(self, payload, signature):
        """
        Check an HMAC-SHA256 signature over the raw webhook body.

        Args:
            payload: Raw request body (bytes)
            signature: Hex digest sent by the gateway

        Returns:
            bool: True if the signature matches the configured secret
        """
        secret = getattr(settings, 'PAYMENT_WEBHOOK_SECRET', '')
        if not secret or not signature:
            return False
        expected = hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)


class ManualPaymentGateway(PaymentGateway):
    """
    Gateway for cash or bank transfers settled outside the platform.

    References it issues are prefixed with ``manual_``; confirming one of
    them succeeds, any other reference fails.
    """

    name = 'manual'

    def create_intent(self, booking, currency):
        return PaymentIntent(
            reference=f'manual_{uuid.uuid4().hex}',
            amount=str(booking.total_price),
            currency=currency,
        )

    def confirm_outcome(self, reference):
        return SUCCEEDED if reference.startswith('manual_') else FAILED


def get_gateway():
    """Instantiate the gateway class named by ``settings.PAYMENT_GATEWAY_CLASS``."""
    return import_string(settings.PAYMENT_GATEWAY_CLASS)()


def _lock_booking(booking_id):
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f'Booking with ID {booking_id} does not exist.')


def _set_payment_status(booking, new_status, reference=None):
    previous = booking.payment_status
    booking.payment_status = new_status
    fields = ['payment_status', 'updated_at']
    if reference is not None:
        booking.payment_reference = reference
        fields.append('payment_reference')
    booking.save(update_fields=fields)
    payment_status_changed.send(sender=Booking, booking=booking, previous_status=previous)
    return previous


def _record_booking_payment(booking, reference, gateway_name):
    """
    Make sure a completed booking_payment transaction exists for ``reference``.

    An administrator may already have entered the transaction; it is then
    completed rather than duplicated.
    """
    payment = (
        Transaction.objects.select_for_update()
        .filter(
            booking=booking,
            transaction_type=Transaction.TYPE_BOOKING_PAYMENT,
            gateway_reference_id=reference,
        )
        .order_by('pk')
        .first()
    )
    if payment is None:
        return Transaction.objects.create(
            booking=booking,
            payer_id=booking.driver_id,
            receiver_id=booking.homeowner_id,
            amount=booking.total_price,
            currency=getattr(settings, 'PARKING_DEFAULT_CURRENCY', 'ETB'),
            transaction_type=Transaction.TYPE_BOOKING_PAYMENT,
            gateway=gateway_name,
            gateway_reference_id=reference,
            status=Transaction.STATUS_COMPLETED,
            description=f'Payment for booking #{booking.pk}',
        )
    if payment.status == Transaction.STATUS_PENDING:
        payment.status = Transaction.STATUS_COMPLETED
        payment.save(update_fields=['status', 'updated_at'])
    return payment


def _refund_booking(booking, user):
    """
    Mark a paid booking refunded.

    The completed booking_payment under the booking's reference becomes
    refunded and a refund transaction from homeowner to driver is recorded.
    """
    _set_payment_status(booking, Booking.PAYMENT_REFUNDED)
    Transaction.objects.filter(
        booking=booking,
        transaction_type=Transaction.TYPE_BOOKING_PAYMENT,
        gateway_reference_id=booking.payment_reference,
        status=Transaction.STATUS_COMPLETED,
    ).update(status=Transaction.STATUS_REFUNDED)
    return Transaction.objects.create(
        booking=booking,
        payer_id=booking.homeowner_id,
        receiver_id=booking.driver_id,
        created_by=user,
        amount=booking.total_price,
        currency=getattr(settings, 'PARKING_DEFAULT_CURRENCY', 'ETB'),
        transaction_type=Transaction.TYPE_REFUND,
        gateway=ManualPaymentGateway.name,
        gateway_reference_id=booking.payment_reference,
        status=Transaction.STATUS_COMPLETED,
        description=f'Refund for booking #{booking.pk}',
    )


def record_payment_outcome(booking_id, gateway_reference_id, outcome, gateway_name=None):
    """
    Apply a payment gateway outcome to a booking.

    Success marks the booking paid, stores the reference and records a
    booking_payment transaction. Failure marks it failed unless it is
    already paid; a late failure never downgrades a paid booking.

    Args:
        booking_id: Booking primary key
        gateway_reference_id: Gateway's id for the payment attempt
        outcome: SUCCEEDED or FAILED
        gateway_name: Name stored on the transaction, defaults to the configured gateway

    Returns:
        Booking: The booking after the outcome is applied

    Raises:
        ValidationError: Unknown outcome or empty reference
        NotFoundError: Booking does not exist
        ConflictError: Success reported under a different reference for a settled booking
    """
    if outcome not in OUTCOMES:
        raise ValidationError({'outcome': [f'Outcome must be one of: {", ".join(OUTCOMES)}.']})
    if not gateway_reference_id:
        raise ValidationError({'reference': ['A gateway reference is required.']})

    gateway_name = gateway_name or get_gateway().name

    with transaction.atomic():
        booking = _lock_booking(booking_id)
        current = booking.payment_status
        settled = current in (Booking.PAYMENT_PAID, Booking.PAYMENT_REFUNDED)

        if outcome == SUCCEEDED:
            if settled:
                if booking.payment_reference == gateway_reference_id:
                    logger.info(
                        f"Payment outcome already applied. Booking ID: {booking.pk}, "
                        f"Reference: {gateway_reference_id}"
                    )
                    return booking
                logger.warning(
                    f"Payment success with a different reference for settled booking. "
                    f"Booking ID: {booking.pk}, Stored: {booking.payment_reference}, "
                    f"Received: {gateway_reference_id}"
                )
                raise ConflictError(
                    'This booking has already been paid under a different payment reference.'
                )

            _set_payment_status(booking, Booking.PAYMENT_PAID, reference=gateway_reference_id)
            _record_booking_payment(booking, gateway_reference_id, gateway_name)

        else:
            if settled:
                logger.warning(
                    f"Ignoring payment failure for settled booking. Booking ID: {booking.pk}, "
                    f"Status: {current}, Reference: {gateway_reference_id}"
                )
                return booking
            if current == Booking.PAYMENT_FAILED and booking.payment_reference == gateway_reference_id:
                logger.info(
                    f"Payment outcome already applied. Booking ID: {booking.pk}, "
                    f"Reference: {gateway_reference_id}"
                )
                return booking

            _set_payment_status(booking, Booking.PAYMENT_FAILED, reference=gateway_reference_id)

    logger.info(
        f"Payment outcome recorded. Booking ID: {booking.pk}, Outcome: {outcome}, "
        f"Payment Status: {current} -> {booking.payment_status}, "
        f"Reference: {gateway_reference_id}"
    )
    return booking


def update_payment_status(booking_id, user, new_status, reference=''):
    """
    Manually change a booking's payment status (homeowner or administrator).

    Marking a booking paid goes through :func:`record_payment_outcome` so a
    manual confirmation and a gateway confirmation with the same reference
    apply once. Refunds record a refund transaction.

    Raises:
        NotFoundError: Booking does not exist
        ForbiddenError: User is not the booking's homeowner or an administrator
        InvalidTransitionError: Change not allowed from the current payment status
    """
    if new_status not in PAYMENT_TRANSITIONS:
        raise ValidationError({'payment_status': [f'"{new_status}" is not a valid payment status.']})

    with transaction.atomic():
        booking = _lock_booking(booking_id)
        actor = resolve_actor(booking, user)
        if actor.role == DRIVER:
            raise ForbiddenError('Only the homeowner or an administrator can update payment status.')

        current = booking.payment_status
        if new_status == current:
            return booking

        if new_status not in PAYMENT_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f'Cannot change payment status from {current} to {new_status}.'
            )

        if new_status == Booking.PAYMENT_PAID:
            reference = reference or f'manual_{booking.pk}_{uuid.uuid4().hex[:12]}'
            booking = record_payment_outcome(
                booking.pk, reference, SUCCEEDED, gateway_name=ManualPaymentGateway.name
            )
        elif new_status == Booking.PAYMENT_FAILED:
            booking = record_payment_outcome(
                booking.pk,
                reference or f'manual_{booking.pk}_{uuid.uuid4().hex[:12]}',
                FAILED,
                gateway_name=ManualPaymentGateway.name,
            )
        elif new_status == Booking.PAYMENT_REFUNDED:
            _refund_booking(booking, user)
        else:
            _set_payment_status(booking, new_status)

    logger.info(
        f"Payment status updated manually. Booking ID: {booking.pk}, "
        f"{current} -> {booking.payment_status}, User ID: {user.pk}"
    )
    return booking


def create_payment_intent(booking_id, user):
    """
    Start a payment for a booking on the configured gateway (driver only).

    Raises:
        NotFoundError: Booking does not exist
        ForbiddenError: User is not the booking's driver
        InvalidStateError: Booking is already paid or has ended
    """
    try:
        booking = Booking.objects.get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f'Booking with ID {booking_id} does not exist.')

    if booking.driver_id != user.pk:
        raise ForbiddenError('Only the driver of this booking can pay for it.')

    if booking.payment_status in (Booking.PAYMENT_PAID, Booking.PAYMENT_REFUNDED):
        raise InvalidStateError('This booking has already been paid.')

    if booking.booking_status in TERMINAL_STATUSES and booking.booking_status != Booking.STATUS_COMPLETED:
        raise InvalidStateError('Cannot pay for a cancelled or rejected booking.')

    gateway = get_gateway()
    intent = gateway.create_intent(booking, getattr(settings, 'PARKING_DEFAULT_CURRENCY', 'ETB'))
    logger.info(
        f"Payment intent created. Booking ID: {booking.pk}, Gateway: {gateway.name}, "
        f"Reference: {intent.reference}"
    )
    return intent


def confirm_payment(booking_id, user, reference):
    """
    Ask the gateway for the outcome of ``reference`` and apply it (driver only).

    Raises:
        NotFoundError: Booking does not exist
        ForbiddenError: User is not the booking's driver
    """
    driver_id = Booking.objects.filter(pk=booking_id).values_list('driver_id', flat=True).first()
    if driver_id is None:
        raise NotFoundError(f'Booking with ID {booking_id} does not exist.')
    if driver_id != user.pk:
        raise ForbiddenError('Only the driver of this booking can confirm its payment.')

    gateway = get_gateway()
    outcome = gateway.confirm_outcome(reference)
    return record_payment_outcome(booking_id, reference, outcome, gateway_name=gateway.name)


def record_transaction(creator, booking=None, **fields):
    """
    Record a transaction entered by an administrator.

    A completed booking_payment for a booking is applied through
    :func:`record_payment_outcome`; it marks the booking paid but never
    confirms the booking itself.

    Returns:
        Transaction: The stored transaction

    Raises:
        ConflictError: The booking already has a booking_payment under the same reference
    """
    transaction_type = fields.get('transaction_type')
    status = fields.get('status', Transaction.STATUS_PENDING)

    with transaction.atomic():
        if booking is not None and transaction_type == Transaction.TYPE_BOOKING_PAYMENT:
            booking = _lock_booking(booking.pk)
            reference = fields.get('gateway_reference_id')
            if reference and Transaction.objects.filter(
                booking=booking,
                transaction_type=Transaction.TYPE_BOOKING_PAYMENT,
                gateway_reference_id=reference,
            ).exists():
                raise ConflictError(
                    f'A booking payment with reference {reference} is already recorded for this booking.'
                )
            if fields.get('payer') is None:
                fields.pop('payer', None)
                fields['payer_id'] = booking.driver_id
            if fields.get('receiver') is None:
                fields.pop('receiver', None)
                fields['receiver_id'] = booking.homeowner_id

        if not fields.get('gateway_reference_id') and transaction_type == Transaction.TYPE_BOOKING_PAYMENT:
            fields['gateway_reference_id'] = f'admin_{uuid.uuid4().hex[:16]}'

        # Stored as pending first so a completed payment runs through reconciliation
        initial_status = status
        if booking is not None and transaction_type == Transaction.TYPE_BOOKING_PAYMENT:
            initial_status = Transaction.STATUS_PENDING

        fields['status'] = initial_status
        record = Transaction.objects.create(created_by=creator, booking=booking, **fields)

        if initial_status != status:
            record = _apply_booking_payment_status(record, status, creator)

    logger.info(
        f"Transaction recorded. Transaction ID: {record.pk}, Type: {record.transaction_type}, "
        f"Status: {record.status}, Booking ID: {record.booking_id}, Creator ID: {creator.pk}"
    )
    return record


def _apply_booking_payment_status(record, new_status, user):
    """Move a booking_payment transaction and keep its booking's payment status in step."""
    if new_status == Transaction.STATUS_COMPLETED:
        record_payment_outcome(
            record.booking_id, record.gateway_reference_id, SUCCEEDED,
            gateway_name=record.gateway or ManualPaymentGateway.name,
        )
        # A replayed reference leaves the booking untouched; the entry itself still completes
        record.refresh_from_db()
        if record.status == Transaction.STATUS_PENDING:
            record.status = Transaction.STATUS_COMPLETED
            record.save(update_fields=['status', 'updated_at'])
    elif new_status == Transaction.STATUS_REFUNDED:
        booking = _lock_booking(record.booking_id)
        if (
            booking.payment_status == Booking.PAYMENT_PAID
            and booking.payment_reference == record.gateway_reference_id
        ):
            _refund_booking(booking, user)
        else:
            record.status = new_status
            record.save(update_fields=['status', 'updated_at'])
    elif new_status == Transaction.STATUS_FAILED:
        record.status = new_status
        record.save(update_fields=['status', 'updated_at'])
        record_payment_outcome(
            record.booking_id, record.gateway_reference_id, FAILED,
            gateway_name=record.gateway or ManualPaymentGateway.name,
        )
    else:
        record.status = new_status
        record.save(update_fields=['status', 'updated_at'])
    record.refresh_from_db()
    return record


def update_transaction_status(transaction_id, user, new_status):
    """
    Move a transaction along its status transitions (administrators only).

    Raises:
        ForbiddenError: User is not an administrator
        NotFoundError: Transaction does not exist
        InvalidTransitionError: Change not allowed from the current status
    """
    if not user.is_platform_admin():
        raise ForbiddenError('Only administrators can update transactions.')

    booking_id = Transaction.objects.filter(pk=transaction_id).values_list('booking_id', flat=True).first()

    with transaction.atomic():
        # Booking row first, matching the lock order of record_payment_outcome
        if booking_id is not None:
            _lock_booking(booking_id)
        try:
            record = Transaction.objects.select_for_update().get(pk=transaction_id)
        except Transaction.DoesNotExist:
            raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')

        if not record.can_transition_to(new_status):
            raise InvalidTransitionError(
                f'Cannot change transaction status from {record.status} to {new_status}.'
            )

        if new_status == record.status:
            return record

        previous = record.status
        if record.booking_id and record.transaction_type == Transaction.TYPE_BOOKING_PAYMENT:
            record = _apply_booking_payment_status(record, new_status, user)
        else:
            record.status = new_status
            record.save(update_fields=['status', 'updated_at'])

    logger.info(
        f"Transaction status updated. Transaction ID: {record.pk}, "
        f"{previous} -> {record.status}, User ID: {user.pk}"
    )
    return record
