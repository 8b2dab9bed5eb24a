"""
Tests for payment capture and reconciliation.

Tests cover:
- Applying gateway outcomes is idempotent per (booking, reference, outcome)
- A late failure never downgrades a paid booking
- Payment never changes the booking status
- Manual payment status changes and refunds
- Payment intent, client confirmation and signed webhooks
"""

import hashlib
import hmac
import json
from datetime import timedelta

import pytest
from rest_framework import status

from marketplace import payments
from marketplace.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    ValidationError,
)
from marketplace.models import Booking, Notification, Transaction


def sign(body, secret=b'test-webhook-secret'):
    return hmac.new(secret, body, hashlib.sha256).hexdigest()


@pytest.fixture
def booking(make_booking, base_time):
    return make_booking(base_time, base_time + timedelta(hours=2))


@pytest.mark.django_db
class TestRecordPaymentOutcome:

    def test_success_marks_paid_and_records_payment(self, booking):
        result = payments.record_payment_outcome(booking.pk, 'gw_001', payments.SUCCEEDED)

        assert result.payment_status == Booking.PAYMENT_PAID
        assert result.payment_reference == 'gw_001'

        payment = Transaction.objects.get(booking=booking)
        assert payment.transaction_type == Transaction.TYPE_BOOKING_PAYMENT
        assert payment.status == Transaction.STATUS_COMPLETED
        assert payment.amount == booking.total_price
        assert payment.payer_id == booking.driver_id
        assert payment.receiver_id == booking.homeowner_id

    def test_success_does_not_confirm_booking(self, booking):
        payments.record_payment_outcome(booking.pk, 'gw_001', payments.SUCCEEDED)

        booking.refresh_from_db()
        assert booking.booking_status == Booking.STATUS_PENDING

    def test_scenario_duplicate_outcome_applied_once(self, booking, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            payments.record_payment_outcome(booking.pk, 'gw_dup', payments.SUCCEEDED)
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            payments.record_payment_outcome(booking.pk, 'gw_dup', payments.SUCCEEDED)

        assert callbacks == []
        assert Transaction.objects.filter(booking=booking).count() == 1
        # One payment notification each for the driver and the homeowner
        assert Notification.objects.filter(related_entity_id=booking.pk).count() == 2

    def test_success_with_other_reference_conflicts(self, booking):
        payments.record_payment_outcome(booking.pk, 'gw_first', payments.SUCCEEDED)

        with pytest.raises(ConflictError):
            payments.record_payment_outcome(booking.pk, 'gw_second', payments.SUCCEEDED)

        booking.refresh_from_db()
        assert booking.payment_reference == 'gw_first'

    def test_late_failure_does_not_downgrade(self, booking):
        payments.record_payment_outcome(booking.pk, 'gw_ok', payments.SUCCEEDED)

        result = payments.record_payment_outcome(booking.pk, 'gw_ok', payments.FAILED)

        assert result.payment_status == Booking.PAYMENT_PAID

    def test_failure_then_retry_succeeds(self, booking):
        failed = payments.record_payment_outcome(booking.pk, 'gw_try1', payments.FAILED)
        assert failed.payment_status == Booking.PAYMENT_FAILED
        assert not Transaction.objects.filter(booking=booking).exists()

        paid = payments.record_payment_outcome(booking.pk, 'gw_try2', payments.SUCCEEDED)
        assert paid.payment_status == Booking.PAYMENT_PAID
        assert paid.payment_reference == 'gw_try2'

    def test_repeated_failure_is_noop(self, booking, django_capture_on_commit_callbacks):
        payments.record_payment_outcome(booking.pk, 'gw_bad', payments.FAILED)

        with django_capture_on_commit_callbacks() as callbacks:
            payments.record_payment_outcome(booking.pk, 'gw_bad', payments.FAILED)

        assert callbacks == []

    def test_completes_pending_admin_entry(self, booking, admin_user):
        Transaction.objects.create(
            booking=booking,
            created_by=admin_user,
            amount=booking.total_price,
            transaction_type=Transaction.TYPE_BOOKING_PAYMENT,
            gateway_reference_id='gw_pre',
        )

        payments.record_payment_outcome(booking.pk, 'gw_pre', payments.SUCCEEDED)

        payment = Transaction.objects.get(booking=booking)
        assert payment.status == Transaction.STATUS_COMPLETED

    def test_unknown_outcome(self, booking):
        with pytest.raises(ValidationError):
            payments.record_payment_outcome(booking.pk, 'gw_x', 'maybe')

    def test_empty_reference(self, booking):
        with pytest.raises(ValidationError):
            payments.record_payment_outcome(booking.pk, '', payments.SUCCEEDED)


@pytest.mark.django_db
class TestManualPaymentStatus:

    def url(self, booking):
        return f'/api/bookings/{booking.pk}/payment-status/'

    def test_homeowner_marks_paid(self, homeowner_client, booking):
        response = homeowner_client.patch(self.url(booking), {'payment_status': 'paid'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['payment_status'] == 'paid'
        assert response.data['booking_status'] == 'pending'
        assert response.data['payment_reference'].startswith('manual_')

    def test_driver_cannot_update(self, driver_client, booking):
        response = driver_client.patch(self.url(booking), {'payment_status': 'paid'}, format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_same_status_is_noop(self, homeowner_user, booking):
        result = payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_PENDING)
        assert result.payment_status == Booking.PAYMENT_PENDING

    def test_refund_records_refund_transaction(self, homeowner_user, admin_user, booking):
        payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_PAID, reference='cash_1')

        refunded = payments.update_payment_status(booking.pk, admin_user, Booking.PAYMENT_REFUNDED)

        assert refunded.payment_status == Booking.PAYMENT_REFUNDED
        original = Transaction.objects.get(booking=booking, transaction_type=Transaction.TYPE_BOOKING_PAYMENT)
        assert original.status == Transaction.STATUS_REFUNDED
        refund = Transaction.objects.get(booking=booking, transaction_type=Transaction.TYPE_REFUND)
        assert refund.payer_id == booking.homeowner_id
        assert refund.receiver_id == booking.driver_id

    def test_refund_requires_paid(self, homeowner_user, booking):
        with pytest.raises(InvalidTransitionError):
            payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_REFUNDED)

    def test_refunded_is_final(self, homeowner_user, booking):
        payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_PAID)
        payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_REFUNDED)

        with pytest.raises(InvalidTransitionError):
            payments.update_payment_status(booking.pk, homeowner_user, Booking.PAYMENT_PAID)

    def test_stranger_forbidden(self, another_homeowner, booking):
        with pytest.raises(ForbiddenError):
            payments.update_payment_status(booking.pk, another_homeowner, Booking.PAYMENT_PAID)


@pytest.mark.django_db
class TestIntentAndConfirm:

    def test_intent_for_own_booking(self, driver_client, booking):
        response = driver_client.post('/api/payments/intent/', {'booking_id': booking.pk}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['reference'].startswith('manual_')
        assert response.data['amount'] == str(booking.total_price)

    def test_intent_for_other_drivers_booking(self, client_for, another_driver, booking):
        response = client_for(another_driver).post(
            '/api/payments/intent/', {'booking_id': booking.pk}, format='json'
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_intent_for_paid_booking(self, driver_user, booking):
        payments.record_payment_outcome(booking.pk, 'gw_done', payments.SUCCEEDED)

        with pytest.raises(InvalidStateError):
            payments.create_payment_intent(booking.pk, driver_user)

    def test_intent_for_cancelled_booking(self, driver_user, make_booking, base_time):
        cancelled = make_booking(
            base_time, base_time + timedelta(hours=1), status=Booking.STATUS_CANCELLED_BY_DRIVER
        )
        with pytest.raises(InvalidStateError):
            payments.create_payment_intent(cancelled.pk, driver_user)

    def test_confirm_intent_reference(self, driver_client, driver_user, booking):
        intent = payments.create_payment_intent(booking.pk, driver_user)

        response = driver_client.post(
            '/api/payments/confirm/',
            {'booking_id': booking.pk, 'reference': intent.reference},
            format='json'
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data['payment_status'] == 'paid'

        response = driver_client.post(
            '/api/payments/confirm/',
            {'booking_id': booking.pk, 'reference': intent.reference},
            format='json'
        )
        assert response.status_code == status.HTTP_200_OK
        assert Transaction.objects.filter(booking=booking).count() == 1

    def test_confirm_unknown_reference_fails(self, driver_user, booking):
        result = payments.confirm_payment(booking.pk, driver_user, 'card_declined_42')
        assert result.payment_status == Booking.PAYMENT_FAILED


@pytest.mark.django_db
class TestPaymentWebhook:

    url = '/api/payments/webhook/'

    def post(self, api_client, payload, signature=None):
        body = json.dumps(payload).encode('utf-8')
        return api_client.post(
            self.url,
            data=body,
            content_type='application/json',
            HTTP_X_PAYMENT_SIGNATURE=signature if signature is not None else sign(body),
        )

    def test_signed_success(self, api_client, booking):
        response = self.post(api_client, {'booking_id': booking.pk, 'reference': 'wh_1', 'outcome': 'succeeded'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'booking_id': booking.pk, 'payment_status': 'paid'}

    def test_redelivery_is_acknowledged_once(self, api_client, booking):
        payload = {'booking_id': booking.pk, 'reference': 'wh_2', 'outcome': 'succeeded'}
        first = self.post(api_client, payload)
        second = self.post(api_client, payload)

        assert first.status_code == second.status_code == status.HTTP_200_OK
        assert Transaction.objects.filter(booking=booking).count() == 1

    def test_bad_signature_returns_401(self, api_client, booking):
        response = self.post(
            api_client,
            {'booking_id': booking.pk, 'reference': 'wh_3', 'outcome': 'succeeded'},
            signature='0' * 64,
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PENDING

    def test_missing_signature_returns_401(self, api_client, booking):
        response = self.post(
            api_client, {'booking_id': booking.pk, 'reference': 'wh_4', 'outcome': 'failed'}, signature=''
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_signed_non_json_returns_400(self, api_client):
        body = b'not json'
        response = api_client.post(
            self.url, data=body, content_type='application/json', HTTP_X_PAYMENT_SIGNATURE=sign(body)
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_booking_returns_404(self, api_client, db):
        response = self.post(api_client, {'booking_id': 777777, 'reference': 'wh_5', 'outcome': 'succeeded'})
        assert response.status_code == status.HTTP_404_NOT_FOUND
