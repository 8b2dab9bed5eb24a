"""
Tests for in-app notifications.

Notifications are written only once the change that caused them commits,
and users can only see and manage their own.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import transaction
from rest_framework import status

from marketplace import bookings
from marketplace.exceptions import ConflictError
from marketplace.models import Notification
from marketplace.notifications import mark_read, notify


@pytest.mark.django_db
class TestNotificationSink:

    def test_written_on_commit(self, driver_user, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            notify(driver_user.pk, 'system', None, 'Welcome to ParkShare.')

        notification = Notification.objects.get(recipient=driver_user)
        assert notification.message == 'Welcome to ParkShare.'
        assert notification.is_read is False

    def test_dropped_on_rollback(self, driver_user, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(RuntimeError):
                with transaction.atomic():
                    notify(driver_user.pk, 'system', None, 'Never sent.')
                    raise RuntimeError('abort')

        assert not Notification.objects.filter(recipient=driver_user).exists()

    def test_failed_booking_sends_nothing(
        self, active_spot, open_slot, driver_user, another_driver, base_time, django_capture_on_commit_callbacks
    ):
        bookings.create_booking(
            active_spot.pk, driver_user, base_time, base_time + timedelta(hours=1), Decimal('20.00')
        )
        Notification.objects.all().delete()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(ConflictError):
                bookings.create_booking(
                    active_spot.pk, another_driver, base_time, base_time + timedelta(hours=1), Decimal('20.00')
                )

        assert callbacks == []
        assert not Notification.objects.exists()

    def test_mark_read_only_touches_own(self, driver_user, homeowner_user):
        mine = Notification.objects.create(recipient=driver_user, message='a')
        theirs = Notification.objects.create(recipient=homeowner_user, message='b')

        assert mark_read(driver_user, notification_id=theirs.pk) == 0
        assert mark_read(driver_user) == 1

        mine.refresh_from_db()
        theirs.refresh_from_db()
        assert mine.is_read is True
        assert theirs.is_read is False


@pytest.mark.django_db
class TestNotificationEndpoints:

    def test_list_own_newest_first(self, driver_client, driver_user, homeowner_user):
        older = Notification.objects.create(recipient=driver_user, message='older')
        newer = Notification.objects.create(recipient=driver_user, message='newer')
        Notification.objects.create(recipient=homeowner_user, message='not mine')

        response = driver_client.get('/api/notifications/')

        assert response.status_code == status.HTTP_200_OK
        assert [item['id'] for item in response.data['results']] == [newer.pk, older.pk]

    def test_unread_filter(self, driver_client, driver_user):
        Notification.objects.create(recipient=driver_user, message='seen', is_read=True)
        unread = Notification.objects.create(recipient=driver_user, message='new')

        response = driver_client.get('/api/notifications/?unread=true')

        assert [item['id'] for item in response.data['results']] == [unread.pk]

    def test_mark_one_read(self, driver_client, driver_user):
        notification = Notification.objects.create(recipient=driver_user, message='hello')

        response = driver_client.post(f'/api/notifications/{notification.pk}/read/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_read'] is True

    def test_mark_other_users_notification(self, driver_client, homeowner_user):
        notification = Notification.objects.create(recipient=homeowner_user, message='hello')

        response = driver_client.post(f'/api/notifications/{notification.pk}/read/')
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_mark_all_read(self, driver_client, driver_user):
        for i in range(3):
            Notification.objects.create(recipient=driver_user, message=f'n{i}')

        response = driver_client.post('/api/notifications/read-all/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'updated': 3}
        assert not Notification.objects.filter(recipient=driver_user, is_read=False).exists()

    def test_delete(self, driver_client, driver_user, homeowner_user):
        mine = Notification.objects.create(recipient=driver_user, message='mine')
        theirs = Notification.objects.create(recipient=homeowner_user, message='theirs')

        assert driver_client.delete(f'/api/notifications/{mine.pk}/').status_code == status.HTTP_204_NO_CONTENT
        assert driver_client.delete(f'/api/notifications/{theirs.pk}/').status_code == status.HTTP_404_NOT_FOUND
        assert Notification.objects.filter(pk=theirs.pk).exists()

    def test_requires_authentication(self, api_client, db):
        response = api_client.get('/api/notifications/')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
