"""
Notification sink.

Notifications are written after the surrounding transaction commits. A
failure to write one is logged and never undoes the change that caused it.
"""

import logging

from django.db import DatabaseError, transaction

from .models import Notification

logger = logging.getLogger(__name__)


def _deliver(recipient_id, entity_type, entity_id, message):
    try:
        Notification.objects.create(
            recipient_id=recipient_id,
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            message=message,
        )
    except DatabaseError as e:
        logger.error(
            f"Failed to deliver notification to user {recipient_id} "
            f"about {entity_type} {entity_id}: {e}",
            exc_info=True
        )


def notify(recipient_id, entity_type, entity_id, message):
    """
    Queue an in-app notification for ``recipient_id``.

    Outside a transaction the notification is written immediately; inside
    one it is written once the outermost transaction commits and dropped if
    it rolls back.

    Args:
        recipient_id: Primary key of the user to notify
        entity_type: One of Notification.ENTITY_CHOICES
        entity_id: Primary key of the related entity, or None
        message: Human-readable text
    """
    transaction.on_commit(
        lambda: _deliver(recipient_id, entity_type, entity_id, message)
    )


def mark_read(user, notification_id=None):
    """
    Mark one notification, or all of the user's unread notifications, as read.

    Returns:
        int: Number of notifications updated
    """
    queryset = Notification.objects.filter(recipient=user, is_read=False)
    if notification_id is not None:
        queryset = queryset.filter(pk=notification_id)
    return queryset.update(is_read=True)
