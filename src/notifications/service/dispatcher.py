"""Outbox writer for notifications."""

import typing as t

import structlog
from django.db import transaction

from notifications.context_schemas import validate_notification_context
from notifications.enums import NotificationType
from notifications.models import Notification

logger = structlog.get_logger(__name__)


def queue_notification(
    notification_type: NotificationType | str,
    recipient_email: str,
    context: dict[str, t.Any],
) -> Notification:
    """Write an outbox row and schedule delivery for after the surrounding transaction commits.

    Called inside a business transaction, the row rolls back with it and nothing is sent.
    Delivery failures never propagate back to the caller.

    Args:
        notification_type: Type of notification
        recipient_email: Where to send it
        context: JSON-serializable template context

    Returns:
        The pending Notification

    Raises:
        ValueError: If the context is missing keys the template needs
    """
    from notifications.tasks import deliver_notification

    notification_type = NotificationType(notification_type)
    validate_notification_context(notification_type, context)

    notification = Notification.objects.create(
        notification_type=notification_type,
        recipient_email=recipient_email,
        context=context,
    )
    notification_id = str(notification.pk)
    transaction.on_commit(lambda: deliver_notification.delay(notification_id))

    logger.info(
        "notification_queued",
        notification_id=notification_id,
        notification_type=notification.notification_type,
    )
    return notification
