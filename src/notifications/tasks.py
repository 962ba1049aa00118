"""Celery tasks for notification delivery."""

import smtplib
import typing as t

import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from notifications.enums import DeliveryStatus
from notifications.models import Notification
from notifications.service.templates import get_template

logger = structlog.get_logger(__name__)


@shared_task(bind=True, max_retries=3)
def deliver_notification(self: t.Any, notification_id: str) -> dict[str, t.Any]:
    """Render and email a queued notification.

    Transient mail errors are retried with exponential backoff; after the last retry the
    outbox row is marked failed.

    Args:
        self: Celery task instance (automatically passed when bind=True)
        notification_id: UUID of the Notification

    Returns:
        Dict with delivery result
    """
    notification = Notification.objects.get(pk=notification_id)
    if notification.status == DeliveryStatus.SENT:
        logger.info("notification_already_sent", notification_id=notification_id)
        return {"status": "skipped", "reason": "already_sent"}

    template = get_template(notification.notification_type)
    subject = template.get_email_subject(notification)
    body = template.get_email_text_body(notification)

    notification.attempts += 1
    notification.save(update_fields=["attempts", "updated_at"])

    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [notification.recipient_email])
    except (smtplib.SMTPException, OSError) as e:
        logger.warning(
            "notification_delivery_failed",
            notification_id=notification_id,
            attempts=notification.attempts,
            error=str(e),
        )
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e, countdown=2**self.request.retries * 60)
        notification.mark_failed(str(e))
        return {"status": DeliveryStatus.FAILED}

    notification.mark_sent()
    logger.info(
        "notification_delivered",
        notification_id=notification_id,
        notification_type=notification.notification_type,
    )
    return {"status": DeliveryStatus.SENT}
