import smtplib
import typing as t
from unittest.mock import patch

import pytest
from django.core import mail

from notifications.enums import DeliveryStatus, NotificationType
from notifications.models import Notification
from notifications.tasks import deliver_notification

pytestmark = pytest.mark.django_db


@pytest.fixture
def refund_notification() -> Notification:
    return Notification.objects.create(
        notification_type=NotificationType.REFUND_ISSUED,
        recipient_email="kai@example.com",
        context={
            "order_id": "6f1c",
            "event_title": "Harbor Lights Live",
            "buyer_name": "Kai Moana",
            "amount_cents": 8025,
            "full_refund": True,
            "reason": "",
        },
    )


def test_delivers_and_marks_sent(refund_notification: Notification) -> None:
    result = deliver_notification(str(refund_notification.pk))

    assert result == {"status": DeliveryStatus.SENT}
    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.subject == "Refund processed for Harbor Lights Live"
    assert "We refunded 80.25 for order 6f1c" in message.body
    assert "have been cancelled" in message.body
    refund_notification.refresh_from_db()
    assert refund_notification.status == DeliveryStatus.SENT
    assert refund_notification.attempts == 1
    assert refund_notification.sent_at is not None


def test_sent_notifications_are_not_resent(refund_notification: Notification) -> None:
    refund_notification.mark_sent()

    result = deliver_notification(str(refund_notification.pk))

    assert result == {"status": "skipped", "reason": "already_sent"}
    assert len(mail.outbox) == 0


def test_marks_failed_after_last_retry(refund_notification: Notification) -> None:
    error = smtplib.SMTPServerDisconnected("connection lost")
    with patch("notifications.tasks.send_mail", side_effect=error):
        result: t.Any = deliver_notification.apply(args=[str(refund_notification.pk)], retries=3).get()

    assert result == {"status": DeliveryStatus.FAILED}
    refund_notification.refresh_from_db()
    assert refund_notification.status == DeliveryStatus.FAILED
    assert refund_notification.error_message == "connection lost"
    assert refund_notification.attempts == 1
