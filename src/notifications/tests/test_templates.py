import pytest

from notifications.enums import NotificationType
from notifications.models import Notification
from notifications.service.templates import get_template


def _render(notification_type: NotificationType, context: dict) -> tuple[str, str]:
    notification = Notification(notification_type=notification_type, recipient_email="kai@example.com", context=context)
    template = get_template(notification_type)
    return template.get_email_subject(notification), template.get_email_text_body(notification)


def test_order_confirmation_lists_codes() -> None:
    subject, body = _render(
        NotificationType.ORDER_CONFIRMATION,
        {
            "order_id": "ord-1",
            "event_title": "Harbor Lights Live",
            "buyer_name": "Kai Moana",
            "ticket_count": 2,
            "total_cents": 5250,
            "qr_codes": ["qr-one", "qr-two"],
        },
    )
    assert subject == "Your tickets for Harbor Lights Live"
    assert "Hi Kai Moana," in body
    assert "Total: 52.50" in body
    assert "- qr-one" in body
    assert "- qr-two" in body


def test_waitlist_offer_mentions_window() -> None:
    subject, body = _render(
        NotificationType.WAITLIST_OFFER,
        {
            "entry_id": "w-1",
            "event_title": "Harbor Lights Live",
            "name": "",
            "quantity": 2,
            "expires_at": "2026-03-02T12:00:00+00:00",
        },
    )
    assert subject == "Tickets available: Harbor Lights Live"
    assert body.startswith("Hi,")
    assert "2 tickets" in body
    assert "2026-03-02T12:00:00+00:00" in body


def test_partial_refund_keeps_tickets() -> None:
    _, body = _render(
        NotificationType.REFUND_ISSUED,
        {"order_id": "ord-1", "event_title": "Harbor Lights Live", "amount_cents": 5000, "full_refund": False},
    )
    assert "We refunded 50.00" in body
    assert "cancelled" not in body


def test_unknown_type() -> None:
    with pytest.raises(ValueError):
        get_template("event_reminder")
