"""Email templates for outbox notifications.

Each notification type renders a subject in code and a plain-text body from
``notifications/email/{notification_type}.txt``.
"""

import typing as t
from abc import ABC, abstractmethod

from django.template.loader import render_to_string

from notifications.enums import NotificationType
from notifications.models import Notification


class NotificationTemplate(ABC):
    @abstractmethod
    def get_email_subject(self, notification: Notification) -> str:
        pass

    def get_email_text_body(self, notification: Notification) -> str:
        template_name = f"notifications/email/{notification.notification_type}.txt"
        return render_to_string(template_name, self.get_context(notification))

    def get_context(self, notification: Notification) -> dict[str, t.Any]:
        return {**notification.context, "recipient_email": notification.recipient_email}


class OrderConfirmationTemplate(NotificationTemplate):
    def get_email_subject(self, notification: Notification) -> str:
        return f"Your tickets for {notification.context.get('event_title', 'your event')}"

    def get_context(self, notification: Notification) -> dict[str, t.Any]:
        context = super().get_context(notification)
        context["total"] = f"{context.get('total_cents', 0) / 100:.2f}"
        return context


class WaitlistOfferTemplate(NotificationTemplate):
    def get_email_subject(self, notification: Notification) -> str:
        return f"Tickets available: {notification.context.get('event_title', '')}"


class GuestListAddedTemplate(NotificationTemplate):
    def get_email_subject(self, notification: Notification) -> str:
        return f"You're on the guest list for {notification.context.get('event_title', '')}"


class RefundIssuedTemplate(NotificationTemplate):
    def get_email_subject(self, notification: Notification) -> str:
        return f"Refund processed for {notification.context.get('event_title', 'your order')}"

    def get_context(self, notification: Notification) -> dict[str, t.Any]:
        context = super().get_context(notification)
        context["amount"] = f"{context.get('amount_cents', 0) / 100:.2f}"
        return context


_TEMPLATES: dict[str, NotificationTemplate] = {
    NotificationType.ORDER_CONFIRMATION: OrderConfirmationTemplate(),
    NotificationType.WAITLIST_OFFER: WaitlistOfferTemplate(),
    NotificationType.GUEST_LIST_ADDED: GuestListAddedTemplate(),
    NotificationType.REFUND_ISSUED: RefundIssuedTemplate(),
}


def get_template(notification_type: NotificationType | str) -> NotificationTemplate:
    """Get the template for a notification type.

    Raises:
        ValueError: If no template is registered
    """
    template = _TEMPLATES.get(NotificationType(notification_type))
    if template is None:
        raise ValueError(f"No template registered for {notification_type}")
    return template
