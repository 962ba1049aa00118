"""Enums for the notification outbox."""

from django.db.models import TextChoices


class NotificationType(TextChoices):
    ORDER_CONFIRMATION = "order_confirmation"
    WAITLIST_OFFER = "waitlist_offer"
    GUEST_LIST_ADDED = "guest_list_added"
    REFUND_ISSUED = "refund_issued"


class DeliveryStatus(TextChoices):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
