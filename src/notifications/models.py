"""Models for the notification outbox."""

from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from notifications.enums import DeliveryStatus, NotificationType


class Notification(TimeStampedModel):
    """An outbox row written in the same transaction as the business change it reports.

    Delivery happens asynchronously after commit, so a rolled back order never notifies
    anyone and a slow mail server never holds a database lock.
    """

    notification_type = models.CharField(max_length=50, db_index=True, choices=NotificationType.choices)
    recipient_email = models.EmailField(db_index=True)
    context = models.JSONField(default=dict, help_text="JSON-serializable template context")
    status = models.CharField(
        max_length=20, choices=DeliveryStatus.choices, default=DeliveryStatus.PENDING, db_index=True
    )
    attempts = models.PositiveIntegerField(default=0)
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="notification_status_created"),
        ]

    def __str__(self) -> str:
        return f"{self.notification_type} to {self.recipient_email} ({self.status})"

    def mark_sent(self) -> None:
        self.status = DeliveryStatus.SENT
        self.sent_at = timezone.now()
        self.error_message = ""
        self.save(update_fields=["status", "sent_at", "error_message", "updated_at"])

    def mark_failed(self, error: str) -> None:
        self.status = DeliveryStatus.FAILED
        self.error_message = error
        self.save(update_fields=["status", "error_message", "updated_at"])
