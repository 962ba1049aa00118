import typing as t
from datetime import datetime, timedelta

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from common.models import TimeStampedModel
from events.exceptions import InvalidWaitlistTransitionError


class WaitlistEntryQuerySet(models.QuerySet["WaitlistEntry"]):
    def active(self) -> t.Self:
        return self.filter(status__in=WaitlistEntry.ACTIVE_STATUSES)

    def by_position(self) -> t.Self:
        return self.order_by("position", "created_at")


class WaitlistEntry(TimeStampedModel):
    """A FIFO waitlist slot for an event, optionally scoped to one ticket type.

    Positions are assigned once at join time and never renumbered.
    """

    class Status(models.TextChoices):
        WAITING = "waiting", "Waiting"
        NOTIFIED = "notified", "Notified"
        CONVERTED = "converted", "Converted"
        EXPIRED = "expired", "Expired"
        CANCELLED = "cancelled", "Cancelled"

    ACTIVE_STATUSES = (Status.WAITING, Status.NOTIFIED)

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="waitlist_entries")
    ticket_type = models.ForeignKey(
        "events.TicketType",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="waitlist_entries",
        help_text="Null means any ticket type.",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="waitlist_entries"
    )
    email = models.EmailField(db_index=True)
    name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(10)])
    position = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.WAITING, db_index=True)
    notified_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    objects = WaitlistEntryQuerySet.as_manager()

    class Meta:
        ordering = ["position"]
        verbose_name_plural = "waitlist entries"
        constraints = [
            models.UniqueConstraint(
                fields=["event", "ticket_type", "email"],
                condition=Q(status__in=["waiting", "notified"]),
                name="unique_active_waitlist_entry",
            ),
        ]

    def __str__(self) -> str:
        return f"#{self.position} {self.email} ({self.status})"

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Emails are compared case-insensitively."""
        self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    def _transition(self, to: str, allowed_from: t.Iterable[str], **fields: t.Any) -> None:
        if self.status not in allowed_from:
            raise InvalidWaitlistTransitionError(f"Cannot move a {self.status} waitlist entry to {to}.")
        self.status = to
        for name, value in fields.items():
            setattr(self, name, value)
        self.save(update_fields=["status", *fields, "updated_at"])

    def notify(self, now: datetime | None = None) -> None:
        """Start the offer window. No inventory is held for the entry."""
        now = now or timezone.now()
        self._transition(
            self.Status.NOTIFIED,
            [self.Status.WAITING],
            notified_at=now,
            expires_at=now + timedelta(hours=settings.WAITLIST_OFFER_WINDOW_HOURS),
        )

    def mark_converted(self) -> None:
        self._transition(self.Status.CONVERTED, self.ACTIVE_STATUSES)

    def cancel(self) -> None:
        self._transition(self.Status.CANCELLED, self.ACTIVE_STATUSES)

    def expire(self) -> None:
        self._transition(self.Status.EXPIRED, [self.Status.NOTIFIED])

    def is_offer_expired(self, now: datetime | None = None) -> bool:
        """True only for a notified entry whose offer window has passed."""
        if self.status != self.Status.NOTIFIED or self.expires_at is None:
            return False
        return self.expires_at < (now or timezone.now())
