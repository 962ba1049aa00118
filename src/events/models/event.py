import secrets
import typing as t

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models
from django.utils.text import slugify

from common.models import TimeStampedModel


class EventQuerySet(models.QuerySet["Event"]):
    def published(self) -> t.Self:
        """Events open to the public."""
        return self.filter(status=Event.Status.PUBLISHED)

    def for_organizer(self, organizer_id: t.Any) -> t.Self:
        """Events owned by a given organizer profile."""
        return self.filter(organizer_id=organizer_id)


class Event(TimeStampedModel):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"

    class RecurrenceRule(models.TextChoices):
        WEEKLY = "weekly", "Weekly"
        BIWEEKLY = "biweekly", "Every two weeks"
        MONTHLY = "monthly", "Monthly"

    organizer = models.ForeignKey(
        "accounts.OrganizerProfile", on_delete=models.CASCADE, related_name="events", null=True, blank=True
    )
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    venue_name = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT, db_index=True)
    starts_at = models.DateTimeField(db_index=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    max_capacity = models.PositiveIntegerField(null=True, blank=True)

    recurrence_parent = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="recurrences"
    )
    recurrence_rule = models.CharField(max_length=20, choices=RecurrenceRule.choices, blank=True)
    recurrence_end_date = models.DateField(null=True, blank=True)

    objects = EventQuerySet.as_manager()

    class Meta:
        ordering = ["starts_at"]

    def __str__(self) -> str:
        return self.title

    def clean(self) -> None:
        """Validate the schedule and the recurrence linkage."""
        if self.ends_at and self.ends_at <= self.starts_at:
            raise DjangoValidationError({"ends_at": "The event must end after it starts."})
        if self.recurrence_end_date and not self.recurrence_rule:
            raise DjangoValidationError({"recurrence_end_date": "A recurrence end date requires a recurrence rule."})

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Derive a unique slug from the title on first save."""
        if not self.slug:
            self.slug = self._generate_slug()
        super().save(*args, **kwargs)

    def _generate_slug(self) -> str:
        base = slugify(self.title)[:240] or "event"
        slug = base
        while Event.objects.filter(slug=slug).exclude(pk=self.pk).exists():
            slug = f"{base}-{secrets.token_hex(3)}"
        return slug

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule) or self.recurrence_parent_id is not None

    @property
    def tickets_sold(self) -> int:
        """Issued tickets still valid for entry."""
        from .ticket import Ticket

        return self.tickets.exclude(status=Ticket.Status.CANCELLED).count()
