from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from events.exceptions import GuestListEntryAlreadyRedeemedError

from .order import Order


class GuestListEntry(TimeStampedModel):
    """A comp allocation that consumes real inventory once redeemed."""

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="guest_list_entries")
    ticket_type = models.ForeignKey("events.TicketType", on_delete=models.CASCADE, related_name="guest_list_entries")
    guest_name = models.CharField(max_length=255)
    guest_email = models.EmailField(blank=True)
    guest_phone = models.CharField(max_length=20, blank=True)
    notes = models.TextField(blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(10)])
    redeemed = models.BooleanField(default=False, db_index=True)
    redeemed_at = models.DateTimeField(null=True, blank=True)
    order = models.OneToOneField(
        Order, on_delete=models.SET_NULL, null=True, blank=True, related_name="guest_list_entry"
    )
    added_by = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["guest_name"]
        verbose_name_plural = "guest list entries"

    def __str__(self) -> str:
        return f"{self.guest_name} x{self.quantity}"

    def clean(self) -> None:
        """The ticket type must belong to the entry's event."""
        if self.ticket_type_id and self.ticket_type.event_id != self.event_id:
            raise DjangoValidationError({"ticket_type": "Ticket type does not belong to this event."})

    def mark_redeemed(self, order: Order) -> None:
        """One-way: link the comp order and freeze the entry."""
        if self.redeemed:
            raise GuestListEntryAlreadyRedeemedError()
        self.redeemed = True
        self.redeemed_at = timezone.now()
        self.order = order
        self.save(update_fields=["redeemed", "redeemed_at", "order", "updated_at"])
