import typing as t
import uuid
from datetime import datetime

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from common.models import TimeStampedModel
from events.exceptions import TicketNotValidError

if t.TYPE_CHECKING:
    from .order import Order

DEFAULT_MAX_PER_ORDER = 10


class TicketType(TimeStampedModel):
    """A purchasable category of ticket for an event.

    ``quantity_available`` and ``quantity_sold`` form the inventory ledger. They are only ever
    written through ``events.service.inventory`` while the row is locked; saving a TicketType
    with stale counters from an unlocked read would overwrite concurrent sales.
    """

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="ticket_types")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price_cents = models.PositiveIntegerField(default=0)
    quantity_available = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    quantity_sold = models.PositiveIntegerField(default=0)
    max_per_order = models.PositiveIntegerField(
        default=DEFAULT_MAX_PER_ORDER,
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Maximum tickets of this type in a single order. Null = unlimited.",
    )
    sales_start_at = models.DateTimeField(null=True, blank=True, help_text="When ticket sales begin")
    sales_end_at = models.DateTimeField(null=True, blank=True, help_text="When ticket sales end")
    sort_order = models.PositiveIntegerField(default=0, db_index=True)

    class Meta:
        ordering = ["sort_order", "created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_sold__lte=F("quantity_available")),
                name="ticket_type_sold_within_available",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.event_id})"

    def clean(self) -> None:
        """Validate the sales window."""
        if self.sales_start_at and self.sales_end_at and self.sales_end_at <= self.sales_start_at:
            raise DjangoValidationError({"sales_end_at": "Ticket sales end time must be after the sales start time."})

    @property
    def available_quantity(self) -> int:
        return max(self.quantity_available - self.quantity_sold, 0)

    @property
    def is_sold_out(self) -> bool:
        return self.quantity_sold >= self.quantity_available

    def is_on_sale(self, now: datetime | None = None) -> bool:
        """Whether ``now`` falls inside the sales window. Open bounds are allowed."""
        now = now or timezone.now()
        if self.sales_start_at and now < self.sales_start_at:
            return False
        if self.sales_end_at and now >= self.sales_end_at:
            return False
        return True

    def active_pricing_tier(self, now: datetime | None = None) -> "PricingTier | None":
        """The first active tier by position, if any."""
        for tier in self.pricing_tiers.all():
            if tier.is_active(now):
                return tier
        return None

    def next_pricing_tier(self, now: datetime | None = None) -> "PricingTier | None":
        """The tier that follows the active one, or the first tier if none is active yet."""
        tiers = list(self.pricing_tiers.all())
        active = self.active_pricing_tier(now)
        if active is None:
            return next((tier for tier in tiers if not tier.is_active(now)), None)
        return next((tier for tier in tiers if tier.position > active.position), None)

    def current_price_cents(self, now: datetime | None = None) -> int:
        """The buyer-visible unit price: the active tier's price, else the base price."""
        tier = self.active_pricing_tier(now)
        return tier.price_cents if tier else self.price_cents


class PricingTier(TimeStampedModel):
    """A time- or quantity-bounded price layered over a TicketType's base price.

    Tiers never gate inventory; the parent TicketType counters stay authoritative.
    """

    class TierType(models.TextChoices):
        TIME_BASED = "time_based", "Time based"
        QUANTITY_BASED = "quantity_based", "Quantity based"

    ticket_type = models.ForeignKey(TicketType, on_delete=models.CASCADE, related_name="pricing_tiers")
    name = models.CharField(max_length=255)
    tier_type = models.CharField(max_length=20, choices=TierType.choices)
    price_cents = models.PositiveIntegerField()
    quantity_limit = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    quantity_sold = models.PositiveIntegerField(default=0)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["position", "created_at"]

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        """Quantity tiers need a limit."""
        if self.tier_type == self.TierType.QUANTITY_BASED and not self.quantity_limit:
            raise DjangoValidationError({"quantity_limit": "Quantity-based tiers require a quantity limit."})

    def is_active(self, now: datetime | None = None) -> bool:
        if self.tier_type == self.TierType.QUANTITY_BASED:
            return self.quantity_limit is not None and self.quantity_sold < self.quantity_limit
        now = now or timezone.now()
        if self.starts_at and self.ends_at:
            return self.starts_at <= now <= self.ends_at
        if self.starts_at:
            return now >= self.starts_at
        if self.ends_at:
            return now < self.ends_at
        return False


class TicketQuerySet(models.QuerySet["Ticket"]):
    def valid(self) -> t.Self:
        """Tickets that still admit entry."""
        return self.filter(status__in=[Ticket.Status.ISSUED, Ticket.Status.CHECKED_IN])


class Ticket(TimeStampedModel):
    class Status(models.TextChoices):
        ISSUED = "issued", "Issued"
        CHECKED_IN = "checked_in", "Checked in"
        CANCELLED = "cancelled", "Cancelled"
        TRANSFERRED = "transferred", "Transferred"

    order = models.ForeignKey("events.Order", on_delete=models.CASCADE, related_name="tickets")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.CASCADE, related_name="tickets")
    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="tickets")
    pricing_tier = models.ForeignKey(
        PricingTier, on_delete=models.SET_NULL, null=True, blank=True, related_name="tickets"
    )
    qr_code = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ISSUED, db_index=True)
    attendee_name = models.CharField(max_length=255, blank=True)
    attendee_email = models.EmailField(blank=True)
    checked_in_at = models.DateTimeField(null=True, blank=True)

    objects = TicketQuerySet.as_manager()

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return str(self.qr_code)

    @classmethod
    def for_order(
        cls, order: "Order", ticket_type: TicketType, pricing_tier: PricingTier | None = None
    ) -> "Ticket":
        """An unsaved ticket whose attendee defaults to the order's buyer."""
        return cls(
            order=order,
            ticket_type=ticket_type,
            event_id=order.event_id,
            pricing_tier=pricing_tier,
            attendee_name=order.buyer_name,
            attendee_email=order.buyer_email,
        )

    def check_in(self, now: datetime | None = None) -> None:
        """Mark the ticket as used at the door."""
        if self.status != self.Status.ISSUED:
            raise TicketNotValidError(f"Ticket cannot be checked in while {self.get_status_display().lower()}.")
        self.status = self.Status.CHECKED_IN
        self.checked_in_at = now or timezone.now()
        self.save(update_fields=["status", "checked_in_at", "updated_at"])

    def cancel(self) -> None:
        """Void the ticket. Cancelled tickets are kept for the audit trail."""
        self.status = self.Status.CANCELLED
        self.save(update_fields=["status", "updated_at"])
