import typing as t
from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from events.exceptions import InvalidOrderTransitionError, InvalidRefundAmountError, OrderNotRefundableError


class OrderQuerySet(models.QuerySet["Order"]):
    def completed(self) -> t.Self:
        """Orders that were paid for, including partially refunded ones."""
        return self.filter(status__in=[Order.Status.COMPLETED, Order.Status.PARTIALLY_REFUNDED])


class Order(TimeStampedModel):
    """A purchase of one or more tickets.

    Status only changes through the transition methods below. Orders are created inside the
    locked issuing transaction, so a failed attempt never leaves a row behind.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        REFUNDED = "refunded", "Refunded"
        PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"
        CANCELLED = "cancelled", "Cancelled"

    class Source(models.TextChoices):
        CHECKOUT = "checkout", "Checkout"
        BOX_OFFICE = "box_office", "Box office"
        GUEST_LIST = "guest_list", "Guest list"

    class PaymentMethod(models.TextChoices):
        CARD = "card", "Card"
        DOOR_CASH = "door_cash", "Cash at the door"
        DOOR_CARD = "door_card", "Card at the door"
        COMP = "comp", "Complimentary"
        FREE = "free", "Free"

    REFUNDABLE_STATUSES = (Status.COMPLETED, Status.PARTIALLY_REFUNDED)

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="orders")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders"
    )
    promo_code = models.ForeignKey(
        "events.PromoCode", on_delete=models.SET_NULL, null=True, blank=True, related_name="orders"
    )
    buyer_name = models.CharField(max_length=255)
    buyer_email = models.EmailField(db_index=True)
    buyer_phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.CHECKOUT, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CARD)
    payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)

    subtotal_cents = models.PositiveIntegerField(default=0)
    service_fee_cents = models.PositiveIntegerField(default=0)
    discount_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)

    refund_amount_cents = models.PositiveIntegerField(default=0)
    refund_reason = models.TextField(blank=True)
    refund_reference = models.CharField(max_length=255, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Order {self.pk} ({self.status})"

    @property
    def remaining_refundable_cents(self) -> int:
        return max(self.total_cents - self.refund_amount_cents, 0)

    @property
    def is_refundable(self) -> bool:
        return self.status in self.REFUNDABLE_STATUSES

    @property
    def has_placeholder_email(self) -> bool:
        """Whether the buyer email was filled in for a walk-in or an anonymous guest."""
        email = self.buyer_email.lower()
        return email == settings.GUEST_LIST_PLACEHOLDER_EMAIL.lower() or email.endswith(
            f"@{settings.BOX_OFFICE_EMAIL_DOMAIN}"
        )

    def mark_completed(self, now: datetime | None = None) -> None:
        """pending -> completed."""
        if self.status != self.Status.PENDING:
            raise InvalidOrderTransitionError(f"Cannot complete an order that is {self.status}.")
        self.status = self.Status.COMPLETED
        self.completed_at = now or timezone.now()
        self.save(update_fields=["status", "completed_at", "updated_at"])

    def apply_refund(self, amount_cents: int, *, reason: str = "", reference: str = "") -> bool:
        """Record a refund against the order and return whether it was a full refund.

        A refund is full when it clears the remaining balance.
        """
        if not self.is_refundable:
            raise OrderNotRefundableError()
        remaining = self.remaining_refundable_cents
        if amount_cents <= 0 or amount_cents > remaining:
            raise InvalidRefundAmountError(
                f"Refund amount must be between 1 and {remaining} cents, got {amount_cents}."
            )
        is_full = amount_cents >= remaining
        self.refund_amount_cents += amount_cents
        self.status = self.Status.REFUNDED if is_full else self.Status.PARTIALLY_REFUNDED
        self.refund_reason = reason
        self.refund_reference = reference
        self.refunded_at = timezone.now()
        self.save(
            update_fields=[
                "refund_amount_cents",
                "status",
                "refund_reason",
                "refund_reference",
                "refunded_at",
                "updated_at",
            ]
        )
        return is_full

    def cancel(self, *, reason: str = "") -> None:
        """completed -> cancelled, for orders with no balance to refund (comps, free tickets)."""
        if self.status != self.Status.COMPLETED or self.remaining_refundable_cents > 0:
            raise InvalidOrderTransitionError(f"Cannot cancel an order that is {self.status} with a balance.")
        self.status = self.Status.CANCELLED
        self.refund_reason = reason
        self.save(update_fields=["status", "refund_reason", "updated_at"])
