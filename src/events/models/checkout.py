from django.conf import settings
from django.db import models

from common.models import TimeStampedModel

from .order import Order


class CheckoutIntent(TimeStampedModel):
    """A priced checkout waiting for the payment provider to confirm payment.

    Tickets are only issued once confirmation arrives, so no inventory lock is held while
    the buyer pays. ``line_items`` stores ``[{"ticket_type_id", "quantity", "unit_price_cents"}]``
    as quoted when the intent was created.

    An intent that was paid for but could not be fulfilled stays ``refund_pending`` until the
    compensating refund went through, then becomes ``failed``.
    """

    class Status(models.TextChoices):
        AWAITING_PAYMENT = "awaiting_payment", "Awaiting payment"
        COMPLETED = "completed", "Completed"
        REFUND_PENDING = "refund_pending", "Refund pending"
        FAILED = "failed", "Failed"

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="checkout_intents")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="checkout_intents"
    )
    buyer_name = models.CharField(max_length=255)
    buyer_email = models.EmailField()
    buyer_phone = models.CharField(max_length=20, blank=True)
    line_items = models.JSONField(default=list)
    promo_code = models.CharField(max_length=50, blank=True)
    amount_cents = models.PositiveIntegerField()
    payment_intent_id = models.CharField(max_length=255, unique=True)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.AWAITING_PAYMENT, db_index=True
    )
    order = models.OneToOneField(
        Order, on_delete=models.SET_NULL, null=True, blank=True, related_name="checkout_intent"
    )
    failure_reason = models.TextField(blank=True)
    refund_reference = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.payment_intent_id} ({self.status})"
