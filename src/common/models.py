import typing as t
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from solo.models import SingletonModel


class TimeStampedModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        abstract = True

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Override the save method to call full_clean before saving."""
        self.full_clean()
        super().save(*args, **kwargs)


class SiteSettings(SingletonModel):
    """Singleton model for platform-wide commerce settings."""

    class PaymentMode(models.TextChoices):
        SIMULATE = "simulate", "Simulate"
        SANDBOX = "sandbox", "Sandbox"
        LIVE = "live", "Live"

    platform_name = models.CharField(max_length=100, default="Marquee")
    payment_mode = models.CharField(
        max_length=10,
        choices=PaymentMode.choices,
        default=settings.PAYMENT_MODE,
        help_text="Simulate skips the payment provider entirely; sandbox and live use Stripe test/live keys.",
    )
    service_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=settings.DEFAULT_SERVICE_FEE_PERCENT,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text="Platform fee charged on the checkout subtotal, in percent.",
    )
    service_fee_flat_cents = models.PositiveIntegerField(
        default=settings.DEFAULT_SERVICE_FEE_FLAT_CENTS,
        help_text="Platform fee charged per ticket, in cents.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover
        return "Commerce Settings"

    class Meta:
        verbose_name = "Commerce Settings"
        verbose_name_plural = "Commerce Settings"
