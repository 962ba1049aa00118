import typing as t
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from common.models import TimeStampedModel


def normalize_promo_code(code: str) -> str:
    return code.strip().upper()


class PromoCode(TimeStampedModel):
    class DiscountType(models.TextChoices):
        PERCENTAGE = "percentage", "Percentage"
        FIXED = "fixed", "Fixed amount (cents)"

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="promo_codes")
    code = models.CharField(max_length=50)
    discount_type = models.CharField(max_length=20, choices=DiscountType.choices)
    discount_value = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    max_uses = models.PositiveIntegerField(null=True, blank=True, help_text="Null = unlimited.")
    current_uses = models.PositiveIntegerField(default=0)
    starts_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.UniqueConstraint(fields=["event", "code"], name="unique_promo_code_per_event"),
        ]

    def __str__(self) -> str:
        return self.code

    def clean(self) -> None:
        """Percentages are capped at 100."""
        if self.discount_type == self.DiscountType.PERCENTAGE and self.discount_value > 100:
            raise DjangoValidationError({"discount_value": "A percentage discount cannot exceed 100."})

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Store codes normalized so lookups are case-insensitive."""
        self.code = normalize_promo_code(self.code or "")
        super().save(*args, **kwargs)

    def is_usable(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return (
            self.active
            and (self.starts_at is None or self.starts_at <= now)
            and (self.expires_at is None or self.expires_at > now)
            and (self.max_uses is None or self.current_uses < self.max_uses)
        )

    def calculate_discount(self, subtotal_cents: int) -> int:
        """Discount in cents for a given subtotal. Never exceeds the subtotal."""
        if self.discount_type == self.DiscountType.PERCENTAGE:
            discount = (Decimal(subtotal_cents) * self.discount_value / 100).quantize(Decimal("1"), ROUND_HALF_UP)
            return min(int(discount), subtotal_cents)
        return min(self.discount_value, subtotal_cents)

    def try_increment_usage(self) -> bool:
        """Consume one use with a single conditional UPDATE.

        Returns False when the code was exhausted by a concurrent order.
        """
        has_room = Q(max_uses__isnull=True) | Q(current_uses__lt=F("max_uses"))
        updated = PromoCode.objects.filter(has_room, pk=self.pk).update(current_uses=F("current_uses") + 1)
        if updated:
            self.current_uses += 1
        return bool(updated)
