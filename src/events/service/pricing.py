"""Price arithmetic shared by the priced redemption paths. All amounts are integer cents."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


def round_cents(value: Decimal) -> int:
    """Round half away from zero to whole cents."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ServiceFee:
    """Platform fee: a percentage of the subtotal plus a flat amount per ticket."""

    percent: Decimal = Decimal("0")
    flat_cents: int = 0

    def calculate(self, subtotal_cents: int, ticket_count: int) -> int:
        return round_cents(Decimal(subtotal_cents) * self.percent / 100) + ticket_count * self.flat_cents


NO_FEE = ServiceFee()


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    service_fee_cents: int = 0
    discount_cents: int = 0

    @property
    def total_cents(self) -> int:
        return max(self.subtotal_cents + self.service_fee_cents - self.discount_cents, 0)
