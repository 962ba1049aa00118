import pytest
from django.db import OperationalError

from events.exceptions import InventoryBusyError
from events.models import PricingTier, TicketType
from events.service import inventory

pytestmark = pytest.mark.django_db


class _DriverError(Exception):
    """Stands in for the psycopg error Django wraps, which carries the SQLSTATE."""

    def __init__(self, sqlstate: str | None) -> None:
        super().__init__("lock wait")
        self.sqlstate = sqlstate


def _operational_error(sqlstate: str | None) -> OperationalError:
    error = OperationalError("lock wait")
    error.__cause__ = _DriverError(sqlstate)
    return error


class TestTranslateLockErrors:
    @pytest.mark.parametrize("sqlstate", ["55P03", "40P01"])
    def test_lock_failures_become_retryable(self, sqlstate: str) -> None:
        with pytest.raises(InventoryBusyError) as exc_info:
            with inventory.translate_lock_errors():
                raise _operational_error(sqlstate)
        assert exc_info.value.retryable
        assert exc_info.value.to_dict()["code"] == "inventory_busy"

    def test_other_operational_errors_propagate(self) -> None:
        with pytest.raises(OperationalError):
            with inventory.translate_lock_errors():
                raise _operational_error("08006")

    def test_errors_without_sqlstate_propagate(self) -> None:
        with pytest.raises(OperationalError):
            with inventory.translate_lock_errors():
                raise OperationalError("connection lost")


def test_lock_ticket_types_returns_rows_by_id(general: TicketType, vip: TicketType) -> None:
    locked = inventory.lock_ticket_types([vip.pk, general.pk])
    assert set(locked) == {general.pk, vip.pk}
    assert locked[vip.pk].name == "VIP"


def test_record_sale_advances_quantity_tier(general: TicketType) -> None:
    tier = PricingTier.objects.create(
        ticket_type=general,
        name="Early bird",
        tier_type=PricingTier.TierType.QUANTITY_BASED,
        price_cents=2000,
        quantity_limit=10,
    )
    inventory.record_sale(general, 3, tier)
    general.refresh_from_db()
    tier.refresh_from_db()
    assert general.quantity_sold == 3
    assert tier.quantity_sold == 3


def test_record_sale_leaves_time_tiers_alone(general: TicketType) -> None:
    tier = PricingTier.objects.create(
        ticket_type=general, name="Presale", tier_type=PricingTier.TierType.TIME_BASED, price_cents=2000
    )
    inventory.record_sale(general, 2, tier)
    tier.refresh_from_db()
    assert tier.quantity_sold == 0


def test_release_never_goes_below_zero(general: TicketType) -> None:
    TicketType.objects.filter(pk=general.pk).update(quantity_sold=2)
    general.refresh_from_db()
    inventory.release(general, 5)
    general.refresh_from_db()
    assert general.quantity_sold == 0
