import typing as t
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from accounts.models import OrganizerProfile
from common.models import SiteSettings
from events.models import Event, Order, TicketType
from events.schema import BuyerSchema, LineItemSchema
from events.service.checkout_service import CheckoutConfig, CheckoutService
from events.service.pricing import ServiceFee

DEFAULT_FEE = ServiceFee(percent=Decimal("3.00"), flat_cents=50)

LineItemsBuilder = t.Callable[..., list[LineItemSchema]]


@pytest.fixture
def event(organizer: OrganizerProfile, next_week: datetime) -> Event:
    return Event.objects.create(
        organizer=organizer,
        title="Harbor Lights Live",
        venue_name="Harbor Hall",
        status=Event.Status.PUBLISHED,
        starts_at=next_week,
        ends_at=next_week + timedelta(hours=4),
    )


@pytest.fixture
def draft_event(organizer: OrganizerProfile, next_week: datetime) -> Event:
    return Event.objects.create(organizer=organizer, title="Draft Night", starts_at=next_week)


@pytest.fixture
def general(event: Event) -> TicketType:
    return TicketType.objects.create(event=event, name="General Admission", price_cents=2500, quantity_available=100)


@pytest.fixture
def vip(event: Event) -> TicketType:
    return TicketType.objects.create(
        event=event, name="VIP", price_cents=7500, quantity_available=20, max_per_order=4, sort_order=1
    )


@pytest.fixture
def buyer() -> BuyerSchema:
    return BuyerSchema(name="Kai Moana", email="kai@example.com", phone="808-555-0100")


@pytest.fixture
def simulate_config() -> CheckoutConfig:
    return CheckoutConfig(payment_mode=SiteSettings.PaymentMode.SIMULATE, service_fee=DEFAULT_FEE)


@pytest.fixture
def sandbox_config() -> CheckoutConfig:
    return CheckoutConfig(payment_mode=SiteSettings.PaymentMode.SANDBOX, service_fee=DEFAULT_FEE)


@pytest.fixture
def line_items() -> LineItemsBuilder:
    """Build line items from (ticket_type, quantity) pairs."""

    def _build(*pairs: tuple[TicketType, int]) -> list[LineItemSchema]:
        return [LineItemSchema(ticket_type_id=ticket_type.pk, quantity=quantity) for ticket_type, quantity in pairs]

    return _build


@pytest.fixture
def paid_order(
    event: Event,
    general: TicketType,
    vip: TicketType,
    buyer: BuyerSchema,
    simulate_config: CheckoutConfig,
    line_items: LineItemsBuilder,
) -> Order:
    """Two GA and one VIP through simulated checkout: 12500 + 375 + 150 = 13025 cents."""
    result = CheckoutService(event, config=simulate_config).checkout(line_items((general, 2), (vip, 1)), buyer)
    assert result.order is not None
    return result.order
