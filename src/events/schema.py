"""Input and output shapes for the fulfillment services."""

import typing as t
from datetime import datetime
from uuid import UUID

from ninja import Schema
from pydantic import Field

from common.schema import OneToOneFiftyString, StrippedString
from events.models import Order, TicketType, WaitlistEntry


class LineItemSchema(Schema):
    ticket_type_id: UUID
    quantity: int


class BuyerSchema(Schema):
    name: StrippedString = ""
    email: StrippedString = ""
    phone: StrippedString = ""


class IssuedTicketSchema(Schema):
    id: UUID
    qr_code: UUID
    ticket_type_id: UUID
    status: str
    attendee_name: str
    attendee_email: str


class OrderResultSchema(Schema):
    id: UUID
    event_id: UUID
    status: Order.Status
    source: Order.Source
    payment_method: Order.PaymentMethod
    buyer_name: str
    buyer_email: str
    subtotal_cents: int
    service_fee_cents: int
    discount_cents: int
    total_cents: int
    refund_amount_cents: int
    tickets: list[IssuedTicketSchema]


class CheckoutResultSchema(Schema):
    status: t.Literal["completed", "awaiting_payment"]
    amount_cents: int
    order: OrderResultSchema | None = None
    payment_intent_id: str | None = None
    client_secret: str | None = None


class RefundResultSchema(Schema):
    order_id: UUID
    status: Order.Status
    amount_cents: int
    reference: str
    remaining_cents: int
    full_refund: bool


class BoxOfficeSaleSchema(Schema):
    line_items: list[LineItemSchema] = Field(..., min_length=1)
    payment_method: t.Literal["door_cash", "door_card"]
    buyer: BuyerSchema | None = None


class PaymentMethodTotalsSchema(Schema):
    orders: int
    tickets: int
    revenue_cents: int


class BoxOfficeSummarySchema(Schema):
    orders: int
    tickets: int
    revenue_cents: int
    by_payment_method: dict[str, PaymentMethodTotalsSchema]


class GuestListEntryCreateSchema(Schema):
    ticket_type_id: UUID
    guest_name: OneToOneFiftyString
    guest_email: StrippedString = ""
    guest_phone: StrippedString = ""
    notes: str = ""
    quantity: int = Field(1, ge=1, le=10)


class GuestListEntryUpdateSchema(Schema):
    guest_name: OneToOneFiftyString | None = None
    guest_email: StrippedString | None = None
    guest_phone: StrippedString | None = None
    notes: str | None = None
    quantity: int | None = Field(None, ge=1, le=10)


class WaitlistJoinSchema(Schema):
    email: StrippedString
    name: StrippedString = ""
    phone: StrippedString = ""
    ticket_type_id: UUID | None = None
    quantity: int = Field(1, ge=1, le=10)


class WaitlistEntrySchema(Schema):
    id: UUID
    ticket_type_id: UUID | None
    email: str
    quantity: int
    position: int
    status: WaitlistEntry.Status
    notified_at: datetime | None
    expires_at: datetime | None


class PromoPreviewSchema(Schema):
    code: str
    discount_type: str
    discount_value: int
    discount_cents: int


class TicketTypeCatalogSchema(Schema):
    id: UUID
    name: str
    price_cents: int
    current_price_cents: int
    available_quantity: int
    is_sold_out: bool
    max_per_order: int | None
    active_tier_name: str | None = None
    next_tier_name: str | None = None
    next_tier_price_cents: int | None = None

    @staticmethod
    def resolve_current_price_cents(obj: TicketType) -> int:
        return obj.current_price_cents()

    @staticmethod
    def resolve_active_tier_name(obj: TicketType) -> str | None:
        tier = obj.active_pricing_tier()
        return tier.name if tier else None

    @staticmethod
    def resolve_next_tier_name(obj: TicketType) -> str | None:
        tier = obj.next_pricing_tier()
        return tier.name if tier else None

    @staticmethod
    def resolve_next_tier_price_cents(obj: TicketType) -> int | None:
        tier = obj.next_pricing_tier()
        return tier.price_cents if tier else None
