"""Order/Ticket issuer: the single path that turns line items into an order and tickets."""

import typing as t
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction

from accounts.models import User
from events.exceptions import (
    InvalidPromoCodeError,
    OrderValidationError,
    PromoCodeExhaustedError,
    TicketTypeNotFoundError,
)
from events.models import Event, Order, PricingTier, PromoCode, Ticket, TicketType
from events.schema import BuyerSchema, LineItemSchema
from events.service import inventory
from events.service.pricing import NO_FEE, OrderTotals, ServiceFee
from notifications.enums import NotificationType
from notifications.service.dispatcher import queue_notification

logger = structlog.get_logger(__name__)


@dataclass
class _PricedLine:
    ticket_type: TicketType
    quantity: int
    unit_price_cents: int
    pricing_tier: PricingTier | None

    @property
    def amount_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class OrderIssuer:
    """Creates an order and one ticket per unit while holding the ticket type locks.

    Redemption paths configure the issuer (priced or comp, fee policy, per-order limits) and
    add their own pre-validation; the locking, re-validation and ledger updates are identical
    for all of them. The issuer does not deduplicate retried requests.
    """

    def __init__(
        self,
        event: Event,
        *,
        source: Order.Source,
        payment_method: Order.PaymentMethod,
        user: User | None = None,
        priced: bool = True,
        service_fee: ServiceFee = NO_FEE,
        enforce_max_per_order: bool = True,
        send_confirmation: bool = True,
    ) -> None:
        """Initialize the issuer.

        Args:
            event: The event the tickets are for.
            source: Which redemption path is issuing.
            payment_method: How the order was (or will not be) paid.
            user: The authenticated buyer, if any.
            priced: False for comps, which are issued at zero cost.
            service_fee: Platform fee policy applied on top of the subtotal.
            enforce_max_per_order: Whether TicketType.max_per_order applies.
            send_confirmation: False when the buyer email is a placeholder.
        """
        self.event = event
        self.source = source
        self.payment_method = payment_method
        self.user = user
        self.priced = priced
        self.service_fee = service_fee
        self.enforce_max_per_order = enforce_max_per_order
        self.send_confirmation = send_confirmation

    def issue(
        self,
        line_items: Sequence[LineItemSchema],
        buyer: BuyerSchema,
        *,
        promo_code: PromoCode | None = None,
        quoted_prices: Mapping[UUID, int] | None = None,
        payment_intent_id: str = "",
    ) -> Order:
        """Issue an order for the given line items.

        Cheap checks run before any lock is taken. Availability and prices are then decided
        against freshly locked rows, and any failure rolls back the whole order.

        Args:
            line_items: Requested (ticket_type_id, quantity) pairs. Repeated types are summed.
            buyer: Buyer identity. Name and email are required.
            promo_code: A promo code already matched to this event.
            quoted_prices: Unit prices the buyer already paid, by ticket type id.
            payment_intent_id: Payment provider reference, if any.

        Returns:
            The completed order, with its tickets.

        Raises:
            OrderValidationError: Malformed line items or buyer identity.
            TicketTypeNotFoundError: A ticket type does not belong to the event.
            InsufficientInventoryError: Not enough units left under lock.
            PromoCodeExhaustedError: The promo code ran out of uses.
            InventoryBusyError: A lock could not be acquired in time.
        """
        quantities, _ = self.validate(line_items, buyer)

        with inventory.translate_lock_errors(), transaction.atomic():
            locked = inventory.lock_ticket_types(quantities)
            for pk, quantity in quantities.items():
                inventory.assert_available(locked[pk], quantity)

            lines = [self._price_line(locked[pk], quantity, quoted_prices) for pk, quantity in quantities.items()]
            totals = self._compute_totals(lines, promo_code)

            order = Order.objects.create(
                event=self.event,
                user=self.user,
                promo_code=promo_code,
                buyer_name=buyer.name,
                buyer_email=buyer.email,
                buyer_phone=buyer.phone,
                source=self.source,
                payment_method=self.payment_method,
                payment_intent_id=payment_intent_id,
                subtotal_cents=totals.subtotal_cents,
                service_fee_cents=totals.service_fee_cents,
                discount_cents=totals.discount_cents,
                total_cents=totals.total_cents,
            )
            tickets = Ticket.objects.bulk_create(
                [
                    Ticket.for_order(order, line.ticket_type, line.pricing_tier)
                    for line in lines
                    for _ in range(line.quantity)
                ]
            )
            for line in lines:
                inventory.record_sale(line.ticket_type, line.quantity, line.pricing_tier)

            order.mark_completed()
            if self.send_confirmation:
                self._queue_confirmation(order, tickets)

        logger.info(
            "order_issued",
            order_id=str(order.pk),
            event_id=str(self.event.pk),
            source=self.source,
            ticket_count=len(tickets),
            total_cents=order.total_cents,
        )
        return order

    def validate(
        self, line_items: Sequence[LineItemSchema], buyer: BuyerSchema
    ) -> tuple[dict[UUID, int], dict[UUID, TicketType]]:
        """Run the cheap checks that need no lock.

        Returns the aggregated quantity per ticket type and the unlocked ticket types. Neither is
        authoritative for availability.
        """
        quantities = self._aggregate(line_items)
        self._validate_buyer(buyer)
        ticket_types = self._resolve_ticket_types(quantities)
        self._check_order_limits(ticket_types, quantities)
        return quantities, ticket_types

    def _aggregate(self, line_items: Sequence[LineItemSchema]) -> dict[UUID, int]:
        if not line_items:
            raise OrderValidationError("At least one line item is required.")
        quantities: dict[UUID, int] = {}
        for item in line_items:
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                raise OrderValidationError("Quantity must be a positive integer.")
            quantities[item.ticket_type_id] = quantities.get(item.ticket_type_id, 0) + item.quantity
        return quantities

    def _validate_buyer(self, buyer: BuyerSchema) -> None:
        if not buyer.name or not buyer.email:
            raise OrderValidationError("Buyer name and email are required.")
        try:
            validate_email(buyer.email)
        except DjangoValidationError as e:
            raise OrderValidationError("Buyer email is not a valid email address.") from e

    def _resolve_ticket_types(self, quantities: Mapping[UUID, int]) -> dict[UUID, TicketType]:
        found = {tt.pk: tt for tt in TicketType.objects.filter(event=self.event, pk__in=quantities.keys())}
        missing = [pk for pk in quantities if pk not in found]
        if missing:
            raise TicketTypeNotFoundError(missing)
        return found

    def _check_order_limits(self, ticket_types: Mapping[UUID, TicketType], quantities: Mapping[UUID, int]) -> None:
        if not self.enforce_max_per_order:
            return
        for pk, quantity in quantities.items():
            limit = ticket_types[pk].max_per_order
            if limit is not None and quantity > limit:
                raise OrderValidationError(
                    f"At most {limit} ticket(s) of {ticket_types[pk].name} can be bought in one order."
                )

    def _price_line(
        self, ticket_type: TicketType, quantity: int, quoted_prices: Mapping[UUID, int] | None
    ) -> _PricedLine:
        if not self.priced:
            return _PricedLine(ticket_type, quantity, 0, None)
        tier = ticket_type.active_pricing_tier()
        if quoted_prices and ticket_type.pk in quoted_prices:
            unit_price = quoted_prices[ticket_type.pk]
        else:
            unit_price = tier.price_cents if tier else ticket_type.price_cents
        return _PricedLine(ticket_type, quantity, unit_price, tier)

    def _compute_totals(self, lines: Sequence[_PricedLine], promo_code: PromoCode | None) -> OrderTotals:
        subtotal = sum(line.amount_cents for line in lines)
        ticket_count = sum(line.quantity for line in lines)
        fee = self.service_fee.calculate(subtotal, ticket_count)
        discount = 0
        if promo_code is not None:
            if promo_code.event_id != self.event.pk or not promo_code.is_usable():
                raise InvalidPromoCodeError()
            if not promo_code.try_increment_usage():
                raise PromoCodeExhaustedError()
            discount = promo_code.calculate_discount(subtotal)
        return OrderTotals(subtotal_cents=subtotal, service_fee_cents=fee, discount_cents=discount)

    def _queue_confirmation(self, order: Order, tickets: Sequence[Ticket]) -> None:
        context: dict[str, t.Any] = {
            "order_id": str(order.pk),
            "event_title": self.event.title,
            "buyer_name": order.buyer_name,
            "ticket_count": len(tickets),
            "total_cents": order.total_cents,
            "qr_codes": [str(ticket.qr_code) for ticket in tickets],
        }
        queue_notification(NotificationType.ORDER_CONFIRMATION, order.buyer_email, context)
