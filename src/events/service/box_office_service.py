"""In-person sales operated by the organizer at the door."""

import secrets
from collections.abc import Sequence

import structlog
from django.conf import settings
from django.db.models import Count, F, Sum

from events.exceptions import EventNotOnSaleError, OrderValidationError
from events.models import Event, Order, Ticket
from events.schema import BoxOfficeSummarySchema, BuyerSchema, LineItemSchema, PaymentMethodTotalsSchema
from events.service.order_issuer import OrderIssuer

logger = structlog.get_logger(__name__)

BOX_OFFICE_PAYMENT_METHODS = (Order.PaymentMethod.DOOR_CASH, Order.PaymentMethod.DOOR_CARD)


def walk_in_buyer() -> BuyerSchema:
    """Placeholder identity for an anonymous door sale."""
    return BuyerSchema(
        name=settings.BOX_OFFICE_WALK_IN_NAME,
        email=f"walkin-{secrets.token_hex(4)}@{settings.BOX_OFFICE_EMAIL_DOMAIN}",
    )


class BoxOfficeService:
    """Door sales: priced at the current tier price, no platform fee, no promo codes.

    Payment is taken in person, so orders complete immediately without a provider round trip.
    """

    def __init__(self, event: Event) -> None:
        self.event = event

    def sell(
        self,
        line_items: Sequence[LineItemSchema],
        payment_method: Order.PaymentMethod | str,
        buyer: BuyerSchema | None = None,
    ) -> Order:
        """Sell tickets at the door.

        Args:
            line_items: Requested (ticket_type_id, quantity) pairs.
            payment_method: door_cash or door_card.
            buyer: Optional buyer identity. Missing name or email fall back to a walk-in placeholder.

        Raises:
            OrderValidationError: Unsupported payment method or malformed line items.
            EventNotOnSaleError: The event was cancelled.
            InsufficientInventoryError: Not enough units left under lock.
        """
        if payment_method not in BOX_OFFICE_PAYMENT_METHODS:
            allowed = ", ".join(method.value for method in BOX_OFFICE_PAYMENT_METHODS)
            raise OrderValidationError(f"Box office payment method must be one of: {allowed}.")
        if self.event.status == Event.Status.CANCELLED:
            raise EventNotOnSaleError("This event has been cancelled.")

        placeholder = walk_in_buyer()
        buyer = BuyerSchema(
            name=(buyer.name if buyer else "") or placeholder.name,
            email=(buyer.email if buyer else "") or placeholder.email,
            phone=buyer.phone if buyer else "",
        )
        issuer = OrderIssuer(
            self.event,
            source=Order.Source.BOX_OFFICE,
            payment_method=Order.PaymentMethod(payment_method),
            send_confirmation=buyer.email != placeholder.email,
        )
        order = issuer.issue(line_items, buyer)
        logger.info(
            "box_office_sale",
            order_id=str(order.pk),
            event_id=str(self.event.pk),
            payment_method=payment_method,
            total_cents=order.total_cents,
        )
        return order

    def summary(self) -> BoxOfficeSummarySchema:
        """Door sales for the event by payment method: paid orders, valid tickets and net revenue."""
        orders = Order.objects.filter(event=self.event, source=Order.Source.BOX_OFFICE).completed()
        order_rows = (
            orders.order_by()
            .values("payment_method")
            .annotate(orders=Count("id"), revenue_cents=Sum(F("total_cents") - F("refund_amount_cents")))
        )
        ticket_counts = dict(
            Ticket.objects.valid()
            .filter(order__in=orders)
            .order_by()
            .values("order__payment_method")
            .annotate(count=Count("id"))
            .values_list("order__payment_method", "count")
        )
        by_method = {
            method.value: PaymentMethodTotalsSchema(orders=0, tickets=0, revenue_cents=0)
            for method in BOX_OFFICE_PAYMENT_METHODS
        }
        for row in order_rows:
            by_method[row["payment_method"]] = PaymentMethodTotalsSchema(
                orders=row["orders"],
                tickets=ticket_counts.get(row["payment_method"], 0),
                revenue_cents=row["revenue_cents"] or 0,
            )
        return BoxOfficeSummarySchema(
            orders=sum(totals.orders for totals in by_method.values()),
            tickets=sum(totals.tickets for totals in by_method.values()),
            revenue_cents=sum(totals.revenue_cents for totals in by_method.values()),
            by_payment_method=by_method,
        )
