"""Refunds and the inventory reversal that follows a full refund."""

from collections import Counter
from dataclasses import dataclass

import structlog
from django.db import transaction

from events.exceptions import InvalidRefundAmountError, InventoryBusyError, OrderNotRefundableError
from events.models import Order, Ticket
from events.schema import RefundResultSchema
from events.service import inventory
from events.service.checkout_service import CheckoutConfig
from notifications.enums import NotificationType
from notifications.service.dispatcher import queue_notification

logger = structlog.get_logger(__name__)


@dataclass
class RefundResult:
    order: Order
    amount_cents: int
    reference: str
    full_refund: bool

    @property
    def remaining_cents(self) -> int:
        return self.order.remaining_refundable_cents

    def to_schema(self) -> RefundResultSchema:
        return RefundResultSchema(
            order_id=self.order.pk,
            status=self.order.status,
            amount_cents=self.amount_cents,
            reference=self.reference,
            remaining_cents=self.remaining_cents,
            full_refund=self.full_refund,
        )


def _validate_amount(order: Order, amount_cents: int | None) -> int:
    if not order.is_refundable:
        raise OrderNotRefundableError()
    remaining = order.remaining_refundable_cents
    if amount_cents is None:
        amount_cents = remaining
    if amount_cents <= 0 or amount_cents > remaining:
        raise InvalidRefundAmountError(f"Refund amount must be between 1 and {remaining} cents, got {amount_cents}.")
    return amount_cents


def _lock_order(order_id: object) -> Order:
    return Order.objects.select_for_update().select_related("event").get(pk=order_id)


def refund_order(
    order: Order, amount_cents: int | None = None, reason: str = "", *, config: CheckoutConfig | None = None
) -> RefundResult:
    """Refund an order, fully when ``amount_cents`` is None.

    The order row is locked for the whole operation, so two refunds of the same order queue
    behind each other and the second one sees the first one's balance. Ticket type locks are
    only taken after the provider has answered.

    A completed order with nothing to refund (comps, free tickets) is cancelled instead when no
    amount is given: its tickets are cancelled and returned to inventory, the provider is not
    called.

    Raises:
        OrderNotRefundableError: The order is not completed or partially refunded.
        InvalidRefundAmountError: The amount is not within the refundable balance.
        PaymentProviderError: The provider rejected the refund. Nothing was changed.
        InventoryBusyError: A ticket type lock could not be acquired in time.
    """
    config = config or CheckoutConfig.from_settings()

    with inventory.translate_lock_errors(), transaction.atomic():
        locked = _lock_order(order.pk)
        if amount_cents is None and locked.status == Order.Status.COMPLETED and not locked.remaining_refundable_cents:
            result = _void_order(locked, reason=reason)
        else:
            amount = _validate_amount(locked, amount_cents)
            is_full = amount >= locked.remaining_refundable_cents
            reference = config.gateway.refund(
                locked.payment_intent_id,
                None if is_full else amount,
                reason=reason,
            )
            try:
                with inventory.translate_lock_errors():
                    result = _record_refund(locked, amount, reason=reason, reference=reference)
            except InventoryBusyError:
                # The provider already paid out; the charge.refunded callback records it later.
                logger.error(
                    "refund_issued_not_recorded",
                    order_id=str(locked.pk),
                    payment_intent_id=locked.payment_intent_id,
                    amount_cents=amount,
                    reference=reference,
                )
                raise

    order.refresh_from_db()
    result.order = order
    return result


def record_external_refund(
    payment_intent_id: str, amount_refunded_cents: int, *, reference: str = ""
) -> RefundResult | None:
    """Record a refund that was issued directly with the provider.

    ``amount_refunded_cents`` is the cumulative amount the provider reports as refunded, so
    replaying the same notification records nothing new.
    """
    with inventory.translate_lock_errors(), transaction.atomic():
        order_id = (
            Order.objects.filter(payment_intent_id=payment_intent_id)
            .order_by("created_at")
            .values_list("pk", flat=True)
            .first()
        )
        if order_id is None:
            logger.warning("refund_external_order_not_found", payment_intent_id=payment_intent_id)
            return None
        locked = _lock_order(order_id)
        delta = min(amount_refunded_cents, locked.total_cents) - locked.refund_amount_cents
        if delta <= 0 or not locked.is_refundable:
            logger.info(
                "refund_external_already_recorded",
                order_id=str(locked.pk),
                amount_refunded_cents=amount_refunded_cents,
                refund_amount_cents=locked.refund_amount_cents,
            )
            return None
        return _record_refund(locked, delta, reason="Refunded with the payment provider", reference=reference)


def _record_refund(order: Order, amount_cents: int, *, reason: str, reference: str) -> RefundResult:
    """Apply a refund to a locked order and reverse its inventory when the refund is full."""
    is_full = order.apply_refund(amount_cents, reason=reason, reference=reference)
    released = _release_tickets(order) if is_full else 0

    if not order.has_placeholder_email:
        queue_notification(
            NotificationType.REFUND_ISSUED,
            order.buyer_email,
            {
                "order_id": str(order.pk),
                "event_title": order.event.title,
                "buyer_name": order.buyer_name,
                "amount_cents": amount_cents,
                "full_refund": is_full,
                "reason": reason,
            },
        )
    if released:
        _offer_released_inventory(order)

    logger.info(
        "refund_applied",
        order_id=str(order.pk),
        amount_cents=amount_cents,
        full_refund=is_full,
        tickets_released=released,
        reference=reference,
    )
    return RefundResult(order=order, amount_cents=amount_cents, reference=reference, full_refund=is_full)


def _release_tickets(order: Order) -> int:
    """Cancel the order's remaining tickets and return them to inventory. Returns the count."""
    tickets = list(order.tickets.exclude(status=Ticket.Status.CANCELLED))
    per_type = Counter(ticket.ticket_type_id for ticket in tickets)
    if not per_type:
        return 0

    locked = inventory.lock_ticket_types(per_type)
    for ticket in tickets:
        ticket.cancel()
    for pk, quantity in per_type.items():
        inventory.release(locked[pk], quantity)
    return len(tickets)


def _void_order(order: Order, *, reason: str) -> RefundResult:
    """Cancel a locked order that has no balance and return its tickets to inventory."""
    order.cancel(reason=reason)
    released = _release_tickets(order)
    if released:
        _offer_released_inventory(order)
    logger.info("order_voided", order_id=str(order.pk), tickets_released=released)
    return RefundResult(order=order, amount_cents=0, reference="", full_refund=True)


def _offer_released_inventory(order: Order) -> None:
    from events.tasks import offer_released_inventory

    event_id = str(order.event_id)
    transaction.on_commit(lambda: offer_released_inventory.delay(event_id))
