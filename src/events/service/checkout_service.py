"""Public, priced checkout."""

import typing as t
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from common.models import SiteSettings
from events.exceptions import (
    EventNotOnSaleError,
    FulfillmentError,
    InvalidPromoCodeError,
    InventoryBusyError,
    TicketTypeNotOnSaleError,
)
from events.models import CheckoutIntent, Event, Order, PromoCode, TicketType, normalize_promo_code
from events.schema import BuyerSchema, CheckoutResultSchema, LineItemSchema, OrderResultSchema, PromoPreviewSchema
from events.service import inventory, waitlist_service
from events.service.order_issuer import OrderIssuer
from events.service.pricing import OrderTotals, ServiceFee
from events.service.stripe_service import PaymentGateway, simulated_reference

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutConfig:
    """Commerce settings passed into checkout and refunds instead of being read from globals."""

    payment_mode: SiteSettings.PaymentMode
    service_fee: ServiceFee
    currency: str = "usd"

    @classmethod
    def from_settings(cls) -> "CheckoutConfig":
        """Build the config from the SiteSettings singleton and Django settings."""
        site_settings = SiteSettings.get_solo()
        return cls(
            payment_mode=SiteSettings.PaymentMode(site_settings.payment_mode),
            service_fee=ServiceFee(
                percent=site_settings.service_fee_percent,
                flat_cents=site_settings.service_fee_flat_cents,
            ),
            currency=settings.CURRENCY,
        )

    @property
    def gateway(self) -> PaymentGateway:
        return PaymentGateway(self.payment_mode, currency=self.currency)


@dataclass(frozen=True)
class Quote:
    totals: OrderTotals
    unit_prices: dict[UUID, int]


@dataclass
class CheckoutResult:
    amount_cents: int
    order: Order | None = None
    intent: CheckoutIntent | None = None
    client_secret: str | None = None

    @property
    def status(self) -> t.Literal["completed", "awaiting_payment"]:
        return "completed" if self.order is not None else "awaiting_payment"

    def to_schema(self) -> CheckoutResultSchema:
        return CheckoutResultSchema(
            status=self.status,
            amount_cents=self.amount_cents,
            order=OrderResultSchema.from_orm(self.order) if self.order else None,
            payment_intent_id=self.intent.payment_intent_id if self.intent else None,
            client_secret=self.client_secret,
        )


class CheckoutService:
    """Priced, public checkout.

    In simulate mode, and for orders that total zero, tickets are issued immediately. Otherwise
    a payment intent is created and tickets are only issued by ``complete_checkout`` once the
    provider confirms payment, so no ticket type lock is ever held across a provider call.
    """

    def __init__(self, event: Event, *, config: CheckoutConfig, user: User | None = None) -> None:
        self.event = event
        self.config = config
        self.user = user

    def _issuer(self, payment_method: Order.PaymentMethod = Order.PaymentMethod.CARD) -> OrderIssuer:
        return OrderIssuer(
            self.event,
            source=Order.Source.CHECKOUT,
            payment_method=payment_method,
            user=self.user,
            service_fee=self.config.service_fee,
        )

    def checkout(
        self, line_items: Sequence[LineItemSchema], buyer: BuyerSchema, promo_code: str | None = None
    ) -> CheckoutResult:
        """Start (or, when no payment is needed, finish) a checkout.

        Raises:
            FulfillmentValidationError: Invalid request, event or ticket types not on sale, bad promo code.
            InsufficientInventoryError: Sold out, either at quote time or under lock.
            PaymentProviderError: The payment intent could not be created. Nothing was persisted.
        """
        if self.event.status != Event.Status.PUBLISHED:
            raise EventNotOnSaleError()
        quantities, ticket_types = self._issuer().validate(line_items, buyer)
        self._assert_on_sale(ticket_types.values())
        promo = self._resolve_promo(promo_code)
        quote = self.quote(quantities, ticket_types, promo)

        if self.config.payment_mode == SiteSettings.PaymentMode.SIMULATE or quote.totals.total_cents == 0:
            payment_method = Order.PaymentMethod.FREE if quote.totals.total_cents == 0 else Order.PaymentMethod.CARD
            payment_intent_id = "" if quote.totals.total_cents == 0 else simulated_reference("pi")
            order = self._issue(
                line_items, buyer, promo, payment_method=payment_method, payment_intent_id=payment_intent_id
            )
            return CheckoutResult(amount_cents=order.total_cents, order=order)

        return self._start_payment(quantities, buyer, promo, quote)

    def quote(
        self,
        quantities: dict[UUID, int],
        ticket_types: dict[UUID, TicketType],
        promo: PromoCode | None = None,
    ) -> Quote:
        """Price a request without locks. Also rejects requests that are already sold out.

        The quote is what the buyer is charged; availability is re-checked under lock when the
        order is actually issued.
        """
        unit_prices: dict[UUID, int] = {}
        for pk, quantity in quantities.items():
            ticket_type = ticket_types[pk]
            inventory.assert_available(ticket_type, quantity)
            unit_prices[pk] = ticket_type.current_price_cents()
        subtotal = sum(unit_prices[pk] * quantity for pk, quantity in quantities.items())
        fee = self.config.service_fee.calculate(subtotal, sum(quantities.values()))
        discount = promo.calculate_discount(subtotal) if promo else 0
        return Quote(
            totals=OrderTotals(subtotal_cents=subtotal, service_fee_cents=fee, discount_cents=discount),
            unit_prices=unit_prices,
        )

    def _assert_on_sale(self, ticket_types: t.Iterable[TicketType]) -> None:
        now = timezone.now()
        for ticket_type in ticket_types:
            if not ticket_type.is_on_sale(now):
                raise TicketTypeNotOnSaleError(f"{ticket_type.name} is not on sale.")

    def _resolve_promo(self, promo_code: str | None) -> PromoCode | None:
        if not promo_code or not promo_code.strip():
            return None
        promo = PromoCode.objects.filter(event=self.event, code=normalize_promo_code(promo_code)).first()
        if promo is None or not promo.is_usable():
            logger.info("checkout_promo_rejected", event_id=str(self.event.pk))
            raise InvalidPromoCodeError()
        return promo

    def _issue(
        self,
        line_items: Sequence[LineItemSchema],
        buyer: BuyerSchema,
        promo: PromoCode | None,
        *,
        payment_method: Order.PaymentMethod = Order.PaymentMethod.CARD,
        payment_intent_id: str = "",
        quoted_prices: dict[UUID, int] | None = None,
    ) -> Order:
        with transaction.atomic():
            order = self._issuer(payment_method).issue(
                line_items,
                buyer,
                promo_code=promo,
                quoted_prices=quoted_prices,
                payment_intent_id=payment_intent_id,
            )
            waitlist_service.mark_converted(self.event, order.buyer_email)
        return order

    def _start_payment(
        self, quantities: dict[UUID, int], buyer: BuyerSchema, promo: PromoCode | None, quote: Quote
    ) -> CheckoutResult:
        amount = quote.totals.total_cents
        result = self.config.gateway.create_payment_intent(
            amount,
            metadata={"event_id": str(self.event.pk), "buyer_email": buyer.email},
            receipt_email=buyer.email,
        )
        intent = CheckoutIntent.objects.create(
            event=self.event,
            user=self.user,
            buyer_name=buyer.name,
            buyer_email=buyer.email,
            buyer_phone=buyer.phone,
            line_items=[
                {"ticket_type_id": str(pk), "quantity": quantity, "unit_price_cents": quote.unit_prices[pk]}
                for pk, quantity in quantities.items()
            ],
            promo_code=promo.code if promo else "",
            amount_cents=amount,
            payment_intent_id=result.intent_id,
        )
        logger.info(
            "checkout_awaiting_payment",
            event_id=str(self.event.pk),
            payment_intent_id=result.intent_id,
            amount_cents=amount,
        )
        return CheckoutResult(amount_cents=amount, intent=intent, client_secret=result.client_secret)

    def fulfill_intent(self, intent: CheckoutIntent) -> Order:
        """Issue the tickets a confirmed payment intent paid for, at the quoted prices."""
        line_items = [
            LineItemSchema(ticket_type_id=UUID(item["ticket_type_id"]), quantity=item["quantity"])
            for item in intent.line_items
        ]
        quoted_prices = {UUID(item["ticket_type_id"]): item["unit_price_cents"] for item in intent.line_items}
        buyer = BuyerSchema(name=intent.buyer_name, email=intent.buyer_email, phone=intent.buyer_phone)
        promo = None
        if intent.promo_code:
            promo = PromoCode.objects.filter(event=self.event, code=intent.promo_code).first()
            if promo is None:
                raise InvalidPromoCodeError()
        return self._issue(
            line_items,
            buyer,
            promo,
            payment_intent_id=intent.payment_intent_id,
            quoted_prices=quoted_prices,
        )


def complete_checkout(payment_intent_id: str, *, config: CheckoutConfig | None = None) -> Order | None:
    """Issue tickets for a payment the provider confirmed. Safe to call more than once.

    If the tickets can no longer be issued (sold out in the meantime, promo exhausted), the
    intent is marked ``refund_pending`` and the payment is refunded in full. It only becomes
    ``failed`` once the refund went through; a later call retries a refund that did not.

    Raises:
        InventoryBusyError: Lock wait timed out; the intent stays open so the callback can retry.
        PaymentProviderError: The compensating refund failed; the intent stays ``refund_pending``.
    """
    config = config or CheckoutConfig.from_settings()
    failure: FulfillmentError | None = None

    with transaction.atomic():
        intent = (
            CheckoutIntent.objects.select_for_update(of=("self",))
            .select_related("event", "user", "order")
            .filter(payment_intent_id=payment_intent_id)
            .first()
        )
        if intent is None:
            logger.warning("checkout_intent_not_found", payment_intent_id=payment_intent_id)
            return None
        if intent.status == CheckoutIntent.Status.REFUND_PENDING:
            logger.info("checkout_refund_retry", payment_intent_id=payment_intent_id)
        elif intent.status != CheckoutIntent.Status.AWAITING_PAYMENT:
            logger.info("checkout_intent_already_processed", payment_intent_id=payment_intent_id, status=intent.status)
            return intent.order
        else:
            service = CheckoutService(intent.event, config=config, user=intent.user)
            try:
                order = service.fulfill_intent(intent)
            except InventoryBusyError:
                raise
            except FulfillmentError as e:
                failure = e
                intent.status = CheckoutIntent.Status.REFUND_PENDING
                intent.failure_reason = e.message
                intent.save(update_fields=["status", "failure_reason", "updated_at"])
            else:
                intent.status = CheckoutIntent.Status.COMPLETED
                intent.order = order
                intent.save(update_fields=["status", "order", "updated_at"])

    if intent.status == CheckoutIntent.Status.REFUND_PENDING:
        if failure is not None:
            logger.warning(
                "checkout_fulfillment_failed_after_payment",
                payment_intent_id=payment_intent_id,
                error_code=failure.code,
                error=failure.message,
            )
        _refund_unfulfilled_intent(intent, config)
        return None

    logger.info("checkout_completed", payment_intent_id=payment_intent_id, order_id=str(order.pk))
    return order


def _refund_unfulfilled_intent(intent: CheckoutIntent, config: CheckoutConfig) -> None:
    """Refund a paid intent that got no tickets, then close it as failed.

    Runs outside the intent's transaction. The idempotency key makes concurrent or repeated
    calls resolve to the same Stripe refund.
    """
    reference = config.gateway.refund(
        intent.payment_intent_id,
        reason="fulfillment_failed",
        idempotency_key=f"checkout-refund-{intent.payment_intent_id}",
    )
    CheckoutIntent.objects.filter(pk=intent.pk, status=CheckoutIntent.Status.REFUND_PENDING).update(
        status=CheckoutIntent.Status.FAILED, refund_reference=reference, updated_at=timezone.now()
    )
    logger.info("checkout_payment_refunded", payment_intent_id=intent.payment_intent_id, refund_id=reference)


def fail_checkout(payment_intent_id: str, reason: str = "") -> CheckoutIntent | None:
    """Close an intent whose payment failed. No tickets or inventory are involved."""
    updated = CheckoutIntent.objects.filter(
        payment_intent_id=payment_intent_id, status=CheckoutIntent.Status.AWAITING_PAYMENT
    ).update(status=CheckoutIntent.Status.FAILED, failure_reason=reason, updated_at=timezone.now())
    logger.info("checkout_payment_failed", payment_intent_id=payment_intent_id, updated=updated)
    return CheckoutIntent.objects.filter(payment_intent_id=payment_intent_id).first()


def preview_promo_code(event: Event, code: str, subtotal_cents: int) -> PromoPreviewSchema:
    """The discount a promo code would give on a subtotal, without consuming a use.

    Raises:
        InvalidPromoCodeError: Unknown, inactive, expired or exhausted code.
    """
    promo = PromoCode.objects.filter(event=event, code=normalize_promo_code(code)).first()
    if promo is None or not promo.is_usable():
        raise InvalidPromoCodeError()
    return PromoPreviewSchema(
        code=promo.code,
        discount_type=promo.discount_type,
        discount_value=promo.discount_value,
        discount_cents=promo.calculate_discount(subtotal_cents),
    )
