"""Stripe webhook event handlers."""

import stripe
import structlog

from events.service.checkout_service import complete_checkout, fail_checkout
from events.service.refund_service import record_external_refund

logger = structlog.get_logger(__name__)


class StripeEventHandler:
    """Handles the business logic for different types of Stripe webhook events."""

    def __init__(self, event: stripe.Event):
        """Initialize the Stripe event handler."""
        self.event = event

    def handle(self) -> None:
        """Routes the event to the appropriate handler based on its type."""
        event_type = self.event.type
        handler_method = getattr(self, f"handle_{event_type.replace('.', '_')}", self.handle_unknown_event)
        handler_method(self.event)

    def handle_unknown_event(self, event: stripe.Event) -> None:
        """Log unhandled event types for future development."""
        logger.info("stripe_webhook_unhandled_event", event_type=event.type, event_id=event.id)

    def handle_payment_intent_succeeded(self, event: stripe.Event) -> None:
        """Issue the tickets for a confirmed payment.

        Replays are harmless: ``complete_checkout`` returns the existing order for an intent it
        already fulfilled. InventoryBusyError and a failed compensating refund (PaymentProviderError)
        propagate so Stripe retries the delivery.
        """
        intent = event.data.object
        order = complete_checkout(intent["id"])
        logger.info(
            "stripe_payment_intent_succeeded",
            payment_intent_id=intent["id"],
            order_id=str(order.pk) if order else None,
        )

    def handle_payment_intent_payment_failed(self, event: stripe.Event) -> None:
        """Close the checkout whose payment failed."""
        intent = event.data.object
        error = intent.get("last_payment_error") or {}
        fail_checkout(intent["id"], reason=error.get("message", "") or "Payment failed")

    def handle_charge_refunded(self, event: stripe.Event) -> None:
        """Record refunds issued from the Stripe Dashboard.

        Refunds issued through the platform were already recorded; the cumulative
        ``amount_refunded`` then matches the order and nothing changes.
        """
        charge = event.data.object
        payment_intent_id = charge.get("payment_intent")
        if not payment_intent_id:
            logger.warning("stripe_refund_missing_intent", charge_id=charge.get("id"))
            return

        refunds = (charge.get("refunds") or {}).get("data") or []
        result = record_external_refund(
            payment_intent_id,
            charge.get("amount_refunded", 0),
            reference=refunds[0]["id"] if refunds else "",
        )
        if result is not None:
            logger.info(
                "stripe_charge_refund_recorded",
                payment_intent_id=payment_intent_id,
                order_id=str(result.order.pk),
                amount_cents=result.amount_cents,
                full_refund=result.full_refund,
            )
