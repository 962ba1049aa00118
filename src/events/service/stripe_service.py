"""Payment provider gateway backed by Stripe.

The payment mode decides whether Stripe is called at all: ``simulate`` synthesizes
references locally, ``sandbox`` and ``live`` use the test and live secret keys.
"""

import secrets
import typing as t
from dataclasses import dataclass

import stripe
import structlog
from django.conf import settings

from common.models import SiteSettings
from events.exceptions import PaymentProviderError

logger = structlog.get_logger(__name__)

SIMULATED_PREFIX = "sim_"


def simulated_reference(kind: str) -> str:
    """A locally generated provider reference, e.g. ``sim_pi_...`` or ``sim_re_...``."""
    return f"{SIMULATED_PREFIX}{kind}_{secrets.token_hex(12)}"


@dataclass(frozen=True)
class PaymentIntentResult:
    intent_id: str
    client_secret: str | None


class PaymentGateway:
    def __init__(self, mode: SiteSettings.PaymentMode | str, *, currency: str) -> None:
        """Initialize the gateway.

        Args:
            mode: simulate, sandbox or live.
            currency: ISO 4217 code, lower case.
        """
        self.mode = SiteSettings.PaymentMode(mode)
        self.currency = currency

    @property
    def simulated(self) -> bool:
        return self.mode == SiteSettings.PaymentMode.SIMULATE

    @property
    def _api_key(self) -> str:
        if self.mode == SiteSettings.PaymentMode.LIVE:
            return t.cast(str, settings.STRIPE_LIVE_SECRET_KEY)
        return t.cast(str, settings.STRIPE_TEST_SECRET_KEY)

    def create_payment_intent(
        self, amount_cents: int, *, metadata: dict[str, str], receipt_email: str | None = None
    ) -> PaymentIntentResult:
        """Create a payment intent for the buyer to confirm client-side.

        Raises:
            PaymentProviderError: If the Stripe API call fails.
        """
        if self.simulated:
            return PaymentIntentResult(intent_id=simulated_reference("pi"), client_secret=None)

        params: dict[str, t.Any] = {
            "amount": amount_cents,
            "currency": self.currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata,
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        try:
            intent = stripe.PaymentIntent.create(api_key=self._api_key, **params)
        except stripe.StripeError as e:
            logger.error("stripe_payment_intent_failed", amount_cents=amount_cents, error=str(e))
            raise PaymentProviderError(f"Payment could not be started: {e.user_message or e}") from e

        logger.info("stripe_payment_intent_created", payment_intent_id=intent.id, amount_cents=amount_cents)
        return PaymentIntentResult(intent_id=intent.id, client_secret=intent.client_secret)

    def refund(
        self, intent_id: str, amount_cents: int | None = None, *, reason: str = "", idempotency_key: str | None = None
    ) -> str:
        """Refund a payment intent, fully when ``amount_cents`` is None. Returns the refund id.

        Intents that never went through Stripe (simulated or free orders) get a synthesized id.
        Retries that pass the same ``idempotency_key`` get the refund Stripe already created.

        Raises:
            PaymentProviderError: If the Stripe API call fails.
        """
        if self.simulated or not intent_id or intent_id.startswith(SIMULATED_PREFIX):
            return simulated_reference("re")

        params: dict[str, t.Any] = {"payment_intent": intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if reason:
            params["metadata"] = {"reason": reason[:500]}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            refund = stripe.Refund.create(api_key=self._api_key, **params)
        except stripe.StripeError as e:
            logger.error("stripe_refund_failed", payment_intent_id=intent_id, amount_cents=amount_cents, error=str(e))
            raise PaymentProviderError(f"Refund failed: {e.user_message or e}") from e

        logger.info("stripe_refund_created", payment_intent_id=intent_id, refund_id=refund.id)
        return t.cast(str, refund.id)


def construct_webhook_event(payload: bytes, signature: str) -> stripe.Event:
    """Verify and parse a webhook payload.

    Raises:
        ValueError: If the payload is not valid JSON.
        stripe.SignatureVerificationError: If the signature does not match.
    """
    return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
