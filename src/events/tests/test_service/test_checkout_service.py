from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe
from django.utils import timezone

from common.models import SiteSettings
from events.exceptions import (
    EventNotOnSaleError,
    InsufficientInventoryError,
    InvalidPromoCodeError,
    PaymentProviderError,
    TicketTypeNotOnSaleError,
)
from events.models import CheckoutIntent, Event, Order, PromoCode, TicketType, WaitlistEntry
from events.schema import BuyerSchema, WaitlistJoinSchema
from events.service import waitlist_service
from events.service.checkout_service import (
    CheckoutConfig,
    CheckoutService,
    complete_checkout,
    fail_checkout,
    preview_promo_code,
)
from events.service.pricing import NO_FEE, ServiceFee
from events.tests.conftest import LineItemsBuilder

pytestmark = pytest.mark.django_db


@pytest.fixture
def promo(event: Event) -> PromoCode:
    return PromoCode.objects.create(
        event=event, code="harbor10", discount_type=PromoCode.DiscountType.PERCENTAGE, discount_value=10
    )


@pytest.fixture
def stripe_intent() -> MagicMock:
    return MagicMock(id="pi_test_123", client_secret="pi_test_123_secret_abc")


class TestSimulatedCheckout:
    def test_issues_immediately(
        self,
        event: Event,
        general: TicketType,
        vip: TicketType,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        result = CheckoutService(event, config=simulate_config).checkout(line_items((general, 2), (vip, 1)), buyer)

        assert result.status == "completed"
        assert result.order is not None
        assert result.order.total_cents == 13025
        assert result.order.payment_method == Order.PaymentMethod.CARD
        assert result.order.payment_intent_id.startswith("sim_pi_")
        schema = result.to_schema()
        assert schema.amount_cents == 13025
        assert len(schema.order.tickets) == 3

    def test_free_order_without_fee(
        self, event: Event, buyer: BuyerSchema, line_items: LineItemsBuilder
    ) -> None:
        free = TicketType.objects.create(event=event, name="Community", price_cents=0, quantity_available=50)
        config = CheckoutConfig(payment_mode=SiteSettings.PaymentMode.SANDBOX, service_fee=NO_FEE)

        result = CheckoutService(event, config=config).checkout(line_items((free, 2)), buyer)

        assert result.order is not None
        assert result.order.total_cents == 0
        assert result.order.payment_method == Order.PaymentMethod.FREE
        assert result.order.payment_intent_id == ""
        assert not CheckoutIntent.objects.exists()

    def test_promo_code_is_normalized(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        promo: PromoCode,
        line_items: LineItemsBuilder,
    ) -> None:
        result = CheckoutService(event, config=simulate_config).checkout(
            line_items((general, 2)), buyer, promo_code="  Harbor10 "
        )
        assert result.order is not None
        assert result.order.discount_cents == 500
        promo.refresh_from_db()
        assert promo.current_uses == 1

    def test_marks_waitlist_entries_converted(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        entry = waitlist_service.join_waitlist(event, WaitlistJoinSchema(email="KAI@example.com"))

        CheckoutService(event, config=simulate_config).checkout(line_items((general, 1)), buyer)

        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.CONVERTED


class TestCheckoutRejections:
    def test_unpublished_event(
        self,
        draft_event: Event,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        ticket_type = TicketType.objects.create(event=draft_event, name="GA", price_cents=1000, quantity_available=5)
        with pytest.raises(EventNotOnSaleError):
            CheckoutService(draft_event, config=simulate_config).checkout(line_items((ticket_type, 1)), buyer)

    def test_outside_sales_window(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        TicketType.objects.filter(pk=general.pk).update(sales_start_at=timezone.now() + timedelta(days=1))
        with pytest.raises(TicketTypeNotOnSaleError):
            CheckoutService(event, config=simulate_config).checkout(line_items((general, 1)), buyer)
        assert not Order.objects.exists()

    def test_unknown_promo_code(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        simulate_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        with pytest.raises(InvalidPromoCodeError):
            CheckoutService(event, config=simulate_config).checkout(line_items((general, 1)), buyer, "NOPE")

    def test_sold_out_at_quote_time(
        self,
        event: Event,
        vip: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=19)
        vip.refresh_from_db()
        with patch("stripe.PaymentIntent.create") as create:
            with pytest.raises(InsufficientInventoryError) as exc_info:
                CheckoutService(event, config=sandbox_config).checkout(line_items((vip, 2)), buyer)
        assert exc_info.value.remaining == 1
        create.assert_not_called()


class TestDeferredCheckout:
    def test_creates_intent_with_quoted_prices(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        stripe_intent: MagicMock,
        line_items: LineItemsBuilder,
    ) -> None:
        with patch("stripe.PaymentIntent.create", return_value=stripe_intent) as create:
            result = CheckoutService(event, config=sandbox_config).checkout(line_items((general, 2)), buyer)

        assert result.status == "awaiting_payment"
        assert result.client_secret == "pi_test_123_secret_abc"
        assert result.amount_cents == 5000 + 150 + 100
        assert create.call_args.kwargs["amount"] == 5250
        assert create.call_args.kwargs["currency"] == "usd"
        intent = CheckoutIntent.objects.get()
        assert intent.payment_intent_id == "pi_test_123"
        assert intent.line_items == [{"ticket_type_id": str(general.pk), "quantity": 2, "unit_price_cents": 2500}]
        assert not Order.objects.exists()
        general.refresh_from_db()
        assert general.quantity_sold == 0

    def test_provider_failure_persists_nothing(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        line_items: LineItemsBuilder,
    ) -> None:
        error = stripe.APIConnectionError("network down")
        with patch("stripe.PaymentIntent.create", side_effect=error):
            with pytest.raises(PaymentProviderError):
                CheckoutService(event, config=sandbox_config).checkout(line_items((general, 2)), buyer)
        assert not CheckoutIntent.objects.exists()
        assert not Order.objects.exists()

    def test_complete_checkout_issues_at_quoted_price_once(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        stripe_intent: MagicMock,
        line_items: LineItemsBuilder,
    ) -> None:
        with patch("stripe.PaymentIntent.create", return_value=stripe_intent):
            CheckoutService(event, config=sandbox_config).checkout(line_items((general, 2)), buyer)
        TicketType.objects.filter(pk=general.pk).update(price_cents=9900)

        order = complete_checkout("pi_test_123", config=sandbox_config)
        again = complete_checkout("pi_test_123", config=sandbox_config)

        assert order is not None
        assert again == order
        assert order.subtotal_cents == 5000
        assert order.payment_intent_id == "pi_test_123"
        assert Order.objects.count() == 1
        intent = CheckoutIntent.objects.get()
        assert intent.status == CheckoutIntent.Status.COMPLETED
        assert intent.order == order
        general.refresh_from_db()
        assert general.quantity_sold == 2

    def test_complete_checkout_refunds_when_sold_out_meanwhile(
        self,
        event: Event,
        vip: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        stripe_intent: MagicMock,
        line_items: LineItemsBuilder,
    ) -> None:
        with patch("stripe.PaymentIntent.create", return_value=stripe_intent):
            CheckoutService(event, config=sandbox_config).checkout(line_items((vip, 2)), buyer)
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=19)

        with patch("stripe.Refund.create", return_value=MagicMock(id="re_test_1")) as refund:
            assert complete_checkout("pi_test_123", config=sandbox_config) is None

        assert refund.call_args.kwargs["payment_intent"] == "pi_test_123"
        assert "amount" not in refund.call_args.kwargs
        assert refund.call_args.kwargs["idempotency_key"] == "checkout-refund-pi_test_123"
        intent = CheckoutIntent.objects.get()
        assert intent.status == CheckoutIntent.Status.FAILED
        assert intent.refund_reference == "re_test_1"
        assert "Only 1 ticket(s) remaining" in intent.failure_reason
        assert not Order.objects.exists()
        vip.refresh_from_db()
        assert vip.quantity_sold == 19

    def test_failed_compensating_refund_is_retried_on_redelivery(
        self,
        event: Event,
        vip: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        stripe_intent: MagicMock,
        line_items: LineItemsBuilder,
    ) -> None:
        with patch("stripe.PaymentIntent.create", return_value=stripe_intent):
            CheckoutService(event, config=sandbox_config).checkout(line_items((vip, 2)), buyer)
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=20)

        with patch("stripe.Refund.create", side_effect=stripe.APIConnectionError("timeout")):
            with pytest.raises(PaymentProviderError):
                complete_checkout("pi_test_123", config=sandbox_config)

        intent = CheckoutIntent.objects.get()
        assert intent.status == CheckoutIntent.Status.REFUND_PENDING
        assert intent.refund_reference == ""

        with patch("stripe.Refund.create", return_value=MagicMock(id="re_retry_1")) as refund:
            assert complete_checkout("pi_test_123", config=sandbox_config) is None

        refund.assert_called_once()
        assert refund.call_args.kwargs["payment_intent"] == "pi_test_123"
        intent.refresh_from_db()
        assert intent.status == CheckoutIntent.Status.FAILED
        assert intent.refund_reference == "re_retry_1"
        assert not Order.objects.exists()

        with patch("stripe.Refund.create") as refund:
            assert complete_checkout("pi_test_123", config=sandbox_config) is None
        refund.assert_not_called()

    def test_complete_unknown_intent(self, sandbox_config: CheckoutConfig) -> None:
        assert complete_checkout("pi_missing", config=sandbox_config) is None

    def test_fail_checkout(
        self,
        event: Event,
        general: TicketType,
        buyer: BuyerSchema,
        sandbox_config: CheckoutConfig,
        stripe_intent: MagicMock,
        line_items: LineItemsBuilder,
    ) -> None:
        with patch("stripe.PaymentIntent.create", return_value=stripe_intent):
            CheckoutService(event, config=sandbox_config).checkout(line_items((general, 1)), buyer)

        intent = fail_checkout("pi_test_123", reason="Card declined")

        assert intent is not None
        assert intent.status == CheckoutIntent.Status.FAILED
        assert intent.failure_reason == "Card declined"
        assert complete_checkout("pi_test_123", config=sandbox_config) is None


class TestCheckoutConfig:
    def test_from_settings(self, site_settings: SiteSettings) -> None:
        site_settings.payment_mode = SiteSettings.PaymentMode.SANDBOX
        site_settings.service_fee_percent = Decimal("5.00")
        site_settings.service_fee_flat_cents = 25
        site_settings.save()

        config = CheckoutConfig.from_settings()

        assert config.payment_mode == SiteSettings.PaymentMode.SANDBOX
        assert config.service_fee == ServiceFee(percent=Decimal("5.00"), flat_cents=25)
        assert config.currency == "usd"
        assert not config.gateway.simulated


class TestPreviewPromoCode:
    def test_returns_discount_without_consuming(self, event: Event, promo: PromoCode) -> None:
        preview = preview_promo_code(event, "harbor10", 5000)
        assert preview.code == "HARBOR10"
        assert preview.discount_cents == 500
        promo.refresh_from_db()
        assert promo.current_uses == 0

    def test_inactive_code(self, event: Event, promo: PromoCode) -> None:
        PromoCode.objects.filter(pk=promo.pk).update(active=False)
        with pytest.raises(InvalidPromoCodeError):
            preview_promo_code(event, "HARBOR10", 5000)
