from decimal import Decimal

from decouple import config

# simulate | sandbox | live. SiteSettings.payment_mode takes precedence once the row exists.
PAYMENT_MODE = config("PAYMENT_MODE", default="simulate")
CURRENCY = config("CURRENCY", default="usd")

DEFAULT_SERVICE_FEE_PERCENT = config("DEFAULT_SERVICE_FEE_PERCENT", cast=Decimal, default="3.00")
DEFAULT_SERVICE_FEE_FLAT_CENTS = config("DEFAULT_SERVICE_FEE_FLAT_CENTS", cast=int, default=50)

STRIPE_TEST_SECRET_KEY = config("STRIPE_TEST_SECRET_KEY", default="sk_test_...")
STRIPE_TEST_PUBLISHABLE_KEY = config("STRIPE_TEST_PUBLISHABLE_KEY", default="pk_test_...")
STRIPE_LIVE_SECRET_KEY = config("STRIPE_LIVE_SECRET_KEY", default="sk_live_...")
STRIPE_LIVE_PUBLISHABLE_KEY = config("STRIPE_LIVE_PUBLISHABLE_KEY", default="pk_live_...")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="whsec_...")
