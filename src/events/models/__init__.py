from .checkout import CheckoutIntent
from .event import Event
from .guest_list import GuestListEntry
from .order import Order
from .promo import PromoCode, normalize_promo_code
from .ticket import DEFAULT_MAX_PER_ORDER, PricingTier, Ticket, TicketType
from .waitlist import WaitlistEntry

__all__ = [
    "DEFAULT_MAX_PER_ORDER",
    "CheckoutIntent",
    "Event",
    "GuestListEntry",
    "Order",
    "PricingTier",
    "PromoCode",
    "Ticket",
    "TicketType",
    "WaitlistEntry",
    "normalize_promo_code",
]
