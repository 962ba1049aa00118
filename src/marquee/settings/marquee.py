from decouple import config

WAITLIST_OFFER_WINDOW_HOURS = config("WAITLIST_OFFER_WINDOW_HOURS", default=24, cast=int)
WAITLIST_NOTIFY_NEXT_MAX = config("WAITLIST_NOTIFY_NEXT_MAX", default=50, cast=int)

# Only applied on PostgreSQL, as SET LOCAL lock_timeout inside the purchase transaction.
INVENTORY_LOCK_TIMEOUT_MS = config("INVENTORY_LOCK_TIMEOUT_MS", default=5000, cast=int)

GUEST_LIST_PLACEHOLDER_EMAIL = config("GUEST_LIST_PLACEHOLDER_EMAIL", default="guest@guestlist.local")
BOX_OFFICE_EMAIL_DOMAIN = config("BOX_OFFICE_EMAIL_DOMAIN", default="boxoffice.local")
BOX_OFFICE_WALK_IN_NAME = config("BOX_OFFICE_WALK_IN_NAME", default="Walk-in")
