"""Context schemas for outbox notifications.

Each notification type has a TypedDict describing the context its template renders.
"""

import typing as t

from notifications.enums import NotificationType


class OrderConfirmationContext(t.TypedDict, total=False):
    order_id: t.Required[str]
    event_title: t.Required[str]
    buyer_name: t.Required[str]
    ticket_count: t.Required[int]
    total_cents: t.Required[int]
    qr_codes: t.Required[list[str]]


class WaitlistOfferContext(t.TypedDict, total=False):
    entry_id: t.Required[str]
    event_title: t.Required[str]
    quantity: t.Required[int]
    expires_at: t.Required[str | None]  # ISO format
    name: str


class GuestListAddedContext(t.TypedDict, total=False):
    event_title: t.Required[str]
    guest_name: t.Required[str]
    quantity: t.Required[int]
    ticket_type_name: t.Required[str]


class RefundIssuedContext(t.TypedDict, total=False):
    order_id: t.Required[str]
    event_title: t.Required[str]
    amount_cents: t.Required[int]
    full_refund: t.Required[bool]
    buyer_name: str
    reason: str


NOTIFICATION_CONTEXT_SCHEMAS: dict[NotificationType, type] = {
    NotificationType.ORDER_CONFIRMATION: OrderConfirmationContext,
    NotificationType.WAITLIST_OFFER: WaitlistOfferContext,
    NotificationType.GUEST_LIST_ADDED: GuestListAddedContext,
    NotificationType.REFUND_ISSUED: RefundIssuedContext,
}


def validate_notification_context(notification_type: NotificationType, context: dict[str, t.Any]) -> None:
    """Validate that context matches expected schema for notification type.

    Raises:
        ValueError: If context is missing required keys or notification type has no schema
    """
    schema = NOTIFICATION_CONTEXT_SCHEMAS.get(notification_type)
    if schema is None:
        raise ValueError(f"No schema defined for notification type: {notification_type}")

    # TypedDicts are only checked statically; at runtime only the required keys are checked.
    required_keys: frozenset[str] = getattr(schema, "__required_keys__", frozenset())
    missing_keys = required_keys - context.keys()
    if missing_keys:
        raise ValueError(f"Missing required context keys for {notification_type}: {sorted(missing_keys)}")
