"""Guest list management and comp redemption."""

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from events.exceptions import (
    EventNotOnSaleError,
    GuestListEntryAlreadyRedeemedError,
    OrderValidationError,
    TicketTypeNotFoundError,
)
from events.models import Event, GuestListEntry, Order, TicketType
from events.schema import BuyerSchema, GuestListEntryCreateSchema, GuestListEntryUpdateSchema, LineItemSchema
from events.service import inventory, update_db_instance
from events.service.order_issuer import OrderIssuer
from notifications.enums import NotificationType
from notifications.service.dispatcher import queue_notification

logger = structlog.get_logger(__name__)


def _save(entry: GuestListEntry) -> None:
    try:
        entry.save()
    except DjangoValidationError as e:
        raise OrderValidationError("; ".join(e.messages)) from e


def _assert_editable(entry: GuestListEntry) -> None:
    if entry.redeemed:
        raise GuestListEntryAlreadyRedeemedError("A redeemed guest list entry cannot be changed.")


def add_guest(event: Event, data: GuestListEntryCreateSchema, added_by: str = "") -> GuestListEntry:
    """Put a guest on the list. No inventory is consumed until the entry is redeemed."""
    ticket_type = TicketType.objects.filter(event=event, pk=data.ticket_type_id).first()
    if ticket_type is None:
        raise TicketTypeNotFoundError([data.ticket_type_id])

    entry = GuestListEntry(
        event=event,
        ticket_type=ticket_type,
        guest_name=data.guest_name,
        guest_email=data.guest_email,
        guest_phone=data.guest_phone,
        notes=data.notes,
        quantity=data.quantity,
        added_by=added_by,
    )
    with transaction.atomic():
        _save(entry)
        if entry.guest_email:
            queue_notification(
                NotificationType.GUEST_LIST_ADDED,
                entry.guest_email,
                {
                    "event_title": event.title,
                    "guest_name": entry.guest_name,
                    "quantity": entry.quantity,
                    "ticket_type_name": ticket_type.name,
                },
            )
    logger.info("guest_list_entry_added", entry_id=str(entry.pk), event_id=str(event.pk), quantity=entry.quantity)
    return entry


@transaction.atomic
def update_guest(entry: GuestListEntry, data: GuestListEntryUpdateSchema) -> GuestListEntry:
    """Apply the fields set on ``data`` to an unredeemed entry."""
    locked = GuestListEntry.objects.select_for_update().get(pk=entry.pk)
    _assert_editable(locked)
    try:
        return update_db_instance(locked, data)
    except DjangoValidationError as e:
        raise OrderValidationError("; ".join(e.messages)) from e


@transaction.atomic
def remove_guest(entry: GuestListEntry) -> None:
    """Delete an unredeemed entry."""
    entry = GuestListEntry.objects.select_for_update().get(pk=entry.pk)
    _assert_editable(entry)
    logger.info("guest_list_entry_removed", entry_id=str(entry.pk), event_id=str(entry.event_id))
    entry.delete()


def redeem_guest(entry: GuestListEntry) -> Order:
    """Issue the comp order for a guest list entry.

    The entry row is locked before the ticket type, so two door staff redeeming the same guest
    at once produce exactly one order; the second sees the entry already redeemed.

    Raises:
        GuestListEntryAlreadyRedeemedError: The entry was already redeemed.
        EventNotOnSaleError: The event was cancelled.
        InsufficientInventoryError: Not enough units left under lock.
        InventoryBusyError: A lock could not be acquired in time.
    """
    with inventory.translate_lock_errors(), transaction.atomic():
        locked = GuestListEntry.objects.select_for_update().select_related("event").get(pk=entry.pk)
        if locked.redeemed:
            raise GuestListEntryAlreadyRedeemedError()
        if locked.event.status == Event.Status.CANCELLED:
            raise EventNotOnSaleError("This event has been cancelled.")

        issuer = OrderIssuer(
            locked.event,
            source=Order.Source.GUEST_LIST,
            payment_method=Order.PaymentMethod.COMP,
            priced=False,
            enforce_max_per_order=False,
            send_confirmation=bool(locked.guest_email),
        )
        order = issuer.issue(
            [LineItemSchema(ticket_type_id=locked.ticket_type_id, quantity=locked.quantity)],
            BuyerSchema(
                name=locked.guest_name,
                email=locked.guest_email or settings.GUEST_LIST_PLACEHOLDER_EMAIL,
                phone=locked.guest_phone,
            ),
        )
        locked.mark_redeemed(order)

    entry.refresh_from_db()
    logger.info("guest_list_entry_redeemed", entry_id=str(entry.pk), order_id=str(order.pk))
    return order
