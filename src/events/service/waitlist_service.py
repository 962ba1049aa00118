"""FIFO waitlist: joining, offers when inventory frees up, and offer expiry.

A notification is an offer, not a hold. Notified entries buy through normal checkout and
compete for inventory like everyone else.
"""

from datetime import datetime

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Max, Sum
from django.utils import timezone

from accounts.models import User
from events.exceptions import AlreadyOnWaitlistError, OrderValidationError, TicketTypeNotFoundError
from events.models import Event, TicketType, WaitlistEntry
from events.schema import WaitlistJoinSchema
from events.service import inventory
from notifications.enums import NotificationType
from notifications.service.dispatcher import queue_notification

logger = structlog.get_logger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def join_waitlist(event: Event, data: WaitlistJoinSchema, user: User | None = None) -> WaitlistEntry:
    """Append a person to the event's waitlist.

    The event row is locked while the position is computed, so concurrent joins get distinct,
    increasing positions.

    Raises:
        TicketTypeNotFoundError: The ticket type does not belong to the event.
        AlreadyOnWaitlistError: The email already has an active entry for the same ticket type.
    """
    email = _normalize_email(data.email)
    with inventory.translate_lock_errors(), transaction.atomic():
        Event.objects.select_for_update().filter(pk=event.pk).first()

        ticket_type = None
        if data.ticket_type_id is not None:
            ticket_type = TicketType.objects.filter(event=event, pk=data.ticket_type_id).first()
            if ticket_type is None:
                raise TicketTypeNotFoundError([data.ticket_type_id])

        same_list = WaitlistEntry.objects.filter(event=event, ticket_type=ticket_type)
        if same_list.active().filter(email=email).exists():
            raise AlreadyOnWaitlistError()

        last_position = same_list.aggregate(last=Max("position"))["last"] or 0
        entry = WaitlistEntry(
            event=event,
            ticket_type=ticket_type,
            user=user,
            email=email,
            name=data.name,
            phone=data.phone,
            quantity=data.quantity,
            position=last_position + 1,
        )
        try:
            entry.save()
        except DjangoValidationError as e:
            raise OrderValidationError("; ".join(e.messages)) from e

    logger.info(
        "waitlist_joined",
        entry_id=str(entry.pk),
        event_id=str(event.pk),
        ticket_type_id=str(ticket_type.pk) if ticket_type else None,
        position=entry.position,
    )
    return entry


@transaction.atomic
def leave_waitlist(event: Event, email: str) -> int:
    """Cancel every active entry the email holds for the event. Returns how many were cancelled."""
    entries = list(
        WaitlistEntry.objects.select_for_update().active().filter(event=event, email=_normalize_email(email))
    )
    for entry in entries:
        entry.cancel()
    logger.info("waitlist_left", event_id=str(event.pk), cancelled=len(entries))
    return len(entries)


def waitlist_status(event: Event, email: str) -> list[WaitlistEntry]:
    """All of an email's entries for the event, in position order."""
    return list(WaitlistEntry.objects.filter(event=event, email=_normalize_email(email)).by_position())


def waitlist_stats(event: Event) -> dict[str, int]:
    """Entry counts per status for the organizer view."""
    counts = dict(
        WaitlistEntry.objects.filter(event=event)
        .order_by()
        .values("status")
        .annotate(count=Count("id"))
        .values_list("status", "count")
    )
    return {status.value: counts.get(status.value, 0) for status in WaitlistEntry.Status}


def _queue_offer(entry: WaitlistEntry) -> None:
    queue_notification(
        NotificationType.WAITLIST_OFFER,
        entry.email,
        {
            "entry_id": str(entry.pk),
            "event_title": entry.event.title,
            "name": entry.name,
            "quantity": entry.quantity,
            "expires_at": entry.expires_at.isoformat() if entry.expires_at else None,
        },
    )


@transaction.atomic
def notify_entry(entry: WaitlistEntry, now: datetime | None = None) -> WaitlistEntry:
    """Send a waiting entry its offer.

    Raises:
        InvalidWaitlistTransitionError: The entry is not waiting.
    """
    entry.notify(now)
    _queue_offer(entry)
    logger.info("waitlist_entry_notified", entry_id=str(entry.pk), event_id=str(entry.event_id))
    return entry


@transaction.atomic
def notify_next(
    event: Event, count: int = 1, ticket_type: TicketType | None = None, now: datetime | None = None
) -> list[WaitlistEntry]:
    """Notify the first ``count`` waiting entries, capped at WAITLIST_NOTIFY_NEXT_MAX."""
    count = max(min(count, settings.WAITLIST_NOTIFY_NEXT_MAX), 0)
    entries = WaitlistEntry.objects.select_for_update().filter(event=event, status=WaitlistEntry.Status.WAITING)
    if ticket_type is not None:
        entries = entries.filter(ticket_type=ticket_type)
    notified = list(entries.select_related("event").by_position()[:count])
    for entry in notified:
        notify_entry(entry, now)
    return notified


@transaction.atomic
def notify_waitlist_if_available(event: Event, now: datetime | None = None) -> list[WaitlistEntry]:
    """Offer freed inventory to waiting entries in position order.

    Availability is read without locks and reduced by the offers still open, then spent on
    entries whose quantity fits. An entry for any ticket type takes from the first type with
    room. Entries that do not fit are skipped, not blocked on.
    """
    ticket_types = list(TicketType.objects.filter(event=event).order_by("sort_order", "created_at"))
    budget = inventory.availability_snapshot(ticket_types)

    open_offers = (
        WaitlistEntry.objects.filter(event=event, status=WaitlistEntry.Status.NOTIFIED)
        .order_by()
        .values("ticket_type_id")
        .annotate(held=Sum("quantity"))
    )
    for row in open_offers:
        pk = row["ticket_type_id"]
        if pk is not None:
            budget[pk] = budget.get(pk, 0) - row["held"]
        else:
            _spend_any(budget, row["held"])

    notified: list[WaitlistEntry] = []
    waiting = (
        WaitlistEntry.objects.select_for_update()
        .filter(event=event, status=WaitlistEntry.Status.WAITING)
        .select_related("event")
        .by_position()
    )
    for entry in waiting:
        if not any(remaining > 0 for remaining in budget.values()):
            break
        if entry.ticket_type_id is not None:
            if budget.get(entry.ticket_type_id, 0) < entry.quantity:
                continue
            budget[entry.ticket_type_id] -= entry.quantity
        elif not _spend_any(budget, entry.quantity, whole=True):
            continue
        notified.append(notify_entry(entry, now))

    logger.info("waitlist_scan_completed", event_id=str(event.pk), notified=len(notified))
    return notified


def _spend_any(budget: dict, quantity: int, *, whole: bool = False) -> bool:
    """Take ``quantity`` units from the first ticket type with room.

    With ``whole`` the units must all come from one type, otherwise nothing is taken.
    """
    for pk, remaining in budget.items():
        if remaining >= quantity:
            budget[pk] = remaining - quantity
            return True
    if whole:
        return False
    for pk, remaining in budget.items():
        taken = min(max(remaining, 0), quantity)
        budget[pk] = remaining - taken
        quantity -= taken
    return True


@transaction.atomic
def expire_stale_offers(now: datetime | None = None) -> int:
    """Move notified entries whose offer window has passed to expired. Returns the count."""
    now = now or timezone.now()
    stale = list(
        WaitlistEntry.objects.select_for_update().filter(status=WaitlistEntry.Status.NOTIFIED, expires_at__lt=now)
    )
    for entry in stale:
        entry.expire()
    if stale:
        logger.info("waitlist_offers_expired", count=len(stale))
    return len(stale)


@transaction.atomic
def mark_converted(event: Event, email: str) -> int:
    """Mark the buyer's active entries for the event as converted. Returns the count."""
    entries = list(
        WaitlistEntry.objects.select_for_update().active().filter(event=event, email=_normalize_email(email))
    )
    for entry in entries:
        entry.mark_converted()
    if entries:
        logger.info("waitlist_converted", event_id=str(event.pk), count=len(entries))
    return len(entries)
