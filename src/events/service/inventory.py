"""Inventory ledger.

This module is the only writer of ``TicketType.quantity_sold``. Every function that reads or
writes the counters expects to run inside ``transaction.atomic`` on rows returned by
``lock_ticket_types``; availability is always decided against the locked row, never against a
snapshot read before the transaction started.
"""

import typing as t
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from uuid import UUID

import structlog
from django.conf import settings
from django.db import OperationalError, connection
from django.db.models import F, Value
from django.db.models.functions import Greatest

from events.exceptions import InsufficientInventoryError, InventoryBusyError
from events.models import PricingTier, TicketType

logger = structlog.get_logger(__name__)

# lock_not_available (lock_timeout elapsed), deadlock_detected
LOCK_ERROR_SQLSTATES = frozenset({"55P03", "40P01"})


@contextmanager
def translate_lock_errors() -> Iterator[None]:
    """Turn lock-wait timeouts and deadlocks into a retryable InventoryBusyError.

    Wrap it around the ``transaction.atomic`` block so the rollback has happened by the time
    the caller sees the error.
    """
    try:
        yield
    except OperationalError as e:
        sqlstate = getattr(e.__cause__, "sqlstate", None)
        if sqlstate not in LOCK_ERROR_SQLSTATES:
            raise
        logger.warning("inventory_lock_unavailable", sqlstate=sqlstate)
        raise InventoryBusyError() from e


def _set_lock_timeout() -> None:
    timeout_ms = settings.INVENTORY_LOCK_TIMEOUT_MS
    if connection.vendor != "postgresql" or not timeout_ms:
        return
    with connection.cursor() as cursor:
        cursor.execute("SELECT set_config('lock_timeout', %s, true)", [f"{timeout_ms}ms"])


def lock_ticket_types(ticket_type_ids: Iterable[UUID]) -> dict[UUID, TicketType]:
    """Lock ticket type rows in ascending primary-key order and return them keyed by id.

    A single ``SELECT ... ORDER BY id FOR UPDATE`` acquires the row locks in id order, so two
    orders spanning the same ticket types always queue in the same sequence.
    """
    ids = set(ticket_type_ids)
    _set_lock_timeout()
    locked = {
        ticket_type.pk: ticket_type
        for ticket_type in TicketType.objects.select_for_update().filter(pk__in=ids).order_by("pk")
    }
    logger.debug("inventory_locked", ticket_type_ids=[str(pk) for pk in locked])
    return locked


def assert_available(ticket_type: TicketType, quantity: int) -> None:
    """Raise if the locked row cannot cover ``quantity`` units."""
    remaining = ticket_type.available_quantity
    if quantity > remaining:
        logger.info(
            "inventory_insufficient",
            ticket_type_id=str(ticket_type.pk),
            requested=quantity,
            remaining=remaining,
        )
        raise InsufficientInventoryError(
            ticket_type_id=ticket_type.pk,
            ticket_type_name=ticket_type.name,
            requested=quantity,
            remaining=remaining,
        )


def record_sale(ticket_type: TicketType, quantity: int, pricing_tier: PricingTier | None = None) -> None:
    """Advance the ledger for a sale on a locked ticket type.

    The quantity tier whose price was charged advances with it. Tier rows are only written
    here, while their parent ticket type is locked.
    """
    TicketType.objects.filter(pk=ticket_type.pk).update(quantity_sold=F("quantity_sold") + quantity)
    ticket_type.quantity_sold += quantity
    if pricing_tier is not None and pricing_tier.tier_type == PricingTier.TierType.QUANTITY_BASED:
        PricingTier.objects.filter(pk=pricing_tier.pk).update(quantity_sold=F("quantity_sold") + quantity)
        pricing_tier.quantity_sold += quantity


def release(ticket_type: TicketType, quantity: int) -> None:
    """Return ``quantity`` units to a locked ticket type. The counter never drops below zero."""
    if quantity > ticket_type.quantity_sold:
        logger.warning(
            "inventory_release_exceeds_sold",
            ticket_type_id=str(ticket_type.pk),
            quantity=quantity,
            quantity_sold=ticket_type.quantity_sold,
        )
    TicketType.objects.filter(pk=ticket_type.pk).update(
        quantity_sold=Greatest(F("quantity_sold") - quantity, Value(0))
    )
    ticket_type.quantity_sold = max(ticket_type.quantity_sold - quantity, 0)


def availability_snapshot(ticket_types: t.Iterable[TicketType]) -> dict[UUID, int]:
    """Unlocked availability per ticket type, for quotes and waitlist scans only."""
    return {ticket_type.pk: ticket_type.available_quantity for ticket_type in ticket_types}
