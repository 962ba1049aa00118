"""Ticket lookup and door check-in."""

from uuid import UUID

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from events.exceptions import TicketNotFoundError
from events.models import Event, Ticket

logger = structlog.get_logger(__name__)


def _parse_qr_code(qr_code: UUID | str) -> UUID:
    if isinstance(qr_code, UUID):
        return qr_code
    try:
        return UUID(str(qr_code).strip())
    except ValueError as e:
        raise TicketNotFoundError() from e


def lookup_ticket(qr_code: UUID | str) -> Ticket:
    """Find a ticket by the code printed on it.

    Raises:
        TicketNotFoundError: No ticket carries the code, or the code is malformed.
    """
    ticket = (
        Ticket.objects.select_related("event", "ticket_type", "order")
        .filter(qr_code=_parse_qr_code(qr_code))
        .first()
    )
    if ticket is None:
        raise TicketNotFoundError()
    return ticket


@transaction.atomic
def check_in_ticket(event: Event, qr_code: UUID | str) -> Ticket:
    """Admit the holder of a ticket at the door.

    The ticket row is locked, so scanning the same code at two entrances admits one person.

    Raises:
        TicketNotFoundError: The code does not belong to a ticket for this event.
        TicketNotValidError: The ticket was already used, cancelled or transferred.
    """
    try:
        ticket = (
            Ticket.objects.select_for_update()
            .select_related("ticket_type")
            .get(event=event, qr_code=_parse_qr_code(qr_code))
        )
    except (Ticket.DoesNotExist, DjangoValidationError) as e:
        raise TicketNotFoundError() from e
    ticket.check_in(timezone.now())
    logger.info("ticket_checked_in", ticket_id=str(ticket.pk), event_id=str(event.pk))
    return ticket
