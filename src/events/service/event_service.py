from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError

from accounts.models import OrganizerProfile
from events.exceptions import EventNotFoundError, EventNotOnSaleError
from events.models import Event
from events.schema import TicketTypeCatalogSchema


def get_organizer_event(organizer: OrganizerProfile, event_id: UUID | str) -> Event:
    """Fetch an event owned by the organizer. Other organizers' events look like missing ones."""
    try:
        event = Event.objects.for_organizer(organizer.pk).filter(pk=event_id).first()
    except DjangoValidationError as e:
        raise EventNotFoundError() from e
    if event is None:
        raise EventNotFoundError()
    return event


def ticket_catalog(event: Event) -> list[TicketTypeCatalogSchema]:
    """Buyer-facing ticket types with their current price and unlocked availability.

    Availability shown here is informational; it is re-checked under lock at purchase time.
    """
    if event.status != Event.Status.PUBLISHED:
        raise EventNotOnSaleError()
    ticket_types = event.ticket_types.prefetch_related("pricing_tiers").order_by("sort_order", "created_at")
    return [TicketTypeCatalogSchema.from_orm(ticket_type) for ticket_type in ticket_types]
