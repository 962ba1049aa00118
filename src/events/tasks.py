"""Celery tasks for the waitlist."""

import structlog
from celery import shared_task

from .models import Event
from .service import waitlist_service

logger = structlog.get_logger(__name__)


@shared_task(name="events.offer_released_inventory")
def offer_released_inventory(event_id: str) -> int:
    """Offer inventory freed by a refund to the event's waitlist. Returns how many were notified."""
    event = Event.objects.filter(pk=event_id).first()
    if event is None:
        logger.warning("waitlist_scan_event_missing", event_id=event_id)
        return 0
    return len(waitlist_service.notify_waitlist_if_available(event))


@shared_task(name="events.expire_waitlist_offers")
def expire_waitlist_offers() -> int:
    """Expire lapsed waitlist offers.

    This task is idempotent and safe to run periodically.
    """
    return waitlist_service.expire_stale_offers()
