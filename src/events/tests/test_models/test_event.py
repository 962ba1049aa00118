from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError

from accounts.models import OrganizerProfile
from events.models import Event

pytestmark = pytest.mark.django_db


def test_slug_is_derived_from_title(event: Event) -> None:
    assert event.slug == "harbor-lights-live"


def test_duplicate_titles_get_distinct_slugs(event: Event, organizer: OrganizerProfile) -> None:
    other = Event.objects.create(organizer=organizer, title=event.title, starts_at=event.starts_at)
    assert other.slug != event.slug
    assert other.slug.startswith("harbor-lights-live-")


def test_end_must_follow_start(organizer: OrganizerProfile, event: Event) -> None:
    with pytest.raises(ValidationError):
        Event.objects.create(
            organizer=organizer, title="Backwards", starts_at=event.starts_at, ends_at=event.starts_at - timedelta(1)
        )


def test_recurrence_end_requires_rule(organizer: OrganizerProfile, event: Event) -> None:
    with pytest.raises(ValidationError):
        Event.objects.create(
            organizer=organizer,
            title="Weekly-ish",
            starts_at=event.starts_at,
            recurrence_end_date=event.starts_at.date() + timedelta(days=60),
        )


def test_is_recurring(organizer: OrganizerProfile, event: Event) -> None:
    assert not event.is_recurring
    series = Event.objects.create(
        organizer=organizer, title="Open Mic", starts_at=event.starts_at, recurrence_rule=Event.RecurrenceRule.WEEKLY
    )
    assert series.is_recurring


def test_published_queryset(event: Event, draft_event: Event) -> None:
    assert list(Event.objects.published()) == [event]
