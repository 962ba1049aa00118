import typing as t
from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from accounts.models import User
from events.exceptions import AlreadyOnWaitlistError, InvalidWaitlistTransitionError, TicketTypeNotFoundError
from events.models import Event, TicketType, WaitlistEntry
from events.schema import WaitlistJoinSchema
from events.service import waitlist_service
from notifications.enums import NotificationType
from notifications.models import Notification

pytestmark = pytest.mark.django_db


def _join(event: Event, email: str, ticket_type: TicketType | None = None, quantity: int = 1) -> WaitlistEntry:
    return waitlist_service.join_waitlist(
        event,
        WaitlistJoinSchema(email=email, ticket_type_id=ticket_type.pk if ticket_type else None, quantity=quantity),
    )


class TestJoinWaitlist:
    def test_positions_increase_per_list(self, event: Event, vip: TicketType) -> None:
        first = _join(event, "a@example.com", vip)
        second = _join(event, "b@example.com", vip)
        any_type = _join(event, "c@example.com")

        assert (first.position, second.position) == (1, 2)
        assert any_type.position == 1

    def test_positions_are_not_reused_after_cancellation(self, event: Event, vip: TicketType) -> None:
        _join(event, "a@example.com", vip)
        second = _join(event, "b@example.com", vip)
        waitlist_service.leave_waitlist(event, "b@example.com")

        third = _join(event, "c@example.com", vip)

        assert third.position == second.position + 1

    def test_duplicate_active_entry(self, event: Event, vip: TicketType) -> None:
        _join(event, "ana@example.com", vip)
        with pytest.raises(AlreadyOnWaitlistError):
            _join(event, "  ANA@example.com ", vip)

    def test_duplicate_any_type_entry(self, event: Event) -> None:
        _join(event, "ana@example.com")
        with pytest.raises(AlreadyOnWaitlistError):
            _join(event, "ana@example.com")

    def test_same_email_on_different_lists(self, event: Event, general: TicketType, vip: TicketType) -> None:
        _join(event, "ana@example.com", general)
        _join(event, "ana@example.com", vip)
        assert WaitlistEntry.objects.filter(email="ana@example.com").count() == 2

    def test_foreign_ticket_type(self, event: Event, draft_event: Event) -> None:
        foreign = TicketType.objects.create(event=draft_event, name="GA", price_cents=0, quantity_available=5)
        with pytest.raises(TicketTypeNotFoundError):
            _join(event, "ana@example.com", foreign)

    def test_records_user(self, event: Event, user: User) -> None:
        entry = waitlist_service.join_waitlist(event, WaitlistJoinSchema(email="ana@example.com"), user=user)
        assert entry.user == user


class TestLeaveAndStatus:
    def test_leave_cancels_active_entries(self, event: Event, general: TicketType, vip: TicketType) -> None:
        _join(event, "ana@example.com", general)
        _join(event, "ana@example.com", vip)

        assert waitlist_service.leave_waitlist(event, "Ana@Example.com") == 2
        assert waitlist_service.leave_waitlist(event, "ana@example.com") == 0
        statuses = {entry.status for entry in waitlist_service.waitlist_status(event, "ana@example.com")}
        assert statuses == {WaitlistEntry.Status.CANCELLED}

    def test_status_in_position_order(self, event: Event, vip: TicketType) -> None:
        _join(event, "b@example.com", vip)
        _join(event, "ana@example.com", vip)
        entries = waitlist_service.waitlist_status(event, "ana@example.com")
        assert [entry.position for entry in entries] == [2]

    def test_stats(self, event: Event, vip: TicketType) -> None:
        _join(event, "a@example.com", vip)
        _join(event, "b@example.com", vip)
        _join(event, "c@example.com", vip)
        waitlist_service.notify_next(event)
        waitlist_service.leave_waitlist(event, "c@example.com")

        stats = waitlist_service.waitlist_stats(event)

        assert stats == {"waiting": 1, "notified": 1, "converted": 0, "expired": 0, "cancelled": 1}


class TestNotify:
    def test_notify_next_in_position_order(self, event: Event, vip: TicketType) -> None:
        for email in ("a@example.com", "b@example.com", "c@example.com"):
            _join(event, email, vip)

        notified = waitlist_service.notify_next(event, count=2)

        assert [entry.email for entry in notified] == ["a@example.com", "b@example.com"]
        assert all(entry.status == WaitlistEntry.Status.NOTIFIED for entry in notified)
        offers = Notification.objects.filter(notification_type=NotificationType.WAITLIST_OFFER)
        assert {offer.recipient_email for offer in offers} == {"a@example.com", "b@example.com"}

    def test_notify_next_is_capped(self, event: Event, settings: t.Any) -> None:
        settings.WAITLIST_NOTIFY_NEXT_MAX = 2
        for index in range(4):
            _join(event, f"fan{index}@example.com")
        assert len(waitlist_service.notify_next(event, count=10)) == 2

    def test_notify_next_filters_by_ticket_type(self, event: Event, general: TicketType, vip: TicketType) -> None:
        _join(event, "a@example.com", general)
        _join(event, "b@example.com", vip)
        notified = waitlist_service.notify_next(event, count=5, ticket_type=vip)
        assert [entry.email for entry in notified] == ["b@example.com"]

    def test_notify_entry_sets_offer_window(self, event: Event, vip: TicketType) -> None:
        entry = _join(event, "ana@example.com", vip)
        now = timezone.now()

        waitlist_service.notify_entry(entry, now)

        assert entry.notified_at == now
        assert entry.expires_at == now + timedelta(hours=24)
        offer = Notification.objects.get(notification_type=NotificationType.WAITLIST_OFFER)
        assert offer.context["entry_id"] == str(entry.pk)
        with pytest.raises(InvalidWaitlistTransitionError):
            waitlist_service.notify_entry(entry, now)


class TestNotifyIfAvailable:
    def test_notifies_entries_that_fit(self, event: Event, vip: TicketType) -> None:
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=17)
        big = _join(event, "big@example.com", vip, quantity=4)
        small = _join(event, "small@example.com", vip, quantity=2)
        last = _join(event, "last@example.com", vip, quantity=2)

        notified = waitlist_service.notify_waitlist_if_available(event)

        assert notified == [small]
        big.refresh_from_db()
        last.refresh_from_db()
        assert big.status == WaitlistEntry.Status.WAITING
        assert last.status == WaitlistEntry.Status.WAITING

    def test_open_offers_reduce_the_budget(self, event: Event, vip: TicketType) -> None:
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=18)
        _join(event, "first@example.com", vip, quantity=2)
        waitlist_service.notify_next(event, ticket_type=vip)
        _join(event, "second@example.com", vip)

        assert waitlist_service.notify_waitlist_if_available(event) == []

    def test_any_type_entry_takes_a_type_with_room(self, event: Event, general: TicketType, vip: TicketType) -> None:
        TicketType.objects.filter(pk=general.pk).update(quantity_sold=100)
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=17)
        entry = _join(event, "any@example.com", quantity=3)

        assert waitlist_service.notify_waitlist_if_available(event) == [entry]

    def test_sold_out_event_notifies_nobody(self, event: Event, vip: TicketType) -> None:
        TicketType.objects.filter(pk=vip.pk).update(quantity_sold=20)
        _join(event, "ana@example.com", vip)
        assert waitlist_service.notify_waitlist_if_available(event) == []


class TestExpiry:
    def test_expire_stale_offers(self, event: Event, vip: TicketType) -> None:
        stale = _join(event, "stale@example.com", vip)
        fresh = _join(event, "fresh@example.com", vip)
        with freeze_time("2026-03-01 12:00:00"):
            waitlist_service.notify_entry(stale)
        with freeze_time("2026-03-02 10:00:00"):
            waitlist_service.notify_entry(fresh)

        with freeze_time("2026-03-02 12:30:00"):
            assert waitlist_service.expire_stale_offers() == 1

        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.status == WaitlistEntry.Status.EXPIRED
        assert fresh.status == WaitlistEntry.Status.NOTIFIED
        assert stale.position == 1

    def test_converted_entries_never_expire(self, event: Event, vip: TicketType) -> None:
        entry = _join(event, "ana@example.com", vip)
        waitlist_service.notify_entry(entry, timezone.now() - timedelta(days=3))
        assert waitlist_service.mark_converted(event, "ana@example.com") == 1

        assert waitlist_service.expire_stale_offers() == 0
        entry.refresh_from_db()
        assert entry.status == WaitlistEntry.Status.CONVERTED
