"""Admin views for events, inventory and orders.

Inventory counters are read-only here: they are only written by the fulfillment services.
"""

import typing as t

from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from . import models


class EventLinkMixin:
    """Mixin to add a link to an event."""

    def event_link(self, obj: t.Any) -> str | None:
        if not getattr(obj, "event", None):
            return None
        url = reverse("admin:events_event_change", args=[obj.event.id])
        return format_html('<a href="{}">{}</a>', url, obj.event.title)

    event_link.short_description = "Event"  # type: ignore[attr-defined]


class TicketTypeInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.TicketType
    extra = 0
    fields = ["name", "price_cents", "quantity_available", "quantity_sold", "max_per_order", "sort_order"]
    readonly_fields = ["quantity_sold"]


class PricingTierInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.PricingTier
    extra = 0
    fields = ["name", "tier_type", "price_cents", "quantity_limit", "quantity_sold", "starts_at", "ends_at", "position"]
    readonly_fields = ["quantity_sold"]


class TicketInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.Ticket
    extra = 0
    fields = ["qr_code", "ticket_type", "status", "attendee_name", "checked_in_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["title", "organizer", "status", "starts_at", "venue_name"]
    list_filter = ["status"]
    search_fields = ["title", "slug", "venue_name"]
    raw_id_fields = ["organizer", "recurrence_parent"]
    inlines = [TicketTypeInline]


@admin.register(models.TicketType)
class TicketTypeAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["name", "event_link", "price_cents", "quantity_available", "quantity_sold"]
    search_fields = ["name", "event__title"]
    raw_id_fields = ["event"]
    readonly_fields = ["quantity_sold"]
    inlines = [PricingTierInline]


@admin.register(models.PromoCode)
class PromoCodeAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["code", "event_link", "discount_type", "discount_value", "current_uses", "max_uses", "active"]
    list_filter = ["discount_type", "active"]
    search_fields = ["code", "event__title"]
    raw_id_fields = ["event"]
    readonly_fields = ["current_uses"]


@admin.register(models.Order)
class OrderAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["id", "event_link", "buyer_email", "status", "source", "payment_method", "total_cents"]
    list_filter = ["status", "source", "payment_method"]
    search_fields = ["buyer_email", "buyer_name", "payment_intent_id"]
    raw_id_fields = ["event", "user", "promo_code"]
    readonly_fields = [
        "status",
        "subtotal_cents",
        "service_fee_cents",
        "discount_cents",
        "total_cents",
        "refund_amount_cents",
        "refund_reference",
        "refunded_at",
        "completed_at",
    ]
    inlines = [TicketInline]


@admin.register(models.Ticket)
class TicketAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["qr_code", "event_link", "ticket_type", "status", "attendee_email", "checked_in_at"]
    list_filter = ["status"]
    search_fields = ["qr_code", "attendee_email", "attendee_name"]
    raw_id_fields = ["order", "ticket_type", "event", "pricing_tier"]


@admin.register(models.GuestListEntry)
class GuestListEntryAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["guest_name", "event_link", "ticket_type", "quantity", "redeemed", "redeemed_at"]
    list_filter = ["redeemed"]
    search_fields = ["guest_name", "guest_email"]
    raw_id_fields = ["event", "ticket_type", "order"]


@admin.register(models.WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["position", "email", "event_link", "ticket_type", "quantity", "status", "expires_at"]
    list_filter = ["status"]
    search_fields = ["email", "name"]
    raw_id_fields = ["event", "ticket_type", "user"]


@admin.register(models.CheckoutIntent)
class CheckoutIntentAdmin(admin.ModelAdmin, EventLinkMixin):  # type: ignore[type-arg]
    list_display = ["payment_intent_id", "event_link", "buyer_email", "amount_cents", "status", "created_at"]
    list_filter = ["status"]
    search_fields = ["payment_intent_id", "buyer_email"]
    raw_id_fields = ["event", "user", "order"]
