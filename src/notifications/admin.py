from django.contrib import admin

from . import models


@admin.register(models.Notification)
class NotificationAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["notification_type", "recipient_email", "status", "attempts", "sent_at", "created_at"]
    list_filter = ["notification_type", "status"]
    search_fields = ["recipient_email"]
    readonly_fields = ["context", "attempts", "sent_at", "error_message", "created_at", "updated_at"]
