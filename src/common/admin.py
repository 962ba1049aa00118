from django.contrib import admin
from solo.admin import SingletonModelAdmin

from . import models


@admin.register(models.SiteSettings)
class SiteSettingsAdmin(SingletonModelAdmin):
    list_display = ["__str__", "payment_mode", "service_fee_percent", "service_fee_flat_cents"]
    readonly_fields = ["created_at", "updated_at"]
