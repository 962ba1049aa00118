from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from . import models


@admin.register(models.User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = (*DjangoUserAdmin.fieldsets, ("Contact", {"fields": ("phone_number",)}))  # type: ignore[misc]


@admin.register(models.OrganizerProfile)
class OrganizerProfileAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["business_name", "user", "contact_email", "created_at"]
    search_fields = ["business_name", "user__email"]
    raw_id_fields = ["user"]
