import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models

from common.models import TimeStampedModel


class User(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(max_length=20, blank=True, help_text="Phone number")

    class Meta:
        ordering = ["username"]

    @property
    def display_name(self) -> str:
        """Full name if set, otherwise the username."""
        return self.get_full_name() or self.username


class OrganizerProfile(TimeStampedModel):
    """The organizer identity that owns events and operates box office and guest lists."""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="organizer_profile")
    business_name = models.CharField(max_length=255)
    contact_email = models.EmailField(blank=True)

    def __str__(self) -> str:
        return self.business_name
