"""Project-wide fixtures."""

import secrets
import string
import typing as t
from datetime import datetime, time, timedelta

import faker
import pytest
from django.utils import timezone

from accounts.models import OrganizerProfile, User
from common.models import SiteSettings
from marquee.celery import app as celery_app


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> t.Iterator[None]:
    """Run Celery tasks synchronously so tests can assert on their side effects."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
    yield


@pytest.fixture(autouse=True)
def locmem_email(settings: t.Any) -> None:
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


class UserFactory:
    """Factory for creating User instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> User:
        username = kwargs.pop("username", "".join(secrets.choice(string.ascii_lowercase) for _ in range(8)))
        email = kwargs.pop("email", f"{username}@example.com")
        password = kwargs.pop("password", "password")
        first_name = kwargs.pop("first_name", self.fake.first_name())
        last_name = kwargs.pop("last_name", self.fake.last_name())
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            **kwargs,
        )

    def __call__(self, **kwargs: t.Any) -> User:
        return self.create_user(**kwargs)


@pytest.fixture
def user_factory() -> UserFactory:
    return UserFactory()


@pytest.fixture
def user(user_factory: UserFactory) -> User:
    return user_factory(username="buyer", email="buyer@example.com")


@pytest.fixture
def organizer_user(user_factory: UserFactory) -> User:
    return user_factory(username="organizer", email="organizer@example.com")


@pytest.fixture
def organizer(organizer_user: User) -> OrganizerProfile:
    return OrganizerProfile.objects.create(
        user=organizer_user, business_name="Harbor Hall Presents", contact_email="box@harborhall.test"
    )


@pytest.fixture
def site_settings() -> SiteSettings:
    """Commerce settings in simulate mode with the default 3% + 50c fee."""
    return SiteSettings.get_solo()


@pytest.fixture
def next_week() -> datetime:
    same_time_next_week = timezone.now() + timedelta(days=7)
    return timezone.make_aware(
        datetime.combine(same_time_next_week.date(), time(hour=20, minute=0)),
        timezone.get_current_timezone(),
    )
