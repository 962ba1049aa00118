import typing as t

from django.db import models, transaction
from pydantic import BaseModel

T = t.TypeVar("T", bound=models.Model)


@transaction.atomic
def update_db_instance(instance: T, payload: BaseModel | None = None, **kwargs: t.Any) -> T:
    """Apply the fields set on a Pydantic payload to a row, under a select_for_update lock.

    Fields left unset or set to None on the payload are not touched.
    """
    instance = instance.__class__.objects.select_for_update().get(pk=instance.pk)  # type: ignore[attr-defined]
    data = payload.model_dump(exclude_unset=True, exclude_none=True) if payload else {}
    data.update(**kwargs)
    for key, value in data.items():
        setattr(instance, key, value)
    instance.save()
    return instance
