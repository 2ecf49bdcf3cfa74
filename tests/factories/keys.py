"""Factory for caller Key models."""

import factory
from src.database.models import Key
from .base import AsyncSQLAlchemyModelFactory, UUIDFactory


class KeyFactory(AsyncSQLAlchemyModelFactory[Key]):
    """Factory for creating caller keys with a starting balance."""

    class Meta:
        model = Key

    id = UUIDFactory()
    key = factory.Sequence(lambda n: f"ck_test_{n:06d}_caller")
    credit = 10
    is_active = True
    max_activations = 1
    note = None
    expired_at = None
