"""Factory for upstream Provider models."""

import factory
from src.database.models import Provider, ProviderStatus
from .base import AsyncSQLAlchemyModelFactory, UUIDFactory


class ProviderFactory(AsyncSQLAlchemyModelFactory[Provider]):
    class Meta:
        model = Provider

    id = UUIDFactory()
    name = factory.Sequence(lambda n: f"Provider {n}")
    api_keys = factory.LazyFunction(list)
    status = ProviderStatus.ACTIVE
