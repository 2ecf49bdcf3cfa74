from src.modules.gateway.adapters.base import ProviderAdapter

_adapters: dict[str, ProviderAdapter] = {}


def register_adapter(adapter: ProviderAdapter) -> ProviderAdapter:
    for alias in (adapter.name, adapter.provider_name, *adapter.aliases):
        _adapters[alias.lower()] = adapter
    return adapter


def get_adapter(provider: str | None) -> ProviderAdapter | None:
    if not provider:
        return None
    return _adapters.get(provider.strip().lower())


def registered_adapters() -> list[ProviderAdapter]:
    unique = {id(a): a for a in _adapters.values()}
    return sorted(unique.values(), key=lambda a: a.name)
