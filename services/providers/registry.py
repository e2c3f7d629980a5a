from typing import Dict, List, Optional

from models.event import ProviderType
from services.errors import ValidationError
from services.providers.base import ProviderAdapter
from services.providers.google import GoogleCalendarAdapter
from services.providers.unsupported import UnsupportedProviderAdapter


class ProviderRegistry:
    """Maps a provider type to its adapter. Adding a provider means registering one adapter."""

    def __init__(self, adapters: Optional[Dict[ProviderType, ProviderAdapter]] = None):
        self._adapters: Dict[ProviderType, ProviderAdapter] = dict(adapters or {})

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.provider_type] = adapter

    def get(self, provider_type: ProviderType) -> ProviderAdapter:
        try:
            adapter = self._adapters.get(ProviderType(provider_type))
        except ValueError:
            adapter = None
        if adapter is None:
            raise ValidationError(f"Unsupported calendar type: {provider_type}")
        return adapter

    def syncable_types(self) -> List[ProviderType]:
        return [provider_type for provider_type, adapter in self._adapters.items() if adapter.supports_sync]


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(GoogleCalendarAdapter())
    # No Graph or CalDAV integration: these accounts hold events but never sync
    for provider_type in (ProviderType.OUTLOOK, ProviderType.APPLE, ProviderType.CUSTOM):
        registry.register(UnsupportedProviderAdapter(provider_type))
    return registry
