from __future__ import annotations

from typing import Dict, Iterable, Type

from connectors.crm.record_source import RecordSource

from .base import CrmAdapter, UnsupportedProviderError


class AdapterRegistry:
    def __init__(self):
        self._adapters: Dict[str, Type[CrmAdapter]] = {}

    def register(self, adapter_cls: Type[CrmAdapter]) -> None:
        provider = getattr(adapter_cls, "provider", None)
        if not provider:
            raise ValueError("Adapter class missing provider")
        key = provider.lower()
        if key in self._adapters:
            raise ValueError(f"Duplicate adapter registered: {provider}")
        self._adapters[key] = adapter_cls

    def get(self, provider: str) -> Type[CrmAdapter]:
        try:
            return self._adapters[(provider or "").strip().lower()]
        except KeyError:
            raise UnsupportedProviderError(f"Unsupported CRM provider: {provider}") from None

    def create(self, provider: str, source: RecordSource) -> CrmAdapter:
        return self.get(provider)(source)

    def providers(self) -> Iterable[str]:
        return self._adapters.keys()

    def __contains__(self, provider: object) -> bool:
        return isinstance(provider, str) and provider.strip().lower() in self._adapters


adapter_registry = AdapterRegistry()


def register_adapter(adapter_cls: Type[CrmAdapter]) -> Type[CrmAdapter]:
    adapter_registry.register(adapter_cls)
    return adapter_cls
