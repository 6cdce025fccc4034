"""Per-vendor CRM adapters: vendor records in, canonical entities out."""

from .base import ConnectResult, CrmAdapter, CrmAdapterError, EntityFilter, UnsupportedProviderError
from .registry import AdapterRegistry, adapter_registry, register_adapter

# Import built-in adapters so they self-register with the global registry.
from . import hubspot as _hubspot  # noqa: F401
from . import pipedrive as _pipedrive  # noqa: F401
from . import salesforce as _salesforce  # noqa: F401
from . import zoho as _zoho  # noqa: F401

__all__ = [
    "AdapterRegistry",
    "ConnectResult",
    "CrmAdapter",
    "CrmAdapterError",
    "EntityFilter",
    "UnsupportedProviderError",
    "adapter_registry",
    "register_adapter",
]
