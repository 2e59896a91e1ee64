"""Source adapters, one per procurement portal."""

from .base import AdapterResult, Page, Param, SourceAdapter
from .registry import ADAPTERS, REGISTRY, SOURCE_ORDER, get_adapter_class

__all__ = [
    # Contract
    "SourceAdapter",
    "AdapterResult",
    "Page",
    "Param",
    # Catalogue
    "ADAPTERS",
    "REGISTRY",
    "SOURCE_ORDER",
    "get_adapter_class",
]
