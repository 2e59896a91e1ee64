"""Source catalogue: adapter classes by key, in orchestrator order."""

from __future__ import annotations

from tenderfeed.core.credentials import SourceError

from .alberta import AlbertaPurchasingAdapter
from .barrie import BarrieTendersAdapter
from .base import SourceAdapter
from .bc_bid import BcBidAdapter
from .infrastructure_ontario import InfrastructureOntarioAdapter
from .kenora import KenoraTendersAdapter
from .merx import MerxOttawaAdapter
from .nova_scotia import NovaScotiaAdapter
from .ontario_highways import OntarioHighwayProgramsAdapter
from .pei import PeiTendersAdapter
from .sask import SaskTendersAdapter
from .toronto import TorontoBidsAdapter
from .windsor import WindsorBidsAdapter

# Priority order of a full pass; sources behind anti-bot checks go last
ADAPTERS: tuple[type[SourceAdapter], ...] = (
    BarrieTendersAdapter,
    WindsorBidsAdapter,
    TorontoBidsAdapter,
    MerxOttawaAdapter,
    PeiTendersAdapter,
    NovaScotiaAdapter,
    InfrastructureOntarioAdapter,
    SaskTendersAdapter,
    AlbertaPurchasingAdapter,
    KenoraTendersAdapter,
    BcBidAdapter,
    OntarioHighwayProgramsAdapter,
)

REGISTRY: dict[str, type[SourceAdapter]] = {adapter.key: adapter for adapter in ADAPTERS}

SOURCE_ORDER: tuple[str, ...] = tuple(adapter.key for adapter in ADAPTERS)


def get_adapter_class(source_key: str) -> type[SourceAdapter]:
    """Adapter class for a source key.

    Raises:
        SourceError: If the key is not registered
    """
    try:
        return REGISTRY[source_key]
    except KeyError:
        known = ", ".join(SOURCE_ORDER)
        raise SourceError(f"Unknown source '{source_key}'. Known sources: {known}", source_key) from None
