from __future__ import annotations

from typing import Iterable, Protocol

from .entities import SourcePool


class PoolCatalog(Protocol):
    """Port for whatever supplies fully paginated, materialized source pools.

    Implementations own fetching and deduplication; the mixing engine only
    ever sees the resulting ``SourcePool`` objects.
    """

    def list_pool_ids(self) -> Iterable[str]:
        """Return identifiers of all pools the catalog can supply."""

    def load_pool(self, pool_id: str) -> SourcePool:
        """Return the pool with all items in catalog order."""
