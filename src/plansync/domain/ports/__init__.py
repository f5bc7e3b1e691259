"""Domain ports."""

from __future__ import annotations

from .connector import ChangeMarker, SourceConnector
from .persistence import (
    ItemRepository,
    RelationRepository,
    SyncRunRepository,
    WatermarkRepository,
)
from .unit_of_work import (
    CacheRepositories,
    CacheUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
    UnitOfWorkFactory,
)

__all__ = [
    "CacheRepositories",
    "CacheUnitOfWork",
    "ChangeMarker",
    "ItemRepository",
    "RelationRepository",
    "RepositoryCollection",
    "SourceConnector",
    "SyncRunRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "WatermarkRepository",
]
