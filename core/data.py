"""
Data Layer Base Classes.

The data layer provides the Repository pattern for data access.
This abstracts away the specific data store (Cosmos DB, in-memory)
and provides a clean interface for the service layer.

Key principles:
- Repositories handle persistence only
- No business logic in repositories
- Return domain objects, not raw dicts
- Support for different backends via dependency injection
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

# Type variable for entity types
T = TypeVar("T")


class ConcurrencyConflict(Exception):
    """Raised when a commit was based on a snapshot that is no longer current."""

    def __init__(self, partition_key: str, expected_version: Any):
        self.partition_key = partition_key
        self.expected_version = expected_version
        super().__init__(
            f"Partition '{partition_key}' changed since version {expected_version!r}"
        )


@dataclass
class QueryOptions:
    """Options for repository queries."""
    limit: int = 100
    offset: int = 0
    order_desc: bool = False
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult(Generic[T]):
    """Result of a repository query with pagination info."""
    data: List[T]
    total_count: int
    has_more: bool
    next_offset: Optional[int] = None

    @classmethod
    def paginate(cls, items: List[T], options: QueryOptions) -> "QueryResult[T]":
        """Slice an already filtered and ordered list according to options."""
        page = items[options.offset:options.offset + options.limit]
        end = options.offset + len(page)
        has_more = end < len(items)
        return cls(
            data=page,
            total_count=len(items),
            has_more=has_more,
            next_offset=end if has_more else None,
        )


@dataclass
class Snapshot(Generic[T]):
    """
    Everything stored under one partition together with a version token.

    The version is opaque to callers; pass it back to ``save`` to commit
    only if nothing changed since the snapshot was taken.
    """
    partition_key: str
    items: List[T]
    version: Any


class Repository(ABC, Generic[T]):
    """
    Abstract base class for partitioned repositories.

    Entities are addressed by (partition_key, id). Writes accept an
    ``expected_version`` taken from ``snapshot`` and raise
    ``ConcurrencyConflict`` when the partition moved on in the meantime.

    Type parameter T represents the entity type this repository manages.
    """

    @abstractmethod
    def get(self, partition_key: str, id: str) -> Optional[T]:
        """
        Get an entity by its ID.

        Returns:
            The entity if found, None otherwise
        """
        pass

    @abstractmethod
    def find(self, partition_key: str, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        """
        Find entities of a partition matching the query options.

        Args:
            partition_key: Partition to search
            options: Query options for windowing, pagination, sorting
        """
        pass

    @abstractmethod
    def snapshot(self, partition_key: str) -> Snapshot[T]:
        """Read a whole partition together with its current version."""
        pass

    @abstractmethod
    def save(self, entity: T, expected_version: Any = None) -> T:
        """
        Save an entity (create or update).

        Args:
            entity: The entity to save
            expected_version: Version from ``snapshot``; None skips the check

        Returns:
            The saved entity

        Raises:
            ConcurrencyConflict: if expected_version is stale
        """
        pass

    @abstractmethod
    def delete(self, partition_key: str, id: str) -> bool:
        """
        Delete an entity by ID.

        Returns:
            True if deleted, False if not found
        """
        pass
