"""
Core Framework for Coaching Use Cases.

This module provides the extensible base classes and interfaces
that all use cases should implement. The layered architecture ensures:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Repository pattern for data access
3. Service Layer - Use-case services that wire domain and data together

Each use case follows this pattern for consistency and reusability.
"""

from .domain import DomainError, OperationResult, PolicyDecision, PolicyEngine, PolicyResult
from .data import ConcurrencyConflict, QueryOptions, QueryResult, Repository, Snapshot

__all__ = [
    # Domain
    "DomainError",
    "OperationResult",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyResult",
    # Data
    "ConcurrencyConflict",
    "QueryOptions",
    "QueryResult",
    "Repository",
    "Snapshot",
]
