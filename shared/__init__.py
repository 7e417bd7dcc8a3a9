"""
Shared modules for the coaching core.

This package contains the Cosmos DB layout, the Cosmos client factory and the
actor roles used across use cases.
"""

from shared.cosmos_config import (
    COACHING_CONTAINERS,
    COACHING_CONTAINER_NAMES,
)
from shared.roles import Actor, ActorRole

__all__ = [
    "COACHING_CONTAINERS",
    "COACHING_CONTAINER_NAMES",
    "Actor",
    "ActorRole",
]
