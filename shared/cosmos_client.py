"""
Cosmos DB Client.

Opens the coaching database and hands out cached container clients.
Uses DefaultAzureCredential unless an account key is configured.
"""

import logging
from typing import Dict, Optional

from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential

from shared.cosmos_config import get_container_name

logger = logging.getLogger(__name__)


class CoachingCosmosClient:
    """Client for accessing the coaching containers in Cosmos DB."""

    def __init__(self, endpoint: str, database_name: str, key: Optional[str] = None):
        """
        Initialize the Cosmos DB client.

        Args:
            endpoint: Cosmos DB endpoint URL
            database_name: Database name
            key: Optional account key; Azure AD auth is used when omitted
        """
        logger.info("Initializing Coaching Cosmos DB client...")
        if key:
            self._credential = key
        else:
            self._credential = DefaultAzureCredential(
                exclude_interactive_browser_credential=False,
                exclude_shared_token_cache_credential=False,
            )
        self._client = CosmosClient(endpoint, credential=self._credential)
        self._database = self._client.get_database_client(database_name)
        self._containers: Dict[str, object] = {}
        logger.info(f"Connected to Cosmos DB: {database_name}")

    def get_container(self, name: str):
        """Get a container client by logical name, caching for reuse."""
        if name not in self._containers:
            self._containers[name] = self._database.get_container_client(
                get_container_name(name)
            )
        return self._containers[name]

    def close(self):
        """Release the underlying HTTP pipeline."""
        self._client.close()


def build_cosmos_client(settings) -> CoachingCosmosClient:
    """Create a client from application settings."""
    return CoachingCosmosClient(
        endpoint=settings.cosmos_endpoint,
        database_name=settings.cosmos_database,
        key=settings.cosmos_key or None,
    )


def batch_status(error) -> Optional[int]:
    """Status of the operation that failed a transactional batch."""
    responses = getattr(error, "operation_responses", None) or []
    index = getattr(error, "error_index", None)
    if index is not None and index < len(responses):
        return responses[index].get("statusCode") or error.status_code
    return error.status_code
