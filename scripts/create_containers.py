"""
Cosmos DB Container Provisioning Script for the coaching core.

Creates the database and the coaching containers using
DefaultAzureCredential (or COSMOS_KEY when set). Containers that already
exist are left untouched.

Usage:
    python scripts/create_containers.py

Environment:
    COSMOS_ENDPOINT - Cosmos DB account endpoint
    COSMOS_DATABASE - Database name
    COSMOS_KEY      - Optional account key

Containers:
    - Coaching_Appointments     (partition: /dietitianId) - Appointments and schedule markers
    - Coaching_Chats            (partition: /chatId) - Chat summaries and messages
    - Coaching_TypingIndicators (partition: /chatId) - Typing indicators, per-item ttl
"""

import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient, PartitionKey
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import DefaultAzureCredential

from config import settings
from shared.cosmos_config import COACHING_CONTAINERS, TTL_ENABLED_CONTAINERS

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def create_containers(database) -> int:
    """Create every coaching container that does not exist yet."""
    created = 0
    for key, (container_name, partition_key) in COACHING_CONTAINERS.items():
        options = {}
        if key in TTL_ENABLED_CONTAINERS:
            # -1: ttl on, items expire only through their own ttl field
            options["default_ttl"] = -1
        database.create_container_if_not_exists(
            id=container_name,
            partition_key=PartitionKey(path=partition_key),
            **options,
        )
        logger.info(f"  {container_name} (partition: {partition_key})")
        created += 1
    return created


def main():
    """Main function to provision the coaching containers."""
    logger.info("=" * 60)
    logger.info("Coaching Core - Cosmos DB Provisioning Script")
    logger.info("=" * 60)
    logger.info(f"Endpoint: {settings.cosmos_endpoint}")
    logger.info(f"Database: {settings.cosmos_database}")
    logger.info(f"Authentication: {'account key' if settings.cosmos_key else 'DefaultAzureCredential'}")
    logger.info("=" * 60)

    credential = settings.cosmos_key or DefaultAzureCredential()
    client = CosmosClient(settings.cosmos_endpoint, credential=credential)

    try:
        database = client.create_database_if_not_exists(id=settings.cosmos_database)
    except CosmosHttpResponseError as e:
        logger.error(f"Database '{settings.cosmos_database}' could not be created or read: {e}")
        logger.error("Please create the database first or check RBAC permissions")
        return 1

    logger.info("\n--- Coaching Containers ---")
    try:
        count = create_containers(database)
    except CosmosHttpResponseError as e:
        logger.error(f"Container creation failed: {e}")
        logger.error("If data plane container creation is disabled, run these commands:")
        for key, (container_name, partition_key) in COACHING_CONTAINERS.items():
            ttl = " --ttl -1" if key in TTL_ENABLED_CONTAINERS else ""
            logger.error(
                f'az cosmosdb sql container create --account-name "<account>" '
                f'--database-name "{settings.cosmos_database}" --name "{container_name}" '
                f'--partition-key-path "{partition_key}"{ttl} --resource-group "<resource-group>"'
            )
        return 1

    logger.info("\n" + "=" * 60)
    logger.info(f"COMPLETE: {count} containers ready")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
