"""
Azure Cosmos DB Configuration.

Centralized container layout for every Cosmos DB container used by the
scheduling and messaging use cases. This keeps the application and the
provisioning script in agreement.

The endpoint and database name come from ``config.settings``.
"""

# =============================================================================
# COACHING DATA CONTAINERS
# =============================================================================

# Format: logical_name -> (container_name, partition_key_path)
COACHING_CONTAINERS = {
    # Appointments and per-dietitian schedule markers
    "appointments": ("Coaching_Appointments", "/dietitianId"),
    # Chat summaries and their messages share the chat partition
    "chats": ("Coaching_Chats", "/chatId"),
    # Ephemeral, expired by per-item ttl
    "typing": ("Coaching_TypingIndicators", "/chatId"),
}

# Simple container name lookup (without partition key)
COACHING_CONTAINER_NAMES = {
    key: name for key, (name, _) in COACHING_CONTAINERS.items()
}

# Containers that need default TTL enabled (-1 = on, no default expiry)
TTL_ENABLED_CONTAINERS = {"typing"}

# =============================================================================
# DOCUMENT TYPES
# =============================================================================

DOC_TYPE_APPOINTMENT = "appointment"
DOC_TYPE_SCHEDULE_MARKER = "schedule_marker"
DOC_TYPE_CHAT = "chat"
DOC_TYPE_MESSAGE = "message"

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_container_name(logical_name: str) -> str:
    """Get the actual container name for a logical container name."""
    if logical_name in COACHING_CONTAINER_NAMES:
        return COACHING_CONTAINER_NAMES[logical_name]
    return logical_name
