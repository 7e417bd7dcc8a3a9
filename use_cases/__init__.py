"""
Use Cases Package.

This package contains modular use case implementations for the coaching core.
Each use case is a self-contained module with its own:
- domain/: Pure business logic (policies, services, errors)
- data/: Repository pattern for data access (in-memory and Cosmos DB)
- service.py: Orchestration over the domain and a store

Available use cases:
- scheduling: Dietitian appointments with conflict detection
- messaging: Client/dietitian chats with unread counts and typing indicators
"""

from use_cases.scheduling import AppointmentService
from use_cases.messaging import ChatService

__all__ = [
    "AppointmentService",
    "ChatService",
]
