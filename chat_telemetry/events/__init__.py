"""
Conversation event storage.

Provides the MessageEvent model, query filters, and the append-only
EventStore with in-memory and MongoDB implementations.
"""

from .models import EventFilter, MessageEvent, Role
from .mongo import MongoEventStore, create_event_store
from .store import EventStore, InMemoryEventStore, build_event

__all__ = [
    "MessageEvent",
    "Role",
    "EventFilter",
    "EventStore",
    "InMemoryEventStore",
    "MongoEventStore",
    "build_event",
    "create_event_store",
]
