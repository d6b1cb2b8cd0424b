"""
MongoDB Event Store Implementation

Implements the EventStore interface on a Motor collection. Each event is a
single document, so MongoDB's per-document atomicity gives the no-torn-write
guarantee the analytics layer relies on.
"""

import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from ..constants import DEFAULT_MAX_POOL_SIZE, DEFAULT_SERVER_SELECTION_TIMEOUT_MS
from ..exceptions import EventStoreError
from .models import EventFilter, MessageEvent, utc_now
from .store import EventStore, InMemoryEventStore, validate_event

logger = logging.getLogger(__name__)

EVENT_INDEXES: list[tuple[str, list[tuple[str, int]]]] = [
    ("session_timestamp", [("session_id", ASCENDING), ("timestamp", ASCENDING)]),
    ("user_timestamp", [("user_id", ASCENDING), ("timestamp", ASCENDING)]),
    ("timestamp", [("timestamp", ASCENDING)]),
]


class MongoEventStore(EventStore):
    """
    MongoDB implementation of the EventStore interface.

    Example:
        client = AsyncIOMotorClient("mongodb://localhost:27017")
        store = MongoEventStore(client["chat_telemetry"]["message_events"])
        await store.ensure_indexes()

        await store.append(MessageEvent("u1", "s1", Role.USER, "hi"))
        users = await store.distinct("user_id", EventFilter.for_day(today))
    """

    def __init__(self, collection: Any):
        """
        Initialize the MongoDB event store.

        Args:
            collection: AsyncIOMotorCollection holding message events
        """
        self._collection = collection

    @property
    def collection(self) -> Any:
        return self._collection

    async def ensure_indexes(self) -> list[str]:
        """
        Create the indexes used by session, user and date-range queries.

        Returns:
            Names of the indexes ensured
        """
        names = []
        try:
            for name, keys in EVENT_INDEXES:
                names.append(await self._collection.create_index(keys, name=name))
        except (OperationFailure, ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.exception("Failed to create event indexes")
            raise EventStoreError(
                "Failed to create event indexes", operation="ensure_indexes"
            ) from e
        logger.info(f"Ensured event indexes: {', '.join(names)}")
        return names

    async def append(self, event: MessageEvent) -> MessageEvent:
        """Validate and insert a single event document."""
        event = validate_event(event)
        timestamp = event.timestamp or utc_now()
        # BSON dates hold milliseconds; return what a later query will read back
        timestamp = timestamp.replace(microsecond=timestamp.microsecond // 1000 * 1000)
        doc = event.with_server_fields(None, timestamp).to_document()

        try:
            result = await self._collection.insert_one(doc)
        except (AutoReconnect, ConnectionFailure, OperationFailure) as e:
            logger.exception("Database operation failed in append")
            raise EventStoreError(
                "Failed to append event",
                operation="append",
                context={"session_id": event.session_id},
            ) from e

        stored = event.with_server_fields(str(result.inserted_id), timestamp)
        logger.debug(f"Appended event id={stored.id} session_id={stored.session_id}")
        return stored

    async def query(self, filter: EventFilter | None = None) -> list[MessageEvent]:
        """Find events matching the filter, oldest first."""
        mongo_filter = filter.to_mongo() if filter else {}
        try:
            cursor = self._collection.find(mongo_filter).sort(
                [("timestamp", ASCENDING), ("_id", ASCENDING)]
            )
            docs = await cursor.to_list(length=None)
        except (AutoReconnect, ConnectionFailure, OperationFailure) as e:
            logger.exception("Database operation failed in query")
            raise EventStoreError("Failed to query events", operation="query") from e
        return [MessageEvent.from_document(doc) for doc in docs]

    async def distinct(self, field: str, filter: EventFilter | None = None) -> set[str]:
        """Distinct user or session ids among matching events."""
        self._check_distinct_field(field)
        mongo_filter = filter.to_mongo() if filter else {}
        try:
            values = await self._collection.distinct(field, mongo_filter)
        except (AutoReconnect, ConnectionFailure, OperationFailure) as e:
            logger.exception("Database operation failed in distinct")
            raise EventStoreError(
                f"Failed to read distinct {field}",
                operation="distinct",
                context={"field": field},
            ) from e
        return set(values)

    async def ping(self) -> bool:
        """Ping the server backing the collection."""
        try:
            await self._collection.database.client.admin.command("ping")
        except PyMongoError:
            logger.warning("Event store ping failed", exc_info=True)
            return False
        return True


def create_event_store(config: Any) -> EventStore:
    """
    Build the event store described by a TelemetryConfig.

    Returns a MongoEventStore when ``config.mongo_uri`` is set, otherwise an
    InMemoryEventStore.
    """
    if not config.use_mongo:
        logger.info("No MONGO_URI configured, using in-memory event store")
        return InMemoryEventStore()

    client = AsyncIOMotorClient(
        config.mongo_uri,
        serverSelectionTimeoutMS=DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        appname="CHAT_TELEMETRY",
        maxPoolSize=DEFAULT_MAX_POOL_SIZE,
        retryWrites=True,
        retryReads=True,
        tz_aware=True,
    )
    logger.info(
        f"Using MongoDB event store db={config.db_name} "
        f"collection={config.events_collection}"
    )
    return MongoEventStore(client[config.db_name][config.events_collection])
