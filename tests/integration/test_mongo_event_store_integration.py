"""
Integration tests for MongoEventStore against a real MongoDB.

Requires Docker (testcontainers).
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from motor.motor_asyncio import AsyncIOMotorClient

from chat_telemetry.analytics import EngagementMetrics
from chat_telemetry.events import EventFilter, MessageEvent, MongoEventStore, Role

T0 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mongo_store(mongodb_connection_string):
    client = AsyncIOMotorClient(mongodb_connection_string, tz_aware=True)
    collection = client["chat_telemetry_test"][f"events_{uuid.uuid4().hex[:8]}"]
    yield MongoEventStore(collection)
    client.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestMongoEventStoreIntegration:
    """Integration tests for the MongoDB event store."""

    async def test_indexes_created(self, mongo_store):
        await mongo_store.ensure_indexes()
        info = await mongo_store.collection.index_information()
        assert {"session_timestamp", "user_timestamp", "timestamp"} <= set(info)

    async def test_append_and_query_round_trip(self, mongo_store):
        stored = await mongo_store.append(MessageEvent("U1", "S1", Role.USER, "hi", T0))
        events = await mongo_store.query(EventFilter(session_id="S1"))

        assert events == [stored]
        assert events[0].timestamp == T0
        assert events[0].timestamp.tzinfo is not None

    async def test_query_ordering_and_range(self, mongo_store):
        await mongo_store.append(MessageEvent("U1", "S1", Role.USER, "late", T0 + timedelta(hours=2)))
        await mongo_store.append(MessageEvent("U1", "S1", Role.USER, "early", T0))
        await mongo_store.append(MessageEvent("U2", "S2", Role.USER, "next day", T0 + timedelta(days=1)))

        events = await mongo_store.query(EventFilter.for_day(T0.date()))
        assert [e.content for e in events] == ["early", "late"]

    async def test_distinct_with_membership(self, mongo_store):
        for user in ("U1", "U2", "U3"):
            await mongo_store.append(MessageEvent(user, f"S-{user}", Role.USER, "hi", T0))

        users = await mongo_store.distinct("user_id", EventFilter(user_ids={"U1", "U3"}))
        assert users == {"U1", "U3"}

    async def test_metrics_over_mongo(self, mongo_store):
        await mongo_store.append(MessageEvent("U1", "S1", Role.USER, "hi", T0))
        await mongo_store.append(MessageEvent("U1", "S1", Role.ASSISTANT, "hello", T0 + timedelta(seconds=5)))
        await mongo_store.append(MessageEvent("U2", "S2", Role.USER, "hey", T0))
        await mongo_store.append(MessageEvent("U1", "S3", Role.USER, "back", T0 + timedelta(days=1)))

        metrics = EngagementMetrics(mongo_store)
        assert await metrics.active_users("2024-01-01") == 2
        assert await metrics.retention("2024-01-01", 1) == pytest.approx(50.0)

        stats = await metrics.session_stats("S1")
        assert stats.message_count == 2
        assert stats.duration_seconds == 5.0

    async def test_ping(self, mongo_store):
        assert await mongo_store.ping() is True
