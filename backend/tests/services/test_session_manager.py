"""
Tests for attendance session upserts.
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock

from attendance_bridge.core.config import Settings
from attendance_bridge.integrations.salesforce.errors import NetworkError, RemoteQueryError
from attendance_bridge.services.session_manager import SessionManager, session_key


DAY = date(2026, 1, 20)


@pytest.fixture
def client():
    client = Mock()
    client.create = AsyncMock(return_value="a0SNEW")
    client.update = AsyncMock(return_value=None)
    return client


@pytest.fixture
def record_store():
    store = Mock()
    store.find_session = AsyncMock(return_value=None)
    return store


@pytest.fixture
def manager(client, record_store):
    return SessionManager(client, record_store, Settings(SF_SESSION_KEY_FIELD=""))


class TestSessionManager:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("class_value, section, taken_by", [
        (None, "A", "003T"), ("10", None, "003T"), ("10", "A", None), ("", "A", "003T"),
    ])
    async def test_skipped_without_all_key_values(self, manager, client, record_store, class_value, section, taken_by):
        assert await manager.upsert_session(class_value, section, DAY, taken_by) is None
        record_store.find_session.assert_not_awaited()
        client.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_existing_session_gets_attribution_update_only(self, manager, client, record_store):
        record_store.find_session.return_value = {"id": "a0S", "takenBy": "003OLD"}

        session_id = await manager.upsert_session("Class 10", "A", DAY, "003T")

        assert session_id == "a0S"
        record_store.find_session.assert_awaited_once_with("10", "A", DAY)
        client.update.assert_awaited_once_with("Attendance_Session__c", "a0S", {"Taken_By__c": "003T"})
        client.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_session_is_created_with_normalized_class(self, manager, client):
        session_id = await manager.upsert_session("class 10", "A", DAY, "003T")

        assert session_id == "a0SNEW"
        client.create.assert_awaited_once_with("Attendance_Session__c", {
            "Class__c": "10",
            "Section__c": "A",
            "Date__c": "2026-01-20",
            "Taken_By__c": "003T",
        })
        client.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_failure_is_swallowed(self, manager, client, record_store):
        record_store.find_session.side_effect = RemoteQueryError("bad", error_code="INVALID_TYPE")

        assert await manager.upsert_session("10", "A", DAY, "003T") is None
        client.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, manager, client):
        client.create.side_effect = NetworkError("timed out")
        assert await manager.upsert_session("10", "A", DAY, "003T") is None

    @pytest.mark.asyncio
    async def test_duplicate_without_key_field_is_not_retried(self, manager, client, record_store):
        client.create.side_effect = RemoteQueryError("dup", error_code="DUPLICATE_VALUE")

        assert await manager.upsert_session("10", "A", DAY, "003T") is None
        assert record_store.find_session.await_count == 1
        client.update.assert_not_awaited()


class TestOptimisticCreate:

    @pytest.fixture
    def keyed_manager(self, client, record_store):
        return SessionManager(client, record_store, Settings(SF_SESSION_KEY_FIELD="Session_Key__c"))

    @pytest.mark.asyncio
    async def test_create_carries_unique_key(self, keyed_manager, client):
        await keyed_manager.upsert_session("Class 10", "a", DAY, "003T")

        fields = client.create.await_args.args[1]
        assert fields["Session_Key__c"] == "10|A|2026-01-20"

    @pytest.mark.asyncio
    async def test_duplicate_value_falls_back_to_update(self, keyed_manager, client, record_store):
        record_store.find_session.side_effect = [None, {"id": "a0SWIN", "takenBy": "003OTHER"}]
        client.create.side_effect = RemoteQueryError(
            "duplicate value found: Session_Key__c", error_code="DUPLICATE_VALUE"
        )

        session_id = await keyed_manager.upsert_session("10", "A", DAY, "003T")

        assert session_id == "a0SWIN"
        client.update.assert_awaited_once_with("Attendance_Session__c", "a0SWIN", {"Taken_By__c": "003T"})


def test_session_key_is_case_insensitive():
    assert session_key("Class 10", "a", DAY) == session_key("10", "A", DAY)
