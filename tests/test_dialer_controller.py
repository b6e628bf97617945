"""
Tests for dialer actions: optimistic call entries, status changes, manual leads and logout.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from controllers.dialer_controller import DialerController


@pytest.fixture
def redis_service():
    return AsyncMock()


@pytest.fixture
def dialer(store, redis_service):
    return DialerController(store, redis_service)


class TestDialer:

    @pytest.mark.asyncio
    async def test_place_call_writes_zero_duration_entry(self, dialer, store):
        await store.upsert_lead(7, "Ali", "+91 98765 43210")

        await dialer.place_call("9876543210")

        entry = store.history[0]
        assert entry.type == "dialed"
        assert entry.duration == 0
        assert entry.lead_id == 7
        assert entry.phone == "9876543210"

    @pytest.mark.asyncio
    async def test_place_call_for_unknown_number(self, dialer, store):
        await dialer.place_call("5550001111")
        assert store.history[0].lead_id is None

    @pytest.mark.asyncio
    async def test_log_whatsapp(self, dialer, store):
        await dialer.log_whatsapp("5550001111", note="sent brochure")
        assert store.history[0].type == "whatsapp"
        assert store.history[0].note == "sent brochure"

    @pytest.mark.asyncio
    async def test_set_status(self, dialer, store):
        await store.upsert_lead(1, "Ali", "5550001111")
        assert await dialer.set_status("5550001111", "Interested") is True
        assert store.leads[1].status == "Interested"
        assert await dialer.set_status("0000000000", "Interested") is False

    @pytest.mark.asyncio
    async def test_follow_up_creates_reminder(self, dialer, store, redis_service):
        await store.upsert_lead(1, "Ali", "5550001111")
        at = datetime(2024, 6, 2, 15, 30, tzinfo=timezone.utc)

        assert await dialer.follow_up("5550001111", at, note="call back", name="Ali") is True

        assert store.leads[1].status.startswith("Follow Up: 2024-06-02T15:30")
        redis_service.add_reminder.assert_awaited_once_with("Ali", "5550001111", "call back", at.isoformat())


class TestManualLeads:

    @pytest.mark.asyncio
    async def test_duplicate_phone_keeps_first(self, dialer, store):
        first = await dialer.create_manual_lead("First", "5550001111")
        second = await dialer.create_manual_lead("Second", "5550001111")

        assert first == second
        assert len(store.leads) == 1
        assert store.leads[first].name == "First"


class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_clears_session_and_store(self, dialer, store, redis_service):
        await store.upsert_lead(1, "Ali", "5550001111")
        await store.insert_history(None, "5550001111")

        await dialer.logout()

        redis_service.clear_logged_in_user.assert_awaited_once()
        assert store.leads == {}
        assert store.history == []
