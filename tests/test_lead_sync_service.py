"""
Tests for the paginated lead sync: field mapping, upsert idempotence and partial failure retention.
"""
from unittest.mock import AsyncMock

import httpx
import pytest

from models.config import Config
from services.lead_sync_service import LeadSyncService

API_URL = "https://leads.example.com/get_leads_data"


def make_item(lead_id, name="Lead", phone=None, **extra):
    item = {"lead_id": lead_id, "name": name, "phone": phone or f"90000000{lead_id:02d}"}
    item.update(extra)
    return item


PAGES = {
    0: {"items": [make_item(1, "Ali Khan", lead_source="Facebook Ads"), make_item(2, "Sara")], "hasMore": True},
    2: {"items": [make_item(3, "Bilal", lead_source="JD Dealer Network"), make_item(4)], "hasMore": True},
    4: {"items": [make_item(5, "Zara")], "hasMore": False},
}


def build_client(pages=PAGES, fail_offsets=(), status_code=500, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        offset = int(request.url.params["offset"])
        if offset in fail_offsets:
            if status_code is None:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(status_code, json={"error": "boom"})
        return httpx.Response(200, json=pages[offset])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def config():
    return Config(LEADS_API_URL=API_URL, SYNC_PAGE_SIZE=2)


@pytest.fixture
def session():
    session = AsyncMock()
    session.get_logged_in_user.return_value = {"entity_id": "77", "user_name": "rep"}
    return session


class TestSyncPagination:

    @pytest.mark.asyncio
    async def test_fetches_all_pages(self, config, store, session):
        requests = []
        service = LeadSyncService(config, store, session, client=build_client(requests=requests))

        result = await service.sync()

        assert result.success is True
        assert result.pages == 3
        assert result.leads_written == 5
        assert sorted(store.leads) == [1, 2, 3, 4, 5]
        params = [dict(r.url.params) for r in requests]
        assert params[0] == {"entity_id": "77", "offset": "0", "limit": "2"}
        assert [p["offset"] for p in params] == ["0", "2", "4"]
        assert str(requests[0].url).startswith(API_URL)

    @pytest.mark.asyncio
    async def test_each_page_is_written_as_one_batch(self, config, store, session):
        service = LeadSyncService(config, store, session, client=build_client())
        await service.sync()
        assert [len(batch) for batch in store.upsert_batches] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, config, store, session):
        service = LeadSyncService(config, store, session, client=build_client())

        await service.sync()
        first = {i: (l.name, l.phone, l.status, l.assignee, l.source) for i, l in store.leads.items()}
        await service.sync()
        second = {i: (l.name, l.phone, l.status, l.assignee, l.source) for i, l in store.leads.items()}

        assert len(store.leads) == 5
        assert first == second

    @pytest.mark.asyncio
    async def test_missing_has_more_stops_after_first_page(self, config, store, session):
        pages = {0: {"items": [make_item(1)]}}
        service = LeadSyncService(config, store, session, client=build_client(pages=pages))
        result = await service.sync()
        assert result.pages == 1
        assert list(store.leads) == [1]

    @pytest.mark.asyncio
    async def test_empty_page_stops_even_with_has_more(self, config, store, session):
        requests = []
        pages = {
            0: {"items": [make_item(1), make_item(2)], "hasMore": True},
            2: {"items": [], "hasMore": True},
        }
        service = LeadSyncService(config, store, session, client=build_client(pages=pages, requests=requests))

        result = await service.sync()

        assert result.success is True
        assert result.pages == 1
        assert len(requests) == 2
        assert sorted(store.leads) == [1, 2]


class TestFieldMapping:

    @pytest.mark.asyncio
    async def test_defaults_and_source_mapping(self, config, store, session):
        pages = {0: {"items": [
            {"lead_id": 10, "phone": "  03001234567 ", "lead_source": "facebook lead form"},
            {"lead_id": "11", "name": "Omar", "last_task_name": "Follow Up", "assignee": "Hina",
             "lead_source": "JD portal"},
            {"name": "no id"},
        ], "hasMore": False}}
        service = LeadSyncService(config, store, session, client=build_client(pages=pages))

        result = await service.sync()

        assert result.leads_written == 2
        first = store.leads[10]
        assert first.name == "Unknown"
        assert first.phone == "03001234567"
        assert first.status == "-"
        assert first.assignee == "-"
        assert first.source == "fb"
        second = store.leads[11]
        assert second.status == "Follow Up"
        assert second.assignee == "Hina"
        assert second.source == "jd"

    @pytest.mark.asyncio
    async def test_numeric_name_and_assignee_are_stored_as_text(self, config, store, session):
        pages = {0: {"items": [make_item(1, name=12345, assignee=678)], "hasMore": False}}
        service = LeadSyncService(config, store, session, client=build_client(pages=pages))

        result = await service.sync()

        assert result.success is True
        assert store.leads[1].name == "12345"
        assert store.leads[1].assignee == "678"

    @pytest.mark.asyncio
    async def test_status_prefers_status_field(self, config, store, session):
        pages = {0: {"items": [make_item(1, status="Interested", last_task_name="Call")], "hasMore": False}}
        service = LeadSyncService(config, store, session, client=build_client(pages=pages))
        await service.sync()
        assert store.leads[1].status == "Interested"


class TestSyncFailures:

    @pytest.mark.asyncio
    async def test_network_error_keeps_previous_pages(self, config, store, session):
        service = LeadSyncService(config, store, session, client=build_client(fail_offsets=(2,), status_code=None))

        result = await service.sync()

        assert result.success is False
        assert result.pages == 1
        assert "offset 2" in result.error
        assert sorted(store.leads) == [1, 2]

    @pytest.mark.asyncio
    async def test_http_error_aborts_sync(self, config, store, session):
        service = LeadSyncService(config, store, session, client=build_client(fail_offsets=(0,), status_code=503))

        result = await service.sync()

        assert result.success is False
        assert "HTTP 503" in result.error
        assert store.leads == {}

    @pytest.mark.asyncio
    async def test_retry_after_failure_completes(self, config, store, session):
        failing = LeadSyncService(config, store, session, client=build_client(fail_offsets=(4,)))
        await failing.sync()
        assert sorted(store.leads) == [1, 2, 3, 4]

        working = LeadSyncService(config, store, session, client=build_client())
        result = await working.sync()
        assert result.success is True
        assert sorted(store.leads) == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_no_logged_in_user_skips_sync(self, config, store):
        session = AsyncMock()
        session.get_logged_in_user.return_value = None
        requests = []
        service = LeadSyncService(config, store, session, client=build_client(requests=requests))

        result = await service.sync()

        assert result.skipped is True
        assert requests == []

    @pytest.mark.asyncio
    async def test_user_without_entity_id_skips_sync(self, config, store):
        session = AsyncMock()
        session.get_logged_in_user.return_value = {"user_name": "rep"}
        service = LeadSyncService(config, store, session, client=build_client())
        result = await service.sync()
        assert result.skipped is True
