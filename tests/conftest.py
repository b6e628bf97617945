"""
Shared fixtures: an in-memory store with the DatabaseService interface and a controllable clock.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from models.history import HistoryEntry
from models.lead import DEFAULT_STATUS, Lead
from services.phone_utils import now_utc, parse_timestamp, phone_match_key


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryStore:
    """Same operations as DatabaseService, backed by dicts."""

    def __init__(self):
        self.leads = {}
        self.history: List[HistoryEntry] = []
        self._history_id = 0
        self.fail_history_writes = False
        self.upsert_batches = []

    async def upsert_lead(self, id, name, phone, status=DEFAULT_STATUS, assignee=None, source="web"):
        await self.upsert_leads([Lead(id=id, name=name, phone=phone, status=status,
                                      assignee=assignee, source=source)])

    async def upsert_leads(self, leads):
        leads = list(leads)
        self.upsert_batches.append(leads)
        for lead in leads:
            for other_id in [i for i, l in self.leads.items() if l.phone == lead.phone and i != lead.id]:
                del self.leads[other_id]
            self.leads[lead.id] = Lead(**{**lead.__dict__, "status_time": lead.status_time or now_utc()})
        return len(leads)

    async def insert_lead_ignore_duplicate(self, name, phone, status=DEFAULT_STATUS, assignee=None, source="web"):
        for lead in self.leads.values():
            if lead.phone == phone:
                return lead.id
        new_id = max(self.leads, default=0) + 1
        self.leads[new_id] = Lead(id=new_id, name=name, phone=phone, status=status,
                                  assignee=assignee, source=source, status_time=now_utc())
        return new_id

    async def list_leads(self):
        return sorted(self.leads.values(), key=lambda l: l.id, reverse=True)

    async def search_leads(self, query):
        q = (query or "").lower()
        return [l for l in await self.list_leads() if q in l.name.lower() or q in l.phone.lower()]

    async def update_lead_status(self, phone, status):
        count = 0
        for lead in self.leads.values():
            if lead.phone == phone:
                lead.status = status
                lead.status_time = now_utc()
                count += 1
        return count

    async def get_lead_by_phone(self, phone):
        for lead in self.leads.values():
            if lead.phone == phone:
                return lead
        return None

    async def find_lead_by_number(self, number):
        lead = await self.get_lead_by_phone(number)
        if lead is not None:
            return lead
        key = phone_match_key(number)
        for lead in await self.list_leads():
            if key and phone_match_key(lead.phone) == key:
                return lead
        return None

    async def insert_history(self, lead_id, phone, date=None, duration=0, type="dialed", note=""):
        if self.fail_history_writes:
            raise RuntimeError("disk I/O error")
        self._history_id += 1
        self.history.append(HistoryEntry(
            id=self._history_id, lead_id=lead_id, phone=phone,
            date=parse_timestamp(date) or now_utc(), duration=duration, type=type, note=note,
        ))
        return self._history_id

    def _sorted(self, rows):
        return sorted(rows, key=lambda r: (r.date, r.id), reverse=True)

    async def list_history(self):
        return self._sorted(self.history)

    async def list_history_for_lead(self, lead_id):
        return self._sorted([r for r in self.history if r.lead_id == lead_id])

    async def list_history_for_phone(self, phone):
        key = phone_match_key(phone)
        if not key:
            return self._sorted([r for r in self.history if r.phone == phone])
        return self._sorted([r for r in self.history if phone_match_key(r.phone) == key])

    async def clear_all(self):
        self.leads.clear()
        self.history.clear()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return FakeClock()
