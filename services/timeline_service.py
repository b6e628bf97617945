import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional
from datetime import datetime
from models.history import HistoryEntry, LeadTimeline, TimelineEntry
from models.lead import DEFAULT_STATUS, Lead
from services.phone_utils import EPOCH, now_utc, phone_match_key, time_sort_key

logger = logging.getLogger(__name__)

# Bảng phân loại dùng chung cho mọi consumer (history, timeline, report)
INTERACTION_CATEGORIES: Dict[str, str] = {
    "1": "Incoming",
    "incoming": "Incoming",
    "2": "Outgoing",
    "outgoing": "Outgoing",
    "dialed": "Outgoing",
    "3": "Missed",
    "missed": "Missed",
    "whatsapp": "WhatsApp",
    "followup": "Follow Up",
    "follow-up": "Follow Up",
    "follow up": "Follow Up",
    "interested": "Interested",
    "not interested": "Not Interested",
    "not_interested": "Not Interested",
}

CALL_CATEGORIES = ("Incoming", "Outgoing", "Missed")


def classify_interaction_type(raw: Optional[str]) -> str:
    """Chuẩn hoá type (code cũ "1"/"2"/"3", text tự do) về nhóm hiển thị cố định.

    Type lạ trả về chính giá trị đó, viết hoa chữ cái đầu.
    Status dạng "Interested:Hot" hay "Follow Up: 12/05 10:00" được phân loại theo phần đầu.
    """
    value = (raw or "").strip()
    if not value:
        return "Unknown"
    key = value.lower()
    if key in INTERACTION_CATEGORIES:
        return INTERACTION_CATEGORIES[key]
    prefix = key.split(":", 1)[0].strip()
    if prefix in INTERACTION_CATEGORIES:
        return INTERACTION_CATEGORIES[prefix]
    return value[0].upper() + value[1:]


def is_call_type(raw: Optional[str]) -> bool:
    return classify_interaction_type(raw) in CALL_CATEGORIES


def sort_timeline(entries: List[TimelineEntry]) -> List[TimelineEntry]:
    # sort ổn định: cùng thời điểm thì giữ thứ tự đến
    return sorted(entries, key=lambda e: time_sort_key(e.time), reverse=True)


def collapse_consecutive(entries: List[TimelineEntry]) -> List[TimelineEntry]:
    """Bỏ các entry liền kề trùng nhau (cùng type/status/note/duration)"""
    unique: List[TimelineEntry] = []
    for entry in entries:
        last = unique[-1] if unique else None
        if (
            last is None
            or last.type != entry.type
            or last.status != entry.status
            or last.note != entry.note
            or last.duration != entry.duration
        ):
            unique.append(entry)
    return unique


class TimelineService:
    """Gộp history cuộc gọi với trạng thái lead thành timeline theo thời gian"""

    def __init__(self, store, default_status: str = DEFAULT_STATUS,
                 clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.default_status = default_status
        self.clock = clock

    def _status_entry(self, lead: Lead) -> Optional[TimelineEntry]:
        if not lead.has_custom_status(self.default_status):
            return None
        return TimelineEntry(
            id=f"status_{lead.id}",
            number=lead.phone,
            type=lead.status,
            duration=0,
            time=self.clock(),
            status=lead.status,
        )

    def _build(self, lead: Lead, rows: List[HistoryEntry]) -> List[TimelineEntry]:
        entries = [TimelineEntry.from_history(row) for row in rows]
        status_entry = self._status_entry(lead)
        if status_entry is not None:
            entries.append(status_entry)
        return sort_timeline(entries)

    async def get_lead_timeline(self, phone: str) -> Optional[LeadTimeline]:
        """Timeline của một lead; None nếu không có lead với số này"""
        lead = await self.store.get_lead_by_phone(phone)
        if lead is None:
            return None
        rows = await self.store.list_history_for_phone(lead.phone)
        return LeadTimeline(lead=lead, history=self._build(lead, rows))

    async def get_all_timelines(self) -> List[LeadTimeline]:
        """Timeline của tất cả lead, lead có hoạt động gần nhất lên đầu"""
        leads = await self.store.list_leads()
        rows = await self.store.list_history()

        by_phone: Dict[str, List[HistoryEntry]] = defaultdict(list)
        for row in rows:
            by_phone[phone_match_key(row.phone) or row.phone].append(row)

        timelines: List[LeadTimeline] = []
        for lead in leads:
            lead_rows = by_phone.get(phone_match_key(lead.phone) or lead.phone, [])
            history = collapse_consecutive(self._build(lead, lead_rows))
            timelines.append(LeadTimeline(lead=lead, history=history))

        def latest(timeline: LeadTimeline):
            if not timeline.history:
                return EPOCH
            return time_sort_key(timeline.history[0].time)

        timelines.sort(key=latest, reverse=True)
        logger.debug(f"Built timelines for {len(timelines)} leads from {len(rows)} history rows")
        return timelines
