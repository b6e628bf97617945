from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.lead import Lead

# Các loại history/timeline đã biết
HISTORY_TYPES = (
    "incoming",
    "outgoing",
    "missed",
    "whatsapp",
    "followup",
    "Interested",
    "Not Interested",
    "dialed",
)


@dataclass
class HistoryEntry:
    """Bảng history - một lần tương tác (cuộc gọi hoặc sự kiện) gắn với số điện thoại"""
    id: int
    phone: str
    date: datetime
    duration: int = 0
    type: str = "dialed"
    lead_id: Optional[int] = None
    note: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=row["id"],
            phone=row["phone"],
            date=row["date"],
            duration=row.get("duration") or 0,
            type=row.get("type") or "dialed",
            lead_id=row.get("lead_id"),
            note=row.get("note"),
        )


@dataclass
class TimelineEntry:
    """Một dòng trên timeline; status chỉ có ở entry tổng hợp từ trạng thái lead"""
    id: str
    number: str
    type: str
    duration: int
    time: Any
    note: str = ""
    status: Optional[str] = None

    @classmethod
    def from_history(cls, entry: HistoryEntry) -> "TimelineEntry":
        return cls(
            id=str(entry.id),
            number=entry.phone,
            type=entry.type,
            duration=entry.duration or 0,
            time=entry.date,
            note=entry.note or "",
        )

    @property
    def is_synthetic(self) -> bool:
        return self.status is not None


@dataclass
class LeadTimeline:
    lead: Lead
    history: List[TimelineEntry] = field(default_factory=list)
