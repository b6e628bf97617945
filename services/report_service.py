import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Tuple
from models.lead import Lead
from services.phone_utils import parse_timestamp, phone_match_key
from services.timeline_service import is_call_type

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Hiển thị thời lượng dạng m:ss"""
    if not seconds or seconds <= 0:
        return "0:00"
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


@dataclass
class LeadCallStats:
    lead: Lead
    total_calls: int = 0
    total_duration: int = 0

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.total_duration)


class ReportService:
    """Báo cáo số cuộc gọi / tổng thời lượng theo lead"""

    def __init__(self, store):
        self.store = store

    @staticmethod
    def _in_range(moment: datetime, start: Optional[date], end: Optional[date], month: Optional[int]) -> bool:
        if month is not None and moment.month != month:
            return False
        # start/end tính trọn ngày
        if start is not None and moment < datetime.combine(start, time.min, tzinfo=timezone.utc):
            return False
        if end is not None and moment > datetime.combine(end, time.max, tzinfo=timezone.utc):
            return False
        return True

    async def lead_call_report(self, start: Optional[date] = None, end: Optional[date] = None,
                               month: Optional[int] = None, query: str = "") -> List[LeadCallStats]:
        """Thống kê cuộc gọi (incoming/outgoing/missed) cho từng lead; lead không có cuộc gọi bị bỏ qua"""
        if month is not None and not 1 <= month <= 12:
            raise ValueError(f"month must be 1-12, got {month}")

        leads = await self.store.list_leads()
        rows = await self.store.list_history()

        totals: Dict[str, Tuple[int, int]] = {}
        for row in rows:
            if not is_call_type(row.type):
                continue
            moment = parse_timestamp(row.date)
            if moment is None or not self._in_range(moment, start, end, month):
                continue
            key = phone_match_key(row.phone) or row.phone
            calls, duration = totals.get(key, (0, 0))
            totals[key] = (calls + 1, duration + (row.duration or 0))

        needle = (query or "").lower()
        report: List[LeadCallStats] = []
        for lead in leads:
            calls, duration = totals.get(phone_match_key(lead.phone) or lead.phone, (0, 0))
            if calls == 0:
                continue
            if needle and needle not in (lead.name or "").lower() and needle not in lead.phone:
                continue
            report.append(LeadCallStats(lead=lead, total_calls=calls, total_duration=duration))
        logger.debug(f"Report built for {len(report)} leads")
        return report
