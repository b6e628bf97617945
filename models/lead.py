from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

DEFAULT_STATUS = "NEW"
LEAD_SOURCES = ("fb", "jd", "web")


def map_lead_source(source: Optional[str]) -> str:
    """Phân loại nguồn lead từ text tự do: facebook -> fb, dealer/jd -> jd, còn lại -> web"""
    if not source:
        return "web"
    source = str(source).lower()
    if "facebook" in source:
        return "fb"
    if "dealer" in source or "jd" in source:
        return "jd"
    return "web"


@dataclass
class Lead:
    """Bảng leads."""
    id: int
    name: str
    phone: str
    status: str = DEFAULT_STATUS
    assignee: Optional[str] = None
    source: str = "web"
    status_time: Optional[datetime] = None

    def get_display_name(self) -> str:
        return self.name or self.phone

    def has_custom_status(self, default_status: str = DEFAULT_STATUS) -> bool:
        return bool(self.status) and self.status != default_status

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Lead":
        """Map một record từ leads API sang Lead đầy đủ field (áp dụng default)."""
        phone = item.get("phone")
        phone = str(phone).strip() if phone is not None else ""
        status = item.get("status") or item.get("last_task_name") or "-"
        return cls(
            id=int(item["lead_id"]),
            name=str(item.get("name") or "Unknown"),
            phone=phone or "N/A",
            status=str(status),
            assignee=str(item.get("assignee") or "-"),
            source=map_lead_source(item.get("lead_source")),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Lead":
        return cls(
            id=row["id"],
            name=row.get("name") or "Unknown",
            phone=row["phone"],
            status=row.get("status") or DEFAULT_STATUS,
            assignee=row.get("assignee"),
            source=row.get("source") or "web",
            status_time=row.get("status_time"),
        )
