from dataclasses import dataclass
from typing import Any, Dict

STATUS_PENDING = "Pending"
STATUS_DONE = "Done"


@dataclass
class Reminder:
    id: str
    name: str
    phone: str
    note: str = ""
    remind_at: str = ""
    status: str = STATUS_PENDING

    @classmethod
    def normalize(cls, item: Dict[str, Any]) -> "Reminder":
        """Chuẩn hoá dữ liệu reminder đã lưu (chịu được field thiếu/sai kiểu)"""
        return cls(
            id=str(item.get("id", "")),
            name=str(item.get("name") or ""),
            phone=str(item.get("phone") or ""),
            note=str(item.get("note") or ""),
            remind_at=str(item.get("remind_at") or item.get("remindAt") or ""),
            status=STATUS_DONE if item.get("status") == STATUS_DONE else STATUS_PENDING,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "note": self.note,
            "remind_at": self.remind_at,
            "status": self.status,
        }
