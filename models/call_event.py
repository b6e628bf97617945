from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

STATE_INCOMING = "Incoming"
STATE_OFFHOOK = "OffHook"
STATE_DISCONNECTED = "Disconnected"


@dataclass
class CallEvent:
    """Sự kiện trạng thái cuộc gọi từ nguồn native (Incoming / OffHook / Disconnected)"""
    state: str
    number: Optional[str] = None
    type: Optional[str] = None  # INCOMING | OUTGOING

    @property
    def direction(self) -> str:
        return "outgoing" if str(self.type or "").upper() == "OUTGOING" else "incoming"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallEvent":
        number = data.get("number")
        call_type = data.get("type")
        return cls(
            state=str(data.get("state") or ""),
            number=str(number) if number is not None else None,
            type=call_type if isinstance(call_type, str) else None,
        )


@dataclass
class ActiveCall:
    """Cuộc gọi đang diễn ra (chỉ giữ trong bộ nhớ)"""
    number: str
    start_time: datetime
    type: str = "incoming"

    def get_duration(self, end_time: datetime) -> int:
        """Thời lượng (giây, làm tròn xuống)"""
        return max(0, int((end_time - self.start_time).total_seconds()))
