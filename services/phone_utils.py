import re
from datetime import datetime, timezone
from typing import Any, Optional

_NON_DIGIT = re.compile(r"\D")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_phone(number: Optional[str]) -> str:
    """Bỏ mọi ký tự không phải số ("+91 98-765" -> "9198765")"""
    if not number:
        return ""
    return _NON_DIGIT.sub("", str(number))


def phone_match_key(number: Optional[str]) -> str:
    """Key để so khớp số điện thoại giữa các vùng: 10 chữ số cuối"""
    return normalize_phone(number)[-10:]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse datetime / ISO string / epoch (s hoặc ms). Trả None nếu không parse được.

    Naive datetime được coi là UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def time_sort_key(value: Any) -> datetime:
    # Giá trị không parse được coi là cũ nhất
    return parse_timestamp(value) or EPOCH
