# redis_service.py
import json
import logging
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List
import redis.asyncio as redis
from models.reminder import Reminder, STATUS_DONE

logger = logging.getLogger(__name__)

SESSION_KEY = "crm:session:user"
REMINDERS_KEY = "crm:reminders"


class RedisService:
    """
    - crm:session:user -> HASH   (user đang đăng nhập: entity_id, user_name, login_time)
    - crm:reminders    -> STRING (JSON list reminder)
    - call_events      -> LIST   (sự kiện cuộc gọi từ native bridge)
    """
    def __init__(self, redis_url: str, call_event_queue: str = "call_events"):
        self._url = redis_url
        self._r: Optional[redis.Redis] = None
        self.call_event_queue = call_event_queue

    async def connect(self):
        self._r = redis.from_url(self._url, decode_responses=True)

    async def close(self):
        if self._r:
            await self._r.aclose()
            self._r = None

    # ----- SESSION -----
    async def save_logged_in_user(self, entity_id: str, user_name: str):
        """Lưu user đăng nhập (chỉ một phiên active)"""
        assert self._r is not None
        mapping = {
            "entity_id": str(entity_id),
            "user_name": user_name,
            "login_time": datetime.now().isoformat(),
        }
        async with self._r.pipeline(transaction=True) as p:
            await p.delete(SESSION_KEY)
            await p.hset(SESSION_KEY, mapping=mapping)
            await p.execute()
        logger.info(f"Saved session for entity {entity_id}")

    async def get_logged_in_user(self) -> Optional[Dict[str, Any]]:
        assert self._r is not None
        data = await self._r.hgetall(SESSION_KEY)
        return data or None

    async def clear_logged_in_user(self):
        assert self._r is not None
        await self._r.delete(SESSION_KEY)

    # ----- REMINDERS -----
    async def list_reminders(self) -> List[Reminder]:
        assert self._r is not None
        raw = await self._r.get(REMINDERS_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to load reminders: {e}")
            return []
        if not isinstance(items, list):
            return []
        return [Reminder.normalize(item) for item in items if isinstance(item, dict)]

    async def _save_reminders(self, reminders: List[Reminder]):
        assert self._r is not None
        await self._r.set(REMINDERS_KEY, json.dumps([r.to_dict() for r in reminders]))

    async def add_reminder(self, name: str, phone: str, note: str = "", remind_at: str = "") -> Reminder:
        reminders = await self.list_reminders()
        reminder = Reminder(id=uuid.uuid4().hex, name=name, phone=phone, note=note, remind_at=remind_at)
        reminders.append(reminder)
        await self._save_reminders(reminders)
        return reminder

    async def mark_reminder_done(self, reminder_id: str) -> bool:
        reminders = await self.list_reminders()
        found = False
        for reminder in reminders:
            if reminder.id == reminder_id:
                reminder.status = STATUS_DONE
                found = True
        if found:
            await self._save_reminders(reminders)
        return found

    # ----- CALL EVENT QUEUE -----
    async def push_call_event(self, event: Dict[str, Any]):
        """Native bridge đẩy sự kiện cuộc gọi vào queue"""
        assert self._r is not None
        await self._r.lpush(self.call_event_queue, json.dumps(event))

    async def get_call_events(self, timeout: int = 1) -> List[Dict[str, Any]]:
        """Lấy sự kiện từ queue theo thứ tự FIFO (tối đa 10 mỗi lần)"""
        assert self._r is not None
        events = []
        for _ in range(10):
            result = await self._r.brpop(self.call_event_queue, timeout=timeout)
            if result is None:
                break
            try:
                event = json.loads(result[1])
            except Exception as e:
                logger.error(f"Failed to parse call event: {e}")
                continue
            if isinstance(event, dict):
                events.append(event)
            else:
                logger.error(f"Unexpected call event payload: {result[1]!r}")
        return events
