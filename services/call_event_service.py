import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from models.call_event import (
    STATE_DISCONNECTED,
    STATE_INCOMING,
    STATE_OFFHOOK,
    ActiveCall,
    CallEvent,
)
from services.phone_utils import normalize_phone, now_utc

logger = logging.getLogger(__name__)

EventHandler = Callable[[CallEvent], Awaitable[Any]]
START_STATES = (STATE_INCOMING, STATE_OFFHOOK)


class ActiveCallRegistry:
    """Map số điện thoại (đã chuẩn hoá) -> cuộc gọi đang diễn ra"""

    def __init__(self):
        self._calls: Dict[str, ActiveCall] = {}

    def start(self, number: str, call_type: str, at: datetime) -> bool:
        """Ghi nhận cuộc gọi bắt đầu. Số đang active thì bỏ qua, giữ start time sớm nhất."""
        if number in self._calls:
            return False
        self._calls[number] = ActiveCall(number=number, start_time=at, type=call_type)
        return True

    def finish(self, number: str) -> Optional[ActiveCall]:
        return self._calls.pop(number, None)

    def get(self, number: str) -> Optional[ActiveCall]:
        return self._calls.get(number)

    def __contains__(self, number: str) -> bool:
        return number in self._calls

    def __len__(self) -> int:
        return len(self._calls)


class CallEventNormalizer:
    """Chuyển chuỗi sự kiện trạng thái cuộc gọi thành các dòng history đã hoàn tất"""

    def __init__(self, store, registry: Optional[ActiveCallRegistry] = None,
                 clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.registry = registry if registry is not None else ActiveCallRegistry()
        self.clock = clock
        # FIFO theo từng số: sự kiện cùng số xử lý tuần tự, khác số chạy độc lập
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.finalized_calls = 0

    async def handle_event(self, event: Union[CallEvent, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Xử lý một sự kiện. Trả về record đã ghi khi cuộc gọi kết thúc, ngược lại None."""
        if isinstance(event, dict):
            event = CallEvent.from_dict(event)

        number = normalize_phone(event.number)
        if not number:
            logger.debug(f"Dropping call event without number: {event.state}")
            return None

        lock = self._acquire_lock(number)
        try:
            async with lock:
                return await self._apply(number, event)
        finally:
            self._release_lock(number)

    async def _apply(self, number: str, event: CallEvent) -> Optional[Dict[str, Any]]:
        if event.state in START_STATES:
            if self.registry.start(number, event.direction, self.clock()):
                logger.info(f"[CALL] {number} active ({event.direction})")
            else:
                logger.debug(f"[CALL] {number} already active, ignoring {event.state}")
            return None

        if event.state == STATE_DISCONNECTED:
            return await self._finalize(number)

        logger.debug(f"Ignoring unknown call state {event.state!r} for {number}")
        return None

    def _acquire_lock(self, number: str) -> asyncio.Lock:
        lock = self._locks.get(number)
        if lock is None:
            lock = self._locks[number] = asyncio.Lock()
        self._lock_users[number] = self._lock_users.get(number, 0) + 1
        return lock

    def _release_lock(self, number: str):
        # Xoá lock khi không còn ai giữ hoặc chờ
        remaining = self._lock_users[number] - 1
        if remaining:
            self._lock_users[number] = remaining
        else:
            del self._lock_users[number]
            del self._locks[number]

    async def _finalize(self, number: str) -> Dict[str, Any]:
        end_time = self.clock()
        active = self.registry.finish(number)
        if active is None:
            # Chưa thấy Incoming/OffHook (bị từ chối trước khi đổ chuông)
            record = {"phone": number, "date": end_time, "duration": 0, "type": "missed"}
        else:
            duration = active.get_duration(end_time)
            record = {
                "phone": number,
                "date": active.start_time,
                "duration": duration,
                "type": active.type if duration > 0 else "missed",
            }

        try:
            await self.store.insert_history(
                None, record["phone"], record["date"], record["duration"], record["type"]
            )
            self.finalized_calls += 1
            logger.info(f"[CALL] {number} finished: {record['type']} {record['duration']}s")
        except Exception as e:
            logger.error(f"Failed to save call log for {number}: {e}", exc_info=True)
        return record


class CallEventSource:
    """Nguồn sự kiện cuộc gọi dạng push: subscribe(handler) -> hàm unsubscribe"""

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self.is_listening = False

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def emit(self, event: Union[CallEvent, Dict[str, Any]]):
        if isinstance(event, dict):
            event = CallEvent.from_dict(event)
        for handler in list(self._handlers):
            await handler(event)

    async def start_listening(self):
        self.is_listening = True

    async def stop_listening(self):
        self.is_listening = False


class RedisCallEventSource(CallEventSource):
    """Đọc sự kiện cuộc gọi do native bridge đẩy vào Redis queue"""

    def __init__(self, redis_service, poll_timeout: int = 1):
        super().__init__()
        self.redis_service = redis_service
        self.poll_timeout = poll_timeout
        self._task: Optional[asyncio.Task] = None

    async def start_listening(self):
        await super().start_listening()
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._listen())
            logger.info("Call event listener started")

    async def stop_listening(self):
        await super().stop_listening()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None
        logger.info("Call event listener stopped")

    async def poll_once(self) -> int:
        """Lấy một lô sự kiện từ queue và phát cho các handler"""
        events = await self.redis_service.get_call_events(timeout=self.poll_timeout)
        for data in events:
            try:
                await self.emit(data)
            except Exception as e:
                logger.error(f"Failed to handle call event {data!r}: {e}", exc_info=True)
        return len(events)

    async def _listen(self):
        logger.debug("Call event loop started")
        try:
            while self.is_listening:
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error in call event listener: {e}")
                    await asyncio.sleep(1)
        finally:
            logger.debug("Call event loop stopped")
