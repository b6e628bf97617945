import logging
from datetime import datetime
from typing import Optional
from models.lead import DEFAULT_STATUS
from services.phone_utils import now_utc
logger = logging.getLogger(__name__)

class DialerController:
    """Controller cho các thao tác từ màn hình dialer / danh sách lead"""

    def __init__(self, db_service, redis_service=None):
        self.db_service = db_service
        self.redis_service = redis_service

    async def _lead_id_for(self, phone: str) -> Optional[int]:
        lead = await self.db_service.find_lead_by_number(phone)
        return lead.id if lead else None

    async def place_call(self, phone: str) -> int:
        """Ghi ngay một dòng 'dialed' 0 giây khi bấm gọi.

        Không gộp với dòng do CallEventNormalizer ghi sau đó cho cùng cuộc gọi.
        """
        lead_id = await self._lead_id_for(phone)
        history_id = await self.db_service.insert_history(lead_id, phone, now_utc(), 0, "dialed")
        logger.info(f"Dialing {phone} (lead {lead_id})")
        return history_id

    async def log_whatsapp(self, phone: str, note: str = "") -> int:
        lead_id = await self._lead_id_for(phone)
        return await self.db_service.insert_history(lead_id, phone, now_utc(), 0, "whatsapp", note)

    async def set_status(self, phone: str, status: str) -> bool:
        """Đổi status lead; trả False nếu không có lead với số này"""
        updated = await self.db_service.update_lead_status(phone, status)
        return bool(updated)

    async def follow_up(self, phone: str, at: datetime, note: str = "", name: str = "") -> bool:
        """Đặt trạng thái Follow Up và tạo reminder tương ứng"""
        updated = await self.set_status(phone, f"Follow Up: {at.isoformat(timespec='minutes')}")
        if self.redis_service is not None:
            await self.redis_service.add_reminder(name or phone, phone, note, at.isoformat())
        return updated

    async def create_manual_lead(self, name: str, phone: str, status: str = DEFAULT_STATUS,
                                 assignee: str = "", source: str = "web") -> int:
        return await self.db_service.insert_lead_ignore_duplicate(
            name or "Unknown", phone.strip(), status, assignee, source
        )

    async def logout(self):
        """Đăng xuất: xoá phiên và toàn bộ dữ liệu local"""
        if self.redis_service is not None:
            await self.redis_service.clear_logged_in_user()
        await self.db_service.clear_all()
        logger.info("Logged out")
