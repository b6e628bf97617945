import logging
from typing import Any, Dict, List, Optional
from models.config import Config
from models.history import LeadTimeline
from services.database_service import DatabaseService
from services.redis_service import RedisService
from services.call_event_service import CallEventNormalizer, RedisCallEventSource
from services.lead_sync_service import LeadSyncService, SyncResult
from services.timeline_service import TimelineService
from services.report_service import ReportService
logger = logging.getLogger(__name__)

class CRMController:
    """Controller chính - điều phối store, sync leads và lắng nghe sự kiện cuộc gọi"""

    def __init__(self, config: Config, db_service: Optional[DatabaseService] = None,
                 redis_service: Optional[RedisService] = None):
        self.config = config
        self.db_service = db_service or DatabaseService(config.DATABASE_URL, default_status=config.DEFAULT_LEAD_STATUS)
        self.redis_service = redis_service or RedisService(config.REDIS_URL, config.CALL_EVENT_QUEUE)

        self.timeline_service = TimelineService(self.db_service, default_status=config.DEFAULT_LEAD_STATUS)
        self.report_service = ReportService(self.db_service)
        self.sync_service = LeadSyncService(config, self.db_service, self.redis_service)
        self.normalizer = CallEventNormalizer(self.db_service)
        self.event_source = RedisCallEventSource(self.redis_service)
        self._unsubscribe = None

        # Trạng thái cho màn hình danh sách
        self.leads: List[Any] = []
        self.sync_count = 0
        self.last_sync: Optional[SyncResult] = None

    async def initialize(self):
        """Khởi tạo các services. Lỗi mở database sẽ được raise lên."""
        await self.db_service.connect()
        await self.db_service.init_schema()
        await self.redis_service.connect()
        logger.info("CRM controller initialized")
        try:
            self._unsubscribe = self.event_source.subscribe(self.normalizer.handle_event)
            await self.event_source.start_listening()
        except Exception as e:
            logger.warning(f"Failed to start call event listener: {e}")

    async def cleanup(self):
        """Dọn dẹp resources"""
        try:
            await self.event_source.stop_listening()
        except Exception as e:
            logger.warning(f"Error stopping call event listener: {e}")
        finally:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

        await self.db_service.disconnect()
        await self.redis_service.close()
        logger.info("CRM controller cleaned up")

    async def run_cycle(self):
        """Chạy một chu kỳ: sync leads rồi nạp lại danh sách từ local store"""
        logger.debug("Starting sync cycle...")
        try:
            self.last_sync = await self.sync_service.sync()
            self.sync_count += 1
        except Exception as e:
            # Lỗi ghi store trong lúc sync: bỏ qua lượt này, thử lại ở chu kỳ sau
            logger.error(f"Error in sync cycle: {e}")
        await self.refresh_leads()

    async def refresh_leads(self):
        self.leads = await self.db_service.list_leads()
        return self.leads

    async def lead_timeline(self, phone: str) -> Optional[LeadTimeline]:
        return await self.timeline_service.get_lead_timeline(phone)

    async def all_timelines(self) -> List[LeadTimeline]:
        return await self.timeline_service.get_all_timelines()

    async def search(self, query: str):
        if not query:
            return await self.refresh_leads()
        return await self.db_service.search_leads(query)

    async def report(self, **filters):
        return await self.report_service.lead_call_report(**filters)

    def get_status(self) -> Dict[str, Any]:
        """Lấy trạng thái của controller"""
        last = self.last_sync
        return {
            "leads": len(self.leads),
            "sync_count": self.sync_count,
            "last_sync": {
                "success": last.success,
                "skipped": last.skipped,
                "pages": last.pages,
                "leads_written": last.leads_written,
                "error": last.error,
            } if last else None,
            "active_calls": len(self.normalizer.registry),
            "finalized_calls": self.normalizer.finalized_calls,
            "config": {
                "sync_interval": self.config.SYNC_INTERVAL,
                "sync_page_size": self.config.SYNC_PAGE_SIZE,
            },
        }
