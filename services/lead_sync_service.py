import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import httpx
from models.config import Config
from models.lead import Lead

logger = logging.getLogger(__name__)


class LeadSyncError(Exception):
    """Lỗi khi tải một page leads (network hoặc HTTP status không thành công)"""


@dataclass
class SyncResult:
    success: bool = True
    skipped: bool = False
    pages: int = 0
    leads_written: int = 0
    error: Optional[str] = None


class LeadSyncService:
    """Đồng bộ leads của user đang đăng nhập từ remote API (phân trang) vào local store"""

    def __init__(self, config: Config, store, session, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.store = store
        self.session = session
        self._client = client
        self.page_size = config.SYNC_PAGE_SIZE

    async def _fetch_page(self, client: httpx.AsyncClient, entity_id: str, offset: int) -> Dict[str, Any]:
        params = {"entity_id": entity_id, "offset": offset, "limit": self.page_size}
        try:
            response = await client.get(self.config.LEADS_API_URL, params=params)
        except httpx.HTTPError as e:
            raise LeadSyncError(f"Network error fetching leads at offset {offset}: {e}") from e
        if not response.is_success:
            raise LeadSyncError(f"Failed to fetch leads at offset {offset}: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise LeadSyncError(f"Invalid JSON in leads response at offset {offset}") from e
        if not isinstance(data, dict):
            raise LeadSyncError(f"Unexpected leads response at offset {offset}")
        return data

    def map_items(self, items: List[Dict[str, Any]]) -> List[Lead]:
        """Map record remote -> Lead, bỏ qua record không có lead_id hợp lệ"""
        leads: List[Lead] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                leads.append(Lead.from_api(item))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping remote lead without valid lead_id: {item!r}")
        return leads

    async def sync(self) -> SyncResult:
        """Chạy một lượt sync đầy đủ. Không raise: lỗi được log và trả về trong SyncResult."""
        user = await self.session.get_logged_in_user()
        entity_id = (user or {}).get("entity_id")
        if not entity_id:
            logger.debug("No logged in user, skipping lead sync")
            return SyncResult(skipped=True)

        result = SyncResult()
        client = self._client or httpx.AsyncClient(timeout=self.config.HTTP_TIMEOUT)
        offset = 0
        has_more = True
        try:
            while has_more:
                data = await self._fetch_page(client, entity_id, offset)
                items = data.get("items") or []
                if not items:
                    # Page rỗng: dừng dù server báo hasMore
                    break
                leads = self.map_items(items)
                # Ghi xong page hiện tại rồi mới tải page kế tiếp
                result.leads_written += await self.store.upsert_leads(leads)
                result.pages += 1
                has_more = bool(data.get("hasMore"))
                offset += self.page_size
            logger.info(f"Leads synced successfully! pages={result.pages} leads={result.leads_written}")
        except LeadSyncError as e:
            result.success = False
            result.error = str(e)
            logger.warning(f"Lead sync aborted after {result.pages} page(s): {e}")
        finally:
            if self._client is None:
                await client.aclose()
        return result
