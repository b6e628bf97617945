import asyncpg
import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional
from models.history import HistoryEntry, LeadTimeline
from models.lead import DEFAULT_STATUS, Lead
from services.phone_utils import now_utc, parse_timestamp, phone_match_key

logger = logging.getLogger(__name__)

SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS leads (
        id BIGINT PRIMARY KEY,
        name TEXT NOT NULL,
        phone TEXT NOT NULL UNIQUE,
        status TEXT,
        status_time TIMESTAMPTZ,
        assignee TEXT,
        source TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS history (
        id BIGSERIAL PRIMARY KEY,
        lead_id BIGINT,
        phone TEXT NOT NULL,
        date TIMESTAMPTZ NOT NULL,
        duration INTEGER NOT NULL DEFAULT 0,
        type TEXT,
        note TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS history_phone_idx ON history (phone)",
    "CREATE INDEX IF NOT EXISTS history_date_idx ON history (date DESC)",
    "CREATE INDEX IF NOT EXISTS history_lead_id_idx ON history (lead_id)",
]

LEAD_COLUMNS = "id, name, phone, status, status_time, assignee, source"
HISTORY_COLUMNS = "id, lead_id, phone, date, duration, type, note"

UPSERT_LEAD_SQL = f"""
INSERT INTO leads ({LEAD_COLUMNS})
VALUES ($1, $2, $3, $4, $5, $6, $7)
ON CONFLICT (id) DO UPDATE SET
    name = EXCLUDED.name,
    phone = EXCLUDED.phone,
    status = EXCLUDED.status,
    status_time = EXCLUDED.status_time,
    assignee = EXCLUDED.assignee,
    source = EXCLUDED.source
"""

# So khớp theo 10 chữ số cuối của số điện thoại
PHONE_KEY_SQL = "right(regexp_replace(phone, '\\D', '', 'g'), 10)"


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DatabaseService:
    """Local store: bảng leads và history"""

    def __init__(self, database_url: str, default_status: str = DEFAULT_STATUS):
        self.database_url = database_url
        self.default_status = default_status
        self.pool = None

    async def connect(self):
        """Kết nối database"""
        self.pool = await asyncpg.create_pool(self.database_url)
        logger.info("Connected to database")

    async def disconnect(self):
        """Ngắt kết nối database"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Disconnected from database")

    async def init_schema(self):
        """Tạo bảng nếu chưa có (không xoá dữ liệu cũ)"""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for statement in SCHEMA_SQL:
                    await conn.execute(statement)
        logger.info("Tables created!")

    # ----- LEADS -----
    async def upsert_lead(self, id: int, name: str, phone: str, status: str = DEFAULT_STATUS,
                          assignee: Optional[str] = None, source: str = "web"):
        """Insert hoặc thay thế toàn bộ lead theo id"""
        await self.upsert_leads([
            Lead(id=id, name=name, phone=phone, status=status, assignee=assignee, source=source)
        ])

    async def upsert_leads(self, leads: Iterable[Lead]) -> int:
        """Upsert một batch lead trong một transaction (một page sync là một đơn vị)"""
        leads = list(leads)
        if not leads:
            return 0
        now = now_utc()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for lead in leads:
                    # phone là unique: dòng khác đang giữ số này bị thay thế (last write wins)
                    await conn.execute(
                        "DELETE FROM leads WHERE phone = $1 AND id <> $2", lead.phone, lead.id
                    )
                    await conn.execute(
                        UPSERT_LEAD_SQL,
                        lead.id,
                        lead.name,
                        lead.phone,
                        lead.status,
                        lead.status_time or now,
                        lead.assignee,
                        lead.source,
                    )
        return len(leads)

    async def insert_lead_ignore_duplicate(self, name: str, phone: str, status: str = DEFAULT_STATUS,
                                           assignee: Optional[str] = None, source: str = "web") -> int:
        """Thêm lead thủ công; nếu phone đã tồn tại thì trả id của lead cũ"""
        query = f"""
        INSERT INTO leads ({LEAD_COLUMNS})
        SELECT COALESCE(MAX(id), 0) + 1, $1, $2, $3, $4, $5, $6 FROM leads
        ON CONFLICT (phone) DO NOTHING
        RETURNING id
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("LOCK TABLE leads IN SHARE ROW EXCLUSIVE MODE")
                new_id = await conn.fetchval(query, name, phone, status, now_utc(), assignee, source)
                if new_id is not None:
                    return new_id
                return await conn.fetchval("SELECT id FROM leads WHERE phone = $1", phone)

    async def list_leads(self) -> List[Lead]:
        query = f"SELECT {LEAD_COLUMNS} FROM leads ORDER BY id DESC"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [Lead.from_row(dict(row)) for row in rows]

    async def search_leads(self, query: str) -> List[Lead]:
        """Tìm lead theo name hoặc phone (substring, không phân biệt hoa thường)"""
        sql = f"""
        SELECT {LEAD_COLUMNS} FROM leads
        WHERE name ILIKE $1 ESCAPE '\\' OR phone ILIKE $1 ESCAPE '\\'
        ORDER BY id DESC
        """
        pattern = f"%{_escape_like(query or '')}%"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(sql, pattern)
        return [Lead.from_row(dict(row)) for row in rows]

    async def update_lead_status(self, phone: str, status: str) -> int:
        """Cập nhật status theo phone; không có lead nào khớp thì bỏ qua"""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE leads SET status = $1, status_time = $2 WHERE phone = $3",
                status, now_utc(), phone,
            )
        # asyncpg trả "UPDATE <n>"
        updated = int(result.split()[-1])
        if not updated:
            logger.debug(f"No lead found for phone {phone}, status not updated")
        return updated

    async def get_lead_by_phone(self, phone: str) -> Optional[Lead]:
        query = f"SELECT {LEAD_COLUMNS} FROM leads WHERE phone = $1"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, phone)
        if row is None:
            return None
        return Lead.from_row(dict(row))

    async def find_lead_by_number(self, number: str) -> Optional[Lead]:
        """Tìm lead theo số đã chuẩn hoá (bỏ ký tự, so 10 số cuối)"""
        lead = await self.get_lead_by_phone(number)
        if lead is not None:
            return lead
        key = phone_match_key(number)
        if not key:
            return None
        query = f"SELECT {LEAD_COLUMNS} FROM leads WHERE {PHONE_KEY_SQL} = $1 ORDER BY id DESC LIMIT 1"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, key)
        return Lead.from_row(dict(row)) if row is not None else None

    async def clear_all(self):
        """Xoá toàn bộ leads + history (khi logout)"""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM history")
                await conn.execute("DELETE FROM leads")
        logger.info("Local store cleared")

    # ----- HISTORY -----
    async def insert_history(self, lead_id: Optional[int], phone: str, date: Any = None,
                             duration: int = 0, type: str = "dialed", note: str = "") -> int:
        """Ghi một dòng history; date thiếu hoặc sai định dạng thì dùng thời điểm hiện tại"""
        call_date: datetime = parse_timestamp(date) or now_utc()
        query = """
        INSERT INTO history (lead_id, phone, date, duration, type, note)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING id
        """
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, lead_id, phone, call_date, int(duration or 0), type, note or "")

    async def list_history(self) -> List[HistoryEntry]:
        query = f"SELECT {HISTORY_COLUMNS} FROM history ORDER BY date DESC, id DESC"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [HistoryEntry.from_row(dict(row)) for row in rows]

    async def list_history_for_lead(self, lead_id: int) -> List[HistoryEntry]:
        query = f"SELECT {HISTORY_COLUMNS} FROM history WHERE lead_id = $1 ORDER BY date DESC, id DESC"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, lead_id)
        return [HistoryEntry.from_row(dict(row)) for row in rows]

    async def list_history_for_phone(self, phone: str) -> List[HistoryEntry]:
        """History của một số điện thoại, so khớp theo 10 số cuối"""
        key = phone_match_key(phone)
        if key:
            query = f"SELECT {HISTORY_COLUMNS} FROM history WHERE {PHONE_KEY_SQL} = $1 ORDER BY date DESC, id DESC"
            arg = key
        else:
            query = f"SELECT {HISTORY_COLUMNS} FROM history WHERE phone = $1 ORDER BY date DESC, id DESC"
            arg = phone
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, arg)
        return [HistoryEntry.from_row(dict(row)) for row in rows]

    async def get_lead_with_history(self, phone: str) -> Optional[LeadTimeline]:
        """Lead + timeline (history gộp với trạng thái), None nếu không có lead"""
        from services.timeline_service import TimelineService
        return await TimelineService(self, default_status=self.default_status).get_lead_timeline(phone)
