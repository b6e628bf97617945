# Services package
from .database_service import DatabaseService
from .redis_service import RedisService
from .call_event_service import ActiveCallRegistry, CallEventNormalizer, CallEventSource, RedisCallEventSource
from .lead_sync_service import LeadSyncService, LeadSyncError, SyncResult
from .timeline_service import TimelineService, classify_interaction_type
from .report_service import ReportService, format_duration

__all__ = [
    'DatabaseService', 'RedisService',
    'ActiveCallRegistry', 'CallEventNormalizer', 'CallEventSource', 'RedisCallEventSource',
    'LeadSyncService', 'LeadSyncError', 'SyncResult',
    'TimelineService', 'classify_interaction_type',
    'ReportService', 'format_duration',
]
