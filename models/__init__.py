# Models package
from .lead import Lead, map_lead_source
from .history import HistoryEntry, TimelineEntry, LeadTimeline
from .call_event import CallEvent, ActiveCall
from .reminder import Reminder
from .config import Config

__all__ = [
    'Lead', 'map_lead_source', 'HistoryEntry', 'TimelineEntry', 'LeadTimeline',
    'CallEvent', 'ActiveCall', 'Reminder', 'Config',
]
