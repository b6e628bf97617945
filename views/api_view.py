import logging
from typing import Dict, Any, List, Optional
from datetime import datetime
from services.report_service import format_duration
from services.timeline_service import classify_interaction_type

logger = logging.getLogger(__name__)

class APIView:
    """View layer cho API responses - xử lý format dữ liệu trả về"""
    
    @staticmethod
    def success_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """Tạo response thành công"""
        response = {
            "success": True,
            "message": message,
            "timestamp": datetime.now().isoformat()
        }
        
        if data is not None:
            response["data"] = data
            
        return response
    
    @staticmethod
    def error_response(error: str, code: int = 400, details: Any = None) -> Dict[str, Any]:
        """Tạo response lỗi"""
        response = {
            "success": False,
            "error": error,
            "code": code,
            "timestamp": datetime.now().isoformat()
        }
        
        if details is not None:
            response["details"] = details
            
        return response

    @staticmethod
    def _iso(value: Any) -> Optional[str]:
        if isinstance(value, datetime):
            return value.isoformat()
        return value
    
    @staticmethod
    def format_lead_data(lead) -> Dict[str, Any]:
        """Format dữ liệu lead"""
        return {
            "id": lead.id,
            "name": lead.name,
            "display_name": lead.get_display_name(),
            "phone": lead.phone,
            "status": lead.status,
            "status_time": APIView._iso(lead.status_time),
            "assignee": lead.assignee,
            "source": lead.source,
        }

    @staticmethod
    def format_history_entry(entry) -> Dict[str, Any]:
        """Format một dòng history/timeline"""
        return {
            "id": entry.id,
            "number": entry.number,
            "type": entry.type,
            "category": classify_interaction_type(entry.type),
            "duration": entry.duration,
            "formatted_duration": format_duration(entry.duration),
            "time": APIView._iso(entry.time),
            "note": entry.note,
            "status": entry.status,
        }

    @staticmethod
    def format_timeline(timeline) -> Optional[Dict[str, Any]]:
        """Format timeline của một lead; None khi không có lead"""
        if timeline is None:
            return None
        return {
            "lead": APIView.format_lead_data(timeline.lead),
            "history": [APIView.format_history_entry(e) for e in timeline.history],
        }

    @staticmethod
    def format_report(stats: List[Any]) -> List[Dict[str, Any]]:
        """Format báo cáo cuộc gọi theo lead"""
        return [
            {
                "lead": APIView.format_lead_data(stat.lead),
                "total_calls": stat.total_calls,
                "total_duration": stat.total_duration,
                "formatted_duration": stat.formatted_duration,
            }
            for stat in stats
        ]
