import logging
from typing import Dict, Any
from controllers.crm_controller import CRMController

logger = logging.getLogger(__name__)

class SyncView:
    """View layer cho vòng sync - xử lý hiển thị và logging"""
    
    def __init__(self, crm_controller: CRMController):
        self.crm_controller = crm_controller
        
    def display_startup_message(self):
        """Hiển thị thông báo khởi động"""
        logger.info("CRM Sync Server Starting")
        
    def display_cycle_start(self, cycle_number: int):
        """Hiển thị bắt đầu chu kỳ"""
        logger.info(f"Sync Cycle #{cycle_number}")
        logger.info("-" * 40)
        
    def display_cycle_stats(self, stats: Dict[str, Any]):
        """Hiển thị thống kê chu kỳ"""
        last = stats.get("last_sync") or {}
        logger.info("Cycle Statistics:")
        logger.info(f"   • Leads: {stats.get('leads', 0)}")
        if last.get("skipped"):
            logger.info("   • Sync: skipped (no logged in user)")
        elif last:
            outcome = "ok" if last.get("success") else f"failed ({last.get('error')})"
            logger.info(f"   • Sync: {outcome}, {last.get('pages', 0)} page(s), {last.get('leads_written', 0)} leads")
        logger.info(f"   • Calls logged: {stats.get('finalized_calls', 0)} (active: {stats.get('active_calls', 0)})")
        logger.info(f"   • Sync Interval: {stats.get('config', {}).get('sync_interval', 300)}s")
        
    def display_error(self, error: str, context: str = ""):
        """Hiển thị lỗi"""
        logger.error(f"Error: {error}")
        if context:
            logger.error(f"   • Context: {context}")
            
    def display_shutdown(self):
        """Hiển thị thông báo shutdown"""
        logger.info(" CRM Sync Server Shutdown")
