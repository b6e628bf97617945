import asyncio
import logging
import signal
import sys

from models.config import Config
from controllers.crm_controller import CRMController
from views.sync_view import SyncView

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class CRMServer:
    """Main server"""
    
    def __init__(self):
        self.config = Config()
        self.crm_controller = CRMController(self.config)
        self.sync_view = SyncView(self.crm_controller)
        
        self.running = False
        
    async def start(self):
        # Display startup message
        self.sync_view.display_startup_message()
        
        # Đăng ký signal handlers để graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        
        self.running = True
        
        # Initialize controller (lỗi mở database là lỗi fatal)
        await self.crm_controller.initialize()
        
        logger.info(f"🚀 CRM sync started - syncing every {self.config.SYNC_INTERVAL} seconds")
        logger.info(f"📊 Page size: {self.config.SYNC_PAGE_SIZE}")
        
        # Main loop
        cycle_count = 0
        try:
            while self.running:
                try:
                    cycle_count += 1
                    self.sync_view.display_cycle_start(cycle_count)

                    await self.crm_controller.run_cycle()

                    self.sync_view.display_cycle_stats(self.crm_controller.get_status())

                    await asyncio.sleep(self.config.SYNC_INTERVAL)

                except Exception as e:
                    self.sync_view.display_error(str(e), "Main loop")
                    await asyncio.sleep(5)  # Chờ 5s trước khi retry
        finally:
            await self.stop()
                
    def _signal_handler(self, signum, frame):
        """Xử lý signal để shutdown gracefully"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False
        
    async def stop(self):
        """Dừng server"""
        self.sync_view.display_shutdown()
        self.running = False
        await self.crm_controller.cleanup()
        logger.info("CRM server stopped")

def main():
    server = CRMServer()
    
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Shutdown initiated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
