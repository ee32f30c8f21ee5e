"""
Retention sweeper: purges resolved complaints older than the retention window.

Runs as a background asyncio task started from the app lifespan. Database and
file work happens in a worker thread so request handling is never blocked.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from database.models import Complaint, ComplaintStatus
from services.complaint_service import remove_complaint
from core.logger import logger


class RetentionSweeper:
    """Periodic cleanup of old resolved complaints and their images."""

    def __init__(
        self,
        database,
        storage=None,
        retention_days: int = 10,
        interval_hours: float = 24,
    ):
        self.database = database
        self.storage = storage
        self.retention = timedelta(days=retention_days)
        self.interval = timedelta(hours=interval_hours)

        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

        self.stats = {
            "runs": 0,
            "total_deleted": 0,
            "total_failed": 0,
            "last_run": None,
        }

    async def start(self):
        """Start the background sweep loop."""
        if self.running:
            logger.warning("[RetentionSweeper] Already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"[RetentionSweeper] Started - retention: {self.retention}, interval: {self.interval}")

    async def stop(self):
        """Stop the sweep loop and wait for it to exit."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[RetentionSweeper] Stopped")

    async def _sweep_loop(self):
        """Main loop: sweep, then sleep until the next scheduled run."""
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"[RetentionSweeper] Error in sweep loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval.total_seconds())

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run one sweep in a worker thread; concurrent calls wait their turn."""
        async with self._lock:
            return await asyncio.to_thread(self.sweep, now)

    def find_expired_ids(self, now: Optional[datetime] = None) -> List[int]:
        """Ids of resolved complaints last updated before the retention cutoff."""
        cutoff = (now or datetime.utcnow()) - self.retention
        with self.database.get_session() as db:
            rows = (
                db.query(Complaint.id)
                .filter(
                    Complaint.status == ComplaintStatus.RESOLVED,
                    Complaint.updated_at < cutoff,
                )
                .order_by(Complaint.updated_at.asc())
                .all()
            )
        return [complaint_id for (complaint_id,) in rows]

    def sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Delete every expired complaint, one session per complaint.

        A failure on one complaint is logged and counted; the rest of the
        sweep continues and the failed record is retried on the next run.

        Returns:
            Dict with scanned/deleted/failed counts
        """
        now = now or datetime.utcnow()
        cutoff = now - self.retention
        expired_ids = self.find_expired_ids(now)
        results = {"scanned": len(expired_ids), "deleted": 0, "failed": 0}

        for complaint_id in expired_ids:
            try:
                with self.database.get_session() as db:
                    complaint = db.query(Complaint).filter(Complaint.id == complaint_id).first()
                    # Re-check: an admin may have reopened or deleted it meanwhile
                    if (
                        complaint is None
                        or complaint.status != ComplaintStatus.RESOLVED
                        or complaint.updated_at >= cutoff
                    ):
                        continue
                    remove_complaint(db, complaint, self.storage)
                results["deleted"] += 1
            except Exception as e:
                results["failed"] += 1
                logger.error(f"[RetentionSweeper] Failed to purge complaint {complaint_id}: {e}", exc_info=True)

        self.stats["runs"] += 1
        self.stats["total_deleted"] += results["deleted"]
        self.stats["total_failed"] += results["failed"]
        self.stats["last_run"] = now.isoformat()

        logger.info(
            f"[RetentionSweeper] Sweep complete: "
            f"{results['deleted']} deleted, "
            f"{results['failed']} failed, "
            f"{results['scanned']} expired"
        )
        return results
