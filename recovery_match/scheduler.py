# recovery_match/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dataclasses import asdict, dataclass
from datetime import datetime
import logging
import threading

import redis
from redis.exceptions import LockError, RedisError

from recovery_match.db import SessionLocal
from recovery_match.match.matcher import run_matching_engine
from recovery_match.settings import settings

# Set up logging
logger = logging.getLogger("scheduler")
logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

SHARED_LOCK_NAME = "recovery_match:matching-scan"


@dataclass
class ScanResult:
    status: str                 # completed | skipped | failed
    new_matches: int = 0
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        for k in ("started_at", "finished_at"):
            d[k] = d[k].isoformat() if d[k] else None
        return d


class MatchingService:
    """
    Single-flight driver around one matching scan.

    Two locks make up the run-state: a thread lock for this process and,
    when a Redis client is given, a Redis lock shared by every process
    (web app, Celery workers, the run_matching script). A run that cannot
    take both is skipped, not queued. Failures are contained here; held
    locks are always released.
    """

    def __init__(self, session_factory=SessionLocal, engine=run_matching_engine, redis_client=None):
        self._session_factory = session_factory
        self._engine = engine
        self._lock = threading.Lock()
        self._redis = redis_client
        self.last_result: ScanResult | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def _acquire_shared(self):
        """Take the cross-process lock. Returns the held lock, or None if another process has it."""
        lock = self._redis.lock(
            SHARED_LOCK_NAME,
            timeout=settings.MATCHING_LOCK_TIMEOUT_SECONDS,
        )
        return lock if lock.acquire(blocking=False) else None

    def _release_shared(self, lock):
        try:
            lock.release()
        except LockError as e:
            # expired under a long scan, or taken over by another process
            logger.warning(f"Could not release matching lock: {e}")

    def run(self) -> ScanResult:
        if not self._lock.acquire(blocking=False):
            logger.warning("Matching service is already running, skipping scheduled run")
            return ScanResult(status="skipped")

        started = datetime.now()
        shared = None
        session = None
        try:
            if self._redis is not None:
                try:
                    shared = self._acquire_shared()
                except RedisError as e:
                    logger.error(f"Could not reach the matching lock store: {e}")
                    return ScanResult(status="failed", error=str(e), started_at=started, finished_at=datetime.now())
                if shared is None:
                    logger.warning("Matching is already running in another process, skipping run")
                    return ScanResult(status="skipped")

            logger.info("=" * 60)
            logger.info(f"Starting opportunity matching at {started.strftime('%Y-%m-%d %H:%M:%S')}")
            try:
                session = self._session_factory()
                count = self._engine(session)
                result = ScanResult(status="completed", new_matches=count, started_at=started, finished_at=datetime.now())
                logger.info(f"Opportunity matching complete. Found {count} new matches.")
            except Exception as e:
                logger.exception(f"Error running matching service: {e}")
                if session is not None:
                    session.rollback()
                result = ScanResult(status="failed", error=str(e), started_at=started, finished_at=datetime.now())
            finally:
                if session is not None:
                    session.close()
            logger.info("=" * 60)
        finally:
            if shared is not None:
                self._release_shared(shared)
            self._lock.release()

        self.last_result = result
        return result


# Process-wide service and scheduler
_service: MatchingService | None = None
_scheduler = None


def get_matching_service() -> MatchingService:
    global _service
    if _service is None:
        client = redis.Redis.from_url(settings.REDIS_URL) if settings.MATCHING_SHARED_LOCK else None
        _service = MatchingService(redis_client=client)
    return _service


def _scheduled_run():
    get_matching_service().run()


def start_scheduler():
    """
    Start the background scheduler running the matching scan every
    MATCHING_INTERVAL_MINUTES (and once immediately if MATCHING_RUN_ON_START).
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already running, skipping initialization")
        return _scheduler

    interval = settings.MATCHING_INTERVAL_MINUTES
    logger.info(f"Starting opportunity matching service (runs every {interval} minutes)")

    _scheduler = BackgroundScheduler(
        timezone=settings.SCHEDULER_TIMEZONE,
        daemon=True
    )

    _scheduler.add_job(
        _scheduled_run,
        IntervalTrigger(minutes=interval),
        id="opportunity_matching",
        name="Opportunity Matching",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.MATCHING_RUN_ON_START:
        _scheduler.add_job(
            _scheduled_run,
            id="opportunity_matching_startup",
            name="Opportunity Matching (startup)",
            replace_existing=True,
        )

    _scheduler.start()
    logger.info("Scheduler started successfully")

    for job in _scheduler.get_jobs():
        logger.info(f"Next run: {job.name} at {job.next_run_time}")

    return _scheduler


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None:
        logger.info("Stopping scheduler...")
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Current scheduler status, upcoming jobs and the last scan result."""
    last = _service.last_result.to_dict() if _service and _service.last_result else None
    scanning = bool(_service and _service.running)

    if _scheduler is None:
        return {
            "running": False,
            "scanning": scanning,
            "jobs": [],
            "last_result": last,
        }

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "running": True,
        "scanning": scanning,
        "jobs": jobs,
        "timezone": str(_scheduler.timezone),
        "last_result": last,
    }
