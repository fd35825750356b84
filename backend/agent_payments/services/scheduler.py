"""
APScheduler Configuration for Session Eviction

Payment sessions live in memory and nothing deletes them when a call
ends, so a periodic job evicts sessions idle for longer than the
configured TTL.
"""
import logging
from datetime import timedelta
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .payment_state_store import PaymentStateStore

logger = logging.getLogger(__name__)

PRUNE_JOB_ID = "prune_stale_payment_sessions"


def prune_stale_sessions(store: PaymentStateStore, ttl_minutes: int) -> int:
    """
    Evict sessions idle for longer than ttl_minutes.

    Returns:
        Number of sessions evicted
    """
    evicted = store.prune_stale(timedelta(minutes=ttl_minutes))
    logger.debug(f"Session prune run evicted {evicted}, {len(store)} remaining")
    return evicted


class SessionEvictionScheduler:
    """
    Owns the AsyncIOScheduler that runs the eviction job.

    Jobs are kept in memory; sessions do not survive a restart, so
    neither does the job.
    """

    def __init__(
        self,
        store: PaymentStateStore,
        ttl_minutes: int,
        interval_minutes: int
    ):
        """
        Args:
            store: Store to prune
            ttl_minutes: Idle time after which a session is evicted
            interval_minutes: How often the prune job runs
        """
        self._store = store
        self._ttl_minutes = ttl_minutes
        self._interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None

    def _initialize_scheduler(self) -> AsyncIOScheduler:
        """
        Configure APScheduler.

        Configuration:
        - AsyncIOScheduler bound to the running event loop
        - MemoryJobStore (sessions are process-local anyway)
        - Coalesce: True (one catch-up run after a stall)
        - Max instances: 1 (prune runs never overlap)
        """
        scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
            timezone="UTC",
        )

        scheduler.add_job(
            prune_stale_sessions,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=PRUNE_JOB_ID,
            name="Evict stale payment sessions",
            replace_existing=True,
            kwargs={"store": self._store, "ttl_minutes": self._ttl_minutes},
        )
        return scheduler

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """
        Start the scheduler.

        Must be called from inside the running event loop.
        """
        if self.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = self._initialize_scheduler()
        self._scheduler.start()
        logger.info(
            f"Session eviction scheduled every {self._interval_minutes}m "
            f"(TTL {self._ttl_minutes}m)"
        )

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: Wait for a running prune job to finish
        """
        if self.running:
            self._scheduler.shutdown(wait=wait)
            logger.info(f"Scheduler shutdown (wait={wait})")
        self._scheduler = None
