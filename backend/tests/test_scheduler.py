"""
Unit tests for session eviction scheduling
"""
import pytest

from agent_payments.services.scheduler import (
    PRUNE_JOB_ID,
    SessionEvictionScheduler,
    prune_stale_sessions,
)


def test_prune_stale_sessions_uses_ttl(store, clock):
    store.create_session("CA1", "PA1")
    clock.advance(minutes=59)
    assert prune_stale_sessions(store, ttl_minutes=60) == 0

    clock.advance(minutes=2)
    assert prune_stale_sessions(store, ttl_minutes=60) == 1
    assert len(store) == 0


def test_scheduler_initialization(store):
    scheduler = SessionEvictionScheduler(store, ttl_minutes=60, interval_minutes=5)

    assert scheduler.running is False


@pytest.mark.asyncio
async def test_scheduler_registers_prune_job(store):
    scheduler = SessionEvictionScheduler(store, ttl_minutes=60, interval_minutes=5)

    scheduler.start()
    try:
        assert scheduler.running is True
        job = scheduler._scheduler.get_job(PRUNE_JOB_ID)
        assert job is not None
        assert job.kwargs == {"store": store, "ttl_minutes": 60}
    finally:
        scheduler.shutdown(wait=False)

    assert scheduler.running is False


@pytest.mark.asyncio
async def test_scheduler_start_twice_is_harmless(store):
    scheduler = SessionEvictionScheduler(store, ttl_minutes=60, interval_minutes=5)

    scheduler.start()
    first = scheduler._scheduler
    scheduler.start()
    try:
        assert scheduler._scheduler is first
    finally:
        scheduler.shutdown(wait=False)
