"""Testes para o agendador de manutenção."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from vitrine_bot.application.maintenance import (
    MaintenanceScheduler,
    PeriodicJob,
    create_maintenance_scheduler,
)
from vitrine_bot.application.mutation_guard import MutationGuard
from vitrine_bot.domain.admission import AdmissionControl
from vitrine_bot.infra.session_store import InMemorySessionStore


class TestRunOnce:
    def test_runs_every_job(self, settings, clock, presenter):
        admission = AdmissionControl(retention_seconds=300, clock=clock)
        sessions = InMemorySessionStore(ttl_seconds=60, clock=clock)
        guard = MutationGuard(presenter, clock=clock, sleep=AsyncMock())

        admission.admit(1, "tap", 5, 60)
        sessions.set(1, {"step": "selecting_year"})
        guard.try_acquire("stuck")
        clock.advance(400)

        scheduler = create_maintenance_scheduler(settings, admission, sessions, guard)
        result = scheduler.run_once()

        assert result == {
            "admission_sweep": 1,
            "session_sweep": 1,
            "guard_cleanup": {"stale_locks": 1, "cache_trimmed": 0},
        }

    def test_failing_job_does_not_stop_others(self):
        ok = MagicMock(return_value=3)
        scheduler = MaintenanceScheduler(
            [
                PeriodicJob("broken", 1, MagicMock(side_effect=RuntimeError("boom"))),
                PeriodicJob("ok", 1, ok),
            ]
        )

        assert scheduler.run_once() == {"broken": None, "ok": 3}
        ok.assert_called_once()

    def test_intervals_from_settings(self, settings, clock, presenter):
        scheduler = create_maintenance_scheduler(
            settings,
            AdmissionControl(clock=clock),
            InMemorySessionStore(clock=clock),
            MutationGuard(presenter),
        )
        intervals = {job.name: job.interval_seconds for job in scheduler._jobs}
        assert intervals == {"admission_sweep": 120.0, "session_sweep": 600.0, "guard_cleanup": 300.0}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_jobs_and_stop_cancels(self):
        job = MagicMock(return_value=0)

        async def fast_sleep(_: float) -> None:
            await asyncio.sleep(0)

        scheduler = MaintenanceScheduler([PeriodicJob("job", 60, job)], sleep=fast_sleep)
        scheduler.start()
        assert scheduler.running is True

        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()

        assert job.call_count >= 1
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        scheduler = MaintenanceScheduler([PeriodicJob("job", 60, MagicMock())])
        scheduler.start()
        tasks = list(scheduler._tasks)
        scheduler.start()

        assert scheduler._tasks == tasks
        await scheduler.stop()
