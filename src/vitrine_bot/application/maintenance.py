"""Tarefas periódicas de manutenção dos stores em memória.

- AdmissionControl.sweep a cada admission_sweep_interval_seconds (120 s)
- SessionStore.sweep_expired a cada session_sweep_interval_seconds (600 s)
- MutationGuard.cleanup a cada guard_cleanup_interval_seconds (300 s)

Iniciado/parado pelo lifespan do FastAPI ou pelo runner de polling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from vitrine_bot.observability.logging import get_logger

if TYPE_CHECKING:
    from vitrine_bot.application.mutation_guard import MutationGuard
    from vitrine_bot.config.settings import Settings
    from vitrine_bot.domain.admission import AdmissionControl
    from vitrine_bot.infra.session_store import InMemorySessionStore

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class PeriodicJob:
    name: str
    interval_seconds: float
    run: Callable[[], Any]


class MaintenanceScheduler:
    """Executa jobs síncronos em intervalos fixos no event loop."""

    def __init__(
        self,
        jobs: list[PeriodicJob],
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._jobs = jobs
        self._sleep = sleep or asyncio.sleep
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def run_once(self) -> dict[str, Any]:
        """Executa todos os jobs uma vez (usado em testes e no shutdown)."""
        return {job.name: self._run_job(job) for job in self._jobs}

    def _run_job(self, job: PeriodicJob) -> Any:
        try:
            return job.run()
        except Exception:
            logger.exception("Maintenance job failed", extra={"job": job.name})
            return None

    async def _loop(self, job: PeriodicJob) -> None:
        while True:
            await self._sleep(job.interval_seconds)
            result = self._run_job(job)
            logger.debug("Maintenance job ran", extra={"job": job.name, "result": result})

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"maintenance:{job.name}")
            for job in self._jobs
        ]
        logger.info("Maintenance scheduler started", extra={"jobs": [j.name for j in self._jobs]})

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Maintenance scheduler stopped")


def create_maintenance_scheduler(
    settings: Settings,
    admission: AdmissionControl,
    sessions: InMemorySessionStore,
    guard: MutationGuard,
) -> MaintenanceScheduler:
    return MaintenanceScheduler(
        [
            PeriodicJob(
                "admission_sweep", float(settings.admission_sweep_interval_seconds), admission.sweep
            ),
            PeriodicJob(
                "session_sweep", float(settings.session_sweep_interval_seconds), sessions.sweep_expired
            ),
            PeriodicJob(
                "guard_cleanup", float(settings.guard_cleanup_interval_seconds), guard.cleanup
            ),
        ]
    )
