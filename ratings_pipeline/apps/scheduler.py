"""
Scheduler für die Ratings Pipeline

Prozessweite Task-Registry: wird beim Prozessstart explizit initialisiert, jede
Task ist einzeln aufrufbar. Geplant läuft nur die Aufräum-Logik (täglich, UTC);
Crawls werden extern angestoßen (``ratings-pipeline ingest``), da der API-Prozess
keinen Browser hostet.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from ratings_pipeline.common.constants import Category
from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.utils import utcnow

logger = logging.getLogger("scheduler")

TaskFunc = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class DailyAt:
    hour: int
    minute: int = 0

    def next_run(self, now: datetime) -> datetime:
        """Nächster Ausführungszeitpunkt (UTC) strikt nach ``now``"""
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate


@dataclass
class ScheduledTask:
    name: str
    func: TaskFunc
    schedule: Optional[DailyAt] = None  # None: nur manuell/extern auslösbar
    description: str = ""


class TaskRegistry:
    """Registry aller Hintergrund-Tasks"""

    def __init__(self, metrics=None):
        self.metrics = metrics
        self._tasks: dict[str, ScheduledTask] = {}

    def register(self, task: ScheduledTask) -> None:
        if task.name in self._tasks:
            raise ValueError(f"Task '{task.name}' already registered")
        self._tasks[task.name] = task
        logger.info(f"Registered task: {task.name}")

    def get(self, name: str) -> ScheduledTask:
        try:
            return self._tasks[name]
        except KeyError:
            raise KeyError(f"Unknown task '{name}'. Known: {', '.join(sorted(self._tasks))}") from None

    def names(self) -> list[str]:
        return sorted(self._tasks)

    def scheduled(self) -> list[ScheduledTask]:
        return [t for t in self._tasks.values() if t.schedule is not None]

    async def run(self, name: str) -> Any:
        """Führt eine Task sofort aus"""
        task = self.get(name)
        start = time.perf_counter()
        status = "error"
        try:
            result = task.func()
            if inspect.isawaitable(result):
                result = await result
            status = "success"
            logger.info(f"Task {name} finished: {result}")
            return result
        except Exception as e:
            logger.error(f"Task {name} failed: {e}")
            raise
        finally:
            if self.metrics:
                self.metrics.record_background_task(name, status, time.perf_counter() - start)


# --- Tasks ------------------------------------------------------------------


def purge_request_logs(store: Store, now: Optional[datetime] = None, retention_days: int = 30, metrics=None) -> int:
    """Löscht RequestLogs, die älter als ``retention_days`` sind; gibt die Anzahl zurück"""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = store.delete_request_logs_before(cutoff)
    if metrics:
        metrics.record_request_logs_purged(deleted)
    logger.info(f"Purged {deleted} request logs older than {cutoff.isoformat()}")
    return deleted


def purge_rate_windows(store: Store, now: Optional[datetime] = None, window_seconds: int = 3600) -> int:
    """Entfernt abgelaufene Rate-Limit-Fenster"""
    current_bucket = int((now or utcnow()).timestamp() // window_seconds)
    return store.delete_rate_windows_before(current_bucket)


# --- Registry lifecycle -----------------------------------------------------

_registry: Optional[TaskRegistry] = None


def init_scheduler(
    store: Store,
    settings: Settings,
    *,
    metrics=None,
    ingestion=None,
    clock: Callable[[], datetime] = utcnow,
) -> TaskRegistry:
    """Baut die prozessweite Registry neu auf und gibt sie zurück"""
    global _registry
    registry = TaskRegistry(metrics=metrics)
    daily = DailyAt(settings.cleanup_hour_utc, settings.cleanup_minute_utc)
    registry.register(
        ScheduledTask(
            name="cleanup_request_logs",
            func=lambda: purge_request_logs(store, clock(), settings.request_log_retention_days, metrics),
            schedule=daily if settings.enable_scheduled_cleanup else None,
            description="Delete request logs past the retention period",
        )
    )
    registry.register(
        ScheduledTask(
            name="cleanup_rate_windows",
            func=lambda: purge_rate_windows(store, clock(), settings.rate_limit_window_seconds),
            schedule=daily if settings.enable_scheduled_cleanup else None,
            description="Delete expired rate-limit counters",
        )
    )
    if ingestion is not None:
        for category in Category:
            registry.register(
                ScheduledTask(
                    name=f"ingest_{category.value.replace('-', '_')}",
                    func=lambda c=category: ingestion.ingest(c),
                    description=f"Crawl and reconcile the {category.value} category",
                )
            )
    _registry = registry
    return registry


def get_registry() -> TaskRegistry:
    if _registry is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() at process start.")
    return _registry


class TaskScheduler:
    """Führt die geplanten Tasks der Registry in asyncio-Schleifen aus"""

    def __init__(
        self,
        registry: TaskRegistry,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self._clock = clock
        self._sleep = sleep
        self.running = False
        self.tasks: list[asyncio.Task] = []
        self.logger = logging.getLogger("task_scheduler")

    async def start_schedule(self):
        """Startet den Scheduler"""
        self.running = True
        self.tasks = [asyncio.create_task(self._loop(t)) for t in self.registry.scheduled()]
        self.logger.info(f"Scheduler started with {len(self.tasks)} scheduled tasks")
        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            pass
        finally:
            self.running = False

    async def _loop(self, task: ScheduledTask):
        while self.running:
            now = self._clock()
            due = task.schedule.next_run(now)
            await self._sleep(max(0.0, (due - now).total_seconds()))
            if not self.running:
                break
            try:
                await self.registry.run(task.name)
            except Exception as e:
                # loop keeps running; next attempt at the next due time
                self.logger.error(f"Scheduled task {task.name} error: {e}")

    def stop(self):
        """Stoppt den Scheduler"""
        self.running = False
        for task in self.tasks:
            if not task.done():
                task.cancel()
        self.logger.info("Task scheduler stopped")
