"""In-process job scheduler for province pulls.

A fixed pool of asyncio workers consumes a priority queue of province jobs.
Job ids double as de-duplication keys: while a job id is queued, running or
waiting out a retry backoff, enqueuing it again is a no-op. A per-province
lock keeps recurring and immediate pulls of one province from overlapping.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Literal

from nobetci.config import Settings, get_settings
from nobetci.duty_window import istanbul_now
from nobetci.ingestion.errors import IngestionError
from nobetci.services.metrics import WorkerMetrics
from nobetci.services.pull_province import ProvincePuller

logger = logging.getLogger(__name__)

JobKind = Literal["recurring", "immediate"]

DAILY_SWEEP_AT = time(0, 5)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int
    backoff_base_seconds: float
    priority: int  # lower runs first

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff before retrying after failed attempt number ``attempt``."""
        return self.backoff_base_seconds * (2 ** (attempt - 1))


RETRY_POLICIES: dict[str, RetryPolicy] = {
    "recurring": RetryPolicy(attempts=5, backoff_base_seconds=10.0, priority=10),
    "immediate": RetryPolicy(attempts=3, backoff_base_seconds=5.0, priority=0),
}


@dataclass
class Job:
    kind: JobKind
    province_slug: str
    reason: str
    attempt: int = 1

    @property
    def job_id(self) -> str:
        return job_id_for(self.kind, self.province_slug)

    @property
    def policy(self) -> RetryPolicy:
        return RETRY_POLICIES[self.kind]


@dataclass(order=True)
class _QueueEntry:
    priority: int
    seq: int
    job: Job = field(compare=False)


def job_id_for(kind: JobKind, province_slug: str) -> str:
    prefix = "pull-validate" if kind == "recurring" else "pull-immediate"
    return f"{prefix}:{province_slug}"


def seconds_until_daily_sweep(now: datetime | None = None) -> float:
    """Seconds from ``now`` until the next 00:05 Europe/Istanbul."""
    local = istanbul_now(now)
    target = local.replace(
        hour=DAILY_SWEEP_AT.hour, minute=DAILY_SWEEP_AT.minute, second=0, microsecond=0
    )
    if target <= local:
        target = target + timedelta(days=1)
    return (target - local).total_seconds()


class JobScheduler:
    """Bounded worker pool running recurring and immediate province pulls.

    Parameters
    ----------
    province_slugs : list[str]
        Provinces covered by recurring pulls, the daily sweep and full syncs.
    puller : ProvincePuller | None
        Pull implementation; built from ``metrics`` when omitted.
    metrics : WorkerMetrics | None
        Process-wide counters, flushed to the log every
        ``METRICS_FLUSH_SECONDS``.
    settings : Settings | None
        Concurrency, interval and timeout configuration.
    """

    def __init__(
        self,
        province_slugs: list[str],
        *,
        puller: ProvincePuller | None = None,
        metrics: WorkerMetrics | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.province_slugs = list(dict.fromkeys(province_slugs))
        self.metrics = metrics or WorkerMetrics()
        self.settings = settings or get_settings()
        self.puller = puller or ProvincePuller(metrics=self.metrics, settings=self.settings)
        self._queue: asyncio.PriorityQueue[_QueueEntry] = asyncio.PriorityQueue()
        self._seq = itertools.count()
        self._active: set[str] = set()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._workers: list[asyncio.Task] = []
        self._timers: list[asyncio.Task] = []
        self._backoffs: set[asyncio.Task] = set()

    # ── Enqueueing ───────────────────────────────────────────────────────

    def _put(self, job: Job) -> None:
        self._queue.put_nowait(_QueueEntry(job.policy.priority, next(self._seq), job))

    def _enqueue(self, kind: JobKind, province_slug: str, reason: str) -> str | None:
        slug = province_slug.strip().lower()
        job = Job(kind=kind, province_slug=slug, reason=reason)
        if job.job_id in self._active:
            logger.debug("Job %s already queued or running; skipped (%s)", job.job_id, reason)
            return None
        self._active.add(job.job_id)
        self._put(job)
        return job.job_id

    def enqueue_immediate(self, province_slug: str, reason: str = "api") -> str | None:
        """Queue a high-priority pull; returns the job id, or None if one is already pending."""
        return self._enqueue("immediate", province_slug, reason)

    def enqueue_recurring(self, province_slug: str, reason: str = "recurring") -> str | None:
        return self._enqueue("recurring", province_slug, reason)

    def enqueue_full_sync(self, reason: str = "cron") -> list[str]:
        """Queue an immediate pull for every configured province."""
        job_ids = []
        for slug in self.province_slugs:
            job_id = self.enqueue_immediate(slug, reason)
            if job_id:
                job_ids.append(job_id)
        logger.info("Full sync queued %d/%d provinces (%s)", len(job_ids), len(self.province_slugs), reason)
        return job_ids

    def is_pending(self, job_id: str) -> bool:
        return job_id in self._active

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, *, schedule_recurring: bool = True) -> None:
        concurrency = max(1, self.settings.worker_concurrency)
        self._workers = [asyncio.create_task(self._worker(i)) for i in range(concurrency)]
        if schedule_recurring:
            self._timers = [
                asyncio.create_task(self._recurring_loop()),
                asyncio.create_task(self._daily_sweep_loop()),
                asyncio.create_task(self._metrics_loop()),
            ]
        logger.info(
            "Scheduler started: workers=%d provinces=%s interval=%dm timeout=%.0fs",
            concurrency,
            ",".join(self.province_slugs) or "-",
            self.settings.recurring_interval_minutes,
            self.settings.province_timeout_seconds,
        )

    async def stop(self) -> None:
        """Cancel timers, pending backoffs and workers; in-flight pulls are cancelled."""
        tasks = [*self._timers, *self._backoffs, *self._workers]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers = []
        self._workers = []
        self._backoffs.clear()
        self.metrics.flush(logger)
        logger.info("Scheduler stopped")

    async def join(self) -> None:
        """Wait until the queue is drained (backoff retries not included)."""
        await self._queue.join()

    # ── Workers ──────────────────────────────────────────────────────────

    async def _worker(self, index: int) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._run_job(entry.job)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: Job) -> None:
        lock = self._locks[job.province_slug]
        error: Exception | None = None
        async with lock:
            logger.info("Job %s started (attempt %d, %s)", job.job_id, job.attempt, job.reason)
            try:
                result = await asyncio.wait_for(
                    self.puller.pull(job.province_slug),
                    timeout=self.settings.province_timeout_seconds,
                )
            except TimeoutError as exc:
                self.metrics.mark_failure(job.province_slug)
                logger.warning(
                    "Job %s timed out after %.0fs", job.job_id, self.settings.province_timeout_seconds
                )
                error = exc
            except Exception as exc:
                logger.error("Job %s failed: %s", job.job_id, exc)
                error = exc
            else:
                logger.info(
                    "Job %s completed: records=%d conflicts=%d",
                    job.job_id,
                    result.record_count,
                    result.conflict_count,
                )

        if error is None or not self._should_retry(job, error):
            self._active.discard(job.job_id)
            return

        delay = job.policy.delay_for(job.attempt)
        retry = Job(kind=job.kind, province_slug=job.province_slug, reason=job.reason, attempt=job.attempt + 1)
        logger.info("Job %s retry %d/%d in %.0fs", job.job_id, retry.attempt, job.policy.attempts, delay)
        task = asyncio.create_task(self._requeue_after(retry, delay))
        self._backoffs.add(task)
        task.add_done_callback(self._backoffs.discard)

    def _should_retry(self, job: Job, error: Exception) -> bool:
        if isinstance(error, IngestionError) and not error.retryable:
            return False
        return job.attempt < job.policy.attempts

    async def _requeue_after(self, job: Job, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self._active.discard(job.job_id)
            raise
        self._put(job)

    # ── Timers ───────────────────────────────────────────────────────────

    async def _recurring_loop(self) -> None:
        interval = max(1, self.settings.recurring_interval_minutes) * 60
        while True:
            for slug in self.province_slugs:
                self.enqueue_recurring(slug)
            await asyncio.sleep(interval)

    async def _daily_sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_daily_sweep())
            self.enqueue_full_sync("daily_sweep")

    async def _metrics_loop(self) -> None:
        while True:
            await asyncio.sleep(max(1, self.settings.metrics_flush_seconds))
            self.metrics.flush(logger)
