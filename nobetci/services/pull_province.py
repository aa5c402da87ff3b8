"""Province pull orchestration.

One pull:
1. Load endpoints (DB, else built-in defaults)
2. Resolve the primary role fully, then the secondary role; within a role try
   endpoints in order and stop at the first success
3. Cross-check the two batches
4. Persist in one transaction on a worker thread

Endpoint failures are absorbed here (run log, alert, retry entry, optional
static fallback). Province-level failures raise to the job layer.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Literal, TypeVar

from sqlalchemy.orm import Session

from nobetci.config import Settings, get_settings
from nobetci.db.session import SessionLocal
from nobetci.duty_window import resolve_duty_date
from nobetci.ingestion.adapters.registry import AdapterRegistry
from nobetci.ingestion.errors import (
    IngestionError,
    NoEndpointError,
    NoRecordsError,
    PullCancelledError,
)
from nobetci.schemas.duty import AdapterFetchResult, SourceBatch, SourceEndpointConfig
from nobetci.services.cross_check import CrossCheckResult, cross_check
from nobetci.services.default_endpoints import get_default_endpoints
from nobetci.services.metrics import WorkerMetrics
from nobetci.services.persistence import PersistStats, persist_province_result
from nobetci.services.source_repository import SourceRepository

logger = logging.getLogger(__name__)

Role = Literal["primary", "secondary"]
T = TypeVar("T")

PARSER_THRESHOLD_DEDUP_MINUTES = 60


@dataclass(frozen=True)
class PullResult:
    province_slug: str
    duty_date: date
    record_count: int
    conflict_count: int
    degraded_count: int
    expired_count: int
    primary_source: str | None
    secondary_source: str | None
    used_default_config: bool = False


class ProvincePuller:
    """Runs province pulls against one adapter registry and metrics sink."""

    def __init__(
        self,
        *,
        registry: AdapterRegistry | None = None,
        metrics: WorkerMetrics | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry or AdapterRegistry()
        self._metrics = metrics or WorkerMetrics()
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    # ── DB helpers ───────────────────────────────────────────────────────

    def _run_in_session(self, fn: Callable[[SourceRepository], T]) -> T:
        db = self._session_factory()
        try:
            result = fn(SourceRepository(db))
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _db(self, fn: Callable[[SourceRepository], T]) -> T:
        """Run a repository call on a worker thread in its own short transaction."""
        return await asyncio.to_thread(self._run_in_session, fn)

    async def _alert(
        self,
        province_slug: str,
        alert_type: str,
        severity: str,
        message: str,
        *,
        endpoint: SourceEndpointConfig | None = None,
        payload: dict | None = None,
    ) -> None:
        await self._db(
            lambda repo: repo.insert_alert(
                province_slug=province_slug,
                alert_type=alert_type,
                severity=severity,
                message=message,
                endpoint_id=endpoint.source_endpoint_id if endpoint else None,
                payload=payload,
            )
        )

    # ── Pull ─────────────────────────────────────────────────────────────

    async def pull(self, province_slug: str, *, now: datetime | None = None) -> PullResult:
        """Pull, cross-check and persist one province.

        Raises:
            NoEndpointError: No DB or built-in endpoints exist (not retried).
            NoRecordsError: Both roles produced nothing.
            PullCancelledError: The pull was cancelled while persisting.
        """
        endpoints = await self._db(lambda repo: repo.list_endpoints(province_slug))
        used_defaults = False
        if not endpoints:
            endpoints = get_default_endpoints(province_slug)
            if not endpoints:
                await self._alert(
                    province_slug,
                    "source_missing",
                    "critical",
                    "No active source endpoints configured for province",
                )
                self._metrics.mark_failure(province_slug)
                raise NoEndpointError(f"No source endpoints for province: {province_slug}")
            used_defaults = True
            await self._alert(
                province_slug,
                "source_fallback_to_default_config",
                "warning",
                "Using built-in endpoint config because source_endpoints is empty",
                payload={"endpoint_count": len(endpoints)},
            )

        primary_endpoints = [e for e in endpoints if e.is_primary]
        secondary_endpoints = [e for e in endpoints if not e.is_primary]

        # Primary is fully resolved before secondary is attempted
        primary = await self._pull_role(province_slug, "primary", primary_endpoints, now)
        secondary = await self._pull_role(province_slug, "secondary", secondary_endpoints, now)

        checked = cross_check(primary, secondary, secondary_expected=bool(secondary_endpoints), now=now)
        if not checked.records:
            await self._alert(
                province_slug,
                "no_records",
                "critical",
                "No records produced after cross-check",
                payload={"primary_batch": primary is not None, "secondary_batch": secondary is not None},
            )
            self._metrics.mark_failure(province_slug)
            raise NoRecordsError(f"No records produced for province {province_slug}")

        try:
            stats = await self._persist(province_slug, checked, now)
        except Exception:
            self._metrics.mark_failure(province_slug)
            raise

        self._metrics.mark_success(province_slug, len(checked.conflicts))
        result = PullResult(
            province_slug=province_slug,
            duty_date=checked.records[0].duty_date if checked.records else resolve_duty_date(now),
            record_count=stats.records,
            conflict_count=stats.conflicts,
            degraded_count=checked.degraded_count,
            expired_count=stats.expired,
            primary_source=primary.meta.source_name if primary else None,
            secondary_source=secondary.meta.source_name if secondary else None,
            used_default_config=used_defaults,
        )
        logger.info(
            "Province pull committed: %s records=%d conflicts=%d degraded=%d expired=%d",
            province_slug,
            result.record_count,
            result.conflict_count,
            result.degraded_count,
            result.expired_count,
        )
        return result

    async def _pull_role(
        self,
        province_slug: str,
        role: Role,
        endpoints: list[SourceEndpointConfig],
        now: datetime | None,
    ) -> SourceBatch | None:
        for endpoint in endpoints:
            started_at = datetime.now(UTC)
            try:
                headers = await self._db(lambda repo: repo.get_latest_headers(endpoint.source_endpoint_id))
                adapter = self._registry.resolve(endpoint)
                logger.debug("Fetching %s %s via %s", province_slug, endpoint.source_name, adapter.adapter_name)
                result = await adapter.fetch(endpoint, headers, now=now)
            except IngestionError as exc:
                batch = await self._handle_failure(province_slug, role, endpoint, started_at, exc, now)
            except Exception as exc:
                logger.exception("Unexpected adapter error for %s (%s)", endpoint.source_name, province_slug)
                batch = await self._handle_failure(province_slug, role, endpoint, started_at, exc, now)
            else:
                await self._db(lambda repo: self._record_success(repo, province_slug, role, endpoint, started_at, result))
                return result.batch
            if batch is not None:
                return batch
        return None

    def _record_success(
        self,
        repo: SourceRepository,
        province_slug: str,
        role: Role,
        endpoint: SourceEndpointConfig,
        started_at: datetime,
        result: AdapterFetchResult,
    ) -> None:
        run_id = repo.insert_run(
            endpoint_id=endpoint.source_endpoint_id,
            status="success" if role == "primary" else "partial",
            started_at=started_at,
            http_status=result.http_status,
            etag=result.etag,
            last_modified=result.last_modified,
            record_count=len(result.batch.records),
        )
        self._check_parser_threshold(repo, province_slug, endpoint)
        repo.insert_snapshot(run_id=run_id, endpoint_id=endpoint.source_endpoint_id, payload=result.raw_payload)

    async def _handle_failure(
        self,
        province_slug: str,
        role: Role,
        endpoint: SourceEndpointConfig,
        started_at: datetime,
        exc: Exception,
        now: datetime | None,
    ) -> SourceBatch | None:
        """Log, alert and queue a retry for a failed endpoint; returns a fallback batch if one was served."""
        self._metrics.mark_parse_error()
        message = str(exc) or exc.__class__.__name__

        def record(repo: SourceRepository) -> None:
            repo.insert_run(
                endpoint_id=endpoint.source_endpoint_id,
                status="failed",
                started_at=started_at,
                http_status=getattr(exc, "status_code", None),
                error_message=message,
            )
            self._check_parser_threshold(repo, province_slug, endpoint)
            repo.insert_alert(
                province_slug=province_slug,
                alert_type="adapter_failed",
                severity="critical" if role == "primary" else "warning",
                message=f"Adapter failed for {role} source",
                endpoint_id=endpoint.source_endpoint_id,
                payload={
                    "source_name": endpoint.source_name,
                    "endpoint": endpoint.endpoint_url,
                    "parser_key": endpoint.parser_key,
                    "error_type": exc.__class__.__name__,
                    "error_message": message,
                },
            )
            repo.enqueue_retry(
                province_slug=province_slug,
                endpoint_id=endpoint.source_endpoint_id,
                reason=f"adapter_failed: {message}",
            )

        await self._db(record)
        logger.warning(
            "Endpoint fetch failed: province=%s role=%s endpoint=%s source=%s error=%s",
            province_slug,
            role,
            endpoint.source_endpoint_id,
            endpoint.source_name,
            message,
        )

        if not self._should_use_fallback(role):
            return None
        try:
            fallback = self._registry.resolve_fallback(endpoint)
            fallback_result = await fallback.fetch(endpoint, now=now)
        except IngestionError as fallback_exc:
            await self._alert(
                province_slug,
                "fallback_failed",
                "critical",
                f"Fallback failed for {role} source",
                endpoint=endpoint,
                payload={"source_name": endpoint.source_name, "error_message": str(fallback_exc)},
            )
            return None

        self._metrics.mark_fallback_used()
        await self._alert(
            province_slug,
            "fallback_used",
            "warning",
            f"Fallback adapter used for {role} source",
            endpoint=endpoint,
            payload={"source_name": endpoint.source_name, "parser_key": endpoint.parser_key},
        )
        return fallback_result.batch

    def _should_use_fallback(self, role: Role) -> bool:
        if not self._settings.allow_static_fallback:
            return False
        return role == "primary" or self._settings.allow_fallback_for_secondary

    def _check_parser_threshold(
        self, repo: SourceRepository, province_slug: str, endpoint: SourceEndpointConfig
    ) -> bool:
        """Raise a parser_error_threshold alert when the 24h failure rate is too high.

        At most one such alert per endpoint per hour.
        """
        if endpoint.is_builtin:
            return False
        stats = repo.get_parser_failure_stats(endpoint.source_endpoint_id)
        threshold = self._settings.parser_error_threshold_pct
        if stats.total_runs < self._settings.parser_error_min_runs or stats.error_rate_pct < threshold:
            return False
        if repo.has_recent_alert(
            endpoint_id=endpoint.source_endpoint_id,
            alert_type="parser_error_threshold",
            minutes=PARSER_THRESHOLD_DEDUP_MINUTES,
        ):
            return False
        repo.insert_alert(
            province_slug=province_slug,
            alert_type="parser_error_threshold",
            severity="critical",
            message=f"Parser error rate exceeded threshold ({stats.error_rate_pct}% >= {threshold}%)",
            endpoint_id=endpoint.source_endpoint_id,
            payload={
                "parser_key": endpoint.parser_key,
                "source_name": endpoint.source_name,
                "threshold_pct": threshold,
                "total_runs_24h": stats.total_runs,
                "failed_runs_24h": stats.failed_runs,
                "error_rate_pct_24h": stats.error_rate_pct,
            },
        )
        logger.warning(
            "Parser error threshold exceeded: province=%s endpoint=%s rate=%.2f%%",
            province_slug,
            endpoint.source_endpoint_id,
            stats.error_rate_pct,
        )
        return True

    # ── Persistence ──────────────────────────────────────────────────────

    def _persist_sync(
        self,
        province_slug: str,
        checked: CrossCheckResult,
        now: datetime | None,
        cancel_event: threading.Event,
    ) -> PersistStats:
        db = self._session_factory()
        try:
            return persist_province_result(
                db,
                province_slug,
                checked.records,
                checked.conflicts,
                now=now,
                cancel_event=cancel_event,
            )
        finally:
            db.close()

    async def _persist(
        self, province_slug: str, checked: CrossCheckResult, now: datetime | None
    ) -> PersistStats:
        """Persist on a worker thread; a cancelled pull never commits.

        On cancellation the thread is told to roll back and this coroutine
        waits for it to finish before re-raising, so the province lock held
        by the caller outlives the transaction.
        """
        cancel_event = threading.Event()
        task = asyncio.ensure_future(
            asyncio.to_thread(self._persist_sync, province_slug, checked, now, cancel_event)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            cancel_event.set()
            try:
                await task
            except PullCancelledError:
                logger.warning("Cancelled pull for %s rolled back before commit", province_slug)
            except Exception:
                logger.exception("Cancelled pull for %s failed while rolling back", province_slug)
            raise


async def pull_province(
    province_slug: str,
    *,
    registry: AdapterRegistry | None = None,
    metrics: WorkerMetrics | None = None,
    now: datetime | None = None,
) -> PullResult:
    """Convenience wrapper for one-off pulls."""
    return await ProvincePuller(registry=registry, metrics=metrics).pull(province_slug, now=now)
