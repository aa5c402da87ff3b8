"""Source configuration and ingestion bookkeeping queries.

All methods take the caller's session and never commit. Built-in endpoints
(ids <= 0) have no source_endpoints row, so run, snapshot and statistics
writes are skipped for them.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from nobetci.models.ingestion_alert import IngestionAlert, IngestionRetry
from nobetci.models.ingestion_run import IngestionRun, SourceSnapshot
from nobetci.models.province import Province
from nobetci.models.source import Source, SourceEndpoint
from nobetci.schemas.duty import ConditionalHeaders, SourceEndpointConfig

logger = logging.getLogger(__name__)

STATS_WINDOW = timedelta(hours=24)
RETRY_DELAY_MINUTES = 5


@dataclass(frozen=True)
class ParserFailureStats:
    total_runs: int
    failed_runs: int
    error_rate_pct: float


def checksum_payload(payload: str) -> str:
    """SHA-256 hex digest of a raw payload."""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SourceRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Configuration ────────────────────────────────────────────────────

    def list_endpoints(self, province_slug: str) -> list[SourceEndpointConfig]:
        """Enabled endpoints of enabled sources, primary first, then by authority."""
        rows = self.db.execute(
            select(SourceEndpoint, Source, Province.slug)
            .join(Source, Source.id == SourceEndpoint.source_id)
            .join(Province, Province.id == Source.province_id)
            .where(
                Province.slug == province_slug,
                Source.enabled.is_(True),
                SourceEndpoint.enabled.is_(True),
            )
            .order_by(
                SourceEndpoint.is_primary.desc(),
                Source.authority_weight.desc(),
                SourceEndpoint.id.asc(),
            )
        ).all()
        return [
            SourceEndpointConfig(
                source_endpoint_id=endpoint.id,
                source_id=source.id,
                province_slug=slug,
                source_name=source.name,
                source_type=source.source_type,
                authority_weight=source.authority_weight,
                endpoint_url=endpoint.endpoint_url,
                format=endpoint.format,
                parser_key=endpoint.parser_key,
                is_primary=endpoint.is_primary,
            )
            for endpoint, source, slug in rows
        ]

    def list_active_province_slugs(self) -> list[str]:
        """Slugs of active provinces with at least one enabled endpoint."""
        rows = self.db.execute(
            select(Province.slug)
            .join(Source, Source.province_id == Province.id)
            .join(SourceEndpoint, SourceEndpoint.source_id == Source.id)
            .where(
                Province.is_active.is_(True),
                Source.enabled.is_(True),
                SourceEndpoint.enabled.is_(True),
            )
            .distinct()
            .order_by(Province.slug)
        ).scalars()
        return list(rows)

    def get_province_id(self, province_slug: str) -> int | None:
        return self.db.execute(select(Province.id).where(Province.slug == province_slug)).scalar_one_or_none()

    # ── Run history ──────────────────────────────────────────────────────

    def get_latest_headers(self, endpoint_id: int) -> ConditionalHeaders:
        """ETag / Last-Modified of the endpoint's latest successful or partial run."""
        if endpoint_id <= 0:
            return ConditionalHeaders()
        row = self.db.execute(
            select(IngestionRun.etag, IngestionRun.last_modified)
            .where(
                IngestionRun.source_endpoint_id == endpoint_id,
                IngestionRun.status.in_(("success", "partial")),
            )
            .order_by(IngestionRun.started_at.desc())
            .limit(1)
        ).first()
        if row is None:
            return ConditionalHeaders()
        return ConditionalHeaders(etag=row.etag, last_modified=row.last_modified)

    def insert_run(
        self,
        *,
        endpoint_id: int,
        status: str,
        started_at: datetime,
        finished_at: datetime | None = None,
        http_status: int | None = None,
        etag: str | None = None,
        last_modified: str | None = None,
        record_count: int | None = None,
        error_message: str | None = None,
    ) -> int | None:
        """Log one fetch attempt; returns the run id (None for built-in endpoints)."""
        if endpoint_id <= 0:
            return None
        run = IngestionRun(
            source_endpoint_id=endpoint_id,
            status=status,
            http_status=http_status,
            etag=etag,
            last_modified=last_modified,
            record_count=record_count,
            error_message=error_message,
            started_at=started_at,
            finished_at=finished_at or datetime.now(UTC),
        )
        self.db.add(run)
        self.db.flush()
        return run.id

    def insert_snapshot(self, *, run_id: int | None, endpoint_id: int, payload: str) -> str | None:
        """Store a raw payload with its checksum; returns the checksum."""
        if endpoint_id <= 0 or run_id is None or not payload:
            return None
        checksum = checksum_payload(payload)
        self.db.add(
            SourceSnapshot(
                ingestion_run_id=run_id,
                source_endpoint_id=endpoint_id,
                checksum=checksum,
                raw_payload=payload,
            )
        )
        self.db.flush()
        return checksum

    def get_parser_failure_stats(self, endpoint_id: int, now: datetime | None = None) -> ParserFailureStats:
        """Run count, failed count and failure rate (%, 2 dp) over the last 24 hours."""
        if endpoint_id <= 0:
            return ParserFailureStats(0, 0, 0.0)
        cutoff = (now or datetime.now(UTC)) - STATS_WINDOW
        row = self.db.execute(
            select(
                func.count(IngestionRun.id).label("total_runs"),
                func.coalesce(func.sum(case((IngestionRun.status == "failed", 1), else_=0)), 0).label(
                    "failed_runs"
                ),
            ).where(
                IngestionRun.source_endpoint_id == endpoint_id,
                IngestionRun.started_at > cutoff,
            )
        ).one()
        total = int(row.total_runs or 0)
        failed = int(row.failed_runs or 0)
        rate = round(100.0 * failed / total, 2) if total else 0.0
        return ParserFailureStats(total, failed, rate)

    # ── Alerts and retries ───────────────────────────────────────────────

    def insert_alert(
        self,
        *,
        province_slug: str,
        alert_type: str,
        severity: str,
        message: str,
        endpoint_id: int | None = None,
        payload: dict | None = None,
    ) -> None:
        self.db.add(
            IngestionAlert(
                province_id=self.get_province_id(province_slug),
                source_endpoint_id=endpoint_id if endpoint_id and endpoint_id > 0 else None,
                alert_type=alert_type,
                severity=severity,
                message=message,
                payload={"province_slug": province_slug, **(payload or {})},
            )
        )
        self.db.flush()
        logger.info("Alert %s (%s) for %s: %s", alert_type, severity, province_slug, message)

    def has_recent_alert(
        self,
        *,
        endpoint_id: int,
        alert_type: str,
        minutes: int,
        now: datetime | None = None,
    ) -> bool:
        if endpoint_id <= 0:
            return False
        cutoff = (now or datetime.now(UTC)) - timedelta(minutes=minutes)
        found = self.db.execute(
            select(IngestionAlert.id)
            .where(
                IngestionAlert.source_endpoint_id == endpoint_id,
                IngestionAlert.alert_type == alert_type,
                IngestionAlert.created_at > cutoff,
            )
            .limit(1)
        ).first()
        return found is not None

    def enqueue_retry(
        self,
        *,
        province_slug: str,
        endpoint_id: int | None,
        reason: str,
        attempt: int = 1,
        delay_minutes: int = RETRY_DELAY_MINUTES,
        now: datetime | None = None,
    ) -> None:
        self.db.add(
            IngestionRetry(
                province_slug=province_slug,
                source_endpoint_id=endpoint_id if endpoint_id and endpoint_id > 0 else None,
                reason=reason,
                attempt=attempt,
                next_attempt_at=(now or datetime.now(UTC)) + timedelta(minutes=max(1, delay_minutes)),
            )
        )
        self.db.flush()
