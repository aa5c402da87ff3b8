"""Idempotent persistence of verified records, with expiry of unseen duties.

All writes for one province pull happen in the caller's session and are
committed once by persist_province_result(). Any error rolls back the
whole province.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from nobetci.duty_window import resolve_duty_bounds
from nobetci.ingestion.errors import PullCancelledError
from nobetci.models.duty_conflict import DutyConflict
from nobetci.models.duty_record import DutyEvidence, DutyRecord
from nobetci.models.pharmacy import Pharmacy
from nobetci.models.province import District, Province
from nobetci.models.source import Source
from nobetci.parsers.districts import get_province_lexicon
from nobetci.schemas.duty import ConflictItem, EvidenceItem, VerifiedRecord

logger = logging.getLogger(__name__)

EXPIRY_OFFSET = timedelta(seconds=1)


@dataclass(frozen=True)
class PersistStats:
    records: int
    expired: int
    conflicts: int


# ── Upserts ────────────────────────────────────────────────────────────────


def ensure_province(db: Session, province_slug: str) -> int:
    """Id of the province row, creating it from the district lexicon if missing."""
    lexicon = get_province_lexicon(province_slug)
    stmt = (
        insert(Province)
        .values(
            slug=province_slug,
            name=lexicon.name if lexicon else province_slug.title(),
            plate_code=lexicon.plate if lexicon else None,
            is_active=True,
        )
        .on_conflict_do_nothing(index_elements=["slug"])
    )
    db.execute(stmt)
    return db.execute(select(Province.id).where(Province.slug == province_slug)).scalar_one()


def upsert_district(db: Session, province_id: int, name: str, slug: str) -> int:
    stmt = insert(District).values(province_id=province_id, name=name, slug=slug)
    stmt = stmt.on_conflict_do_update(
        constraint="uq_districts_province_slug",
        set_={District.name: stmt.excluded.name},
    ).returning(District.id)
    return db.execute(stmt).scalar_one()


def upsert_pharmacy(db: Session, district_id: int, record: VerifiedRecord, now: datetime) -> int:
    stmt = insert(Pharmacy).values(
        district_id=district_id,
        canonical_name=record.pharmacy_name,
        normalized_name=record.normalized_name,
        address=record.address,
        phone=record.phone,
        lat=record.lat,
        lng=record.lng,
        is_active=True,
        updated_at=now,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        constraint="uq_pharmacies_district_normalized_name",
        set_={
            Pharmacy.canonical_name: excluded.canonical_name,
            Pharmacy.address: excluded.address,
            Pharmacy.phone: excluded.phone,
            Pharmacy.lat: excluded.lat,
            Pharmacy.lng: excluded.lng,
            Pharmacy.is_active: True,
            Pharmacy.updated_at: now,
        },
    ).returning(Pharmacy.id)
    return db.execute(stmt).scalar_one()


def upsert_source(db: Session, province_id: int, evidence: EvidenceItem) -> int:
    """Insert the source row on first sight.

    An existing row keeps its configured type, weight and enabled flag; a
    fallback batch carries a lowered weight that must not overwrite it.
    """
    stmt = insert(Source).values(
        province_id=province_id,
        name=evidence.source_name,
        source_type=evidence.source_type,
        authority_weight=evidence.authority_weight,
        base_url=evidence.source_url,
        enabled=True,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        constraint="uq_sources_province_name",
        set_={
            Source.base_url: excluded.base_url,
        },
    ).returning(Source.id)
    return db.execute(stmt).scalar_one()


def upsert_duty_record(
    db: Session,
    *,
    province_id: int,
    district_id: int,
    pharmacy_id: int,
    record: VerifiedRecord,
    now: datetime,
) -> int:
    duty_start, duty_end = resolve_duty_bounds(record.duty_date)
    stmt = insert(DutyRecord).values(
        pharmacy_id=pharmacy_id,
        province_id=province_id,
        district_id=district_id,
        duty_date=record.duty_date,
        duty_start=duty_start,
        duty_end=duty_end,
        confidence_score=record.confidence_score,
        verification_source_count=record.verification_source_count,
        is_degraded=record.is_degraded,
        last_verified_at=now,
        created_at=now,
        updated_at=now,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        constraint="uq_duty_records_pharmacy_date",
        set_={
            DutyRecord.district_id: excluded.district_id,
            DutyRecord.duty_start: excluded.duty_start,
            DutyRecord.duty_end: excluded.duty_end,
            DutyRecord.confidence_score: excluded.confidence_score,
            DutyRecord.verification_source_count: excluded.verification_source_count,
            DutyRecord.is_degraded: excluded.is_degraded,
            DutyRecord.last_verified_at: now,
            DutyRecord.updated_at: now,
        },
    ).returning(DutyRecord.id)
    return db.execute(stmt).scalar_one()


def replace_evidence(
    db: Session,
    *,
    province_id: int,
    duty_record_id: int,
    evidence: list[EvidenceItem],
    now: datetime,
) -> None:
    """Swap the record's evidence rows for the current evidence list."""
    db.execute(delete(DutyEvidence).where(DutyEvidence.duty_record_id == duty_record_id))
    for item in evidence:
        source_id = upsert_source(db, province_id, item)
        stmt = insert(DutyEvidence).values(
            duty_record_id=duty_record_id,
            source_id=source_id,
            source_url=item.source_url,
            seen_at=now,
            extracted_payload={
                "fetched_at": item.fetched_at.isoformat(),
                "source_type": item.source_type,
                "authority_weight": item.authority_weight,
            },
        )
        # Two evidence items can share source and URL (static fallback for both roles)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_duty_evidence_record_source_url",
            set_={
                DutyEvidence.seen_at: now,
                DutyEvidence.extracted_payload: stmt.excluded.extracted_payload,
            },
        )
        db.execute(stmt)


# ── Expiry and conflicts ───────────────────────────────────────────────────


def expire_missing_records(
    db: Session,
    *,
    province_id: int,
    duty_date: date,
    seen_keys: set[str],
    now: datetime,
) -> int:
    """End every active duty of the date whose ``district_slug:normalized_name`` went unseen.

    Rows are never deleted; their duty_end moves to just before ``now``.
    """
    record_key = func.concat(District.slug, ":", Pharmacy.normalized_name)
    stale = (
        select(DutyRecord.id)
        .join(Pharmacy, Pharmacy.id == DutyRecord.pharmacy_id)
        .join(District, District.id == DutyRecord.district_id)
        .where(
            DutyRecord.province_id == province_id,
            DutyRecord.duty_date == duty_date,
            DutyRecord.duty_end > now,
        )
    )
    if seen_keys:
        stale = stale.where(record_key.not_in(sorted(seen_keys)))

    result = db.execute(
        update(DutyRecord)
        .where(DutyRecord.id.in_(stale.scalar_subquery()))
        .values(duty_end=now - EXPIRY_OFFSET, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def insert_conflicts(db: Session, province_id: int, conflicts: list[ConflictItem]) -> None:
    for conflict in conflicts:
        db.add(
            DutyConflict(
                province_id=province_id,
                district_slug=conflict.district_slug,
                duty_date=conflict.duty_date,
                reason=conflict.reason,
                payload=conflict.payload,
                status="open",
            )
        )
    db.flush()


# ── Province transaction ───────────────────────────────────────────────────


def persist_province_result(
    db: Session,
    province_slug: str,
    records: list[VerifiedRecord],
    conflicts: list[ConflictItem],
    *,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
) -> PersistStats:
    """Write one province's verified records in a single transaction.

    Parameters
    ----------
    db : Session
        Session owned by the caller; committed here on success, rolled back
        on any error.
    province_slug : str
        Province the records belong to.
    records : list[VerifiedRecord]
        Cross-check output to upsert.
    conflicts : list[ConflictItem]
        Conflicts to queue as ``open``.
    now : datetime | None
        Timestamp for last_verified_at and expiry (default: current UTC time).
    cancel_event : threading.Event | None
        When set before commit, the transaction is rolled back and
        PullCancelledError is raised.

    Returns
    -------
    PersistStats
        Records written, records expired, conflicts queued.
    """
    now = now or datetime.now(UTC)
    try:
        province_id = ensure_province(db, province_slug)
        district_ids: dict[str, int] = {}
        seen_by_date: dict[date, set[str]] = defaultdict(set)

        for record in records:
            district_id = district_ids.get(record.district_slug)
            if district_id is None:
                district_id = upsert_district(db, province_id, record.district_name, record.district_slug)
                district_ids[record.district_slug] = district_id
            pharmacy_id = upsert_pharmacy(db, district_id, record, now)
            duty_record_id = upsert_duty_record(
                db,
                province_id=province_id,
                district_id=district_id,
                pharmacy_id=pharmacy_id,
                record=record,
                now=now,
            )
            replace_evidence(
                db,
                province_id=province_id,
                duty_record_id=duty_record_id,
                evidence=record.evidence,
                now=now,
            )
            seen_by_date[record.duty_date].add(record.seen_key)

        expired = 0
        for duty_date, keys in seen_by_date.items():
            expired += expire_missing_records(
                db, province_id=province_id, duty_date=duty_date, seen_keys=keys, now=now
            )

        insert_conflicts(db, province_id, conflicts)

        if cancel_event is not None and cancel_event.is_set():
            raise PullCancelledError(f"Pull for {province_slug} cancelled before commit")
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Persisted %s: %d records, %d expired, %d conflicts",
        province_slug,
        len(records),
        expired,
        len(conflicts),
    )
    return PersistStats(records=len(records), expired=expired, conflicts=len(conflicts))
