"""Cross-check engine: fuse primary and secondary batches into trust-scored records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

from nobetci.schemas.duty import (
    ConflictItem,
    EvidenceItem,
    SourceBatch,
    SourceMeta,
    SourceRecord,
    VerifiedRecord,
)

MIN_CONFIDENCE = 20
MAX_CONFIDENCE = 100
AUTHORITY_FACTOR = 0.7
RECENCY_FACTOR = 0.3
CORROBORATION_FACTOR = 0.35
FIELD_MISMATCH_PENALTY = 15


@dataclass
class CrossCheckResult:
    records: list[VerifiedRecord] = field(default_factory=list)
    conflicts: list[ConflictItem] = field(default_factory=list)

    @property
    def degraded_count(self) -> int:
        return sum(1 for r in self.records if r.is_degraded)


def _round(value: float) -> int:
    """Round half up; score boundaries must not depend on banker's rounding."""
    return int(math.floor(value + 0.5))


def clamp_confidence(value: int) -> int:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))


def base_score(authority_weight: int, fetched_at: datetime, now: datetime) -> int:
    """Authority prior blended with a recency score that decays one point per minute."""
    age_minutes = max((now - fetched_at).total_seconds() / 60.0, 0.0)
    recency = max(0.0, 100.0 - age_minutes)
    return _round(authority_weight * AUTHORITY_FACTOR + recency * RECENCY_FACTOR)


def _evidence(meta: SourceMeta, record: SourceRecord) -> EvidenceItem:
    return EvidenceItem(
        source_name=meta.source_name,
        source_url=meta.source_url,
        source_type=meta.source_type,
        authority_weight=meta.authority_weight,
        fetched_at=record.fetched_at,
    )


def _verified(
    record: SourceRecord,
    *,
    province_slug: str,
    confidence: int,
    source_count: int,
    is_degraded: bool,
    evidence: list[EvidenceItem],
) -> VerifiedRecord:
    fields = record.model_dump()
    fields["province_slug"] = province_slug
    return VerifiedRecord(
        **fields,
        confidence_score=clamp_confidence(confidence),
        verification_source_count=source_count,
        is_degraded=is_degraded,
        evidence=evidence,
    )


def cross_check(
    primary: SourceBatch | None,
    secondary: SourceBatch | None,
    secondary_expected: bool = True,
    now: datetime | None = None,
) -> CrossCheckResult:
    """Merge a primary and an optional secondary batch.

    Records are matched only on (duty_date, district_slug, normalized_name).
    A corroborated record gains a share of the secondary's base score; if the
    two sources disagree on address or phone it loses FIELD_MISMATCH_PENALTY
    and a ``field_mismatch`` conflict is emitted. Field values come from
    whichever source fetched more recently (whole row, not per field).

    Parameters
    ----------
    primary : SourceBatch | None
        Batch from the primary-role source; None if that role failed.
    secondary : SourceBatch | None
        Batch from the secondary-role source; None if absent or failed.
    secondary_expected : bool
        Whether a secondary source is configured for the province. Records
        without corroboration are degraded only when this is set.
    now : datetime | None
        Reference time for recency scoring (default: current UTC time).

    Returns
    -------
    CrossCheckResult
        Verified records (primary order) and conflicts. Identical inputs and
        ``now`` always give identical output.
    """
    now = now or datetime.now(UTC)
    result = CrossCheckResult()
    if primary is None and secondary is None:
        return result

    if primary is None:
        # Nothing to corroborate against; every secondary record stands alone
        for record in secondary.records:
            result.records.append(
                _verified(
                    record,
                    province_slug=record.province_slug,
                    confidence=base_score(secondary.meta.authority_weight, record.fetched_at, now),
                    source_count=1,
                    is_degraded=True,
                    evidence=[_evidence(secondary.meta, record)],
                )
            )
        return result

    secondary_index: dict[str, SourceRecord] = {}
    if secondary is not None:
        secondary_index = {r.match_key: r for r in secondary.records}

    for record in primary.records:
        counterpart = secondary_index.get(record.match_key)
        evidence = [_evidence(primary.meta, record)]
        confidence = base_score(primary.meta.authority_weight, record.fetched_at, now)
        source_count = 1

        if counterpart is not None:
            evidence.append(_evidence(secondary.meta, counterpart))
            source_count = 2
            confidence += _round(
                base_score(secondary.meta.authority_weight, counterpart.fetched_at, now) * CORROBORATION_FACTOR
            )
            if record.phone != counterpart.phone or record.address != counterpart.address:
                confidence -= FIELD_MISMATCH_PENALTY
                result.conflicts.append(
                    ConflictItem(
                        province_slug=record.province_slug,
                        district_slug=record.district_slug,
                        duty_date=record.duty_date,
                        reason="field_mismatch",
                        payload={
                            "normalized_name": record.normalized_name,
                            "primary": {"address": record.address, "phone": record.phone},
                            "secondary": {"address": counterpart.address, "phone": counterpart.phone},
                        },
                    )
                )

        winner = record
        if counterpart is not None and counterpart.fetched_at > record.fetched_at:
            winner = counterpart

        result.records.append(
            _verified(
                winner,
                province_slug=record.province_slug,
                confidence=confidence,
                source_count=source_count,
                is_degraded=secondary_expected and counterpart is None,
                evidence=evidence,
            )
        )

    return result
