"""initial duty ingestion schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

Provinces, districts, pharmacies, sources and endpoints; duty records with
evidence and conflicts; ingestion runs, snapshots, alerts and retry queue.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        "provinces",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("plate_code", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "districts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("province_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["province_id"], ["provinces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("province_id", "slug", name="uq_districts_province_slug"),
    )
    op.create_index("ix_districts_province_id", "districts", ["province_id"])

    op.create_table(
        "pharmacies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("district_id", sa.Integer(), nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), server_default="", nullable=False),
        sa.Column("phone", sa.String(length=32), server_default="", nullable=False),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["district_id"], ["districts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "district_id", "normalized_name", name="uq_pharmacies_district_normalized_name"
        ),
    )
    op.create_index("ix_pharmacies_district_id", "pharmacies", ["district_id"])

    op.create_table(
        "sources",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("province_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("authority_weight", sa.Integer(), server_default="50", nullable=False),
        sa.Column("base_url", sa.String(length=2048), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "authority_weight BETWEEN 0 AND 100", name="ck_sources_authority_weight"
        ),
        sa.ForeignKeyConstraint(["province_id"], ["provinces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("province_id", "name", name="uq_sources_province_name"),
    )
    op.create_index("ix_sources_province_id", "sources", ["province_id"])

    op.create_table(
        "source_endpoints",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("endpoint_url", sa.Text(), nullable=False),
        sa.Column("format", sa.String(length=16), server_default="html", nullable=False),
        sa.Column("parser_key", sa.String(length=64), server_default="generic_auto_v1", nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["source_id"], ["sources.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_source_endpoints_source_id", "source_endpoints", ["source_id"])

    op.create_table(
        "duty_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pharmacy_id", sa.Integer(), nullable=False),
        sa.Column("province_id", sa.Integer(), nullable=False),
        sa.Column("district_id", sa.Integer(), nullable=False),
        sa.Column("duty_date", sa.Date(), nullable=False),
        sa.Column("duty_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duty_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confidence_score", sa.Integer(), nullable=False),
        sa.Column("verification_source_count", sa.Integer(), server_default="1", nullable=False),
        sa.Column("is_degraded", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "confidence_score BETWEEN 20 AND 100", name="ck_duty_records_confidence_score"
        ),
        sa.ForeignKeyConstraint(["pharmacy_id"], ["pharmacies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["province_id"], ["provinces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["district_id"], ["districts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pharmacy_id", "duty_date", name="uq_duty_records_pharmacy_date"),
    )
    op.create_index("ix_duty_records_province_date", "duty_records", ["province_id", "duty_date"])

    op.create_table(
        "duty_evidence",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("duty_record_id", sa.Integer(), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("extracted_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.ForeignKeyConstraint(["duty_record_id"], ["duty_records.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_id"], ["sources.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "duty_record_id", "source_id", "source_url", name="uq_duty_evidence_record_source_url"
        ),
    )
    op.create_index("ix_duty_evidence_duty_record_id", "duty_evidence", ["duty_record_id"])

    op.create_table(
        "duty_conflicts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("province_id", sa.Integer(), nullable=False),
        sa.Column("district_slug", sa.String(length=128), nullable=False),
        sa.Column("duty_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=64), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.Text(), server_default="open", nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["province_id"], ["provinces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_duty_conflicts_province_id", "duty_conflicts", ["province_id"])

    op.create_table(
        "ingestion_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source_endpoint_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("etag", sa.Text(), nullable=True),
        sa.Column("last_modified", sa.Text(), nullable=True),
        sa.Column("record_count", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["source_endpoint_id"], ["source_endpoints.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ingestion_runs_source_endpoint_id", "ingestion_runs", ["source_endpoint_id"])

    op.create_table(
        "source_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ingestion_run_id", sa.Integer(), nullable=False),
        sa.Column("source_endpoint_id", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("raw_payload", sa.Text(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["ingestion_run_id"], ["ingestion_runs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_endpoint_id"], ["source_endpoints.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_source_snapshots_ingestion_run_id", "source_snapshots", ["ingestion_run_id"])

    op.create_table(
        "ingestion_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("province_id", sa.Integer(), nullable=True),
        sa.Column("source_endpoint_id", sa.Integer(), nullable=True),
        sa.Column("alert_type", sa.String(length=64), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["province_id"], ["provinces.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["source_endpoint_id"], ["source_endpoints.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ingestion_alerts_endpoint_type_created",
        "ingestion_alerts",
        ["source_endpoint_id", "alert_type", "created_at"],
    )

    op.create_table(
        "ingestion_retry_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("province_slug", sa.String(length=64), nullable=False),
        sa.Column("source_endpoint_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("attempt", sa.Integer(), server_default="1", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["source_endpoint_id"], ["source_endpoints.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ingestion_retry_queue_province_slug", "ingestion_retry_queue", ["province_slug"])


def downgrade() -> None:
    op.drop_index("ix_ingestion_retry_queue_province_slug", table_name="ingestion_retry_queue")
    op.drop_table("ingestion_retry_queue")
    op.drop_index("ix_ingestion_alerts_endpoint_type_created", table_name="ingestion_alerts")
    op.drop_table("ingestion_alerts")
    op.drop_index("ix_source_snapshots_ingestion_run_id", table_name="source_snapshots")
    op.drop_table("source_snapshots")
    op.drop_index("ix_ingestion_runs_source_endpoint_id", table_name="ingestion_runs")
    op.drop_table("ingestion_runs")
    op.drop_index("ix_duty_conflicts_province_id", table_name="duty_conflicts")
    op.drop_table("duty_conflicts")
    op.drop_index("ix_duty_evidence_duty_record_id", table_name="duty_evidence")
    op.drop_table("duty_evidence")
    op.drop_index("ix_duty_records_province_date", table_name="duty_records")
    op.drop_table("duty_records")
    op.drop_index("ix_source_endpoints_source_id", table_name="source_endpoints")
    op.drop_table("source_endpoints")
    op.drop_index("ix_sources_province_id", table_name="sources")
    op.drop_table("sources")
    op.drop_index("ix_pharmacies_district_id", table_name="pharmacies")
    op.drop_table("pharmacies")
    op.drop_index("ix_districts_province_id", table_name="districts")
    op.drop_table("districts")
    op.drop_table("provinces")
