"""SQLAlchemy models."""

from nobetci.models.duty_conflict import DutyConflict
from nobetci.models.duty_record import DutyEvidence, DutyRecord
from nobetci.models.ingestion_alert import IngestionAlert, IngestionRetry
from nobetci.models.ingestion_run import IngestionRun, SourceSnapshot
from nobetci.models.pharmacy import Pharmacy
from nobetci.models.province import District, Province
from nobetci.models.source import Source, SourceEndpoint

__all__ = [
    "District",
    "DutyConflict",
    "DutyEvidence",
    "DutyRecord",
    "IngestionAlert",
    "IngestionRetry",
    "IngestionRun",
    "Pharmacy",
    "Province",
    "Source",
    "SourceEndpoint",
    "SourceSnapshot",
]
