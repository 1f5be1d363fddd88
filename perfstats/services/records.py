"""Test records, athlete context and result plumbing shared by all services.

A TestRecord is one completed measurement trial as handed over by the
acquisition/import layer. Records are treated as read-only everywhere in the
core; services derive fresh result objects from them on every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Sequence

import pandas as pd
from pydantic import ValidationError

from perfstats.validators import AthleteProfileInput, TestRecordInput

logger = logging.getLogger(__name__)

DEFAULT_BODY_MASS_KG = 75.0


@dataclass(frozen=True)
class TestRecord:
    """One measurement trial: primary score plus named sub-metrics."""
    __test__ = False  # not a pytest test class

    athlete_id: str
    test_type: str
    timestamp: datetime
    score: float | None = None
    metrics: dict[str, float] = field(default_factory=dict)
    quality_score: float | None = None
    record_id: str = ""


@dataclass(frozen=True)
class AthleteProfile:
    """Athlete context used by normative comparisons and recommendations."""
    athlete_id: str
    sex: str = "male"
    age: int | None = None
    body_mass_kg: float | None = None


# ---------------------------------------------------------------------------
# Error values
# ---------------------------------------------------------------------------

class ErrorKind(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    DEGENERATE_DATA = "degenerate_data"
    MISSING_COHORT = "missing_cohort"


@dataclass(frozen=True)
class AnalysisError:
    kind: ErrorKind
    message: str


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@dataclass
class ParsedRecords:
    records: list[TestRecord]
    rejected: list[tuple[int, str]]  # (row index, reason)


def record_from_input(data: TestRecordInput) -> TestRecord:
    return TestRecord(
        athlete_id=data.athlete_id,
        test_type=data.test_type,
        timestamp=data.timestamp,
        score=data.score,
        metrics=dict(data.metrics),
        quality_score=data.quality_score,
        record_id=data.record_id,
    )


def parse_record(row: dict[str, Any]) -> TestRecord:
    """Validate one raw row. Raises pydantic.ValidationError when malformed."""
    return record_from_input(TestRecordInput(**row))


def parse_records(rows: Iterable[dict[str, Any]]) -> ParsedRecords:
    """Validate raw rows, keeping valid ones and collecting the rest."""
    records: list[TestRecord] = []
    rejected: list[tuple[int, str]] = []
    for idx, row in enumerate(rows):
        try:
            records.append(parse_record(row))
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            logger.warning("Rejected test record at row %d: %s", idx, reason)
            rejected.append((idx, reason))
    return ParsedRecords(records=records, rejected=rejected)


def parse_athlete(row: dict[str, Any]) -> AthleteProfile:
    data = AthleteProfileInput(**row)
    return AthleteProfile(
        athlete_id=data.athlete_id,
        sex=data.sex,
        age=data.age,
        body_mass_kg=data.body_mass_kg,
    )


# ---------------------------------------------------------------------------
# Series helpers
# ---------------------------------------------------------------------------

def primary_scores(records: Sequence[TestRecord]) -> list[float]:
    """Scores of the records that carry one, in the given order."""
    return [float(r.score) for r in records if r.score is not None]


def sorted_by_time(records: Iterable[TestRecord]) -> list[TestRecord]:
    return sorted(records, key=lambda r: r.timestamp)


def records_frame(records: Sequence[TestRecord], test_type: str | None = None) -> pd.DataFrame:
    """Tabular view of records, one row per trial, sorted by athlete then time.

    Records without a score are dropped. When test_type is given only matching
    records are kept.
    """
    columns = ["athlete_id", "test_type", "timestamp", "score", "record_id"]
    rows = [
        {
            "athlete_id": r.athlete_id,
            "test_type": r.test_type,
            "timestamp": r.timestamp,
            "score": float(r.score),
            "record_id": r.record_id,
        }
        for r in records
        if r.score is not None and (test_type is None or r.test_type == test_type)
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(rows, columns=columns)
    return df.sort_values(["athlete_id", "timestamp"], kind="mergesort").reset_index(drop=True)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def as_dict(obj: Any) -> Any:
    """Convert a result object into JSON-compatible primitives.

    Enums become their value, datetimes ISO 8601 strings, mapping keys strings.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: as_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {_key(k): as_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [as_dict(v) for v in obj]
    return obj


def _key(k: Any) -> str:
    if isinstance(k, Enum):
        return str(k.value)
    return str(k)
