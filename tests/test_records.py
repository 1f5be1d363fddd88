"""Tests for record parsing, tabular views and result serialization."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import pytest
from pydantic import ValidationError

from perfstats.services.records import (
    AnalysisError,
    ErrorKind,
    TestRecord,
    as_dict,
    parse_athlete,
    parse_record,
    parse_records,
    primary_scores,
    records_frame,
    sorted_by_time,
)


def _rec(athlete, day, score, test_type="cmj"):
    return TestRecord(athlete_id=athlete, test_type=test_type, timestamp=datetime(2024, 1, day), score=score)


def test_parse_record_builds_immutable_record():
    r = parse_record({"athlete_id": "a-1", "test_type": "cmj", "timestamp": "2024-01-02T09:00:00", "score": 31.0})
    assert isinstance(r, TestRecord)
    assert r.score == 31.0
    with pytest.raises(AttributeError):
        r.score = 40.0


def test_parse_record_raises_on_malformed_row():
    with pytest.raises(ValidationError):
        parse_record({"athlete_id": "", "test_type": "cmj", "timestamp": "2024-01-02"})


def test_parse_records_collects_rejects():
    rows = [
        {"athlete_id": "a-1", "test_type": "cmj", "timestamp": "2024-01-02", "score": 30.0},
        {"athlete_id": "a-1", "test_type": "cmj", "timestamp": "not-a-date"},
        {"athlete_id": "a-2", "test_type": "cmj", "timestamp": "2024-01-03", "score": 28.0},
    ]
    parsed = parse_records(rows)
    assert len(parsed.records) == 2
    assert [idx for idx, _ in parsed.rejected] == [1]


def test_parse_athlete():
    a = parse_athlete({"athlete_id": "a-1", "sex": "female", "age": 19, "body_mass_kg": 62.0})
    assert a.sex == "female"
    assert a.body_mass_kg == 62.0


def test_primary_scores_skips_missing():
    records = [_rec("a", 1, 30.0), _rec("a", 2, None), _rec("a", 3, 32.0)]
    assert primary_scores(records) == [30.0, 32.0]


def test_sorted_by_time():
    records = [_rec("a", 3, 1.0), _rec("a", 1, 2.0), _rec("a", 2, 3.0)]
    assert [r.score for r in sorted_by_time(records)] == [2.0, 3.0, 1.0]


def test_records_frame_filters_and_sorts():
    records = [
        _rec("b", 2, 20.0),
        _rec("a", 3, 33.0),
        _rec("a", 1, 31.0),
        _rec("a", 2, None),
        _rec("a", 4, 9.0, test_type="sprint_40m"),
    ]
    df = records_frame(records, "cmj")
    assert list(df["athlete_id"]) == ["a", "a", "b"]
    assert list(df["score"]) == [31.0, 33.0, 20.0]


def test_records_frame_empty():
    df = records_frame([], "cmj")
    assert df.empty
    assert "score" in df.columns


@dataclass(frozen=True)
class _Sample:
    when: datetime
    kind: ErrorKind
    by_load: dict


def test_as_dict_converts_nested_values():
    out = as_dict(_Sample(datetime(2024, 1, 1, 12), ErrorKind.INSUFFICIENT_DATA, {0.0: 1.5, 20.0: [1, 2]}))
    assert out == {
        "when": "2024-01-01T12:00:00",
        "kind": "insufficient_data",
        "by_load": {"0.0": 1.5, "20.0": [1, 2]},
    }


def test_as_dict_on_error_value():
    err = AnalysisError(ErrorKind.MISSING_COHORT, "missing")
    assert as_dict(err) == {"kind": "missing_cohort", "message": "missing"}
