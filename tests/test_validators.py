"""Tests for Pydantic input validation models."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from perfstats.validators import AthleteProfileInput, TestRecordInput


# --- TestRecordInput ---

def test_record_valid():
    r = TestRecordInput(
        athlete_id="  a-1 ", test_type="cmj", timestamp="2024-03-01T10:00:00",
        score=35.2, metrics={"peak_force": 2100.0},
    )
    assert r.athlete_id == "a-1"
    assert r.timestamp == datetime(2024, 3, 1, 10, 0)
    assert r.quality_score is None
    assert r.record_id == ""


def test_record_score_optional():
    r = TestRecordInput(athlete_id="a-1", test_type="cmj", timestamp=datetime(2024, 3, 1))
    assert r.score is None
    assert r.metrics == {}


def test_record_blank_athlete_id():
    with pytest.raises(ValidationError, match="identifier must not be blank"):
        TestRecordInput(athlete_id="   ", test_type="cmj", timestamp=datetime(2024, 3, 1))


def test_record_non_finite_score():
    with pytest.raises(ValidationError, match="score must be a finite number"):
        TestRecordInput(athlete_id="a-1", test_type="cmj", timestamp=datetime(2024, 3, 1), score=float("nan"))


def test_record_non_finite_metric():
    with pytest.raises(ValidationError, match="peak_force"):
        TestRecordInput(
            athlete_id="a-1", test_type="cmj", timestamp=datetime(2024, 3, 1),
            metrics={"peak_force": float("inf"), "contact_time": 0.2},
        )


def test_record_quality_score_out_of_range():
    with pytest.raises(ValidationError):
        TestRecordInput(athlete_id="a-1", test_type="cmj", timestamp=datetime(2024, 3, 1), quality_score=1.5)


def test_record_missing_timestamp():
    with pytest.raises(ValidationError):
        TestRecordInput(athlete_id="a-1", test_type="cmj")


# --- AthleteProfileInput ---

def test_athlete_sex_alias():
    a = AthleteProfileInput(athlete_id="a-1", sex="F")
    assert a.sex == "female"


def test_athlete_defaults():
    a = AthleteProfileInput(athlete_id="a-1")
    assert a.sex == "male"
    assert a.age is None
    assert a.body_mass_kg is None


def test_athlete_invalid_sex():
    with pytest.raises(ValidationError, match="sex must be one of"):
        AthleteProfileInput(athlete_id="a-1", sex="x")


def test_athlete_body_mass_bounds():
    with pytest.raises(ValidationError):
        AthleteProfileInput(athlete_id="a-1", body_mass_kg=10.0)
    with pytest.raises(ValidationError):
        AthleteProfileInput(athlete_id="a-1", body_mass_kg=300.0)
