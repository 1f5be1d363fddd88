"""Tests for the data quality validator."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from perfstats.services.data_quality import (
    ALL_PASSED_RECOMMENDATION,
    ASPECT_WEIGHTS,
    NO_DATA_RECOMMENDATION,
    AcceptanceStatus,
    BatchValidationCriteria,
    FlagSeverity,
    FlagType,
    QualityLevel,
    RealTimeValidationCriteria,
    ValidationAspect,
    ValidationCriteria,
    ValidationResult,
    assess_realtime_quality,
    overall_quality_score,
    validate_batch,
    validate_data_quality,
)
from perfstats.services import statistics as st
from perfstats.services.records import TestRecord, as_dict

NOW = datetime(2024, 6, 1, 12, 0)
FULL_METRICS = {"peak_force": 2200.0, "contact_time": 0.25, "jump_height": 35.0}


def _series(scores, athlete="a-1", test_type="cmj", step=timedelta(days=2), metrics=None):
    start = datetime(2024, 1, 1, 9, 0)
    return [
        TestRecord(
            athlete_id=athlete,
            test_type=test_type,
            timestamp=start + i * step,
            score=s,
            metrics=dict(FULL_METRICS if metrics is None else metrics),
            record_id=f"r{i}",
        )
        for i, s in enumerate(scores)
    ]


# --- Criteria presets ---

def test_presets():
    assert ValidationCriteria.standard().min_sample_size == 5
    rg = ValidationCriteria.research_grade()
    assert rg.min_sample_size == 10
    assert rg.min_reliability == 0.85
    assert ValidationCriteria.for_test_type("CMJ").clinical_range == (15.0, 70.0)
    assert ValidationCriteria.for_test_type("countermovement_jump").name == "cmj"
    assert ValidationCriteria.for_test_type("squat_jump").max_cv == 10.0
    assert ValidationCriteria.for_test_type("isometric_pull").name == "standard"
    assert ValidationCriteria.preset("research-grade").name == "research_grade"


def test_every_aspect_is_weighted():
    assert set(ASPECT_WEIGHTS) == set(ValidationAspect)
    assert all(w > 0 for w in ASPECT_WEIGHTS.values())


def _results(**scores):
    return {
        aspect: ValidationResult(aspect, scores.get(aspect.value, 1.0), True, "")
        for aspect in ValidationAspect
    }


def test_overall_score_normalized_by_total_weight():
    assert overall_quality_score(_results()) == pytest.approx(1.0)
    assert overall_quality_score(_results(reliability=0.0)) == pytest.approx(0.80 / 1.05)
    assert overall_quality_score(_results(reliability=0.5, clinical_range=0.0)) == pytest.approx(0.875 / 1.05)
    every_half = {a.value: 0.5 for a in ValidationAspect}
    assert overall_quality_score(_results(**every_half)) == pytest.approx(0.5)
    assert overall_quality_score({}) == 0.0


# --- Series validation ---

def test_two_records_are_insufficient():
    report = validate_data_quality(_series([30.0, 31.0]), "a-1", now=NOW)
    assert report.quality_level == QualityLevel.INSUFFICIENT
    assert report.recommendations
    assert "Increase sample size to improve statistical power" in report.recommendations
    assert not report.validation_results[ValidationAspect.SAMPLE_SIZE].is_valid
    assert report.validation_results[ValidationAspect.RELIABILITY].score == 0.0


def test_empty_series_report():
    report = validate_data_quality([], "a-1", now=NOW)
    assert report.overall_score == 0.0
    assert report.quality_level == QualityLevel.INSUFFICIENT
    assert report.recommendations == [NO_DATA_RECOMMENDATION]
    assert report.validation_results == {}


def test_filters_by_athlete():
    records = _series([30.0] * 6, athlete="a-1") + _series([50.0] * 3, athlete="a-2")
    report = validate_data_quality(records, "a-2", now=NOW)
    assert report.sample_size == 3


def test_short_series_neutral_defaults():
    results = validate_data_quality(_series([30.0, 31.0]), now=NOW).validation_results
    assert results[ValidationAspect.OUTLIERS].score == 1.0
    assert results[ValidationAspect.DISTRIBUTION].score == 0.5
    assert results[ValidationAspect.MEASUREMENT_PRECISION].score == 0.5
    assert results[ValidationAspect.TEMPORAL_CONSISTENCY].score == 1.0


def test_reliable_series_scores_well():
    scores = [30.0, 35.0, 40.0, 45.0, 50.0, 30.5, 35.5, 40.5, 45.5, 50.5] * 2
    report = validate_data_quality(_series(scores), "a-1", ValidationCriteria.standard(), now=NOW)
    results = report.validation_results
    assert results[ValidationAspect.SAMPLE_SIZE].score == pytest.approx(1.0)
    assert results[ValidationAspect.COMPLETENESS].score == pytest.approx(1.0)
    assert results[ValidationAspect.TEMPORAL_CONSISTENCY].score == pytest.approx(1.0)
    assert results[ValidationAspect.CLINICAL_RANGE].score == pytest.approx(1.0)
    assert 0.0 <= report.overall_score <= 1.0
    assert report.quality_level != QualityLevel.INSUFFICIENT


def test_overall_score_is_weighted_sum():
    report = validate_data_quality(_series([30.0, 32.0, 31.0, 29.0, 33.0, 30.5]), now=NOW)
    expected = sum(
        ASPECT_WEIGHTS[aspect] * result.score for aspect, result in report.validation_results.items()
    ) / sum(ASPECT_WEIGHTS.values())
    assert report.overall_score == pytest.approx(expected)


def test_overall_score_monotonic_in_each_aspect():
    results = validate_data_quality(_series([30.0, 32.0, 31.0, 29.0, 33.0, 30.5]), now=NOW).validation_results
    base = overall_quality_score(results)
    for aspect, result in results.items():
        raised = dict(results)
        raised[aspect] = replace(result, score=min(1.0, result.score + 0.1))
        lowered = dict(results)
        lowered[aspect] = replace(result, score=max(0.0, result.score - 0.1))
        assert overall_quality_score(raised) >= base
        assert overall_quality_score(lowered) <= base


def test_completeness_counts_zero_score_as_missing():
    records = _series([0.0, 30.0, 31.0, 32.0, 33.0], metrics={})
    result = validate_data_quality(records, now=NOW).validation_results[ValidationAspect.COMPLETENESS]
    # 5 records x 6 required items, 1 zero score and 10 missing metrics
    assert result.score == pytest.approx(19 / 30)
    assert not result.is_valid


def test_clinical_range_and_outliers():
    scores = [30.0, 31.0, 32.0, 30.5, 31.5, 120.0]
    results = validate_data_quality(_series(scores), now=NOW).validation_results
    assert results[ValidationAspect.CLINICAL_RANGE].score == pytest.approx(5 / 6)
    assert not results[ValidationAspect.CLINICAL_RANGE].is_valid
    assert results[ValidationAspect.OUTLIERS].details["outlier_count"] == 1


def test_all_checks_pass_recommendation():
    criteria = ValidationCriteria(
        min_sample_size=1, optimal_sample_size=1, min_completeness=0.0, min_reliability=0.0,
        max_outlier_rate=1.0, max_temporal_cv=1000.0, max_skewness=100.0, max_kurtosis=100.0,
        max_cv=1000.0, clinical_range=(0.0, 1000.0), min_clinical_compliance=0.0,
    )
    report = validate_data_quality(_series([30.0, 31.0, 32.0, 33.0, 34.0, 35.0]), criteria=criteria, now=NOW)
    assert report.recommendations == [ALL_PASSED_RECOMMENDATION]


def test_methodology_block():
    report = validate_data_quality(_series([30.0] * 5), now=NOW)
    assert "IQR-based outlier detection (Tukey, 1977)" in report.methodology.standards
    assert report.methodology.limitations


def test_validation_is_idempotent():
    records = _series([30.0, 32.0, 31.0, 29.0, 33.0, 30.5, 34.0])
    assert as_dict(validate_data_quality(records, now=NOW)) == as_dict(validate_data_quality(records, now=NOW))


# --- Real-time ---

def test_realtime_clean_record_accepted():
    history = _series([30.0, 30.5, 31.0, 30.8])
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 31.2, dict(FULL_METRICS), record_id="new")
    result = assess_realtime_quality(record, history, now=NOW)
    assert result.acceptance == AcceptanceStatus.ACCEPTED
    assert result.flags == []
    assert result.quality_score == 1.0


def test_realtime_range_violation_rejected():
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 180.5, dict(FULL_METRICS))
    result = assess_realtime_quality(record, [], now=NOW)
    assert result.acceptance == AcceptanceStatus.REJECTED
    assert result.flags[0].flag_type == FlagType.RANGE_VIOLATION
    assert result.alerts[0].recommended_action == "Verify measurement accuracy and recalibrate if necessary"
    assert result.quality_score == pytest.approx(0.7)


def test_realtime_implausible_and_rapid_change():
    history = _series([30.0, 30.5, 31.0, 30.8, 30.2])
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 48.5, dict(FULL_METRICS))
    result = assess_realtime_quality(record, history, now=NOW)
    types = {f.flag_type: f.severity for f in result.flags}
    assert types[FlagType.BIOLOGICALLY_IMPLAUSIBLE] == FlagSeverity.HIGH
    assert types[FlagType.RAPID_CHANGE] == FlagSeverity.HIGH
    assert result.acceptance == AcceptanceStatus.REJECTED


def test_realtime_moderate_change_is_medium():
    history = _series([30.0, 36.0, 25.0, 30.0])
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 37.5, dict(FULL_METRICS))
    result = assess_realtime_quality(record, history, now=NOW)
    rapid = [f for f in result.flags if f.flag_type == FlagType.RAPID_CHANGE]
    assert rapid[0].severity == FlagSeverity.MEDIUM
    assert rapid[0].value == pytest.approx(25.0)


def test_realtime_missing_metrics_conditionally_accepted():
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 31.0, {})
    result = assess_realtime_quality(record, [], now=NOW)
    missing = [f for f in result.flags if f.flag_type == FlagType.MISSING_DATA]
    assert len(missing) == 3
    assert result.acceptance == AcceptanceStatus.CONDITIONALLY_ACCEPTED
    assert result.quality_score == pytest.approx(0.7)


def test_realtime_inconsistent_forces():
    metrics = dict(FULL_METRICS, average_force=2500.0)
    record = TestRecord("a-1", "cmj", datetime(2024, 2, 1), 31.0, metrics)
    result = assess_realtime_quality(record, [], now=NOW)
    flag = next(f for f in result.flags if f.flag_type == FlagType.INCONSISTENT_DATA)
    assert flag.value == pytest.approx(300.0)
    assert result.acceptance == AcceptanceStatus.REJECTED


def test_realtime_custom_required_metrics():
    criteria = RealTimeValidationCriteria(required_metrics=("gate_1",))
    record = TestRecord("a-1", "sprint_40m", datetime(2024, 2, 1), 5.1, {"gate_1": 1.8})
    result = assess_realtime_quality(record, [], criteria, now=NOW)
    assert result.acceptance == AcceptanceStatus.ACCEPTED


def test_realtime_history_window_limits_scan():
    history = _series([30.0, 30.5, 31.0, 30.8, 30.2])
    record = TestRecord("a-1", "cmj", datetime(2024, 3, 1), 40.2, dict(FULL_METRICS))
    full = assess_realtime_quality(record, history, now=NOW)
    short = assess_realtime_quality(record, history, history_window=2, now=NOW)
    assert full.acceptance == AcceptanceStatus.REJECTED
    # two prior records are too few for the plausibility and change checks
    assert short.acceptance == AcceptanceStatus.ACCEPTED


# --- Batch ---

def test_batch_assesses_each_record_against_previous():
    records = _series([30.0, 30.4, 30.2, 30.6, 30.1], step=timedelta(minutes=5))
    report = validate_batch(records, "session-1", now=NOW)
    assert list(report.record_assessments) == ["r0", "r1", "r2", "r3", "r4"]
    assert report.record_count == 5
    assert report.batch_flags == []
    assert report.rejected_count == 0
    assert report.completeness == pytest.approx(1.0)
    # five values are too few for the ICC, so reliability contributes nothing
    assert report.reliability == 0.0
    consistency = 1.0 - st.coefficient_of_variation([30.0, 30.4, 30.2, 30.6, 30.1]) / 50.0
    assert report.consistency == pytest.approx(consistency)
    assert report.batch_score == pytest.approx(0.3 * consistency + 0.3)


def test_batch_volume_and_progression_flags():
    records = _series([20.0, 25.0, 30.0, 35.0], step=timedelta(minutes=5))
    low = validate_batch(records[:2], "s", now=NOW)
    assert [f.flag_type for f in low.batch_flags] == [FlagType.INSUFFICIENT_VOLUME]
    rising = validate_batch(records, "s", now=NOW)
    assert FlagType.UNREALISTIC_PROGRESSION in {f.flag_type for f in rising.batch_flags}


def test_batch_excessive_volume_and_inconsistency():
    scores = [10.0, 40.0] * 9
    report = validate_batch(_series(scores, step=timedelta(minutes=2)), "s", BatchValidationCriteria.standard(), now=NOW)
    types = {f.flag_type for f in report.batch_flags}
    assert FlagType.EXCESSIVE_VOLUME in types
    assert FlagType.BATCH_INCONSISTENCY in types


def test_batch_empty_session():
    report = validate_batch([], "empty", now=NOW)
    assert report.record_count == 0
    assert report.batch_score == 0.0
    assert report.batch_flags[0].flag_type == FlagType.INSUFFICIENT_VOLUME


def _clean_session():
    return _series([30.0, 30.4, 30.2, 30.6, 30.1], step=timedelta(minutes=5))


def test_batch_score_penalizes_record_flags():
    clean = validate_batch(_clean_session(), "s", now=NOW)
    records = _clean_session()
    records[2] = replace(records[2], metrics=dict(FULL_METRICS, average_force=2500.0))
    flagged = validate_batch(records, "s", now=NOW)
    assert [f.flag_type for f in flagged.batch_flags] == [FlagType.INCONSISTENT_DATA]
    assert flagged.rejected_count == 1
    assert flagged.batch_score == pytest.approx(clean.batch_score - 0.2)


def test_batch_with_every_record_rejected_scores_zero():
    records = [replace(r, metrics=dict(FULL_METRICS, average_force=2500.0)) for r in _clean_session()]
    report = validate_batch(records, "s", now=NOW)
    assert report.rejected_count == 5
    assert len(report.batch_flags) == 5
    assert report.batch_score == 0.0


def test_batch_score_penalizes_session_flags():
    scores = [30.0, 30.4]
    report = validate_batch(_series(scores, step=timedelta(minutes=5)), "s", now=NOW)
    assert [f.severity for f in report.batch_flags] == [FlagSeverity.LOW]
    consistency = 1.0 - st.coefficient_of_variation(scores) / 50.0
    assert report.batch_score == pytest.approx(0.3 * consistency + 0.3 - 0.05)


def test_batch_completeness_uses_series_fields():
    records = [replace(r, metrics={}) for r in _clean_session()]
    records[0] = replace(records[0], athlete_id=" ")
    report = validate_batch(records, "s", now=NOW)
    # six required items per record: four fields and two metrics
    assert report.completeness == pytest.approx((5 * 4 - 1) / 30)
    criteria = BatchValidationCriteria(required_fields=("score",), required_metrics=())
    assert validate_batch(records, "s", criteria, now=NOW).completeness == pytest.approx(1.0)


def test_batch_keys_stay_unique_for_repeated_ids():
    records = [replace(r, record_id="dup") for r in _clean_session()[:3]]
    records.append(replace(_clean_session()[3], record_id=""))
    report = validate_batch(records, "s", now=NOW)
    assert list(report.record_assessments) == ["dup", "dup_1", "dup_2", "record_3"]
    assert len(report.record_assessments) == report.record_count
