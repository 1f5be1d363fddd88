"""Data quality gating for biomechanical test series.

Three operating modes:
- validate_data_quality: eight independent checks over an athlete's series,
  combined into a weighted overall score and a quality level
- assess_realtime_quality: flags for one incoming record against its history
- validate_batch: incremental real-time checks over a session plus
  batch-level cohesion, progression and volume checks

Nothing here raises for sparse data. Each check falls back to a named neutral
score when the series is below its own minimum, so a report is always
produced. Flags are advisory; the caller decides whether to accept, reject or
re-test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence

from perfstats.config import Settings
from perfstats.logging_config import log_context
from perfstats.services import statistics as st
from perfstats.services.records import TestRecord, primary_scores, sorted_by_time
from perfstats.services.thresholds import (
    BATCH_SEVERITY_PENALTY,
    ICC_INTERPRETATION,
    QUALITY_LEVELS,
    REALTIME_SEVERITY_PENALTY,
)

logger = logging.getLogger(__name__)


class QualityLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    INSUFFICIENT = "insufficient"


class ValidationAspect(str, Enum):
    SAMPLE_SIZE = "sample_size"
    COMPLETENESS = "completeness"
    RELIABILITY = "reliability"
    OUTLIERS = "outliers"
    TEMPORAL_CONSISTENCY = "temporal_consistency"
    DISTRIBUTION = "distribution"
    MEASUREMENT_PRECISION = "measurement_precision"
    CLINICAL_RANGE = "clinical_range"


class FlagType(str, Enum):
    RANGE_VIOLATION = "range_violation"
    BIOLOGICALLY_IMPLAUSIBLE = "biologically_implausible"
    RAPID_CHANGE = "rapid_change"
    PRECISION_ISSUE = "precision_issue"
    MISSING_DATA = "missing_data"
    INCONSISTENT_DATA = "inconsistent_data"
    BATCH_INCONSISTENCY = "batch_inconsistency"
    UNREALISTIC_PROGRESSION = "unrealistic_progression"
    INSUFFICIENT_VOLUME = "insufficient_volume"
    EXCESSIVE_VOLUME = "excessive_volume"


class FlagSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AcceptanceStatus(str, Enum):
    ACCEPTED = "accepted"
    CONDITIONALLY_ACCEPTED = "conditionally_accepted"
    REJECTED = "rejected"


# Relative importance of each aspect. The overall score divides by the total
# weight of the aspects present, so it is a convex combination of their scores.
ASPECT_WEIGHTS: dict[ValidationAspect, float] = {
    ValidationAspect.RELIABILITY: 0.25,
    ValidationAspect.SAMPLE_SIZE: 0.15,
    ValidationAspect.COMPLETENESS: 0.15,
    ValidationAspect.OUTLIERS: 0.15,
    ValidationAspect.MEASUREMENT_PRECISION: 0.15,
    ValidationAspect.TEMPORAL_CONSISTENCY: 0.10,
    ValidationAspect.DISTRIBUTION: 0.05,
    ValidationAspect.CLINICAL_RANGE: 0.05,
}

ASPECT_RECOMMENDATIONS: dict[ValidationAspect, str] = {
    ValidationAspect.SAMPLE_SIZE: "Increase sample size to improve statistical power",
    ValidationAspect.RELIABILITY: "Improve test standardization to enhance reliability",
    ValidationAspect.COMPLETENESS: "Ensure all required data fields are collected",
    ValidationAspect.OUTLIERS: "Review testing procedures to reduce outliers",
    ValidationAspect.MEASUREMENT_PRECISION: "Calibrate equipment to improve measurement precision",
    ValidationAspect.TEMPORAL_CONSISTENCY: "Standardize timing intervals between tests",
    ValidationAspect.DISTRIBUTION: "Review data collection for systematic biases",
    ValidationAspect.CLINICAL_RANGE: "Verify test results are within expected clinical ranges",
}

FLAG_ACTIONS: dict[FlagType, str] = {
    FlagType.RANGE_VIOLATION: "Verify measurement accuracy and recalibrate if necessary",
    FlagType.BIOLOGICALLY_IMPLAUSIBLE: "Repeat test to confirm result or investigate external factors",
    FlagType.RAPID_CHANGE: "Document circumstances leading to performance change",
    FlagType.PRECISION_ISSUE: "Check equipment calibration and measurement settings",
    FlagType.MISSING_DATA: "Ensure complete data collection for all required metrics",
    FlagType.INCONSISTENT_DATA: "Review test execution and data processing procedures",
}
DEFAULT_FLAG_ACTION = "Review test protocol and data collection procedures"

NO_DATA_RECOMMENDATION = "No test data available for quality assessment"
ALL_PASSED_RECOMMENDATION = "Data quality meets research-grade standards"

DEFAULT_HISTORY_WINDOW = Settings.history_window
PLAUSIBILITY_WINDOW = 5  # most recent history records used for the z-score check


# ---------------------------------------------------------------------------
# Criteria presets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationCriteria:
    """Acceptance thresholds for the eight series checks."""
    name: str = "standard"
    min_sample_size: int = 5
    optimal_sample_size: int = 20
    min_completeness: float = 0.8
    min_reliability: float = 0.75        # ICC, Koo & Li "good"
    outlier_threshold: float = 1.5       # IQR multiplier
    max_outlier_rate: float = 0.05
    max_temporal_cv: float = 30.0        # % CV of inter-test intervals
    max_skewness: float = 1.0
    max_kurtosis: float = 3.0
    max_cv: float = 15.0                 # % CV of the score series
    clinical_range: tuple[float, float] = (10.0, 80.0)
    min_clinical_compliance: float = 0.98
    required_fields: tuple[str, ...] = ("score", "test_type", "timestamp", "athlete_id")
    required_metrics: tuple[str, ...] = ("peak_force", "contact_time")

    @classmethod
    def standard(cls) -> ValidationCriteria:
        return cls()

    @classmethod
    def research_grade(cls) -> ValidationCriteria:
        return cls(
            name="research_grade",
            min_sample_size=10,
            optimal_sample_size=30,
            min_completeness=0.95,
            min_reliability=0.85,
            outlier_threshold=2.0,
            max_outlier_rate=0.03,
            max_temporal_cv=20.0,
            max_skewness=0.8,
            max_kurtosis=2.5,
            max_cv=10.0,
            clinical_range=(15.0, 75.0),
            min_clinical_compliance=0.99,
        )

    @classmethod
    def for_test_type(cls, test_type: str) -> ValidationCriteria:
        """Test-specific thresholds; unknown test types get the standard preset."""
        tag = test_type.strip().lower()
        if tag in ("cmj", "countermovement_jump"):
            return cls(
                name="cmj",
                optimal_sample_size=15,
                min_completeness=0.85,
                min_reliability=0.80,
                max_temporal_cv=25.0,
                max_cv=12.0,
                clinical_range=(15.0, 70.0),
                min_clinical_compliance=0.95,
            )
        if tag in ("sj", "squat_jump"):
            return cls(
                name="squat_jump",
                optimal_sample_size=15,
                min_completeness=0.85,
                min_reliability=0.80,
                max_temporal_cv=25.0,
                max_cv=10.0,
                clinical_range=(12.0, 65.0),
                min_clinical_compliance=0.95,
            )
        return cls.standard()

    @classmethod
    def preset(cls, name: str) -> ValidationCriteria:
        """Look up a preset by name: standard, research_grade, or a test type."""
        tag = name.strip().lower().replace("-", "_")
        if tag == "research_grade":
            return cls.research_grade()
        return cls.for_test_type(tag)


@dataclass(frozen=True)
class RealTimeValidationCriteria:
    expected_range: tuple[float, float] = (0.0, 150.0)
    min_decimal_precision: int = 1
    plausibility_sd: float = 3.0
    rapid_change_pct: float = 20.0
    severe_change_pct: float = 50.0
    required_metrics: tuple[str, ...] = ("peak_force", "contact_time", "jump_height")

    @classmethod
    def standard(cls) -> RealTimeValidationCriteria:
        return cls()


@dataclass(frozen=True)
class BatchValidationCriteria:
    max_batch_cv: float = 25.0
    max_progression_pct: float = 10.0  # % of the first score per test
    min_tests_per_session: int = 3
    max_tests_per_session: int = 15
    required_fields: tuple[str, ...] = ValidationCriteria.required_fields
    required_metrics: tuple[str, ...] = ValidationCriteria.required_metrics

    @classmethod
    def standard(cls) -> BatchValidationCriteria:
        return cls()


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    aspect: ValidationAspect
    score: float            # [0, 1]
    is_valid: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QualityFlag:
    flag_type: FlagType
    severity: FlagSeverity
    message: str
    value: float


@dataclass(frozen=True)
class QualityAlert:
    flag_type: FlagType
    message: str
    recommended_action: str


@dataclass(frozen=True)
class QualityMethodology:
    standards: list[str]
    procedures: list[str]
    limitations: list[str]


@dataclass(frozen=True)
class DataQualityReport:
    athlete_id: str | None
    test_type: str | None
    criteria_name: str
    sample_size: int
    overall_score: float
    quality_level: QualityLevel
    validation_results: dict[ValidationAspect, ValidationResult]
    recommendations: list[str]
    confidence: float
    methodology: QualityMethodology
    assessed_at: datetime


@dataclass(frozen=True)
class RealTimeQualityAssessment:
    record_id: str
    acceptance: AcceptanceStatus
    quality_score: float
    flags: list[QualityFlag]
    alerts: list[QualityAlert]
    assessed_at: datetime

    @property
    def is_accepted(self) -> bool:
        return self.acceptance != AcceptanceStatus.REJECTED


@dataclass(frozen=True)
class BatchQualityReport:
    session_id: str
    record_count: int
    record_assessments: dict[str, RealTimeQualityAssessment]
    batch_flags: list[QualityFlag]
    reliability: float
    consistency: float
    completeness: float
    batch_score: float
    assessed_at: datetime

    @property
    def rejected_count(self) -> int:
        return sum(1 for a in self.record_assessments.values() if a.acceptance == AcceptanceStatus.REJECTED)


def methodology() -> QualityMethodology:
    return QualityMethodology(
        standards=[
            "ICC-based reliability assessment (Koo & Li, 2016)",
            "IQR-based outlier detection (Tukey, 1977)",
            "Normality assessment using skewness and kurtosis",
            "Clinical range validation based on population norms",
        ],
        procedures=[
            "Multi-dimensional quality assessment",
            "Real-time validation with adaptive thresholds",
            "Batch-level cohesion analysis",
            "Evidence-based recommendation generation",
        ],
        limitations=[
            "Population norms may not reflect individual characteristics",
            "Quality thresholds based on general research standards",
            "Some validations require minimum sample sizes",
        ],
    )


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Series checks
# ---------------------------------------------------------------------------

def check_sample_size(records: Sequence[TestRecord], criteria: ValidationCriteria) -> ValidationResult:
    n = len(records)
    score = min(1.0, n / criteria.optimal_sample_size) if criteria.optimal_sample_size > 0 else 1.0
    valid = n >= criteria.min_sample_size
    if n >= criteria.optimal_sample_size:
        message = f"Optimal sample size ({n} tests)"
    elif valid:
        message = f"Adequate sample size ({n} tests, optimal {criteria.optimal_sample_size})"
    else:
        message = f"Insufficient sample size ({n} tests, minimum {criteria.min_sample_size})"
    return ValidationResult(
        aspect=ValidationAspect.SAMPLE_SIZE,
        score=score,
        is_valid=valid,
        message=message,
        details={
            "sample_size": n,
            "minimum": criteria.min_sample_size,
            "optimal": criteria.optimal_sample_size,
        },
    )


def _populated_fields(record: TestRecord, fields_: Sequence[str], metrics: Sequence[str]) -> int:
    count = 0
    for name in fields_:
        value = getattr(record, name, None)
        if name == "score":
            # a zero score is treated as not recorded
            count += int(value is not None and value > 0)
        elif isinstance(value, str):
            count += int(bool(value.strip()))
        else:
            count += int(value is not None)
    count += sum(1 for m in metrics if m in record.metrics)
    return count


def completeness_ratio(
    records: Sequence[TestRecord],
    required_fields: Sequence[str],
    required_metrics: Sequence[str],
) -> float:
    total = len(records) * (len(required_fields) + len(required_metrics))
    if total == 0:
        return 0.0
    complete = sum(_populated_fields(r, required_fields, required_metrics) for r in records)
    return complete / total


def check_completeness(records: Sequence[TestRecord], criteria: ValidationCriteria) -> ValidationResult:
    ratio = completeness_ratio(records, criteria.required_fields, criteria.required_metrics)
    valid = ratio >= criteria.min_completeness
    return ValidationResult(
        aspect=ValidationAspect.COMPLETENESS,
        score=ratio,
        is_valid=valid,
        message=f"Data completeness {ratio * 100:.1f}%",
        details={
            "completeness": ratio,
            "required_fields": list(criteria.required_fields) + list(criteria.required_metrics),
        },
    )


def check_reliability(scores: Sequence[float], criteria: ValidationCriteria) -> ValidationResult:
    if len(scores) < 3:
        return ValidationResult(
            aspect=ValidationAspect.RELIABILITY,
            score=0.0,
            is_valid=False,
            message="Insufficient data for reliability assessment",
            details={"sample_size": len(scores)},
        )
    icc = st.calculate_icc(scores)
    return ValidationResult(
        aspect=ValidationAspect.RELIABILITY,
        score=icc,
        is_valid=icc >= criteria.min_reliability,
        message=f"{ICC_INTERPRETATION.classify(icc)} (ICC = {icc:.3f})",
        details={
            "icc": icc,
            "sem": st.standard_error_of_measurement(scores, icc),
            "mdc": st.calculate_mdc(scores, icc),
            "swc": st.calculate_swc(scores),
            "minimum": criteria.min_reliability,
        },
    )


def check_outliers(scores: Sequence[float], criteria: ValidationCriteria) -> ValidationResult:
    n = len(scores)
    if n < 4:
        return ValidationResult(
            aspect=ValidationAspect.OUTLIERS,
            score=1.0,
            is_valid=True,
            message="Too few values for outlier detection",
            details={"sample_size": n},
        )
    retained = st.remove_outliers(scores, criteria.outlier_threshold)
    outliers = n - len(retained)
    rate = outliers / n
    return ValidationResult(
        aspect=ValidationAspect.OUTLIERS,
        score=1.0 - rate,
        is_valid=rate <= criteria.max_outlier_rate,
        message=f"{outliers} outliers detected ({rate * 100:.1f}%)",
        details={"outlier_count": outliers, "outlier_rate": rate, "threshold": criteria.outlier_threshold},
    )


def check_temporal_consistency(records: Sequence[TestRecord], criteria: ValidationCriteria) -> ValidationResult:
    if len(records) < 2:
        return ValidationResult(
            aspect=ValidationAspect.TEMPORAL_CONSISTENCY,
            score=1.0,
            is_valid=True,
            message="Single test, temporal consistency not applicable",
        )
    ordered = sorted_by_time(records)
    intervals = [
        (b.timestamp - a.timestamp).total_seconds() / 60.0
        for a, b in zip(ordered, ordered[1:])
    ]
    cv = abs(st.coefficient_of_variation(intervals))
    return ValidationResult(
        aspect=ValidationAspect.TEMPORAL_CONSISTENCY,
        score=max(0.0, 1.0 - cv / 100.0),
        is_valid=cv <= criteria.max_temporal_cv,
        message=f"Test interval CV {cv:.1f}%",
        details={"interval_cv": cv, "mean_interval_minutes": st.mean(intervals)},
    )


def check_distribution(scores: Sequence[float], criteria: ValidationCriteria) -> ValidationResult:
    if len(scores) < 5:
        return ValidationResult(
            aspect=ValidationAspect.DISTRIBUTION,
            score=0.5,
            is_valid=True,
            message="Too few values for distribution assessment",
        )
    skew = st.skewness(scores)
    kurt = st.kurtosis(scores)
    skew_ok = abs(skew) <= criteria.max_skewness
    kurt_ok = abs(kurt) <= criteria.max_kurtosis
    score = 0.5 * skew_ok + 0.5 * kurt_ok
    return ValidationResult(
        aspect=ValidationAspect.DISTRIBUTION,
        score=score,
        is_valid=skew_ok and kurt_ok,
        message=f"Skewness {skew:.2f}, kurtosis {kurt:.2f}",
        details={"skewness": skew, "kurtosis": kurt},
    )


def check_precision(scores: Sequence[float], criteria: ValidationCriteria) -> ValidationResult:
    if len(scores) < 3:
        return ValidationResult(
            aspect=ValidationAspect.MEASUREMENT_PRECISION,
            score=0.5,
            is_valid=True,
            message="Too few values for precision assessment",
        )
    cv = abs(st.coefficient_of_variation(scores))
    score = max(0.0, 1.0 - cv / criteria.max_cv) if criteria.max_cv > 0 else 0.0
    return ValidationResult(
        aspect=ValidationAspect.MEASUREMENT_PRECISION,
        score=score,
        is_valid=cv <= criteria.max_cv,
        message=f"Coefficient of variation {cv:.1f}%",
        details={"cv": cv, "maximum": criteria.max_cv},
    )


def check_clinical_range(scores: Sequence[float], criteria: ValidationCriteria) -> ValidationResult:
    low, high = criteria.clinical_range
    in_range = sum(1 for s in scores if low <= s <= high)
    rate = in_range / len(scores) if scores else 0.0
    return ValidationResult(
        aspect=ValidationAspect.CLINICAL_RANGE,
        score=rate,
        is_valid=rate >= criteria.min_clinical_compliance,
        message=f"{rate * 100:.1f}% of values within expected range [{low:g}, {high:g}]",
        details={"compliance": rate, "range": [low, high]},
    )


def overall_quality_score(results: dict[ValidationAspect, ValidationResult]) -> float:
    total_weight = sum(ASPECT_WEIGHTS[aspect] for aspect in results)
    if total_weight == 0:
        return 0.0
    weighted = sum(ASPECT_WEIGHTS[aspect] * result.score for aspect, result in results.items())
    return weighted / total_weight


def _recommendations(results: dict[ValidationAspect, ValidationResult]) -> list[str]:
    recs = [ASPECT_RECOMMENDATIONS[aspect] for aspect in ASPECT_RECOMMENDATIONS if not results[aspect].is_valid]
    return recs or [ALL_PASSED_RECOMMENDATION]


def validate_data_quality(
    records: Sequence[TestRecord],
    athlete_id: str | None = None,
    criteria: ValidationCriteria | None = None,
    now: datetime | None = None,
) -> DataQualityReport:
    """Run the eight series checks and combine them into one report.

    When athlete_id is given only that athlete's records are assessed.
    Without explicit criteria the preset for the series' test type is used.
    A failed sample-size check forces the quality level to insufficient.
    """
    assessed_at = _now(now)
    series = [r for r in records if athlete_id is None or r.athlete_id == athlete_id]
    test_type = series[0].test_type if series else None
    if criteria is None:
        criteria = ValidationCriteria.for_test_type(test_type) if test_type else ValidationCriteria.standard()

    if not series:
        logger.warning("No test data for quality assessment (athlete=%s)", athlete_id)
        return DataQualityReport(
            athlete_id=athlete_id,
            test_type=None,
            criteria_name=criteria.name,
            sample_size=0,
            overall_score=0.0,
            quality_level=QualityLevel.INSUFFICIENT,
            validation_results={},
            recommendations=[NO_DATA_RECOMMENDATION],
            confidence=0.0,
            methodology=methodology(),
            assessed_at=assessed_at,
        )

    scores = primary_scores(sorted_by_time(series))
    results = {
        ValidationAspect.SAMPLE_SIZE: check_sample_size(series, criteria),
        ValidationAspect.COMPLETENESS: check_completeness(series, criteria),
        ValidationAspect.RELIABILITY: check_reliability(scores, criteria),
        ValidationAspect.OUTLIERS: check_outliers(scores, criteria),
        ValidationAspect.TEMPORAL_CONSISTENCY: check_temporal_consistency(series, criteria),
        ValidationAspect.DISTRIBUTION: check_distribution(scores, criteria),
        ValidationAspect.MEASUREMENT_PRECISION: check_precision(scores, criteria),
        ValidationAspect.CLINICAL_RANGE: check_clinical_range(scores, criteria),
    }

    overall = overall_quality_score(results)
    level = QualityLevel(QUALITY_LEVELS.classify(overall))
    if not results[ValidationAspect.SAMPLE_SIZE].is_valid:
        level = QualityLevel.INSUFFICIENT

    valid_ratio = sum(1 for r in results.values() if r.is_valid) / len(results)
    confidence = valid_ratio * 0.7 + min(len(series) / 20.0, 1.0) * 0.3

    logger.info(
        "Data quality for athlete=%s test_type=%s: score=%.3f level=%s",
        athlete_id, test_type, overall, level.value,
        extra=log_context(athlete_id=athlete_id, test_type=test_type),
    )
    return DataQualityReport(
        athlete_id=athlete_id,
        test_type=test_type,
        criteria_name=criteria.name,
        sample_size=len(series),
        overall_score=overall,
        quality_level=level,
        validation_results=results,
        recommendations=_recommendations(results),
        confidence=confidence,
        methodology=methodology(),
        assessed_at=assessed_at,
    )


# ---------------------------------------------------------------------------
# Real-time single-record assessment
# ---------------------------------------------------------------------------

def _decimal_places(value: float) -> int:
    text = repr(float(value))
    if "e" in text or "." not in text:
        return 0
    return len(text.split(".", 1)[1])


def _record_flags(
    record: TestRecord,
    history_scores: Sequence[float],
    criteria: RealTimeValidationCriteria,
) -> list[QualityFlag]:
    flags: list[QualityFlag] = []
    value = record.score

    if value is not None:
        low, high = criteria.expected_range
        if value < low or value > high:
            flags.append(QualityFlag(
                FlagType.RANGE_VIOLATION, FlagSeverity.HIGH,
                f"Value {value:g} outside expected range [{low:g}, {high:g}]", value,
            ))

        recent = list(history_scores[-PLAUSIBILITY_WINDOW:])
        if len(recent) >= 3:
            z = st.z_score(value, st.mean(recent), st.standard_deviation(recent))
            if abs(z) > criteria.plausibility_sd:
                flags.append(QualityFlag(
                    FlagType.BIOLOGICALLY_IMPLAUSIBLE, FlagSeverity.HIGH,
                    f"Value deviates {abs(z):.1f} SD from recent mean", value,
                ))

        if len(history_scores) >= 3:
            previous = history_scores[-1]
            if previous != 0:
                change_pct = abs(value - previous) / abs(previous) * 100.0
                if change_pct > criteria.severe_change_pct:
                    flags.append(QualityFlag(
                        FlagType.RAPID_CHANGE, FlagSeverity.HIGH,
                        f"Change of {change_pct:.1f}% from previous test", change_pct,
                    ))
                elif change_pct > criteria.rapid_change_pct:
                    flags.append(QualityFlag(
                        FlagType.RAPID_CHANGE, FlagSeverity.MEDIUM,
                        f"Change of {change_pct:.1f}% from previous test", change_pct,
                    ))

        if _decimal_places(value) < criteria.min_decimal_precision:
            flags.append(QualityFlag(
                FlagType.PRECISION_ISSUE, FlagSeverity.LOW,
                f"Value recorded with fewer than {criteria.min_decimal_precision} decimal places", value,
            ))
    else:
        flags.append(QualityFlag(
            FlagType.MISSING_DATA, FlagSeverity.MEDIUM, "Missing primary score", 0.0,
        ))

    for metric in criteria.required_metrics:
        if metric not in record.metrics:
            flags.append(QualityFlag(
                FlagType.MISSING_DATA, FlagSeverity.MEDIUM, f"Missing required metric: {metric}", 0.0,
            ))

    peak = record.metrics.get("peak_force")
    average = record.metrics.get("average_force")
    if peak is not None and average is not None and average > peak:
        flags.append(QualityFlag(
            FlagType.INCONSISTENT_DATA, FlagSeverity.HIGH,
            "Average force exceeds peak force", average - peak,
        ))

    return flags


def _acceptance(flags: Sequence[QualityFlag]) -> AcceptanceStatus:
    if any(f.severity == FlagSeverity.HIGH for f in flags):
        return AcceptanceStatus.REJECTED
    if sum(1 for f in flags if f.severity == FlagSeverity.MEDIUM) > 2:
        return AcceptanceStatus.CONDITIONALLY_ACCEPTED
    return AcceptanceStatus.ACCEPTED


def _penalized_score(base: float, flags: Sequence[QualityFlag], penalties: dict[str, float]) -> float:
    score = base - sum(penalties[f.severity.value] for f in flags)
    return min(1.0, max(0.0, score))


def assess_realtime_quality(
    record: TestRecord,
    history: Sequence[TestRecord],
    criteria: RealTimeValidationCriteria | None = None,
    history_window: int = DEFAULT_HISTORY_WINDOW,
    now: datetime | None = None,
) -> RealTimeQualityAssessment:
    """Flag one incoming record against the athlete's prior records.

    Only the last history_window records (chronological) are scanned.
    """
    criteria = criteria or RealTimeValidationCriteria.standard()
    window = sorted_by_time(history)[-history_window:] if history_window > 0 else []
    flags = _record_flags(record, primary_scores(window), criteria)
    alerts = [
        QualityAlert(f.flag_type, f.message, FLAG_ACTIONS.get(f.flag_type, DEFAULT_FLAG_ACTION))
        for f in flags
        if f.severity == FlagSeverity.HIGH
    ]
    acceptance = _acceptance(flags)
    if acceptance == AcceptanceStatus.REJECTED:
        logger.warning(
            "Record %s rejected: %s",
            record.record_id or "<unnamed>", ", ".join(a.flag_type.value for a in alerts),
        )
    return RealTimeQualityAssessment(
        record_id=record.record_id,
        acceptance=acceptance,
        quality_score=_penalized_score(1.0, flags, REALTIME_SEVERITY_PENALTY),
        flags=flags,
        alerts=alerts,
        assessed_at=_now(now),
    )


# ---------------------------------------------------------------------------
# Batch assessment
# ---------------------------------------------------------------------------

def _batch_flags(scores: Sequence[float], n_records: int, criteria: BatchValidationCriteria) -> list[QualityFlag]:
    flags: list[QualityFlag] = []

    if len(scores) >= 2:
        cv = abs(st.coefficient_of_variation(scores))
        if cv > criteria.max_batch_cv:
            flags.append(QualityFlag(
                FlagType.BATCH_INCONSISTENCY, FlagSeverity.MEDIUM,
                f"Batch CV {cv:.1f}% exceeds {criteria.max_batch_cv:g}%", cv,
            ))

    if len(scores) >= 3 and scores[0] != 0:
        fit = st.linear_regression(list(range(len(scores))), scores)
        rate = fit.slope / scores[0] * 100.0
        if abs(rate) > criteria.max_progression_pct:
            flags.append(QualityFlag(
                FlagType.UNREALISTIC_PROGRESSION, FlagSeverity.MEDIUM,
                f"Progression of {rate:.1f}% per test within one session", rate,
            ))

    if n_records < criteria.min_tests_per_session:
        flags.append(QualityFlag(
            FlagType.INSUFFICIENT_VOLUME, FlagSeverity.LOW,
            f"Only {n_records} tests in session (minimum {criteria.min_tests_per_session})", float(n_records),
        ))
    elif n_records > criteria.max_tests_per_session:
        flags.append(QualityFlag(
            FlagType.EXCESSIVE_VOLUME, FlagSeverity.MEDIUM,
            f"{n_records} tests in session (maximum {criteria.max_tests_per_session})", float(n_records),
        ))

    return flags


def _assessment_key(record: TestRecord, idx: int, taken: Mapping[str, object]) -> str:
    key = record.record_id or f"record_{idx}"
    if key in taken:
        key = f"{key}_{idx}"
    return key


def validate_batch(
    records: Sequence[TestRecord],
    session_id: str,
    criteria: BatchValidationCriteria | None = None,
    realtime_criteria: RealTimeValidationCriteria | None = None,
    history_window: int = DEFAULT_HISTORY_WINDOW,
    now: datetime | None = None,
) -> BatchQualityReport:
    """Assess a session: each record against the records before it, then the batch as a whole.

    batch_flags holds every record's flags followed by the session-level
    ones, and all of them are penalized in the batch score.
    """
    criteria = criteria or BatchValidationCriteria.standard()
    realtime_criteria = realtime_criteria or RealTimeValidationCriteria.standard()
    assessed_at = _now(now)
    ordered = sorted_by_time(records)

    assessments: dict[str, RealTimeQualityAssessment] = {}
    flags: list[QualityFlag] = []
    for idx, record in enumerate(ordered):
        start = max(0, idx - history_window)
        assessment = assess_realtime_quality(
            record, ordered[start:idx], realtime_criteria, history_window, now=assessed_at,
        )
        assessments[_assessment_key(record, idx, assessments)] = assessment
        flags.extend(assessment.flags)

    scores = primary_scores(ordered)
    flags.extend(_batch_flags(scores, len(ordered), criteria))

    reliability = st.calculate_icc(scores) if len(scores) >= 3 else 0.0
    consistency = max(0.0, 1.0 - abs(st.coefficient_of_variation(scores)) / 50.0) if scores else 0.0
    completeness = completeness_ratio(ordered, criteria.required_fields, criteria.required_metrics)
    base = 0.4 * reliability + 0.3 * consistency + 0.3 * completeness

    logger.info(
        "Batch %s: %d records, %d flags", session_id, len(ordered), len(flags),
        extra=log_context(session_id=session_id),
    )
    return BatchQualityReport(
        session_id=session_id,
        record_count=len(ordered),
        record_assessments=assessments,
        batch_flags=flags,
        reliability=reliability,
        consistency=consistency,
        completeness=completeness,
        batch_score=_penalized_score(base, flags, BATCH_SEVERITY_PENALTY),
        assessed_at=assessed_at,
    )
