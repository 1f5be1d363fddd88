"""True individual response analysis with a control-group correction.

The observed SD of change in an intervention cohort mixes true
inter-individual response with measurement noise and within-subject
variability. The control cohort's SD of change estimates the latter, so

    SDR = sqrt(max(0, SD_int^2 - SD_ctrl^2))

isolates the variability attributable to the intervention (Atkinson &
Batterham, 2015; Hopkins, 2015). On top of SDR the analysis reports artifact
checks (regression to the mean, mathematical coupling), a Welch comparison of
mean change, clinical significance against the smallest worthwhile change,
and per-athlete responder classification.

The mixed-model and ANCOVA blocks are simplified approximations retained for
parity with existing reports. exact=True switches the SDR interval and the
ANCOVA to distribution-exact versions.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Sequence

import numpy as np
from scipy import stats as sps

from perfstats.config import Settings
from perfstats.logging_config import log_context
from perfstats.services import statistics as st
from perfstats.services.records import AnalysisError, ErrorKind, TestRecord, records_frame
from perfstats.services.thresholds import (
    ARTIFACT_COUPLING_RISK,
    ARTIFACT_RTM_MAGNITUDE,
    COUPLING_RISK,
    COUPLING_RISK_DESCRIPTIONS,
    EFFECT_SIZE,
    REGRESSION_TO_MEAN,
    RESPONDER_Z,
    RTM_SIGNIFICANT,
)

logger = logging.getLogger(__name__)

CONFIDENCE_LEVEL = 0.95
DEFAULT_MIN_DATA_POINTS = Settings.min_data_points

# Legacy chi-square critical value multipliers (x degrees of freedom)
_CHI2_LOWER_FACTOR = 0.7
_CHI2_UPPER_FACTOR = 1.3

# Simplified mixed model: share of combined variance attributed to athletes
_RANDOM_EFFECT_SHARE = 0.3

# Simplified ANCOVA constants
_ANCOVA_RESIDUAL_SHARE = 0.7
_ANCOVA_ERROR_MS = 0.1
_ANCOVA_PLACEHOLDER_P = 0.05


class ResponderStatus(str, Enum):
    RESPONDER = "responder"
    NON_RESPONDER = "non_responder"
    NEGATIVE_RESPONDER = "negative_responder"


@dataclass(frozen=True)
class ChangeScore:
    """Baseline-to-follow-up change for one athlete."""
    athlete_id: str
    baseline: float
    follow_up: float
    change: float
    within_subject_sd: float  # SD of absolute successive differences / sqrt(2)
    measurement_count: int
    baseline_date: datetime
    follow_up_date: datetime


@dataclass(frozen=True)
class GroupStatistics:
    name: str
    sample_size: int
    mean_change: float
    sd_change: float
    mean_baseline: float
    sd_baseline: float
    mean_within_subject_sd: float
    change_scores: list[ChangeScore] = field(default_factory=list)


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float
    level: float = CONFIDENCE_LEVEL


@dataclass(frozen=True)
class TrueIndividualResponseSDR:
    sdr: float
    sdr_squared: float           # clamped at 0
    intervention_sd: float
    control_sd: float
    mean_difference: float       # mean change, intervention minus control
    pooled_sd: float
    effect_size: float
    confidence_interval: ConfidenceInterval
    is_significant: bool         # sdr > 0 and the lower bound > 0
    method: str = "approximate"


@dataclass(frozen=True)
class RegressionToMeanAnalysis:
    intervention_correlation: float  # r(baseline, change)
    control_correlation: float
    intervention_magnitude: float    # max(0, -r)
    control_magnitude: float
    is_significant: bool
    interpretation: str


@dataclass(frozen=True)
class MathematicalCouplingAnalysis:
    intervention_risk: float
    control_risk: float
    risk_score: float
    risk_level: str
    description: str


@dataclass(frozen=True)
class ArtifactAnalysis:
    regression_to_mean: RegressionToMeanAnalysis
    mathematical_coupling: MathematicalCouplingAnalysis
    has_significant_artifacts: bool


@dataclass(frozen=True)
class StatisticalTestResult:
    t_statistic: float
    p_value: float
    degrees_of_freedom: float
    cohens_d: float
    effect_magnitude: str
    is_significant: bool
    interpretation: str


@dataclass(frozen=True)
class ClinicalSignificanceResult:
    swc: float
    moderate_change: float
    responder_percentage: float
    is_clinically_significant: bool
    sdr_to_baseline_sd_ratio: float
    sdr_to_mean_effect_ratio: float
    interpretation: str


@dataclass(frozen=True)
class MixedModelResults:
    fixed_effect: float
    fixed_effect_variance: float
    random_effect_variance: float
    residual_variance: float
    icc: float
    model_fit: str


@dataclass(frozen=True)
class ANCOVAResults:
    adjusted_group_effect: float
    baseline_covariate_effect: float
    residual_variance: float
    f_statistic: float
    p_value: float
    method: str = "approximate"


@dataclass(frozen=True)
class IndividualClassification:
    athlete_id: str
    change: float
    status: ResponderStatus
    threshold: float
    confidence: float


@dataclass(frozen=True)
class IndividualResponseResult:
    test_type: str
    analysis_date: datetime
    intervention: GroupStatistics | None = None
    control: GroupStatistics | None = None
    sdr: TrueIndividualResponseSDR | None = None
    artifacts: ArtifactAnalysis | None = None
    statistical_test: StatisticalTestResult | None = None
    clinical_significance: ClinicalSignificanceResult | None = None
    mixed_model: MixedModelResults | None = None
    ancova: ANCOVAResults | None = None
    classifications: list[IndividualClassification] = field(default_factory=list)
    sample_sizes: dict[str, int] = field(default_factory=dict)
    error: AnalysisError | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        message: str,
        test_type: str = "",
        now: datetime | None = None,
    ) -> IndividualResponseResult:
        return cls(
            test_type=test_type,
            analysis_date=now if now is not None else datetime.now(timezone.utc),
            error=AnalysisError(kind, message),
        )


# ---------------------------------------------------------------------------
# Change scores and cohort statistics
# ---------------------------------------------------------------------------

def _within_subject_sd(scores: Sequence[float]) -> float:
    diffs = [abs(b - a) for a, b in zip(scores, scores[1:])]
    if len(diffs) < 2:
        return 0.0
    return st.standard_deviation(diffs) / math.sqrt(2.0)


def _as_datetime(value) -> datetime:
    # pandas Timestamp -> datetime
    return value.to_pydatetime() if hasattr(value, "to_pydatetime") else value


def change_scores(
    records: Sequence[TestRecord],
    test_type: str,
    min_data_points: int = DEFAULT_MIN_DATA_POINTS,
) -> list[ChangeScore]:
    """One ChangeScore per athlete with at least min_data_points scored tests."""
    df = records_frame(records, test_type)
    out: list[ChangeScore] = []
    for athlete_id, group in df.groupby("athlete_id", sort=True):
        if len(group) < min_data_points:
            logger.debug("Athlete %s skipped: %d %s tests", athlete_id, len(group), test_type)
            continue
        scores = group["score"].astype(float).tolist()
        timestamps = list(group["timestamp"])
        out.append(ChangeScore(
            athlete_id=str(athlete_id),
            baseline=scores[0],
            follow_up=scores[-1],
            change=scores[-1] - scores[0],
            within_subject_sd=_within_subject_sd(scores),
            measurement_count=len(scores),
            baseline_date=_as_datetime(timestamps[0]),
            follow_up_date=_as_datetime(timestamps[-1]),
        ))
    return out


def group_statistics(name: str, scores: Sequence[ChangeScore]) -> GroupStatistics:
    changes = [c.change for c in scores]
    baselines = [c.baseline for c in scores]
    return GroupStatistics(
        name=name,
        sample_size=len(scores),
        mean_change=st.mean(changes),
        sd_change=st.standard_deviation(changes),
        mean_baseline=st.mean(baselines),
        sd_baseline=st.standard_deviation(baselines),
        mean_within_subject_sd=st.mean([c.within_subject_sd for c in scores]),
        change_scores=list(scores),
    )


# ---------------------------------------------------------------------------
# SDR
# ---------------------------------------------------------------------------

def sdr_confidence_interval(
    intervention: GroupStatistics,
    control: GroupStatistics,
    exact: bool = False,
) -> ConfidenceInterval:
    """Bounds on SDR from chi-square bounds on each cohort's variance of change."""
    df_i = intervention.sample_size - 1
    df_c = control.sample_size - 1
    if df_i < 1 or df_c < 1:
        return ConfidenceInterval(0.0, 0.0)

    var_i = intervention.sd_change ** 2
    var_c = control.sd_change ** 2
    alpha = 1.0 - CONFIDENCE_LEVEL
    if exact:
        chi_hi_i = sps.chi2.ppf(1.0 - alpha / 2, df_i)
        chi_lo_i = sps.chi2.ppf(alpha / 2, df_i)
        chi_hi_c = sps.chi2.ppf(1.0 - alpha / 2, df_c)
        chi_lo_c = sps.chi2.ppf(alpha / 2, df_c)
    else:
        chi_hi_i, chi_lo_i = df_i * _CHI2_UPPER_FACTOR, df_i * _CHI2_LOWER_FACTOR
        chi_hi_c, chi_lo_c = df_c * _CHI2_UPPER_FACTOR, df_c * _CHI2_LOWER_FACTOR

    lower_var_diff = df_i * var_i / chi_hi_i - df_c * var_c / chi_lo_c
    upper_var_diff = df_i * var_i / chi_lo_i - df_c * var_c / chi_hi_c
    return ConfidenceInterval(
        lower=math.sqrt(max(0.0, float(lower_var_diff))),
        upper=math.sqrt(max(0.0, float(upper_var_diff))),
    )


def true_individual_response(
    intervention: GroupStatistics,
    control: GroupStatistics,
    exact: bool = False,
) -> TrueIndividualResponseSDR:
    sd_i, sd_c = intervention.sd_change, control.sd_change
    sdr_squared = max(0.0, sd_i ** 2 - sd_c ** 2)
    sdr = math.sqrt(sdr_squared)
    pooled = math.sqrt((sd_i ** 2 + sd_c ** 2) / 2.0)
    mean_diff = intervention.mean_change - control.mean_change
    ci = sdr_confidence_interval(intervention, control, exact=exact)
    return TrueIndividualResponseSDR(
        sdr=sdr,
        sdr_squared=sdr_squared,
        intervention_sd=sd_i,
        control_sd=sd_c,
        mean_difference=mean_diff,
        pooled_sd=pooled,
        effect_size=mean_diff / pooled if pooled > 0 else 0.0,
        confidence_interval=ci,
        is_significant=sdr > 0 and ci.lower > 0,
        method="exact" if exact else "approximate",
    )


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------

def _baseline_change_correlation(group: GroupStatistics) -> float:
    return st.correlation(
        [c.baseline for c in group.change_scores],
        [c.change for c in group.change_scores],
    )


def _coupling_risk(group: GroupStatistics) -> float:
    mean_abs_change = st.mean([abs(c.change) for c in group.change_scores])
    return group.mean_within_subject_sd / (mean_abs_change + 0.001)


def artifact_analysis(intervention: GroupStatistics, control: GroupStatistics) -> ArtifactAnalysis:
    r_int = _baseline_change_correlation(intervention)
    r_ctrl = _baseline_change_correlation(control)
    rtm_int = max(0.0, -r_int)
    rtm_ctrl = max(0.0, -r_ctrl)
    rtm = RegressionToMeanAnalysis(
        intervention_correlation=r_int,
        control_correlation=r_ctrl,
        intervention_magnitude=rtm_int,
        control_magnitude=rtm_ctrl,
        is_significant=rtm_int > RTM_SIGNIFICANT,
        interpretation=REGRESSION_TO_MEAN.classify(rtm_int),
    )

    risk_int = _coupling_risk(intervention)
    risk_ctrl = _coupling_risk(control)
    risk = (risk_int + risk_ctrl) / 2.0
    level = COUPLING_RISK.classify(risk)
    coupling = MathematicalCouplingAnalysis(
        intervention_risk=risk_int,
        control_risk=risk_ctrl,
        risk_score=risk,
        risk_level=level,
        description=COUPLING_RISK_DESCRIPTIONS[level],
    )

    return ArtifactAnalysis(
        regression_to_mean=rtm,
        mathematical_coupling=coupling,
        has_significant_artifacts=risk > ARTIFACT_COUPLING_RISK or rtm_int > ARTIFACT_RTM_MAGNITUDE,
    )


# ---------------------------------------------------------------------------
# Comparison of mean change and clinical relevance
# ---------------------------------------------------------------------------

def compare_changes(
    intervention: GroupStatistics,
    control: GroupStatistics,
    exact: bool = False,
) -> StatisticalTestResult:
    changes_i = [c.change for c in intervention.change_scores]
    changes_c = [c.change for c in control.change_scores]
    test = st.t_test(changes_i, changes_c, exact=exact)

    pooled = math.sqrt((st.variance(changes_i) + st.variance(changes_c)) / 2.0)
    d = test.mean_difference / pooled if pooled > 0 else 0.0
    magnitude = EFFECT_SIZE.classify(abs(d))
    significant = test.p_value < 0.05

    if significant:
        interpretation = f"Significant difference in mean change ({magnitude} effect, d = {d:.2f})"
    else:
        interpretation = f"No significant difference in mean change ({magnitude} effect, d = {d:.2f})"

    return StatisticalTestResult(
        t_statistic=test.t_statistic,
        p_value=test.p_value,
        degrees_of_freedom=test.degrees_of_freedom,
        cohens_d=d,
        effect_magnitude=magnitude,
        is_significant=significant,
        interpretation=interpretation,
    )


def clinical_significance(
    intervention: GroupStatistics,
    sdr: TrueIndividualResponseSDR,
) -> ClinicalSignificanceResult:
    """Share of athletes expected to exceed the SWC, assuming N(intervention mean change, SDR)."""
    swc = intervention.sd_baseline * 0.2
    moderate = intervention.sd_baseline * 0.5
    effect = intervention.mean_change

    if sdr.sdr > 0:
        responders = (1.0 - st.normal_cdf((swc - effect) / sdr.sdr)) * 100.0
    else:
        responders = 100.0 if effect > swc else 0.0

    if sdr.sdr > moderate:
        interpretation = "Substantial individual response variability - individualized programming recommended"
    elif sdr.sdr > swc:
        interpretation = "Meaningful individual response variability - monitor athletes individually"
    else:
        interpretation = "Individual response variability below the smallest worthwhile change"

    return ClinicalSignificanceResult(
        swc=swc,
        moderate_change=moderate,
        responder_percentage=responders,
        is_clinically_significant=sdr.sdr > swc,
        sdr_to_baseline_sd_ratio=sdr.sdr / intervention.sd_baseline if intervention.sd_baseline > 0 else 0.0,
        sdr_to_mean_effect_ratio=sdr.sdr / (abs(effect) + 0.001),
        interpretation=interpretation,
    )


# ---------------------------------------------------------------------------
# Secondary models
# ---------------------------------------------------------------------------

def simplified_mixed_model(scores: Sequence[ChangeScore]) -> MixedModelResults:
    """Variance split of all change scores with a fixed 30% athlete share.

    Not a REML fit.
    """
    changes = [c.change for c in scores]
    if len(changes) < 2:
        return MixedModelResults(0.0, 0.0, 0.0, 0.0, 0.0, "Insufficient data for mixed model")
    total_var = st.variance(changes)
    random_var = _RANDOM_EFFECT_SHARE * total_var
    return MixedModelResults(
        fixed_effect=st.mean(changes),
        fixed_effect_variance=total_var,
        random_effect_variance=random_var,
        residual_variance=total_var - random_var,
        icc=random_var / total_var if total_var > 0 else 0.0,
        model_fit="Simplified model - consider specialized package for full implementation",
    )


def _exact_ancova(intervention: GroupStatistics, control: GroupStatistics) -> ANCOVAResults:
    scores = intervention.change_scores + control.change_scores
    n = len(scores)
    y = np.array([c.follow_up for c in scores])
    baseline = np.array([c.baseline for c in scores])
    group = np.array([1.0] * len(intervention.change_scores) + [0.0] * len(control.change_scores))

    full = np.column_stack([np.ones(n), group, baseline])
    reduced = np.column_stack([np.ones(n), baseline])
    coef, *_ = np.linalg.lstsq(full, y, rcond=None)
    ss_full = float(np.sum((y - full @ coef) ** 2))
    coef_r, *_ = np.linalg.lstsq(reduced, y, rcond=None)
    ss_reduced = float(np.sum((y - reduced @ coef_r) ** 2))

    df_res = n - 3
    residual_var = ss_full / df_res
    if residual_var > 0:
        f_stat = (ss_reduced - ss_full) / residual_var
        p_value = float(sps.f.sf(f_stat, 1, df_res))
    else:
        f_stat, p_value = 0.0, 1.0
    return ANCOVAResults(
        adjusted_group_effect=float(coef[1]),
        baseline_covariate_effect=float(coef[2]),
        residual_variance=residual_var,
        f_statistic=max(0.0, f_stat),
        p_value=min(1.0, max(0.0, p_value)),
        method="exact",
    )


def simplified_ancova(
    intervention: GroupStatistics,
    control: GroupStatistics,
    exact: bool = False,
) -> ANCOVAResults:
    """Follow-up difference between cohorts with baseline as covariate.

    The default reproduces the legacy approximation (fixed error mean square
    and a placeholder p-value). exact=True fits the OLS model
    follow_up ~ group + baseline and tests the group term with an F test; it
    needs at least 4 athletes and otherwise falls back to the approximation.
    """
    scores = intervention.change_scores + control.change_scores
    if exact and len(scores) >= 4 and intervention.sample_size and control.sample_size:
        return _exact_ancova(intervention, control)

    follow_i = [c.follow_up for c in intervention.change_scores]
    follow_c = [c.follow_up for c in control.change_scores]
    effect = st.mean(follow_i) - st.mean(follow_c)
    follow_all = [c.follow_up for c in scores]
    return ANCOVAResults(
        adjusted_group_effect=effect,
        baseline_covariate_effect=st.correlation([c.baseline for c in scores], follow_all),
        residual_variance=_ANCOVA_RESIDUAL_SHARE * st.variance(follow_all),
        f_statistic=effect ** 2 / _ANCOVA_ERROR_MS,
        p_value=_ANCOVA_PLACEHOLDER_P,
    )


# ---------------------------------------------------------------------------
# Individual classification
# ---------------------------------------------------------------------------

def classify_individuals(
    intervention: GroupStatistics,
    control: GroupStatistics,
) -> list[IndividualClassification]:
    """Compare each athlete's change with 1.96 x the control typical error."""
    te = control.mean_within_subject_sd
    threshold = RESPONDER_Z * te
    out = []
    for c in intervention.change_scores:
        if c.change > threshold:
            status = ResponderStatus.RESPONDER
        elif c.change < -threshold:
            status = ResponderStatus.NEGATIVE_RESPONDER
        else:
            status = ResponderStatus.NON_RESPONDER
        confidence = min(1.0, abs(c.change) / te / 2.0) if te > 0 else 0.5
        out.append(IndividualClassification(
            athlete_id=c.athlete_id,
            change=c.change,
            status=status,
            threshold=threshold,
            confidence=confidence,
        ))
    return out


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def analyze_with_control_group(
    intervention_records: Sequence[TestRecord],
    control_records: Sequence[TestRecord],
    test_type: str,
    min_data_points: int = DEFAULT_MIN_DATA_POINTS,
    exact: bool = False,
    now: datetime | None = None,
) -> IndividualResponseResult:
    """Full control-group-corrected individual response analysis.

    Returns a result with `error` set (never raises) when a cohort is empty or
    no athlete in a cohort has min_data_points tests of test_type.
    """
    analysis_date = now if now is not None else datetime.now(timezone.utc)
    if not intervention_records or not control_records:
        logger.warning("Individual response analysis for %s without both cohorts", test_type)
        return IndividualResponseResult.failed(
            ErrorKind.MISSING_COHORT,
            "Both intervention and control groups are required",
            test_type,
            analysis_date,
        )

    int_scores = change_scores(intervention_records, test_type, min_data_points)
    ctrl_scores = change_scores(control_records, test_type, min_data_points)
    if not int_scores or not ctrl_scores:
        logger.warning(
            "Insufficient %s data: %d intervention, %d control athletes with >= %d tests",
            test_type, len(int_scores), len(ctrl_scores), min_data_points,
        )
        return IndividualResponseResult.failed(
            ErrorKind.INSUFFICIENT_DATA,
            f"Insufficient data: each group needs athletes with at least {min_data_points} {test_type} tests",
            test_type,
            analysis_date,
        )

    intervention = group_statistics("intervention", int_scores)
    control = group_statistics("control", ctrl_scores)
    sdr = true_individual_response(intervention, control, exact=exact)

    logger.info(
        "Individual response %s: n_int=%d n_ctrl=%d SDR=%.3f significant=%s",
        test_type, intervention.sample_size, control.sample_size, sdr.sdr, sdr.is_significant,
        extra=log_context(test_type=test_type),
    )
    return IndividualResponseResult(
        test_type=test_type,
        analysis_date=analysis_date,
        intervention=intervention,
        control=control,
        sdr=sdr,
        artifacts=artifact_analysis(intervention, control),
        statistical_test=compare_changes(intervention, control, exact=exact),
        clinical_significance=clinical_significance(intervention, sdr),
        mixed_model=simplified_mixed_model(int_scores + ctrl_scores),
        ancova=simplified_ancova(intervention, control, exact=exact),
        classifications=classify_individuals(intervention, control),
        sample_sizes={"intervention": intervention.sample_size, "control": control.sample_size},
    )


def analyze_with_ancova(
    records: Sequence[TestRecord],
    group_assignments: Mapping[str, str],
    test_type: str,
    min_data_points: int = DEFAULT_MIN_DATA_POINTS,
    exact: bool = False,
    now: datetime | None = None,
) -> IndividualResponseResult:
    """Split one record pool by athlete -> "intervention"/"control" and analyze.

    Records of athletes without an assignment are ignored.
    """
    cohorts: dict[str, list[TestRecord]] = {"intervention": [], "control": []}
    unassigned = set()
    for r in records:
        cohort = group_assignments.get(r.athlete_id, "").strip().lower()
        if cohort in cohorts:
            cohorts[cohort].append(r)
        else:
            unassigned.add(r.athlete_id)
    if unassigned:
        logger.warning("Ignoring records of %d unassigned athletes", len(unassigned))
    return analyze_with_control_group(
        cohorts["intervention"],
        cohorts["control"],
        test_type,
        min_data_points=min_data_points,
        exact=exact,
        now=now,
    )
