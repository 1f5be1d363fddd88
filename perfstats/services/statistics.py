"""Statistics primitives shared by the validator and the analysis engines.

All functions are pure and total over numeric sequences. Degenerate input
(empty sequences, too few values, zero variance, zero denominators) never
raises; it resolves to a documented sentinel:

- 0.0 for any descriptive statistic, coefficient or derived threshold
- 1.0 for p-values (no evidence against the null)
- the input unchanged for trimming helpers that need more data

Standard deviations and variances are sample estimates (n - 1 denominator)
unless ddof=0 is passed.

References: Hopkins et al. (2009), Atkinson & Batterham (2015),
Shrout & Fleiss (1979), Koo & Li (2016), Tukey (1977).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
from scipy import stats as sps

# Two-sided 95% normal quantile
Z_95 = 1.96


@dataclass(frozen=True)
class RegressionResult:
    """Ordinary least squares fit y = slope * x + intercept."""
    slope: float
    intercept: float
    r_squared: float       # clamped to [0, 1]
    standard_error: float  # residual standard error of the estimate


@dataclass(frozen=True)
class TTestResult:
    """Welch two-sample t-test outcome."""
    t_statistic: float
    p_value: float
    degrees_of_freedom: float
    mean_difference: float
    standard_error: float
    method: str = "approximate"  # "approximate" | "exact"


class SWCMethod(str, Enum):
    COHEN = "cohen"            # 0.2 x between-subject SD (Cohen, 1988)
    HOPKINS = "hopkins"        # 0.2 x between-subject SD (Hopkins, 2017 update)
    CV = "cv"                  # 1.96 x typical error from the CV (Turner et al., 2015)
    INDIVIDUAL = "individual"  # 0.5 x SD of individual responses (Swinton et al., 2018)


def _arr(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------

def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(_arr(values)))


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(_arr(values)))


def variance(values: Sequence[float], ddof: int = 1) -> float:
    if len(values) <= ddof:
        return 0.0
    return float(np.var(_arr(values), ddof=ddof))


def standard_deviation(values: Sequence[float], ddof: int = 1) -> float:
    return math.sqrt(variance(values, ddof=ddof))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """SD / mean x 100, or 0.0 when the mean is zero."""
    m = mean(values)
    if m == 0:
        return 0.0
    return standard_deviation(values) / m * 100.0


def percentile(values: Sequence[float], pct: float) -> float:
    """Linear-interpolated percentile, pct in [0, 100]."""
    if len(values) == 0:
        return 0.0
    return float(np.percentile(_arr(values), min(100.0, max(0.0, pct))))


def skewness(values: Sequence[float]) -> float:
    """Adjusted Fisher-Pearson sample skewness; 0.0 below 3 values or with zero SD."""
    n = len(values)
    if n < 3:
        return 0.0
    sd = standard_deviation(values)
    if sd == 0:
        return 0.0
    z = (_arr(values) - mean(values)) / sd
    return float(np.sum(z ** 3) * (n / ((n - 1) * (n - 2))))


def kurtosis(values: Sequence[float]) -> float:
    """Sample excess kurtosis; 0.0 below 4 values or with zero SD."""
    n = len(values)
    if n < 4:
        return 0.0
    sd = standard_deviation(values)
    if sd == 0:
        return 0.0
    z = (_arr(values) - mean(values)) / sd
    lead = n * (n + 1) / ((n - 1) * (n - 2) * (n - 3))
    tail = 3 * (n - 1) ** 2 / ((n - 2) * (n - 3))
    return float(np.sum(z ** 4) * lead - tail)


def z_score(value: float, mu: float, sd: float) -> float:
    if sd == 0:
        return 0.0
    return (value - mu) / sd


def z_scores(values: Sequence[float]) -> list[float]:
    mu = mean(values)
    sd = standard_deviation(values)
    return [z_score(v, mu, sd) for v in values]


def normal_cdf(x: float, sd: float = 1.0) -> float:
    if sd <= 0:
        return 1.0 if x >= 0 else 0.0
    return float(sps.norm.cdf(x / sd))


# ---------------------------------------------------------------------------
# Association
# ---------------------------------------------------------------------------

def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson r. 0.0 means undefined: mismatched lengths, n < 2 or zero variance."""
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    xd = _arr(x) - mean(x)
    yd = _arr(y) - mean(y)
    denom = math.sqrt(float(np.sum(xd * xd)) * float(np.sum(yd * yd)))
    if denom == 0:
        return 0.0
    return float(np.sum(xd * yd)) / denom


def linear_regression(x: Sequence[float], y: Sequence[float]) -> RegressionResult:
    if len(x) != len(y) or len(x) == 0:
        return RegressionResult(slope=0.0, intercept=0.0, r_squared=0.0, standard_error=0.0)

    xa, ya = _arr(x), _arr(y)
    n = len(xa)
    mx, my = float(xa.mean()), float(ya.mean())
    sxx = float(np.sum((xa - mx) ** 2))
    sxy = float(np.sum((xa - mx) * (ya - my)))

    slope = sxy / sxx if sxx != 0 else 0.0
    intercept = my - slope * mx

    predicted = slope * xa + intercept
    ss_res = float(np.sum((ya - predicted) ** 2))
    ss_tot = float(np.sum((ya - my) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot != 0 else 0.0
    std_err = math.sqrt(ss_res / (n - 2)) if n > 2 else 0.0

    return RegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=min(1.0, max(0.0, r_squared)),
        standard_error=std_err,
    )


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

def _approximate_t_p_value(t_stat: float, df: float) -> float:
    # Legacy approximation kept for parity with previously issued reports:
    # normal tail for large df, fixed step table otherwise.
    abs_t = abs(t_stat)
    if df > 30:
        return 2.0 * (1.0 - normal_cdf(abs_t))
    if abs_t > 3.0:
        return 0.01
    if abs_t > 2.5:
        return 0.02
    if abs_t > 2.0:
        return 0.05
    if abs_t > 1.5:
        return 0.15
    if abs_t > 1.0:
        return 0.30
    return 0.50


def t_test(sample_a: Sequence[float], sample_b: Sequence[float], exact: bool = False) -> TTestResult:
    """Welch's unequal-variance t-test of mean(a) - mean(b).

    Fewer than 2 values in either sample, or zero pooled standard error,
    returns t = 0 and p = 1.
    """
    method = "exact" if exact else "approximate"
    n1, n2 = len(sample_a), len(sample_b)
    mean_diff = mean(sample_a) - mean(sample_b) if n1 and n2 else 0.0
    if n1 < 2 or n2 < 2:
        return TTestResult(0.0, 1.0, 0.0, mean_diff, 0.0, method)

    va = variance(sample_a) / n1
    vb = variance(sample_b) / n2
    se = math.sqrt(va + vb)
    if se == 0:
        return TTestResult(0.0, 1.0, 0.0, mean_diff, 0.0, method)

    t_stat = mean_diff / se
    df = (va + vb) ** 2 / (va ** 2 / (n1 - 1) + vb ** 2 / (n2 - 1))

    if exact:
        p_value = float(2.0 * sps.t.sf(abs(t_stat), df))
    else:
        p_value = _approximate_t_p_value(t_stat, df)

    return TTestResult(
        t_statistic=t_stat,
        p_value=min(1.0, max(0.0, p_value)),
        degrees_of_freedom=df,
        mean_difference=mean_diff,
        standard_error=se,
        method=method,
    )


# ---------------------------------------------------------------------------
# Reliability and meaningful change
# ---------------------------------------------------------------------------

def _icc_3_1(trial_1: np.ndarray, trial_2: np.ndarray) -> float:
    n = len(trial_1)
    k = 2
    if n < 3 or len(trial_2) != n:
        return 0.0
    subject_means = (trial_1 + trial_2) / 2
    grand_mean = float(subject_means.mean())
    msr = float(np.sum((subject_means - grand_mean) ** 2)) * k / (n - 1)
    mse = float(np.sum((trial_1 - subject_means) ** 2) + np.sum((trial_2 - subject_means) ** 2)) / (n * (k - 1))
    if msr == 0:
        return 0.0
    return min(1.0, max(0.0, (msr - mse) / msr))


def calculate_icc(values: Sequence[float]) -> float:
    """Split-half approximation of ICC(3,1), clamped to [0, 1].

    The series is cut into two equal halves treated as trial and retest of the
    same subjects; (MSR - MSE) / MSR compares between-subject to within-subject
    variance. Needs at least 6 values (3 pairs), otherwise 0.0.
    """
    if len(values) < 6:
        return 0.0
    arr = _arr(values)
    half = len(arr) // 2
    first, second = arr[:half], arr[half:]
    size = min(len(first), len(second))
    return _icc_3_1(first[:size], second[:size])


def standard_error_of_measurement(values: Sequence[float], icc: float) -> float:
    if len(values) == 0:
        return 0.0
    return standard_deviation(values) * math.sqrt(max(0.0, 1.0 - icc))


def calculate_mdc(values: Sequence[float], icc: float) -> float:
    """MDC95 = 1.96 x sqrt(2) x SD x sqrt(1 - ICC); 0.0 when ICC <= 0."""
    if len(values) == 0 or icc <= 0:
        return 0.0
    return Z_95 * math.sqrt(2.0) * standard_error_of_measurement(values, icc)


def typical_error(trial_1: Sequence[float], trial_2: Sequence[float]) -> float:
    """SD of paired differences / sqrt(2)."""
    if len(trial_1) != len(trial_2) or len(trial_1) == 0:
        return 0.0
    diffs = _arr(trial_1) - _arr(trial_2)
    return standard_deviation(diffs.tolist()) / math.sqrt(2.0)


def calculate_swc(values: Sequence[float], method: SWCMethod = SWCMethod.COHEN) -> float:
    """Smallest worthwhile change; Cohen's 0.2 x between-subject SD by default."""
    if len(values) == 0:
        return 0.0
    if method in (SWCMethod.COHEN, SWCMethod.HOPKINS):
        return 0.2 * standard_deviation(values)
    if method == SWCMethod.CV:
        te = coefficient_of_variation(values) / 100.0 * mean(values) / math.sqrt(2.0)
        return te * Z_95
    return 0.5 * standard_deviation(values)


# ---------------------------------------------------------------------------
# Outliers
# ---------------------------------------------------------------------------

def iqr_bounds(values: Sequence[float], threshold: float = 1.5) -> tuple[float, float]:
    """Tukey fences using nearest-rank quartiles (index floor(n*0.25), floor(n*0.75))."""
    if not values:
        return 0.0, 0.0
    ordered = sorted(values)
    q1 = ordered[int(len(ordered) * 0.25)]
    q3 = ordered[int(len(ordered) * 0.75)]
    iqr = q3 - q1
    return q1 - threshold * iqr, q3 + threshold * iqr


def remove_outliers(values: Sequence[float], threshold: float = 1.5) -> list[float]:
    """Drop values outside the IQR fences, keeping original order.

    Fewer than 4 values are returned unchanged.
    """
    if len(values) < 4:
        return list(values)
    lower, upper = iqr_bounds(values, threshold)
    return [v for v in values if lower <= v <= upper]
