"""Named classification ladders used across the analysis services.

Each ladder is an ordered tuple of (lower bound, label) pairs checked from
the top; the first bound the value reaches (>=) wins, otherwise the ladder's
floor label applies. Keeping the literal cut-points here means a methodology
update touches one table, not the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

L = TypeVar("L")


@dataclass(frozen=True)
class Ladder(Generic[L]):
    steps: tuple[tuple[float, L], ...]
    floor: L
    strict: bool = False  # compare with > instead of >=

    def classify(self, value: float) -> L:
        for bound, label in self.steps:
            if (value > bound) if self.strict else (value >= bound):
                return label
        return self.floor


# Data quality (overall weighted score)
QUALITY_LEVELS = Ladder(
    steps=((0.9, "excellent"), (0.8, "good"), (0.6, "acceptable"), (0.4, "poor")),
    floor="insufficient",
)

# ICC interpretation (Koo & Li, 2016)
ICC_INTERPRETATION = Ladder(
    steps=(
        (0.90, "Excellent reliability"),
        (0.75, "Good reliability"),
        (0.50, "Moderate reliability"),
    ),
    floor="Poor reliability",
)

# Mathematical coupling risk: mean within-subject SD / mean |change|
COUPLING_RISK = Ladder(
    steps=(
        (0.5, "high"),
        (0.3, "moderate"),
        (0.1, "low"),
    ),
    floor="minimal",
    strict=True,
)

COUPLING_RISK_DESCRIPTIONS = {
    "high": "High risk - measurement error is large relative to the change",
    "moderate": "Moderate risk - interpret individual responses with care",
    "low": "Low risk - acceptable level",
    "minimal": "Minimal risk - analysis is reliable",
}

# Regression-to-the-mean magnitude: max(0, -r(baseline, change))
REGRESSION_TO_MEAN = Ladder(
    steps=(
        (0.5, "Strong regression-to-the-mean effect - results may be misleading"),
        (0.3, "Moderate regression-to-the-mean effect - control comparison is critical"),
        (0.1, "Mild regression-to-the-mean effect - within normal range"),
    ),
    floor="Minimal regression-to-the-mean effect",
    strict=True,
)

# Cohen's d magnitude labels
EFFECT_SIZE = Ladder(
    steps=((0.8, "large"), (0.5, "moderate"), (0.2, "small")),
    floor="negligible",
    strict=True,
)

# Normative percentile bands for force-velocity comparisons
STRENGTH_LEVELS = Ladder(
    steps=((90, "elite"), (75, "very good"), (50, "good"), (25, "average")),
    floor="needs development",
)

SPEED_LEVELS = Ladder(
    steps=((90, "very fast"), (75, "fast"), (50, "moderately fast"), (25, "average")),
    floor="slow",
)

POWER_LEVELS = Ladder(
    steps=((90, "very powerful"), (75, "powerful"), (50, "moderately powerful"), (25, "average")),
    floor="weak",
)

# Responder classification: multiplier on the control-group typical error
RESPONDER_Z = 1.96

# Flag severity penalties
REALTIME_SEVERITY_PENALTY = {"high": 0.3, "medium": 0.1, "low": 0.05}
BATCH_SEVERITY_PENALTY = {"high": 0.2, "medium": 0.1, "low": 0.05}

# Artifact analysis
RTM_SIGNIFICANT = 0.3           # RTM magnitude above which the effect is reported significant
ARTIFACT_COUPLING_RISK = 0.3    # coupling risk above which artifacts are flagged
ARTIFACT_RTM_MAGNITUDE = 0.5    # RTM magnitude above which artifacts are flagged

# Force-velocity deficit thresholds by sex: (youth, adult); youth is age < YOUTH_AGE
YOUTH_AGE = 20
FORCE_DEFICIT_N = {"male": (800.0, 900.0), "female": (600.0, 700.0)}
VELOCITY_DEFICIT_MS = {"male": (8.5, 9.0), "female": (7.5, 8.0)}
RFV_TARGET = 90.0               # RFV index below which the profile is imbalanced
MIN_MECHANICAL_EFFECTIVENESS = 0.75

# Cross-modal comparison
LOW_CROSS_MODAL_CORRELATION = 0.6
LOW_CROSS_MODAL_CONSISTENCY = 0.7
HIGH_TRANSFERABILITY = 0.8
LOW_TRANSFERABILITY = 0.6
INTEGRATED_TRANSFERABILITY = 0.7  # strictly above this, combined training is recommended
