"""Force-velocity mechanical profiling from sprint splits and loaded jumps.

Sprint profiles follow the macroscopic approach of Samozino et al. (2016):
interval velocities from timing-gate splits, accelerations from successive
velocities, V0 = 1.1 x peak observed velocity (plateau approximation) and
F0 = m x (peak acceleration + g).

Jump profiles use the loaded-jump method: mean jump height per external load
gives take-off velocity sqrt(2gh) and force m(g + v^2/2h); an OLS line of
force on velocity gives F0 (force intercept) and V0 (velocity intercept).

Both modalities share ForceVelocityProfile, whose Pmax is always F0 * V0 / 4.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Sequence

from perfstats.logging_config import log_context
from perfstats.services import statistics as st
from perfstats.services.records import (
    DEFAULT_BODY_MASS_KG,
    AnalysisError,
    AthleteProfile,
    ErrorKind,
    TestRecord,
)
from perfstats.services.thresholds import (
    FORCE_DEFICIT_N,
    HIGH_TRANSFERABILITY,
    INTEGRATED_TRANSFERABILITY,
    LOW_CROSS_MODAL_CONSISTENCY,
    LOW_CROSS_MODAL_CORRELATION,
    LOW_TRANSFERABILITY,
    MIN_MECHANICAL_EFFECTIVENESS,
    POWER_LEVELS,
    RFV_TARGET,
    SPEED_LEVELS,
    STRENGTH_LEVELS,
    VELOCITY_DEFICIT_MS,
    YOUTH_AGE,
)

logger = logging.getLogger(__name__)

G = 9.81
GATE_SPACING_M = 10.0
GATE_COUNT = 7
MIN_SPRINT_TRIALS = 3
MIN_JUMP_TRIALS = 4
MIN_LOAD_CONDITIONS = 3
REFERENCE_MAX_VELOCITY = 12.0  # m/s, elite sprint reference for the velocity index


class Modality(str, Enum):
    SPRINT = "sprint"
    JUMP = "jump"


class RecommendationCategory(str, Enum):
    FORCE = "force"
    VELOCITY = "velocity"
    BALANCE = "balance"
    EFFICIENCY = "efficiency"
    OPTIMAL_LOAD = "optimal_load"
    INTEGRATED = "integrated"


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Profile and result containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ForceVelocityProfile:
    """Mechanical capability profile. pmax is derived, never passed in."""
    f0: float                # N
    v0: float                # m/s
    slope: float             # -F0/V0
    rfv_index: float         # 0-100, closeness to the optimal slope
    velocity_data: dict[float, float] = field(default_factory=dict)      # mid-time -> m/s
    acceleration_data: dict[float, float] = field(default_factory=dict)  # mid-time -> m/s^2
    pmax: float = field(init=False)  # W

    def __post_init__(self):
        object.__setattr__(self, "pmax", self.f0 * self.v0 / 4.0)


@dataclass(frozen=True)
class MechanicalEffectiveness:
    drf: float                   # horizontal force ratio proxy, 0.6-0.9
    power_efficiency: float
    velocity_optimality: float
    overall_effectiveness: float


@dataclass(frozen=True)
class AccelerationPhase:
    time_10m: float
    time_20m: float
    avg_acceleration: float
    consistency: float


@dataclass(frozen=True)
class MaxVelocityPhase:
    split_20_30m: float
    max_velocity: float
    velocity_index: float


@dataclass(frozen=True)
class VelocityMaintenance:
    split_30_40m: float
    velocity_decrement: float
    maintenance_index: float


@dataclass(frozen=True)
class SprintKinematics:
    acceleration_phase: AccelerationPhase
    max_velocity_phase: MaxVelocityPhase
    velocity_maintenance: VelocityMaintenance
    total_time_40m: float


@dataclass(frozen=True)
class PowerLoadProfile:
    power_by_load: dict[float, float]  # kg -> W
    max_power: float
    max_power_load: float
    power_deficit: float               # (max - unloaded) / unloaded


@dataclass(frozen=True)
class OptimalLoad:
    load_kg: float
    optimal_force: float
    optimal_velocity: float
    expected_power: float


@dataclass(frozen=True)
class ProfileComparison:
    force_percentile: float
    velocity_percentile: float
    power_percentile: float
    overall_ranking: float
    strength_level: str
    speed_level: str
    power_level: str


@dataclass(frozen=True)
class FVRecommendation:
    category: RecommendationCategory
    priority: RecommendationPriority
    title: str
    description: str
    actions: list[str]
    expected_improvement: str = ""
    timeframe: str = ""


@dataclass(frozen=True)
class FVProfilingResult:
    modality: Modality
    athlete_id: str
    body_mass: float
    analysis_date: datetime
    profile: ForceVelocityProfile | None = None
    mechanical_effectiveness: MechanicalEffectiveness | None = None
    kinematics: SprintKinematics | None = None
    power_load_profile: PowerLoadProfile | None = None
    optimal_load: OptimalLoad | None = None
    comparison: ProfileComparison | None = None
    recommendations: list[FVRecommendation] = field(default_factory=list)
    error: AnalysisError | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failed(
        cls,
        modality: Modality,
        kind: ErrorKind,
        message: str,
        athlete_id: str = "",
        now: datetime | None = None,
    ) -> FVProfilingResult:
        return cls(
            modality=modality,
            athlete_id=athlete_id,
            body_mass=0.0,
            analysis_date=now if now is not None else datetime.now(timezone.utc),
            error=AnalysisError(kind, message),
        )


@dataclass(frozen=True)
class CrossModalAnalysis:
    correlation: float
    consistency: float
    transferability: float
    modal_specificity: dict[str, bool]
    recommendations: list[str]


@dataclass(frozen=True)
class ComprehensiveFVResult:
    athlete_id: str
    sprint: FVProfilingResult
    jump: FVProfilingResult
    cross_modal: CrossModalAnalysis
    integrated_recommendations: list[FVRecommendation]
    analysis_date: datetime


# ---------------------------------------------------------------------------
# Shared profile math
# ---------------------------------------------------------------------------

def rfv_index(f0: float, v0: float, body_mass: float) -> float:
    """Closeness (0-100) of the actual slope -F0/V0 to the optimal -m*g/V0."""
    if v0 == 0 or body_mass <= 0:
        return 0.0
    theoretical = -(body_mass * G) / v0
    actual = -f0 / v0
    index = 100.0 * (1.0 - abs(actual - theoretical) / abs(theoretical))
    return min(100.0, max(0.0, index))


def build_profile(
    f0: float,
    v0: float,
    body_mass: float,
    velocity_data: Mapping[float, float] | None = None,
    acceleration_data: Mapping[float, float] | None = None,
) -> ForceVelocityProfile:
    return ForceVelocityProfile(
        f0=f0,
        v0=v0,
        slope=-f0 / v0 if v0 != 0 else 0.0,
        rfv_index=rfv_index(f0, v0, body_mass),
        velocity_data=dict(velocity_data or {}),
        acceleration_data=dict(acceleration_data or {}),
    )


def mechanical_effectiveness(profile: ForceVelocityProfile) -> MechanicalEffectiveness:
    """DRF is estimated from the RFV index; no 3-D force decomposition is available."""
    drf = 0.6 + 0.3 * profile.rfv_index / 100.0
    fv = profile.f0 * profile.v0
    power_efficiency = profile.pmax / (fv / 4.0) if fv != 0 else 0.0
    velocity_optimality = 1.0 - abs(profile.pmax / fv - 0.5) if fv != 0 else 0.0
    return MechanicalEffectiveness(
        drf=drf,
        power_efficiency=power_efficiency,
        velocity_optimality=velocity_optimality,
        overall_effectiveness=(drf + power_efficiency) / 2.0,
    )


def optimal_load(profile: ForceVelocityProfile, body_mass: float) -> OptimalLoad:
    """External load at the power apex, where F = F0/2 and V = V0/2."""
    force = profile.f0 / 2.0
    velocity = profile.v0 / 2.0
    return OptimalLoad(
        load_kg=max(0.0, (force - body_mass * G) / G),
        optimal_force=force,
        optimal_velocity=velocity,
        expected_power=force * velocity,
    )


# ---------------------------------------------------------------------------
# Normative comparison
# ---------------------------------------------------------------------------

# Reference distributions: force (N), velocity (m/s), power (W)
_NORMS = {
    "male": (
        [800.0, 900.0, 1000.0, 1100.0, 1200.0],
        [8.5, 9.0, 9.5, 10.0, 10.5],
        [1800.0, 2000.0, 2250.0, 2500.0, 2750.0],
    ),
    "female": (
        [600.0, 700.0, 800.0, 900.0, 1000.0],
        [7.5, 8.0, 8.5, 9.0, 9.5],
        [1300.0, 1500.0, 1700.0, 1900.0, 2100.0],
    ),
}


def norm_percentile(value: float, distribution: Sequence[float]) -> float:
    ordered = sorted(distribution)
    for idx, ref in enumerate(ordered):
        if ref >= value:
            return idx / len(ordered) * 100.0
    return 100.0


def compare_with_norms(profile: ForceVelocityProfile, athlete: AthleteProfile) -> ProfileComparison:
    force_norms, velocity_norms, power_norms = _NORMS.get(athlete.sex, _NORMS["male"])
    force_pct = norm_percentile(profile.f0, force_norms)
    velocity_pct = norm_percentile(profile.v0, velocity_norms)
    power_pct = norm_percentile(profile.pmax, power_norms)
    return ProfileComparison(
        force_percentile=force_pct,
        velocity_percentile=velocity_pct,
        power_percentile=power_pct,
        overall_ranking=(force_pct + velocity_pct + power_pct) / 3.0,
        strength_level=STRENGTH_LEVELS.classify(force_pct),
        speed_level=SPEED_LEVELS.classify(velocity_pct),
        power_level=POWER_LEVELS.classify(power_pct),
    )


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def _deficit_threshold(table: dict[str, tuple[float, float]], athlete: AthleteProfile) -> float:
    youth, adult = table.get(athlete.sex, table["male"])
    age = athlete.age if athlete.age is not None else 25
    return youth if age < YOUTH_AGE else adult


def force_threshold(athlete: AthleteProfile) -> float:
    return _deficit_threshold(FORCE_DEFICIT_N, athlete)


def velocity_threshold(athlete: AthleteProfile) -> float:
    return _deficit_threshold(VELOCITY_DEFICIT_MS, athlete)


def sprint_recommendations(
    profile: ForceVelocityProfile,
    effectiveness: MechanicalEffectiveness,
    athlete: AthleteProfile,
) -> list[FVRecommendation]:
    recs = []
    if profile.f0 < force_threshold(athlete):
        recs.append(FVRecommendation(
            category=RecommendationCategory.FORCE,
            priority=RecommendationPriority.HIGH,
            title="Develop maximal force",
            description=f"Low F0 detected ({profile.f0:.0f} N)",
            actions=[
                "Heavy squats (85-95% 1RM)",
                "Isometric strength training",
                "Contrast plyometric training",
            ],
            expected_improvement="8-15% increase in F0",
            timeframe="8-12 weeks",
        ))
    if profile.v0 < velocity_threshold(athlete):
        recs.append(FVRecommendation(
            category=RecommendationCategory.VELOCITY,
            priority=RecommendationPriority.HIGH,
            title="Develop maximal velocity",
            description=f"Low V0 detected ({profile.v0:.1f} m/s)",
            actions=[
                "Maximal velocity sprints (95-100%)",
                "Overspeed training",
                "Technique-focused sprint drills",
            ],
            expected_improvement="3-8% increase in V0",
            timeframe="6-10 weeks",
        ))
    if profile.rfv_index < RFV_TARGET:
        recs.append(FVRecommendation(
            category=RecommendationCategory.BALANCE,
            priority=RecommendationPriority.MEDIUM,
            title="Optimize the F-V profile",
            description=f"Profile imbalance (RFV: {profile.rfv_index:.1f}%)",
            actions=[
                "Balanced force-velocity training distribution",
                "Target the weaker quality",
                "Profile-specific exercises",
            ],
            expected_improvement="5-10% increase in RFV index",
            timeframe="4-8 weeks",
        ))
    if effectiveness.overall_effectiveness < MIN_MECHANICAL_EFFECTIVENESS:
        recs.append(FVRecommendation(
            category=RecommendationCategory.EFFICIENCY,
            priority=RecommendationPriority.MEDIUM,
            title="Improve mechanical effectiveness",
            description=f"Low mechanical effectiveness ({effectiveness.overall_effectiveness * 100:.0f}%)",
            actions=[
                "Sprint technique work",
                "Horizontal power training",
                "Running kinematics optimization",
            ],
            expected_improvement="5-12% increase in mechanical effectiveness",
            timeframe="6-12 weeks",
        ))
    return recs


def jump_recommendations(load: OptimalLoad) -> list[FVRecommendation]:
    return [FVRecommendation(
        category=RecommendationCategory.OPTIMAL_LOAD,
        priority=RecommendationPriority.HIGH,
        title="Optimal load training",
        description=f"Use {load.load_kg:.1f} kg of external load for maximal power",
        actions=[
            f"Weighted jump squats with {load.load_kg:.1f} kg",
            "Jump squats at optimal load, 3 x 5 repetitions",
            "2-3 optimal-load sessions per week",
        ],
        expected_improvement="5-12% increase in maximal power",
        timeframe="6-8 weeks",
    )]


# ---------------------------------------------------------------------------
# Sprint modality
# ---------------------------------------------------------------------------

def gate_splits(record: TestRecord) -> dict[float, float]:
    """Cumulative times per distance from gate_1..gate_7 metrics (10 m spacing)."""
    splits = {}
    for gate in range(1, GATE_COUNT + 1):
        t = record.metrics.get(f"gate_{gate}")
        if t is not None and t > 0:
            splits[gate * GATE_SPACING_M] = float(t)
    return splits


def sprint_profile_from_splits(splits: Mapping[float, float], body_mass: float) -> ForceVelocityProfile:
    """Profile from one run's cumulative split times keyed by distance (m)."""
    points = sorted((float(d), float(t)) for d, t in splits.items())

    velocities: dict[float, float] = {}
    for (d1, t1), (d2, t2) in zip(points, points[1:]):
        dt = t2 - t1
        if dt > 0:
            velocities[(t1 + t2) / 2.0] = (d2 - d1) / dt

    accelerations: dict[float, float] = {}
    v_points = sorted(velocities.items())
    for (t1, v1), (t2, v2) in zip(v_points, v_points[1:]):
        dt = t2 - t1
        if dt > 0:
            accelerations[(t1 + t2) / 2.0] = (v2 - v1) / dt

    v0 = max(velocities.values()) * 1.1 if velocities else 0.0
    f0 = body_mass * (max(accelerations.values()) + G) if accelerations else 0.0
    return build_profile(f0, v0, body_mass, velocities, accelerations)


def sprint_kinematics(splits: Mapping[float, float]) -> SprintKinematics:
    t10 = splits.get(10.0, 0.0)
    t20 = splits.get(20.0, 0.0)
    t30 = splits.get(30.0, 0.0)
    t40 = splits.get(40.0, 0.0)

    acceleration = AccelerationPhase(
        time_10m=t10,
        time_20m=t20,
        avg_acceleration=20.0 / t20 ** 2 if t20 > 0 else 0.0,
        consistency=1.0 - abs(t20 - 2 * t10) / t20 if t10 > 0 and t20 > 0 else 0.0,
    )

    split_20_30 = t30 - t20 if t20 > 0 and t30 > 0 else 0.0
    v_20_30 = 10.0 / split_20_30 if split_20_30 > 0 else 0.0
    max_velocity = MaxVelocityPhase(
        split_20_30m=split_20_30,
        max_velocity=v_20_30,
        velocity_index=v_20_30 / REFERENCE_MAX_VELOCITY,
    )

    split_30_40 = t40 - t30 if t30 > 0 and t40 > 0 else 0.0
    if v_20_30 > 0 and split_30_40 > 0:
        v_30_40 = 10.0 / split_30_40
        decrement = (v_20_30 - v_30_40) / v_20_30
        maintenance = VelocityMaintenance(split_30_40, decrement, 1.0 - decrement)
    else:
        maintenance = VelocityMaintenance(0.0, 0.0, 0.0)

    return SprintKinematics(
        acceleration_phase=acceleration,
        max_velocity_phase=max_velocity,
        velocity_maintenance=maintenance,
        total_time_40m=t40,
    )


def _resolve_mass(body_mass: float | None, athlete: AthleteProfile) -> float:
    if body_mass is not None and body_mass > 0:
        return body_mass
    if athlete.body_mass_kg is not None and athlete.body_mass_kg > 0:
        return athlete.body_mass_kg
    return DEFAULT_BODY_MASS_KG


def analyze_sprint_profile(
    records: Sequence[TestRecord],
    athlete: AthleteProfile,
    body_mass: float | None = None,
    min_data_points: int = MIN_SPRINT_TRIALS,
    now: datetime | None = None,
) -> FVProfilingResult:
    """Profile the athlete's fastest 40 m run among valid sprint trials."""
    analysis_date = now if now is not None else datetime.now(timezone.utc)
    valid = [
        r for r in records
        if "sprint" in r.test_type.lower() and r.score is not None and r.score > 0
    ]
    if len(valid) < min_data_points:
        logger.warning("Sprint profile for %s: %d valid trials", athlete.athlete_id, len(valid))
        return FVProfilingResult.failed(
            Modality.SPRINT,
            ErrorKind.INSUFFICIENT_DATA,
            f"At least {min_data_points} valid sprint tests required (found {len(valid)})",
            athlete.athlete_id,
            analysis_date,
        )

    runs = [s for s in (gate_splits(r) for r in valid) if len(s) >= 3]
    if not runs:
        return FVProfilingResult.failed(
            Modality.SPRINT,
            ErrorKind.INSUFFICIENT_DATA,
            "No sprint trial has split times for at least 3 gates",
            athlete.athlete_id,
            analysis_date,
        )

    best = min(runs, key=lambda s: s.get(40.0, math.inf))
    mass = _resolve_mass(body_mass, athlete)
    profile = sprint_profile_from_splits(best, mass)
    effectiveness = mechanical_effectiveness(profile)

    logger.info(
        "Sprint profile %s: F0=%.1f N V0=%.2f m/s Pmax=%.0f W",
        athlete.athlete_id, profile.f0, profile.v0, profile.pmax,
        extra=log_context(athlete_id=athlete.athlete_id, modality=Modality.SPRINT.value),
    )
    return FVProfilingResult(
        modality=Modality.SPRINT,
        athlete_id=athlete.athlete_id,
        body_mass=mass,
        analysis_date=analysis_date,
        profile=profile,
        mechanical_effectiveness=effectiveness,
        kinematics=sprint_kinematics(best),
        comparison=compare_with_norms(profile, athlete),
        recommendations=sprint_recommendations(profile, effectiveness, athlete),
    )


# ---------------------------------------------------------------------------
# Jump modality
# ---------------------------------------------------------------------------

def jump_velocity(height_cm: float) -> float:
    return math.sqrt(2.0 * G * height_cm / 100.0) if height_cm > 0 else 0.0


def jump_force(body_mass: float, load_kg: float, height_cm: float) -> float:
    """Mean push-off force m(g + v^2/2h) of the total moved mass."""
    if height_cm <= 0:
        return 0.0
    v = jump_velocity(height_cm)
    return (body_mass + load_kg) * (G + v * v / (2.0 * height_cm / 100.0))


def power_load_profile(power_by_load: Mapping[float, float]) -> PowerLoadProfile:
    loads = sorted(power_by_load)
    best_load = max(loads, key=lambda load: power_by_load[load])
    max_power = power_by_load[best_load]
    unloaded = power_by_load.get(0.0, 0.0)
    return PowerLoadProfile(
        power_by_load={load: power_by_load[load] for load in loads},
        max_power=max_power,
        max_power_load=best_load,
        power_deficit=(max_power - unloaded) / unloaded if unloaded > 0 else 0.0,
    )


def analyze_jump_profile(
    records: Sequence[TestRecord],
    athlete: AthleteProfile,
    body_mass: float | None = None,
    min_data_points: int = MIN_JUMP_TRIALS,
    now: datetime | None = None,
) -> FVProfilingResult:
    """Loaded-jump profile; scores are jump heights in cm, load in `additional_load`."""
    analysis_date = now if now is not None else datetime.now(timezone.utc)
    valid = [r for r in records if r.score is not None and r.score > 0]
    if len(valid) < min_data_points:
        logger.warning("Jump profile for %s: %d valid trials", athlete.athlete_id, len(valid))
        return FVProfilingResult.failed(
            Modality.JUMP,
            ErrorKind.INSUFFICIENT_DATA,
            f"At least {min_data_points} loaded jump tests required (found {len(valid)})",
            athlete.athlete_id,
            analysis_date,
        )

    heights_by_load: dict[float, list[float]] = {}
    for r in valid:
        load = float(r.metrics.get("additional_load", 0.0))
        heights_by_load.setdefault(load, []).append(float(r.score))
    if len(heights_by_load) < MIN_LOAD_CONDITIONS:
        return FVProfilingResult.failed(
            Modality.JUMP,
            ErrorKind.INSUFFICIENT_DATA,
            f"At least {MIN_LOAD_CONDITIONS} distinct load conditions required (found {len(heights_by_load)})",
            athlete.athlete_id,
            analysis_date,
        )

    mass = _resolve_mass(body_mass, athlete)
    loads = sorted(heights_by_load)
    velocities, forces, power_by_load = [], [], {}
    for load in loads:
        height = st.mean(heights_by_load[load])
        v = jump_velocity(height)
        f = jump_force(mass, load, height)
        velocities.append(v)
        forces.append(f)
        power_by_load[load] = f * v

    fit = st.linear_regression(velocities, forces)
    if fit.slope >= 0:
        logger.warning("Jump profile for %s: non-negative F-V slope %.2f", athlete.athlete_id, fit.slope)
        return FVProfilingResult.failed(
            Modality.JUMP,
            ErrorKind.DEGENERATE_DATA,
            "Force does not decrease with velocity across load conditions",
            athlete.athlete_id,
            analysis_date,
        )

    f0 = fit.intercept
    v0 = -fit.intercept / fit.slope
    profile = build_profile(f0, v0, mass)
    load = optimal_load(profile, mass)

    logger.info(
        "Jump profile %s: F0=%.1f N V0=%.2f m/s optimal load=%.1f kg",
        athlete.athlete_id, profile.f0, profile.v0, load.load_kg,
        extra=log_context(athlete_id=athlete.athlete_id, modality=Modality.JUMP.value),
    )
    return FVProfilingResult(
        modality=Modality.JUMP,
        athlete_id=athlete.athlete_id,
        body_mass=mass,
        analysis_date=analysis_date,
        profile=profile,
        mechanical_effectiveness=mechanical_effectiveness(profile),
        power_load_profile=power_load_profile(power_by_load),
        optimal_load=load,
        comparison=compare_with_norms(profile, athlete),
        recommendations=jump_recommendations(load),
    )


# ---------------------------------------------------------------------------
# Cross-modal comparison
# ---------------------------------------------------------------------------

def _ratio(a: float, b: float) -> float:
    hi = max(a, b)
    return min(a, b) / hi if hi > 0 else 0.0


def _consistency(a: float, b: float) -> float:
    hi = max(a, b)
    return 1.0 - abs(a - b) / hi if hi > 0 else 0.0


def cross_modal_analysis(sprint: FVProfilingResult, jump: FVProfilingResult) -> CrossModalAnalysis:
    if sprint.has_error or jump.has_error or sprint.profile is None or jump.profile is None:
        return CrossModalAnalysis(
            correlation=0.0,
            consistency=0.0,
            transferability=0.0,
            modal_specificity={},
            recommendations=["Cross-modal analysis requires sufficient data for both sprint and jump tests"],
        )

    s, j = sprint.profile, jump.profile
    correlation = (_ratio(s.f0, j.f0) + _ratio(s.v0, j.v0) + _ratio(s.pmax, j.pmax)) / 3.0
    consistency = (_consistency(s.f0, j.f0) + _consistency(s.v0, j.v0)) / 2.0
    rfv_similarity = 1.0 - abs(s.rfv_index - j.rfv_index) / 100.0
    transferability = (rfv_similarity + _ratio(s.pmax, j.pmax)) / 2.0

    recs = []
    if correlation < LOW_CROSS_MODAL_CORRELATION:
        recs.append("Modality-specific training required - low cross-modal correlation")
    if consistency < LOW_CROSS_MODAL_CONSISTENCY:
        recs.append("Use combined training protocols to improve F-V profile consistency")
    if transferability > HIGH_TRANSFERABILITY:
        recs.append("High transfer capacity - cross-training will be effective")
    elif transferability < LOW_TRANSFERABILITY:
        recs.append("Low transfer capacity - focus on modality-specific training")

    return CrossModalAnalysis(
        correlation=correlation,
        consistency=consistency,
        transferability=transferability,
        modal_specificity={
            "sprint_force_dominance": s.f0 > j.f0,
            "jump_power_dominance": j.pmax > s.pmax,
        },
        recommendations=recs,
    )


def integrated_recommendations(cross_modal: CrossModalAnalysis) -> list[FVRecommendation]:
    if cross_modal.transferability <= INTEGRATED_TRANSFERABILITY:
        return []
    return [FVRecommendation(
        category=RecommendationCategory.INTEGRATED,
        priority=RecommendationPriority.HIGH,
        title="Combined F-V training approach",
        description="High transfer capacity makes combined sprint and jump training effective",
        actions=[
            "Combine sprint and jump work within the same session",
            "Periodize around the F-V profile targets",
            "Use cross-modal testing protocols",
        ],
    )]


def analyze_comprehensive_profile(
    sprint_records: Sequence[TestRecord],
    jump_records: Sequence[TestRecord],
    athlete: AthleteProfile,
    body_mass: float | None = None,
    now: datetime | None = None,
) -> ComprehensiveFVResult:
    """Run both modalities and compare them. Each modality may carry its own error."""
    analysis_date = now if now is not None else datetime.now(timezone.utc)
    sprint = analyze_sprint_profile(sprint_records, athlete, body_mass, now=analysis_date)
    jump = analyze_jump_profile(jump_records, athlete, body_mass, now=analysis_date)
    cross = cross_modal_analysis(sprint, jump)
    return ComprehensiveFVResult(
        athlete_id=athlete.athlete_id,
        sprint=sprint,
        jump=jump,
        cross_modal=cross,
        integrated_recommendations=integrated_recommendations(cross),
        analysis_date=analysis_date,
    )
