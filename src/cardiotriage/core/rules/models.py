"""Rule-set models — every threshold and weight the pipeline consults.

A ``RiskRules`` instance is built once (defaults below, or a YAML override via
``cardiotriage.core.rules.loader``) and passed explicitly into each pipeline
stage. All dataclasses are frozen; swapping guideline versions means passing a
different instance, never mutating this one.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Clinical thresholds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EjectionFractionRules:
    """LVEF bands (%), lower bound of each band is exclusive of the band below."""

    severe: float = 35.0            # < 35: severe systolic dysfunction
    moderate: float = 45.0          # 35-44: moderate dysfunction
    mildly_reduced: float = 50.0    # 45-49: mildly reduced
    normal: float = 55.0            # >= 55: normal
    # Extraction: "typical" sub-range preferred when patterns compete
    typical_low: float = 45.0
    typical_high: float = 75.0
    plausible_low: float = 10.0
    plausible_high: float = 85.0
    points_severe: int = 8
    points_moderate: int = 5
    points_mild: int = 3
    points_borderline: int = 1


@dataclass(frozen=True)
class BloodPressureRules:
    """2017 ACC/AHA hypertension bands (mmHg)."""

    crisis_systolic: float = 180.0
    crisis_diastolic: float = 110.0
    stage2_systolic: float = 140.0
    stage2_diastolic: float = 90.0
    stage1_systolic: float = 130.0
    stage1_diastolic: float = 80.0
    elevated_systolic: float = 120.0
    points_crisis: int = 6
    points_stage2: int = 4
    points_stage1: int = 2
    points_elevated: int = 1


@dataclass(frozen=True)
class PulmonaryPressureRules:
    """PASP bands (mmHg) and TR velocity bands (m/s)."""

    severe: float = 60.0
    moderate: float = 50.0
    elevated: float = 40.0
    points_severe: int = 4
    points_moderate: int = 3
    points_elevated: int = 1
    tr_velocity_high: float = 3.4
    tr_velocity_intermediate: float = 2.8


@dataclass(frozen=True)
class LipidRules:
    """LDL / HDL / total cholesterol bands (mg/dL)."""

    ldl_very_high: float = 190.0
    ldl_high: float = 160.0
    ldl_borderline_high: float = 130.0
    ldl_near_optimal: float = 100.0
    points_ldl_very_high: int = 8
    points_ldl_high: int = 6
    points_ldl_borderline_high: int = 4
    points_ldl_near_optimal: int = 2
    hdl_protective: float = 60.0
    hdl_low_male: float = 40.0
    hdl_low_female: float = 50.0
    hdl_very_low: float = 35.0
    points_hdl_protective: int = -2
    points_hdl_low: int = 2
    points_hdl_very_low: int = 4
    cholesterol_high: float = 240.0
    cholesterol_borderline_high: float = 200.0


@dataclass(frozen=True)
class GlucoseRules:
    """Fasting blood sugar bands (mg/dL)."""

    diabetes: float = 126.0
    prediabetes: float = 100.0
    points_diabetes_range: int = 4
    points_prediabetes: int = 2


@dataclass(frozen=True)
class BodyCompositionRules:
    """BMI bands, sex-specific waist thresholds and obesity interactions."""

    bmi_underweight: float = 18.5
    bmi_overweight: float = 25.0
    bmi_obese_class1: float = 30.0
    bmi_obese_class2: float = 35.0
    points_underweight: int = 1
    points_overweight: int = 2
    points_obese_class1: int = 4
    points_obese_class2: int = 6
    waist_male_cm: float = 102.0
    waist_female_cm: float = 88.0
    points_abdominal_obesity: int = 2
    points_diabetes_interaction: int = 3
    points_smoking_interaction: int = 2


@dataclass(frozen=True)
class AgeBand:
    """Age band: applies while ``age < upper`` (``None`` = open-ended)."""

    upper: float | None
    points: int
    label: str


def _default_age_bands() -> tuple[AgeBand, ...]:
    return (
        AgeBand(upper=30, points=-6, label="Young"),
        AgeBand(upper=40, points=-3, label="Low risk"),
        AgeBand(upper=50, points=0, label="Baseline"),
        AgeBand(upper=60, points=2, label="Moderate risk"),
        AgeBand(upper=70, points=4, label="Elevated risk"),
        AgeBand(upper=None, points=6, label="High risk"),
    )


@dataclass(frozen=True)
class RiskFactorPoints:
    """Flat penalties for boolean risk factors."""

    diabetes: int = 12
    smoking: int = 10
    family_history: int = 3


# ---------------------------------------------------------------------------
# Normalisation, categorisation, confidence, triage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizationRules:
    """Point total -> percent conversion."""

    max_points: float = 45.0
    floor_percent: float = 5.0
    ceiling_percent: float = 100.0
    young_age_limit: float = 25.0
    young_age_adjustment: float = 10.0


@dataclass(frozen=True)
class CategoryCutoffs:
    """Lower bounds (percent) of each category.

    ``high_inclusive`` selects ``>=`` vs ``>`` for the High boundary, since one
    published cutoff set uses a strict bound there.
    """

    high: float = 80.0
    moderate: float = 50.0
    low: float = 20.0
    high_inclusive: bool = True


@dataclass(frozen=True)
class ConfidenceRules:
    """Weights, penalties and bounds of the confidence model."""

    completeness_weight: float = 0.4
    key_marker_weight: float = 0.4
    context_weight: float = 0.2
    ef_marker_weight: float = 0.4
    bp_marker_weight: float = 0.35
    lipid_marker_weight: float = 0.25
    # Clinical context bands, checked highest first against the normalised score
    context_base: float = 0.35
    context_bands: tuple[tuple[float, float], ...] = ((10.0, 0.85), (6.0, 0.65), (3.0, 0.5))
    critical_finding_boost: float = 0.15
    critical_finding_ef_below: float = 40.0
    critical_finding_systolic_above: float = 160.0
    critical_finding_pasp_above: float = 40.0
    criticality_ef: float = 0.4
    criticality_bp_crisis: float = 0.3
    criticality_pasp: float = 0.3
    criticality_share: float = 0.5
    good_data_completeness: float = 0.6
    decisive_high_percent: float = 12.0
    decisive_low_percent: float = 2.0
    decisive_adjustment: float = 0.1
    # Multiplicative penalties
    missing_ef_and_bp: float = 0.85
    missing_ef: float = 0.95
    missing_bp: float = 0.98
    missing_demographics: float = 0.9
    # Bounds
    cap: float = 0.9
    floor_with_data: float = 0.15
    floor_empty: float = 0.05


@dataclass(frozen=True)
class TriageScoreCutoffs:
    """Normalised percent cutoffs used by score-driven triage rules."""

    very_high: float = 85.0
    high: float = 65.0
    moderate: float = 40.0
    low: float = 20.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskRules:
    """A complete, named rule set."""

    id: str
    version: str
    display_name: str
    description: str
    ejection_fraction: EjectionFractionRules = field(default_factory=EjectionFractionRules)
    blood_pressure: BloodPressureRules = field(default_factory=BloodPressureRules)
    pulmonary: PulmonaryPressureRules = field(default_factory=PulmonaryPressureRules)
    lipids: LipidRules = field(default_factory=LipidRules)
    glucose: GlucoseRules = field(default_factory=GlucoseRules)
    body: BodyCompositionRules = field(default_factory=BodyCompositionRules)
    age_bands: tuple[AgeBand, ...] = field(default_factory=_default_age_bands)
    risk_factors: RiskFactorPoints = field(default_factory=RiskFactorPoints)
    normalization: NormalizationRules = field(default_factory=NormalizationRules)
    categories: CategoryCutoffs = field(default_factory=CategoryCutoffs)
    confidence: ConfidenceRules = field(default_factory=ConfidenceRules)
    triage: TriageScoreCutoffs = field(default_factory=TriageScoreCutoffs)
    tags: tuple[str, ...] = ()


DEFAULT_RULES = RiskRules(
    id="cardiac_points",
    version="1.0.0",
    display_name="Unified cardiac points model",
    description=(
        "Additive points model (max 45) normalised to percent; categories "
        "Normal < 20, Low 20-49, Moderate 50-79, High >= 80."
    ),
    tags=("canonical",),
)
