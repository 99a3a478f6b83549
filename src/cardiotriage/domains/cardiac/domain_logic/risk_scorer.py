"""Risk scorer — additive cardiovascular points model.

Every factor that can be evaluated contributes a ``RiskFactor`` (points plus a
reason). Factors whose inputs are absent contribute nothing at all; missing
data is penalised by the confidence estimator, not here.

    percent = clamp(points / max_points * 100 [+ young-age adjustment], floor, ceiling)
"""

from __future__ import annotations

import logging

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import RiskFactor, ScoringResult
from cardiotriage.domains.cardiac.domain_logic.metrics_models import SEX_FEMALE, SEX_MALE, HeartMetrics

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    """120.0 -> "120", 22.5 -> "22.5"."""
    return f"{value:g}"


def _signed(points: int) -> str:
    unit = "point" if abs(points) == 1 else "points"
    if points > 0:
        return f"+{points} {unit}"
    return f"{points} {unit}"


# ---------------------------------------------------------------------------
# Individual factors
# ---------------------------------------------------------------------------

def score_age(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    if metrics.age is None:
        return []
    for band in rules.age_bands:
        if band.upper is None or metrics.age < band.upper:
            return [RiskFactor(
                "age",
                band.points,
                f"Age {_fmt(metrics.age)} years ({band.label}, {_signed(band.points)})",
            )]
    return []


def score_risk_factors(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    points = rules.risk_factors
    factors = []
    if metrics.diabetes is True:
        factors.append(RiskFactor(
            "diabetes", points.diabetes,
            f"CRITICAL: Diabetes present ({_signed(points.diabetes)})",
        ))
    if metrics.smoker is True:
        factors.append(RiskFactor(
            "smoking", points.smoking,
            f"CRITICAL: Current smoker ({_signed(points.smoking)})",
        ))
    return factors


def score_ldl(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    ldl = metrics.ldl
    if ldl is None:
        return []
    lip = rules.lipids
    if ldl < lip.ldl_near_optimal:
        points, label, prefix = 0, "Optimal", ""
    elif ldl < lip.ldl_borderline_high:
        points, label, prefix = lip.points_ldl_near_optimal, "Near optimal", ""
    elif ldl < lip.ldl_high:
        points, label, prefix = lip.points_ldl_borderline_high, "Borderline high", ""
    elif ldl < lip.ldl_very_high:
        points, label, prefix = lip.points_ldl_high, "High", ""
    else:
        points, label, prefix = lip.points_ldl_very_high, "Very high", "CRITICAL: "
    return [RiskFactor("ldl", points, f"{prefix}LDL {_fmt(ldl)} mg/dL ({label}, {_signed(points)})")]


def score_hdl(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    hdl = metrics.hdl
    if hdl is None:
        return []
    lip = rules.lipids
    low_threshold = lip.hdl_low_female if metrics.sex == SEX_FEMALE else lip.hdl_low_male
    if hdl >= lip.hdl_protective:
        points, label = lip.points_hdl_protective, "Protective"
    elif hdl >= low_threshold:
        points, label = 0, "Acceptable"
    elif hdl >= lip.hdl_very_low:
        points, label = lip.points_hdl_low, "Low"
    else:
        points, label = lip.points_hdl_very_low, "Very low"
    return [RiskFactor("hdl", points, f"HDL {_fmt(hdl)} mg/dL ({label}, {_signed(points)})")]


def score_body_composition(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    """BMI band, abdominal obesity, and obesity interactions with diabetes and smoking."""
    body = rules.body
    factors = []
    bmi = metrics.bmi
    if bmi is not None:
        if bmi < body.bmi_underweight:
            points, label, prefix = body.points_underweight, "Underweight", ""
        elif bmi < body.bmi_overweight:
            points, label, prefix = 0, "Normal", ""
        elif bmi < body.bmi_obese_class1:
            points, label, prefix = body.points_overweight, "Overweight", ""
        elif bmi < body.bmi_obese_class2:
            points, label, prefix = body.points_obese_class1, "Obese Class I", ""
        else:
            points, label, prefix = body.points_obese_class2, "Obese Class II+", "CRITICAL: "
        factors.append(RiskFactor("bmi", points, f"{prefix}BMI {bmi:.1f} ({label}, {_signed(points)})"))

    if metrics.waist is not None and metrics.waist > 0:
        threshold = body.waist_male_cm if metrics.sex == SEX_MALE else body.waist_female_cm
        if metrics.waist > threshold:
            factors.append(RiskFactor(
                "waist", body.points_abdominal_obesity,
                f"Waist circumference {_fmt(metrics.waist)}cm "
                f"(Abdominal obesity, {_signed(body.points_abdominal_obesity)})",
            ))

    overweight = bmi is not None and bmi >= body.bmi_overweight
    if overweight and metrics.diabetes is True:
        factors.append(RiskFactor(
            "diabetes_obesity", body.points_diabetes_interaction,
            f"INTERACTION: Diabetes + Obesity ({_signed(body.points_diabetes_interaction)})",
        ))
    if overweight and metrics.smoker is True:
        factors.append(RiskFactor(
            "smoking_obesity", body.points_smoking_interaction,
            f"INTERACTION: Smoking + Obesity ({_signed(body.points_smoking_interaction)})",
        ))
    return factors


def score_ejection_fraction(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    ef = metrics.ejection_fraction
    if ef is None:
        return []
    r = rules.ejection_fraction
    if ef < r.severe:
        points, label, prefix = r.points_severe, "Severely reduced", "CRITICAL: "
    elif ef < r.moderate:
        points, label, prefix = r.points_moderate, "Moderately reduced", ""
    elif ef < r.mildly_reduced:
        points, label, prefix = r.points_mild, "Mildly reduced", ""
    elif ef < r.normal:
        points, label, prefix = r.points_borderline, "Slightly below normal", ""
    else:
        points, label, prefix = 0, "Normal", ""
    return [RiskFactor(
        "ejection_fraction", points,
        f"{prefix}Ejection Fraction {_fmt(ef)}% ({label}, {_signed(points)})",
    )]


def blood_pressure_stage(systolic: float, diastolic: float, rules: RiskRules) -> str:
    """Worst ACC/AHA band reached by either value: crisis, stage2, stage1, elevated or normal."""
    bp = rules.blood_pressure
    if systolic >= bp.crisis_systolic or diastolic >= bp.crisis_diastolic:
        return "crisis"
    if systolic >= bp.stage2_systolic or diastolic >= bp.stage2_diastolic:
        return "stage2"
    if systolic >= bp.stage1_systolic or diastolic >= bp.stage1_diastolic:
        return "stage1"
    if systolic >= bp.elevated_systolic:
        return "elevated"
    return "normal"


_BP_LABELS = {
    "crisis": ("Hypertensive crisis", "CRITICAL: "),
    "stage2": ("Stage 2 hypertension", ""),
    "stage1": ("Stage 1 hypertension", ""),
    "elevated": ("Elevated", ""),
    "normal": ("Normal", ""),
}


def score_blood_pressure(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    if not metrics.has_blood_pressure():
        return []
    bp = rules.blood_pressure
    stage = blood_pressure_stage(metrics.systolic, metrics.diastolic, rules)
    points = {
        "crisis": bp.points_crisis,
        "stage2": bp.points_stage2,
        "stage1": bp.points_stage1,
        "elevated": bp.points_elevated,
        "normal": 0,
    }[stage]
    label, prefix = _BP_LABELS[stage]
    reading = f"{_fmt(metrics.systolic)}/{_fmt(metrics.diastolic)}"
    return [RiskFactor(
        "blood_pressure", points,
        f"{prefix}Blood Pressure {reading} mmHg ({label}, {_signed(points)})",
    )]


def score_family_history(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    if metrics.family_history is not True:
        return []
    points = rules.risk_factors.family_history
    return [RiskFactor(
        "family_history", points, f"Family history of heart disease ({_signed(points)})"
    )]


def score_fasting_glucose(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    """Only scored for non-diabetics; diabetes already carries its own penalty."""
    fbs = metrics.fasting_blood_sugar
    if metrics.diabetes is True or fbs is None:
        return []
    g = rules.glucose
    if fbs >= g.diabetes:
        points, label = g.points_diabetes_range, "Diabetes range"
    elif fbs >= g.prediabetes:
        points, label = g.points_prediabetes, "Prediabetes"
    else:
        points, label = 0, "Normal"
    return [RiskFactor(
        "fasting_blood_sugar", points,
        f"Fasting Blood Sugar {_fmt(fbs)} mg/dL ({label}, {_signed(points)})",
    )]


def score_pulmonary_pressure(metrics: HeartMetrics, rules: RiskRules) -> list[RiskFactor]:
    pasp = metrics.pasp
    if pasp is None:
        return []
    p = rules.pulmonary
    if pasp >= p.severe:
        points, label, prefix = p.points_severe, "Severe pulmonary hypertension", "CRITICAL: "
    elif pasp >= p.moderate:
        points, label, prefix = p.points_moderate, "Moderate elevation", ""
    elif pasp >= p.elevated:
        points, label, prefix = p.points_elevated, "Mildly elevated", ""
    else:
        points, label, prefix = 0, "Normal", ""
    return [RiskFactor("pasp", points, f"{prefix}PASP {_fmt(pasp)} mmHg ({label}, {_signed(points)})")]


FACTOR_SCORERS = (
    score_age,
    score_risk_factors,
    score_ldl,
    score_hdl,
    score_body_composition,
    score_ejection_fraction,
    score_blood_pressure,
    score_family_history,
    score_fasting_glucose,
    score_pulmonary_pressure,
)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalize_points(points: float, rules: RiskRules = DEFAULT_RULES, *, adjustment: float = 0.0) -> float:
    """Points to percent, clamped to the rule set's floor and ceiling, 1 decimal."""
    norm = rules.normalization
    percent = points / norm.max_points * 100 + adjustment
    percent = max(norm.floor_percent, min(norm.ceiling_percent, percent))
    return round(percent, 1)


def young_age_adjustment(metrics: HeartMetrics, rules: RiskRules) -> float:
    norm = rules.normalization
    if metrics.age is None or metrics.age >= norm.young_age_limit:
        return 0.0
    if metrics.diabetes is True or metrics.smoker is True:
        return norm.young_age_adjustment
    return 0.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def score_risk(metrics: HeartMetrics, rules: RiskRules = DEFAULT_RULES) -> ScoringResult:
    """Score a metrics record.

    Args:
        metrics: Record produced by the extractor or built by the caller.
        rules: Thresholds and point values to score against.

    Returns:
        ScoringResult with the normalised percent as ``score``, the additive
        total as ``raw_score`` and one reason per evaluated factor.
    """
    factors: list[RiskFactor] = []
    for scorer in FACTOR_SCORERS:
        factors.extend(scorer(metrics, rules))

    total = sum(f.points for f in factors)
    reasons = [f.reason for f in factors]

    diabetic_smoker = metrics.diabetes is True and metrics.smoker is True
    if diabetic_smoker:
        reasons.insert(0, (
            "CRITICAL: Diabetes + Smoking combination significantly increases "
            "cardiovascular risk. These are major independent risk factors for "
            "heart disease, stroke, and cardiac events."
        ))
        if metrics.ldl is not None and metrics.ldl > rules.lipids.ldl_borderline_high:
            reasons.append(
                "TRIPLE THREAT: Diabetes + Smoking + Elevated LDL creates very high "
                "cardiovascular risk profile."
            )

    adjustment = young_age_adjustment(metrics, rules)
    if adjustment:
        reasons.append(
            f"YOUNG AGE ADJUSTMENT: Age <{_fmt(rules.normalization.young_age_limit)} "
            f"with major risk factors (+{_fmt(adjustment)}% risk)"
        )

    percent = normalize_points(total, rules, adjustment=adjustment)
    logger.debug("Scored %d factors: %d points -> %.1f%%", len(factors), total, percent)
    return ScoringResult(
        score=percent,
        raw_score=total,
        max_points=rules.normalization.max_points,
        reasons=tuple(reasons),
        factors=tuple(factors),
    )
