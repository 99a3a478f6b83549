"""Confidence estimator — how far the verdict can be trusted given the data.

    confidence = 0.4 * completeness + 0.4 * key_markers + 0.2 * clinical_context

then multiplicative penalties for missing EF / BP / demographics, a hard cap
below certainty and a floor whenever any data exists. Weights, penalties and
bounds come from ``RiskRules.confidence``.
"""

from __future__ import annotations

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import ConfidenceBreakdown, ConfidenceMeta
from cardiotriage.domains.cardiac.domain_logic.metrics_models import IMPORTANT_FIELDS, HeartMetrics

PARAMETER_LABELS = {
    "age": "Age",
    "sex": "Sex",
    "systolic": "Systolic blood pressure",
    "diastolic": "Diastolic blood pressure",
    "cholesterol": "Total cholesterol",
    "ldl": "LDL cholesterol",
    "hdl": "HDL cholesterol",
    "fasting_blood_sugar": "Fasting blood sugar",
    "bmi": "BMI",
    "smoker": "Smoking status",
    "diabetes": "Diabetes status",
    "family_history": "Family history",
    "heart_rate": "Heart rate",
}


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------

def data_completeness(metrics: HeartMetrics) -> float:
    """Fraction of the important fields that are present."""
    present = sum(1 for name in IMPORTANT_FIELDS if getattr(metrics, name) is not None)
    return present / len(IMPORTANT_FIELDS)


def key_marker_quality(metrics: HeartMetrics, rules: RiskRules = DEFAULT_RULES) -> float:
    conf = rules.confidence
    score = 0.0
    if metrics.ejection_fraction is not None:
        score += conf.ef_marker_weight
    if metrics.has_blood_pressure():
        score += conf.bp_marker_weight
    if metrics.ldl is not None or metrics.cholesterol is not None:
        score += conf.lipid_marker_weight
    return min(score, 1.0)


def criticality(metrics: HeartMetrics, rules: RiskRules = DEFAULT_RULES) -> float:
    """Bonus for unambiguous critical findings, capped at 1."""
    conf = rules.confidence
    bonus = 0.0
    if metrics.ejection_fraction is not None and metrics.ejection_fraction < rules.ejection_fraction.severe:
        bonus += conf.criticality_ef
    bp = rules.blood_pressure
    if (metrics.systolic is not None and metrics.systolic >= bp.crisis_systolic) or (
        metrics.diastolic is not None and metrics.diastolic >= bp.crisis_diastolic
    ):
        bonus += conf.criticality_bp_crisis
    if metrics.pasp is not None and metrics.pasp >= rules.pulmonary.severe:
        bonus += conf.criticality_pasp
    return min(bonus, 1.0)


def clinical_context(metrics: HeartMetrics, score: float, rules: RiskRules = DEFAULT_RULES) -> float:
    """Context score: severe, well-supported verdicts are easier to trust."""
    conf = rules.confidence
    context = conf.context_base
    for threshold, value in conf.context_bands:
        if score > threshold:
            context = value
            break

    if (
        (metrics.ejection_fraction is not None and metrics.ejection_fraction < conf.critical_finding_ef_below)
        or (metrics.systolic is not None and metrics.systolic > conf.critical_finding_systolic_above)
        or (metrics.pasp is not None and metrics.pasp > conf.critical_finding_pasp_above)
    ):
        context = min(1.0, context + conf.critical_finding_boost)

    decisive = 0.0
    if data_completeness(metrics) > conf.good_data_completeness and (
        score >= conf.decisive_high_percent or score <= conf.decisive_low_percent
    ):
        decisive = conf.decisive_adjustment

    return min(1.0, context + criticality(metrics, rules) * conf.criticality_share + decisive)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def confidence_breakdown(
    metrics: HeartMetrics, score: float, rules: RiskRules = DEFAULT_RULES
) -> ConfidenceBreakdown:
    return ConfidenceBreakdown(
        data_completeness=round(data_completeness(metrics), 2),
        key_marker_quality=round(key_marker_quality(metrics, rules), 2),
        clinical_context=round(clinical_context(metrics, score, rules), 2),
    )


def estimate_confidence(metrics: HeartMetrics, score: float, rules: RiskRules = DEFAULT_RULES) -> float:
    """Confidence in [floor_empty, cap], rounded to 2 decimals.

    Args:
        metrics: The record the verdict was computed from.
        score: Normalised risk percent from the scorer.
        rules: Confidence weights, penalties and bounds.
    """
    conf = rules.confidence
    if metrics.is_empty():
        return conf.floor_empty

    confidence = (
        conf.completeness_weight * data_completeness(metrics)
        + conf.key_marker_weight * key_marker_quality(metrics, rules)
        + conf.context_weight * clinical_context(metrics, score, rules)
    )

    has_ef = metrics.ejection_fraction is not None
    has_bp = metrics.has_blood_pressure()
    if not has_ef and not has_bp:
        confidence *= conf.missing_ef_and_bp
    elif not has_ef:
        confidence *= conf.missing_ef
    elif not has_bp:
        confidence *= conf.missing_bp

    if metrics.age is None and metrics.sex is None:
        confidence *= conf.missing_demographics

    confidence = max(conf.floor_with_data, min(conf.cap, confidence))
    return round(confidence, 2)


def confidence_description(confidence: float) -> str:
    if confidence >= 0.75:
        return "High Confidence - Analysis based on comprehensive data including critical cardiac markers"
    if confidence >= 0.5:
        return "Moderate Confidence - Analysis based on good data but some key parameters missing"
    if confidence >= 0.3:
        return "Fair Confidence - Limited data available; consider additional testing"
    return (
        "Low Confidence - Insufficient data for reliable analysis; recommend "
        "comprehensive cardiac evaluation"
    )


def missing_parameters(metrics: HeartMetrics) -> list[str]:
    return [PARAMETER_LABELS[name] for name in IMPORTANT_FIELDS if getattr(metrics, name) is None]


def improvement_suggestions(metrics: HeartMetrics) -> list[str]:
    """Concrete tests or history items that would close the biggest gaps."""
    suggestions = []
    if metrics.ejection_fraction is None:
        suggestions.append(
            "Echocardiogram to assess ejection fraction (most important cardiac function marker)"
        )
    if not metrics.has_blood_pressure():
        suggestions.append("Blood pressure measurement (critical vital sign)")
    if metrics.ldl is None and metrics.cholesterol is None:
        suggestions.append("Lipid panel (cholesterol, LDL, HDL) to assess cardiovascular risk")
    if metrics.fasting_blood_sugar is None and metrics.diabetes is not True:
        suggestions.append("Fasting blood glucose test to screen for diabetes")
    if metrics.age is None:
        suggestions.append("Patient age (important risk factor)")
    if metrics.bmi is None:
        suggestions.append("Height and weight to calculate BMI (obesity indicator)")
    if metrics.smoker is None:
        suggestions.append("Smoking status (major modifiable risk factor)")
    if metrics.family_history is None:
        suggestions.append("Family history of heart disease (genetic risk factor)")
    return suggestions


def confidence_metadata(metrics: HeartMetrics, score: float, rules: RiskRules = DEFAULT_RULES) -> ConfidenceMeta:
    confidence = estimate_confidence(metrics, score, rules)
    return ConfidenceMeta(
        confidence=confidence,
        description=confidence_description(confidence),
        breakdown=confidence_breakdown(metrics, score, rules),
        missing_parameters=tuple(missing_parameters(metrics)),
        suggestions=tuple(improvement_suggestions(metrics)),
    )
