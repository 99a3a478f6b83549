"""Analysis composer — runs the pipeline stages in order and assembles the record.

    score -> categorise -> confidence -> triage -> recommendations

Also hosts the auxiliary operations built on top of a finished analysis:
batch runs, quick assessment, metrics validation, before/after comparison,
JSON export and the plain-text provider summary.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Union

from cardiotriage.core.clock import Clock, SystemClock
from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import (
    AnalysisContext,
    AnalysisMeta,
    ComparisonResult,
    HeartAnalysis,
    MetricChange,
    QuickAssessment,
    ValidationResult,
)
from cardiotriage.domains.cardiac.domain_logic.categorizer import categorize_risk, category_meta
from cardiotriage.domains.cardiac.domain_logic.confidence import confidence_metadata
from cardiotriage.domains.cardiac.domain_logic.metrics_extractor import extract_metrics
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics
from cardiotriage.domains.cardiac.domain_logic.recommendations import build_recommendations
from cardiotriage.domains.cardiac.domain_logic.risk_scorer import score_risk
from cardiotriage.domains.cardiac.domain_logic.triage import resolve_triage

logger = logging.getLogger(__name__)

ANALYSIS_VERSION = "1.0.0"
TEXT_PREVIEW_CHARS = 500

MetricsInput = Union[HeartMetrics, Mapping[str, Any]]


class AnalysisInputError(ValueError):
    """The composer was handed input it cannot analyse."""


def coerce_metrics(metrics: MetricsInput | None) -> HeartMetrics:
    """Accept a ``HeartMetrics`` or a plain mapping; reject anything else."""
    if metrics is None:
        raise AnalysisInputError("metrics are required: pass a HeartMetrics record or a mapping")
    if isinstance(metrics, HeartMetrics):
        return metrics
    if isinstance(metrics, Mapping):
        try:
            return HeartMetrics.from_dict(dict(metrics))
        except (TypeError, ValueError) as exc:
            raise AnalysisInputError(f"metrics mapping could not be read: {exc}") from exc
    raise AnalysisInputError(
        f"metrics must be a HeartMetrics record or a mapping, got {type(metrics).__name__}"
    )


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def compose_analysis(
    metrics: MetricsInput | None,
    text_preview: str | None = None,
    *,
    rules: RiskRules = DEFAULT_RULES,
    clock: Clock | None = None,
    version: str = ANALYSIS_VERSION,
    preview_chars: int = TEXT_PREVIEW_CHARS,
) -> HeartAnalysis:
    """Run every stage over one metrics record.

    Args:
        metrics: Record to analyse (a mapping is coerced).
        text_preview: Source text; only the first ``preview_chars`` are kept.
        rules: Rule set shared by every stage.
        clock: Source of the analysis timestamp.
        version: Version stamp written into ``meta``.
        preview_chars: Maximum preview length.

    Returns:
        The immutable analysis record.

    Raises:
        AnalysisInputError: If ``metrics`` is missing or unreadable.
    """
    record = coerce_metrics(metrics)
    clock = clock or SystemClock()

    scoring = score_risk(record, rules)
    categorised = categorize_risk(scoring.score, rules)
    confidence = confidence_metadata(record, scoring.score, rules)
    context = AnalysisContext(
        score=scoring.score,
        normalized_risk_percent=categorised.normalized_risk_percent,
        category=categorised.category,
        confidence=confidence.confidence,
        reasons=scoring.reasons,
    )
    logger.debug(
        "Stages complete: %d points, %.1f%%, confidence %.2f",
        scoring.raw_score, categorised.normalized_risk_percent, confidence.confidence,
    )
    triage = resolve_triage(record, context, rules)
    recommendations = build_recommendations(record, context, rules)

    analysis = HeartAnalysis(
        normalized_risk_percent=categorised.normalized_risk_percent,
        category=categorised.category,
        confidence=confidence.confidence,
        metrics=record,
        scoring=scoring,
        category_meta=category_meta(categorised.category, rules),
        confidence_meta=confidence,
        triage=triage,
        recommendations=recommendations,
        meta=AnalysisMeta(
            analysis_date=clock.now().isoformat(),
            version=version,
            ruleset_id=rules.id,
            text_preview=text_preview[:preview_chars] if text_preview else None,
        ),
    )
    logger.info(
        "Analysis complete: category=%s risk=%.1f%% priority=%s",
        analysis.category, analysis.normalized_risk_percent, triage.priority,
    )
    return analysis


def analyze_report_text(
    text: str,
    *,
    rules: RiskRules = DEFAULT_RULES,
    clock: Clock | None = None,
    version: str = ANALYSIS_VERSION,
    preview_chars: int = TEXT_PREVIEW_CHARS,
) -> HeartAnalysis:
    """Extract metrics from report text and analyse them."""
    metrics = extract_metrics(text, rules)
    return compose_analysis(
        metrics, text, rules=rules, clock=clock, version=version, preview_chars=preview_chars
    )


def compose_batch_analysis(
    entries: Iterable[MetricsInput | tuple[MetricsInput, str | None]],
    *,
    rules: RiskRules = DEFAULT_RULES,
    clock: Clock | None = None,
    version: str = ANALYSIS_VERSION,
    preview_chars: int = TEXT_PREVIEW_CHARS,
) -> list[HeartAnalysis]:
    """Analyse several records; each entry is a record or a (record, text_preview) pair."""
    results = []
    for entry in entries:
        if isinstance(entry, tuple):
            metrics, preview = entry
        else:
            metrics, preview = entry, None
        results.append(compose_analysis(
            metrics, preview, rules=rules, clock=clock, version=version, preview_chars=preview_chars
        ))
    return results


def quick_risk_assessment(metrics: MetricsInput | None, rules: RiskRules = DEFAULT_RULES) -> QuickAssessment:
    """Score and category only, without confidence, triage or recommendations."""
    record = coerce_metrics(metrics)
    scoring = score_risk(record, rules)
    categorised = categorize_risk(scoring.score, rules)
    return QuickAssessment(
        score=round(scoring.score, 1),
        category=categorised.category,
        normalized_risk_percent=categorised.normalized_risk_percent,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

# (field, label, low, high, unit) for values that are unusual but possible
_WARNING_RANGES = (
    ("cholesterol", "cholesterol value", 100, 500, "mg/dL"),
    ("ldl", "LDL value", 20, 400, "mg/dL"),
    ("hdl", "HDL value", 10, 150, "mg/dL"),
    ("fasting_blood_sugar", "blood sugar value", 40, 600, "mg/dL"),
    ("heart_rate", "heart rate", 30, 220, "bpm"),
    ("pasp", "PASP value", 10, 150, "mmHg"),
)


def validate_metrics(metrics: MetricsInput | None) -> ValidationResult:
    """Flag impossible values as errors and unusual ones as warnings.

    Never blocks analysis; callers decide what to do with the result.
    """
    m = coerce_metrics(metrics)
    result = ValidationResult(is_valid=True)

    if m.age is not None:
        if m.age < 0 or m.age > 120:
            result.errors.append(f"Invalid age: {m.age:g}. Must be between 0 and 120.")
        if m.age < 18:
            result.warnings.append("Analysis optimized for adults. Pediatric values may differ.")

    if m.systolic is not None and (m.systolic < 60 or m.systolic > 250):
        result.errors.append(f"Invalid systolic BP: {m.systolic:g}. Typical range 60-250 mmHg.")
    if m.diastolic is not None and (m.diastolic < 30 or m.diastolic > 150):
        result.errors.append(f"Invalid diastolic BP: {m.diastolic:g}. Typical range 30-150 mmHg.")
    if m.has_blood_pressure() and m.systolic <= m.diastolic:
        result.errors.append("Systolic BP should be higher than diastolic BP.")

    if m.ejection_fraction is not None and (m.ejection_fraction < 10 or m.ejection_fraction > 100):
        result.errors.append(
            f"Invalid ejection fraction: {m.ejection_fraction:g}%. Must be between 10-100%."
        )
    if m.bmi is not None and (m.bmi < 10 or m.bmi > 80):
        result.errors.append(f"Invalid BMI: {m.bmi:g}. Typical range 10-80.")

    for name, label, low, high, unit in _WARNING_RANGES:
        value = getattr(m, name)
        if value is not None and (value < low or value > high):
            result.warnings.append(f"Unusual {label}: {value:g} {unit}. Verify reading.")

    result.is_valid = not result.errors
    return result


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

# (field, label, lower_is_better)
COMPARED_METRICS = (
    ("systolic", "Systolic BP", True),
    ("diastolic", "Diastolic BP", True),
    ("ejection_fraction", "Ejection Fraction", False),
    ("ldl", "LDL Cholesterol", True),
    ("hdl", "HDL Cholesterol", False),
    ("fasting_blood_sugar", "Fasting Blood Sugar", True),
    ("bmi", "BMI", True),
    ("pasp", "PASP", True),
)


def compare_analyses(baseline: HeartAnalysis | None, followup: HeartAnalysis | None) -> ComparisonResult:
    """Diff two analyses of the same patient, e.g. before and after treatment."""
    if baseline is None or followup is None:
        raise AnalysisInputError("compare_analyses needs both a baseline and a followup analysis")

    if baseline.category == followup.category:
        category_change = "No change"
    else:
        category_change = f"Changed from {baseline.category} to {followup.category}"

    result = ComparisonResult(
        score_change=round(followup.score - baseline.score, 1),
        risk_percent_change=round(
            followup.normalized_risk_percent - baseline.normalized_risk_percent, 1
        ),
        category_change=category_change,
    )

    for name, label, lower_is_better in COMPARED_METRICS:
        before = getattr(baseline.metrics, name)
        after = getattr(followup.metrics, name)
        if before is None or after is None:
            continue
        change = round(after - before, 1)
        if change == 0:
            continue
        improved = change < 0 if lower_is_better else change > 0
        sign = "+" if change > 0 else ""
        description = f"{label}: {before:g} → {after:g} ({sign}{change:.1f})"
        result.changes.append(MetricChange(
            metric=name, label=label, baseline=before, followup=after,
            change=change, improved=improved, description=description,
        ))
        (result.improvements if improved else result.deteriorations).append(description)

    return result


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_analysis_json(analysis: HeartAnalysis, pretty: bool = True) -> str:
    return json.dumps(analysis.to_dict(), indent=2 if pretty else None)


def generate_provider_summary(analysis: HeartAnalysis) -> str:
    """Plain-text summary suitable for pasting into a referral note."""
    m = analysis.metrics
    triage = analysis.triage
    lines = [
        "=== CARDIAC TRIAGE ANALYSIS SUMMARY ===",
        "",
        f"Risk Assessment: {analysis.category} ({analysis.normalized_risk_percent:g}% normalized risk)",
        f"Raw Risk Points: {analysis.scoring.raw_score} / {analysis.scoring.max_points:g}",
        f"Analysis Confidence: {analysis.confidence * 100:.0f}%",
        f"Triage: {triage.priority} - {triage.level} ({triage.time_window})",
        "",
        "KEY FINDINGS:",
    ]
    if m.ejection_fraction is not None:
        lines.append(f"- Ejection Fraction: {m.ejection_fraction:g}%")
    if m.has_blood_pressure():
        lines.append(f"- Blood Pressure: {m.systolic:g}/{m.diastolic:g} mmHg")
    if m.pasp is not None:
        lines.append(f"- PASP: {m.pasp:g} mmHg")
    if m.ldl is not None:
        lines.append(f"- LDL Cholesterol: {m.ldl:g} mg/dL")
    if m.hdl is not None:
        lines.append(f"- HDL Cholesterol: {m.hdl:g} mg/dL")
    if m.fasting_blood_sugar is not None:
        lines.append(f"- Fasting Blood Sugar: {m.fasting_blood_sugar:g} mg/dL")
    if m.bmi is not None:
        lines.append(f"- BMI: {m.bmi:.1f}")
    if m.cardiac_abnormalities:
        lines.append(f"- Echo findings: {', '.join(m.cardiac_abnormalities)}")

    lines.append("")
    lines.append("RISK FACTORS IDENTIFIED:")
    risk_reasons = [f.reason for f in analysis.scoring.factors if f.points > 0][:5]
    if not risk_reasons:
        lines.append("None identified from available data")
    for i, reason in enumerate(risk_reasons, start=1):
        lines.append(f"{i}. {reason}")

    lines += [
        "",
        "=== END OF AUTOMATED ANALYSIS ===",
        "Note: This is automated analysis. Clinical correlation required.",
    ]
    return "\n".join(lines) + "\n"
