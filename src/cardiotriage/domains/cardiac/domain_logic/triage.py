"""Triage resolver — one urgency level per analysis, first matching rule wins.

``TRIAGE_RULES`` is an ordered list of (predicate, builder) pairs, most urgent
first. ``first_match`` walks it and stops at the first predicate that holds, so
rule order is the whole policy and can be tested on its own. Warning signs and
the next-steps checklist are derived separately from the metrics, category and
level, not from which rule fired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import (
    CATEGORY_HIGH,
    CATEGORY_MODERATE,
    CATEGORY_NORMAL,
    PRIORITY_IMMEDIATE,
    PRIORITY_NON_URGENT,
    PRIORITY_SEMI_URGENT,
    PRIORITY_URGENT,
    AnalysisContext,
    TriageResult,
)
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TriageLevel:
    key: str
    label: str
    time_window: str
    priority: str


LEVEL_IMMEDIATE = TriageLevel(
    "immediate", "IMMEDIATE - Emergency Care Required",
    "Seek emergency care now (call 911 or go to ER)", PRIORITY_IMMEDIATE,
)
LEVEL_URGENT = TriageLevel(
    "urgent", "URGENT - Same Day",
    "Contact healthcare provider within 24 hours", PRIORITY_URGENT,
)
LEVEL_HIGH = TriageLevel(
    "high", "HIGH - Within 48-72 Hours",
    "Schedule appointment within 2-3 days", PRIORITY_URGENT,
)
LEVEL_MODERATE = TriageLevel(
    "moderate", "MODERATE - Within 1-2 Weeks",
    "Schedule follow-up within 1-2 weeks", PRIORITY_SEMI_URGENT,
)
LEVEL_ROUTINE = TriageLevel(
    "routine", "ROUTINE - Within 1 Month",
    "Schedule routine follow-up as recommended", PRIORITY_NON_URGENT,
)
LEVEL_MONITORING = TriageLevel(
    "monitoring", "MONITORING - Continue Current Care",
    "Continue regular monitoring and preventive care", PRIORITY_NON_URGENT,
)

PRIORITY_ACTIONS = {
    PRIORITY_IMMEDIATE: "Call 911 or go to emergency room immediately",
    PRIORITY_URGENT: "Schedule urgent appointment with cardiologist",
    PRIORITY_SEMI_URGENT: "Schedule follow-up within 1-2 weeks",
    PRIORITY_NON_URGENT: "Continue routine care and monitoring",
}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

Predicate = Callable[[HeartMetrics, AnalysisContext, RiskRules], bool]
ReasonBuilder = Callable[[HeartMetrics, AnalysisContext, RiskRules], str]


@dataclass(frozen=True)
class TriageRule:
    rule_id: str
    level: TriageLevel
    predicate: Predicate
    reason: ReasonBuilder


@dataclass(frozen=True)
class TriageDecision:
    rule: TriageRule
    reason: str


def _num(value: float | None) -> str:
    return "?" if value is None else f"{value:g}"


def _bp(m: HeartMetrics) -> str:
    return f"{_num(m.systolic)}/{_num(m.diastolic)}"


def _pct(ctx: AnalysisContext) -> str:
    return f"{ctx.normalized_risk_percent:g}%"


def _ef_below(limit: Callable[[RiskRules], float]) -> Predicate:
    def predicate(m: HeartMetrics, ctx: AnalysisContext, r: RiskRules) -> bool:
        return m.ejection_fraction is not None and m.ejection_fraction < limit(r)
    return predicate


def _pasp_at_least(limit: Callable[[RiskRules], float]) -> Predicate:
    def predicate(m: HeartMetrics, ctx: AnalysisContext, r: RiskRules) -> bool:
        return m.pasp is not None and m.pasp >= limit(r)
    return predicate


def _bp_at_least(
    systolic: Callable[[RiskRules], float], diastolic: Callable[[RiskRules], float]
) -> Predicate:
    # Either reading alone is enough to trip a blood pressure rule
    def predicate(m: HeartMetrics, ctx: AnalysisContext, r: RiskRules) -> bool:
        return (m.systolic is not None and m.systolic >= systolic(r)) or (
            m.diastolic is not None and m.diastolic >= diastolic(r)
        )
    return predicate


def _percent_at_least(limit: Callable[[RiskRules], float]) -> Predicate:
    def predicate(m: HeartMetrics, ctx: AnalysisContext, r: RiskRules) -> bool:
        return ctx.normalized_risk_percent >= limit(r)
    return predicate


def _major_risk_factor(m: HeartMetrics, ctx: AnalysisContext, r: RiskRules) -> bool:
    return (m.ldl is not None and m.ldl >= r.lipids.ldl_very_high) or (
        m.fasting_blood_sugar is not None and m.fasting_blood_sugar >= r.glucose.diabetes
    )


def _critical_findings(ctx: AnalysisContext) -> str:
    critical = [reason for reason in ctx.reasons if reason.startswith("CRITICAL")][:2]
    if not critical:
        return ""
    return f" Critical findings include: {'; '.join(critical)}."


TRIAGE_RULES: tuple[TriageRule, ...] = (
    TriageRule(
        "critical_ejection_fraction", LEVEL_IMMEDIATE,
        _ef_below(lambda r: r.ejection_fraction.severe),
        lambda m, ctx, r: (
            f"Severe cardiac dysfunction detected (EF = {_num(m.ejection_fraction)}%, "
            f"normal >={r.ejection_fraction.normal:g}%). This indicates significant heart "
            "failure requiring immediate evaluation."
        ),
    ),
    TriageRule(
        "hypertensive_crisis", LEVEL_IMMEDIATE,
        _bp_at_least(lambda r: r.blood_pressure.crisis_systolic, lambda r: r.blood_pressure.crisis_diastolic),
        lambda m, ctx, r: (
            f"Hypertensive crisis detected (BP = {_bp(m)} mmHg). This level of blood "
            "pressure requires immediate medical attention to prevent stroke, heart "
            "attack, or organ damage."
        ),
    ),
    TriageRule(
        "severe_pulmonary_hypertension", LEVEL_IMMEDIATE,
        _pasp_at_least(lambda r: r.pulmonary.severe),
        lambda m, ctx, r: (
            f"Severe pulmonary hypertension detected (PASP = {_num(m.pasp)} mmHg, normal "
            f"<{r.pulmonary.elevated:g}). This indicates significant strain on the right "
            "side of the heart."
        ),
    ),
    TriageRule(
        "very_high_score", LEVEL_URGENT,
        _percent_at_least(lambda r: r.triage.very_high),
        lambda m, ctx, r: (
            f"Very high cardiovascular risk detected ({_pct(ctx)}).{_critical_findings(ctx)} "
            "Immediate cardiology consultation recommended."
        ),
    ),
    TriageRule(
        "high_score", LEVEL_HIGH,
        _percent_at_least(lambda r: r.triage.high),
        lambda m, ctx, r: (
            f"High cardiovascular risk detected ({_pct(ctx)}). Multiple significant risk "
            "factors present requiring medical evaluation and intervention."
        ),
    ),
    TriageRule(
        "moderate_pulmonary_pressure", LEVEL_HIGH,
        _pasp_at_least(lambda r: r.pulmonary.moderate),
        lambda m, ctx, r: (
            f"Moderately elevated pulmonary pressure detected (PASP = {_num(m.pasp)} mmHg). "
            "Further evaluation recommended to assess pulmonary hypertension."
        ),
    ),
    TriageRule(
        "moderate_ejection_fraction", LEVEL_HIGH,
        _ef_below(lambda r: r.ejection_fraction.moderate),
        lambda m, ctx, r: (
            f"Moderate cardiac dysfunction detected (EF = {_num(m.ejection_fraction)}%). "
            "Evaluation by cardiologist recommended to assess heart function and "
            "optimize treatment."
        ),
    ),
    TriageRule(
        "stage2_hypertension", LEVEL_HIGH,
        _bp_at_least(lambda r: r.blood_pressure.stage2_systolic, lambda r: r.blood_pressure.stage2_diastolic),
        lambda m, ctx, r: (
            f"Stage 2 hypertension detected (BP = {_bp(m)} mmHg). Blood pressure control "
            "is essential to prevent cardiovascular complications."
        ),
    ),
    TriageRule(
        "moderate_score", LEVEL_MODERATE,
        _percent_at_least(lambda r: r.triage.moderate),
        lambda m, ctx, r: (
            f"Moderate cardiovascular risk detected ({_pct(ctx)}). Risk factor assessment "
            "and intervention plan recommended."
        ),
    ),
    TriageRule(
        "mildly_reduced_ejection_fraction", LEVEL_MODERATE,
        _ef_below(lambda r: r.ejection_fraction.mildly_reduced),
        lambda m, ctx, r: (
            f"Mildly reduced ejection fraction (EF = {_num(m.ejection_fraction)}%). Close "
            "monitoring recommended to prevent progression."
        ),
    ),
    TriageRule(
        "stage1_hypertension", LEVEL_MODERATE,
        _bp_at_least(lambda r: r.blood_pressure.stage1_systolic, lambda r: r.blood_pressure.stage1_diastolic),
        lambda m, ctx, r: (
            f"Stage 1 hypertension detected (BP = {_bp(m)} mmHg). Lifestyle modifications "
            "and possible medication recommended."
        ),
    ),
    TriageRule(
        "major_risk_factor", LEVEL_MODERATE,
        _major_risk_factor,
        lambda m, ctx, r: (
            "Major cardiovascular risk factor detected. Medical management recommended "
            "to reduce long-term cardiovascular risk."
        ),
    ),
    TriageRule(
        "low_score", LEVEL_ROUTINE,
        _percent_at_least(lambda r: r.triage.low),
        lambda m, ctx, r: (
            f"Low cardiovascular risk detected ({_pct(ctx)}). Continue preventive care "
            "and lifestyle modifications."
        ),
    ),
    TriageRule(
        "minimal_risk", LEVEL_MONITORING,
        lambda m, ctx, r: ctx.category == CATEGORY_NORMAL,
        lambda m, ctx, r: (
            f"Minimal cardiovascular risk detected ({_pct(ctx)}). Maintain healthy "
            "lifestyle habits."
        ),
    ),
    TriageRule(
        "default_routine", LEVEL_ROUTINE,
        lambda m, ctx, r: True,
        lambda m, ctx, r: "Continue regular health monitoring and preventive care.",
    ),
)


def first_match(
    rules: Sequence[TriageRule],
    metrics: HeartMetrics,
    context: AnalysisContext,
    risk_rules: RiskRules = DEFAULT_RULES,
) -> TriageDecision | None:
    """Return the first rule whose predicate holds, with its rendered reason."""
    for rule in rules:
        if rule.predicate(metrics, context, risk_rules):
            return TriageDecision(rule=rule, reason=rule.reason(metrics, context, risk_rules))
    return None


# ---------------------------------------------------------------------------
# Warning signs and checklist
# ---------------------------------------------------------------------------

def warning_signs(metrics: HeartMetrics, category: str, rules: RiskRules = DEFAULT_RULES) -> list[str]:
    warnings = []
    if metrics.ejection_fraction is not None and metrics.ejection_fraction < rules.ejection_fraction.moderate:
        warnings.append(
            "Seek immediate care if you experience: severe shortness of breath, chest pain, "
            "rapid or irregular heartbeat, swelling in legs/ankles, sudden weight gain"
        )
    bp = rules.blood_pressure
    if (metrics.systolic is not None and metrics.systolic >= bp.stage1_systolic) or (
        metrics.diastolic is not None and metrics.diastolic >= bp.stage1_diastolic
    ):
        warnings.append(
            "Monitor for: severe headache, vision changes, severe chest pain, difficulty "
            "breathing, confusion - these may indicate hypertensive emergency"
        )
    pulmonary = rules.pulmonary
    if (metrics.pasp is not None and metrics.pasp >= pulmonary.elevated) or (
        metrics.tr_velocity is not None and metrics.tr_velocity > pulmonary.tr_velocity_intermediate
    ):
        warnings.append(
            "Watch for: increasing shortness of breath (especially with activity), chest "
            "pressure, lightheadedness, fainting, blue lips or skin"
        )
    if category in (CATEGORY_HIGH, CATEGORY_MODERATE):
        warnings.append(
            "General cardiac warning signs requiring immediate care: crushing chest pain, "
            "severe shortness of breath, loss of consciousness, sudden weakness on one side of body"
        )
    if not warnings:
        warnings.append(
            "Maintain awareness of cardiovascular symptoms: chest discomfort, unusual fatigue, "
            "shortness of breath with normal activities. Seek medical evaluation if symptoms develop."
        )
    return warnings


CHECKLISTS = {
    "immediate": (
        "1. Call 911 or go to nearest emergency department immediately",
        "2. Do not drive yourself - call emergency services or have someone drive you",
        "3. Bring all current medications and medical records if possible",
        "4. Inform emergency staff of your cardiac risk factors",
        "5. Have someone contact your primary care doctor or cardiologist",
    ),
    "urgent": (
        "1. Contact your healthcare provider or cardiologist today",
        "2. Explain your symptoms and test results",
        "3. Request same-day or next-day appointment",
        "4. Prepare list of current medications and symptoms",
        "5. If unable to reach provider, consider urgent care visit",
    ),
    "high": (
        "1. Call your healthcare provider within 48-72 hours to schedule appointment",
        "2. Bring this analysis and any medical reports to your visit",
        "3. List all medications and supplements you're taking",
        "4. Note any symptoms you've experienced",
        "5. Ask about cardiac risk factor management strategies",
    ),
    "moderate": (
        "1. Schedule appointment with your healthcare provider within 1-2 weeks",
        "2. Discuss findings and risk factors at your visit",
        "3. Begin tracking blood pressure and other vitals daily",
        "4. Start implementing heart-healthy lifestyle changes now",
        "5. Ask about screening tests that may be needed",
    ),
}

DEFAULT_CHECKLIST = (
    "1. Continue regular preventive care visits (annually or as recommended)",
    "2. Maintain healthy lifestyle habits (diet, exercise, stress management)",
    "3. Monitor blood pressure and other vitals periodically",
    "4. Stay current with recommended health screenings",
    "5. Report any new symptoms to your healthcare provider promptly",
)


def next_steps_checklist(level: TriageLevel) -> list[str]:
    return list(CHECKLISTS.get(level.key, DEFAULT_CHECKLIST))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_triage(
    metrics: HeartMetrics,
    context: AnalysisContext,
    rules: RiskRules = DEFAULT_RULES,
) -> TriageResult:
    """Assign exactly one triage priority to an analysed record.

    Args:
        metrics: The analysed record.
        context: Score, percent, category, confidence and reasons from the
            earlier stages.
        rules: Thresholds the rule predicates compare against.
    """
    decision = first_match(TRIAGE_RULES, metrics, context, rules)
    if decision is None:
        raise RuntimeError("No triage rule matched; the rule table must end with a catch-all")
    level = decision.rule.level
    logger.debug("Triage rule %s matched (%s)", decision.rule.rule_id, level.priority)
    return TriageResult(
        priority=level.priority,
        level=level.label,
        time_window=level.time_window,
        reason=f"{level.label}: {decision.reason}",
        action=PRIORITY_ACTIONS[level.priority],
        warning_signs=tuple(warning_signs(metrics, context.category, rules)),
        next_steps_checklist=tuple(next_steps_checklist(level)),
        rule_id=decision.rule.rule_id,
    )
