"""Recommendation generator — categorised, prioritised next actions.

Blocks are appended in a fixed order (immediate care, monitoring, lifestyle,
medications, prevention, support, safety) when their trigger holds. Duplicate
texts are dropped, keeping the first occurrence, and the disclaimer always
closes the list.
"""

from __future__ import annotations

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import (
    CATEGORY_HIGH,
    CATEGORY_MODERATE,
    CATEGORY_NORMAL,
    AnalysisContext,
    RecommendationItem,
    RecommendationsResult,
)
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics

IMMEDIATE_CARE = "Immediate Care"
MONITORING = "Monitoring"
LIFESTYLE = "Lifestyle"
MEDICATIONS = "Medications"
RISK_MANAGEMENT = "Risk Management"
SUPPORT = "Support"
SAFETY = "Safety"
PREVENTIVE_CARE = "Preventive Care"

# Grouping keys for ``RecommendationsResult.categorized``
CATEGORY_KEYS = {
    IMMEDIATE_CARE: "immediate",
    MONITORING: "monitoring",
    LIFESTYLE: "lifestyle",
    MEDICATIONS: "medical",
    RISK_MANAGEMENT: "risk_management",
    SUPPORT: "support",
    SAFETY: "safety",
    PREVENTIVE_CARE: "preventive",
}

DISCLAIMER = (
    "This analysis is for informational purposes only and does not constitute "
    "medical advice. Always consult with qualified healthcare professionals for "
    "diagnosis and treatment decisions."
)
DISCLAIMER_TEXT = f"DISCLAIMER: {DISCLAIMER}"

MIN_SPECIFIC_RECOMMENDATIONS = 3
PRIORITY_LIMIT = 5


class _Collector:
    """Ordered, de-duplicating accumulator of recommendation items."""

    def __init__(self) -> None:
        self.items: list[RecommendationItem] = []
        self._seen: set[str] = set()

    def add(self, text: str, category: str, priority: str, rationale: str | None = None) -> None:
        if text in self._seen:
            return
        self._seen.add(text)
        self.items.append(RecommendationItem(text=text, category=category, priority=priority, rationale=rationale))


def _n(value: float | None) -> str:
    return "?" if value is None else f"{value:g}"


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def _immediate_care(m: HeartMetrics, rules: RiskRules, out: _Collector) -> None:
    ef = m.ejection_fraction
    if ef is not None and ef < rules.ejection_fraction.severe:
        rationale = f"EF {_n(ef)}% is below {rules.ejection_fraction.severe:g}%"
        out.add(
            f"IMMEDIATE: Seek emergency cardiac evaluation for severe heart failure "
            f"(EF <{rules.ejection_fraction.severe:g}%). This requires immediate "
            "specialist assessment and treatment.",
            IMMEDIATE_CARE, "urgent", rationale,
        )
        out.add(
            "Avoid strenuous physical activity until evaluated by cardiologist. Rest and limit exertion.",
            SAFETY, "urgent", rationale,
        )
        out.add(
            "Monitor for heart failure symptoms: increasing shortness of breath, swelling, "
            "rapid weight gain. Seek immediate care if these worsen.",
            SAFETY, "urgent", rationale,
        )

    bp = rules.blood_pressure
    if (m.systolic is not None and m.systolic >= bp.crisis_systolic) or (
        m.diastolic is not None and m.diastolic >= bp.crisis_diastolic
    ):
        rationale = f"BP {_n(m.systolic)}/{_n(m.diastolic)} mmHg"
        out.add(
            f"IMMEDIATE: Seek emergency care for hypertensive crisis (BP >={bp.crisis_systolic:g}/"
            f"{bp.crisis_diastolic:g}). This level requires immediate treatment to prevent "
            "stroke or organ damage.",
            IMMEDIATE_CARE, "urgent", rationale,
        )
        out.add(
            "Sit or lie down in quiet environment. Avoid sudden movements or stress. "
            "Do not drive yourself to hospital.",
            SAFETY, "urgent", rationale,
        )

    if m.pasp is not None and m.pasp >= rules.pulmonary.severe:
        out.add(
            "IMMEDIATE: Severe pulmonary hypertension requires urgent cardiology evaluation. "
            "Avoid high altitudes and strenuous activity.",
            IMMEDIATE_CARE, "urgent", f"PASP {_n(m.pasp)} mmHg",
        )


def _blood_pressure(m: HeartMetrics, rules: RiskRules, out: _Collector) -> None:
    if m.systolic is None:
        return
    bp = rules.blood_pressure
    reading = f"{_n(m.systolic)}/{_n(m.diastolic)} mmHg"
    if m.systolic >= bp.stage2_systolic:
        out.add(
            f"URGENT: Your blood pressure ({reading}) is Stage 2 hypertension. Monitor BP "
            "twice daily. Contact doctor within 24-48 hours to start or adjust medication.",
            MONITORING, "high", "Stage 2 hypertension",
        )
        out.add(
            "CRITICAL: Reduce sodium to <1,500mg daily. Avoid all processed foods, canned "
            "soups, fast food. Start DASH diet immediately (rich in fruits, vegetables, "
            "low-fat dairy).",
            LIFESTYLE, "high",
        )
    elif m.systolic >= bp.stage1_systolic:
        out.add(
            f"Your blood pressure ({reading}) is Stage 1 hypertension. Monitor BP daily at "
            f"same time. Target: <{bp.stage1_systolic:g}/{bp.stage1_diastolic:g} mmHg.",
            MONITORING, "medium", "Stage 1 hypertension",
        )
        out.add(
            "Reduce sodium to <2,300mg daily (ideally <1,500mg). Read food labels, avoid "
            "processed foods, don't add salt at table.",
            LIFESTYLE, "medium",
        )
    elif m.systolic >= bp.elevated_systolic:
        out.add(
            f"Your blood pressure ({reading}) is elevated. Monitor weekly. Implement "
            "lifestyle changes now to prevent hypertension.",
            MONITORING, "low", "Elevated blood pressure",
        )


def _heart_function(m: HeartMetrics, rules: RiskRules, out: _Collector) -> None:
    ef = m.ejection_fraction
    r = rules.ejection_fraction
    if ef is not None and r.severe <= ef < r.moderate:
        rationale = f"EF {_n(ef)}% (moderately reduced)"
        out.add(
            "Schedule echocardiogram every 6-12 months to monitor heart function changes. "
            "Track any new symptoms.",
            MONITORING, "high", rationale,
        )
        out.add(
            "Ask your doctor about cardiac rehabilitation program - structured exercise "
            "can improve heart function safely.",
            PREVENTIVE_CARE, "medium", rationale,
        )


def _lipids(m: HeartMetrics, rules: RiskRules, out: _Collector) -> None:
    lip = rules.lipids
    ldl = m.ldl
    if ldl is not None and ldl >= lip.ldl_very_high:
        out.add(
            f"URGENT: Your LDL cholesterol ({_n(ldl)} mg/dL) is very high. Discuss statin "
            "therapy immediately with your doctor. Target LDL <100 mg/dL (ideally <70 for "
            "high-risk patients).",
            MONITORING, "high", "Very high LDL",
        )
        out.add(
            "Adopt strict low-cholesterol diet: eliminate trans fats, limit saturated fats "
            "to <7% of calories, increase soluble fiber (10-25g daily from oats, beans, vegetables).",
            LIFESTYLE, "high",
        )
    elif ldl is not None and ldl >= lip.ldl_high:
        out.add(
            f"Your LDL cholesterol ({_n(ldl)} mg/dL) is high. Request lipid panel every 3-4 "
            "months. Discuss statin therapy if lifestyle changes don't lower LDL to "
            f"<{lip.ldl_borderline_high:g} mg/dL within 3 months.",
            MONITORING, "high", "High LDL",
        )
        out.add(
            "Increase dietary fiber (oats, beans), omega-3 fatty acids (fatty fish 2x/week), "
            "and plant sterols (2g daily). Limit red meat and full-fat dairy.",
            LIFESTYLE, "medium",
        )
    elif ldl is not None and ldl >= lip.ldl_borderline_high:
        out.add(
            f"Your LDL cholesterol ({_n(ldl)} mg/dL) is borderline high. Monitor with lipid "
            f"panel every 6 months. Focus on diet and exercise to lower to <{lip.ldl_borderline_high:g} mg/dL.",
            MONITORING, "medium", "Borderline high LDL",
        )
    elif m.cholesterol is not None and m.cholesterol >= lip.cholesterol_high:
        out.add(
            f"Your total cholesterol ({_n(m.cholesterol)} mg/dL) is high. Get complete lipid "
            "panel (LDL, HDL, triglycerides) to assess cardiovascular risk.",
            MONITORING, "medium", "High total cholesterol",
        )


def _glucose(m: HeartMetrics, rules: RiskRules, out: _Collector) -> None:
    g = rules.glucose
    fbs = m.fasting_blood_sugar
    if m.diabetes is True:
        out.add(
            "CRITICAL: Active diabetes diagnosis - check fasting blood glucose daily. Request "
            "HbA1c test every 3 months. Target HbA1c <7% to reduce cardiovascular complications.",
            MONITORING, "high", "Diabetes",
        )
        out.add(
            "Meet with certified diabetes educator and registered dietitian for personalized "
            "meal planning. Consider continuous glucose monitor (CGM) for better glucose control.",
            RISK_MANAGEMENT, "medium",
        )
    elif fbs is not None and fbs >= g.diabetes:
        out.add(
            f"Your fasting blood sugar ({_n(fbs)} mg/dL) indicates diabetes. Schedule "
            "comprehensive diabetes evaluation with doctor immediately. Start HbA1c monitoring.",
            RISK_MANAGEMENT, "high", "Fasting glucose in diabetes range",
        )
        out.add(
            "Begin low-glycemic diet: focus on whole grains, lean proteins, non-starchy "
            "vegetables. Limit refined carbs, sugary drinks, sweets.",
            LIFESTYLE, "medium",
        )
    elif fbs is not None and fbs >= g.prediabetes:
        out.add(
            f"Your fasting blood sugar ({_n(fbs)} mg/dL) indicates prediabetes. Check FBS every "
            "6 months. Lose 5-7% body weight to prevent progression to diabetes.",
            MONITORING, "medium", "Fasting glucose in prediabetes range",
        )
        out.add(
            "Reduce refined carbohydrates and increase physical activity (150 min/week). "
            "This can reduce diabetes risk by 58%.",
            LIFESTYLE, "medium",
        )


def has_modifiable_risk_factors(m: HeartMetrics, rules: RiskRules = DEFAULT_RULES) -> bool:
    return bool(
        m.smoker is True
        or m.diabetes is True
        or (m.bmi is not None and m.bmi >= rules.body.bmi_overweight)
        or (m.systolic is not None and m.systolic >= rules.blood_pressure.stage1_systolic)
        or (m.ldl is not None and m.ldl >= rules.lipids.ldl_borderline_high)
    )


def _lifestyle(m: HeartMetrics, ctx: AnalysisContext, rules: RiskRules, out: _Collector) -> None:
    modifiable = has_modifiable_risk_factors(m, rules)
    stage1 = m.systolic is not None and m.systolic >= rules.blood_pressure.stage1_systolic
    stage2 = m.systolic is not None and m.systolic >= rules.blood_pressure.stage2_systolic

    if modifiable and ctx.category != CATEGORY_NORMAL:
        out.add(
            "Aim for 150 minutes of moderate aerobic activity weekly (brisk walking, cycling, "
            "swimming). Start slowly and gradually increase if currently sedentary.",
            LIFESTYLE, "medium",
        )

    if (
        (m.ldl is not None and m.ldl >= rules.lipids.ldl_borderline_high)
        or (m.cholesterol is not None and m.cholesterol >= rules.lipids.cholesterol_borderline_high)
        or stage1
        or m.diabetes is True
    ):
        out.add(
            "Follow Mediterranean or DASH diet pattern: emphasize fruits, vegetables, whole "
            "grains, lean proteins, healthy fats. Limit red meat and sweets.",
            LIFESTYLE, "medium",
        )

    body = rules.body
    if m.bmi is not None and m.bmi >= body.bmi_overweight:
        label = "obesity" if m.bmi >= body.bmi_obese_class1 else "overweight"
        out.add(
            f"Work toward healthy weight (BMI {body.bmi_underweight:g}-{body.bmi_overweight - 0.1:g}). "
            f"Current BMI indicates {label}. Even 5-10% weight loss significantly reduces "
            "cardiovascular risk.",
            LIFESTYLE, "medium", f"BMI {m.bmi:.1f}",
        )
        out.add(
            "Consider referral to registered dietitian for personalized weight management plan. "
            "Avoid fad diets; focus on sustainable lifestyle changes.",
            RISK_MANAGEMENT, "low",
        )

    if m.smoker is True:
        out.add(
            "PRIORITY: Quit smoking immediately - this is the single most important modifiable "
            "risk factor. Contact your doctor about cessation programs, nicotine replacement, "
            "or medications (varenicline, bupropion).",
            LIFESTYLE, "high", "Current smoker",
        )
        out.add(
            "Join smoking cessation support group or use quit-smoking apps. Avoid triggers and "
            "consider behavioral therapy. Quitting reduces heart attack risk by 50% within 1 year.",
            SUPPORT, "medium",
        )

    if stage2 or ctx.normalized_risk_percent >= 60:
        out.add(
            "Implement stress reduction techniques: meditation, yoga, deep breathing exercises, "
            "or mindfulness practice. Chronic stress elevates cardiovascular risk.",
            LIFESTYLE, "low",
        )

    if stage1 or ctx.category == CATEGORY_HIGH:
        out.add(
            "Limit alcohol consumption: maximum 1 drink daily for women, 2 for men. Excessive "
            "alcohol raises blood pressure and heart disease risk.",
            LIFESTYLE, "low",
        )


def _care_plan(m: HeartMetrics, ctx: AnalysisContext, rules: RiskRules, out: _Collector) -> None:
    elevated = ctx.category in (CATEGORY_HIGH, CATEGORY_MODERATE)
    stage1 = m.systolic is not None and m.systolic >= rules.blood_pressure.stage1_systolic

    if elevated:
        out.add(
            "Take all prescribed medications as directed. Do not stop cardiac medications "
            "without consulting your doctor. Use pill organizer and set reminders if needed.",
            MEDICATIONS, "high",
        )
        out.add(
            "Bring complete medication list (including over-the-counter and supplements) to "
            "all medical appointments. Some supplements interact with cardiac medications.",
            MEDICATIONS, "high",
        )

    if (
        has_modifiable_risk_factors(m, rules)
        and m.age is not None
        and m.age >= 50
        and ctx.category != CATEGORY_NORMAL
    ):
        out.add(
            "Consider additional cardiac screening: exercise stress test, coronary calcium "
            "scoring, or advanced lipid testing. Discuss with your cardiologist.",
            PREVENTIVE_CARE, "medium",
        )

    if elevated and stage1:
        out.add(
            "Prioritize sleep: aim for 7-9 hours nightly. Poor sleep increases cardiovascular "
            "risk. Screen for sleep apnea if snoring or daytime fatigue present.",
            LIFESTYLE, "low",
        )

    if m.family_history is True:
        out.add(
            "Inform immediate family members about your cardiac risk factors. They may have "
            "increased genetic risk and should discuss screening with their doctors.",
            PREVENTIVE_CARE, "low", "Family history of heart disease",
        )

    if elevated:
        out.add(
            "Monitor mental health: depression and anxiety are common with cardiac conditions "
            "and can worsen outcomes. Seek counseling or therapy if experiencing persistent "
            "sadness, anxiety, or hopelessness.",
            SUPPORT, "medium",
        )

    ef = m.ejection_fraction
    if (
        m.diabetes is True
        or (ef is not None and ef < rules.ejection_fraction.moderate)
        or ctx.category == CATEGORY_HIGH
    ):
        out.add(
            "Learn more about your condition: visit heart.org (American Heart Association) or "
            "diabetes.org for evidence-based information.",
            SUPPORT, "low",
        )

    if elevated:
        out.add(
            "Learn cardiac emergency warning signs: chest pain/pressure, shortness of breath, "
            "pain radiating to arm/jaw/back, sudden weakness, severe headache. Call 911 "
            "immediately if these occur - do not wait.",
            SAFETY, "urgent",
        )
        out.add(
            "Keep emergency contact information readily available. Inform family/coworkers "
            "about your cardiac condition and where you keep emergency medications (if prescribed).",
            SAFETY, "medium",
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def recommendation_items(
    metrics: HeartMetrics, context: AnalysisContext, rules: RiskRules = DEFAULT_RULES
) -> list[RecommendationItem]:
    """All applicable items, de-duplicated, with the disclaimer last."""
    out = _Collector()
    _immediate_care(metrics, rules, out)
    _blood_pressure(metrics, rules, out)
    _heart_function(metrics, rules, out)
    _lipids(metrics, rules, out)
    _glucose(metrics, rules, out)
    _lifestyle(metrics, context, rules, out)
    _care_plan(metrics, context, rules, out)

    if len(out.items) < MIN_SPECIFIC_RECOMMENDATIONS:
        out.add(
            "Based on available data, maintain healthy lifestyle and schedule regular "
            "check-ups with your healthcare provider.",
            PREVENTIVE_CARE, "low",
        )
    out.add(DISCLAIMER_TEXT, SAFETY, "low")
    return out.items


def generate_recommendations(
    metrics: HeartMetrics, context: AnalysisContext, rules: RiskRules = DEFAULT_RULES
) -> list[str]:
    """Flat recommendation texts, in order, ending with the disclaimer."""
    return [item.text for item in recommendation_items(metrics, context, rules)]


def priority_recommendations(items: list[RecommendationItem]) -> list[RecommendationItem]:
    """Top five: immediate care, PRIORITY-flagged, two monitoring, two lifestyle."""
    immediate = [i for i in items if i.category == IMMEDIATE_CARE]
    flagged = [i for i in items if i.text.startswith("PRIORITY")]
    monitoring = [i for i in items if i.category == MONITORING][:2]
    lifestyle = [i for i in items if i.category == LIFESTYLE and i not in flagged][:2]

    ordered: list[RecommendationItem] = []
    for item in immediate + flagged + monitoring + lifestyle:
        if item not in ordered:
            ordered.append(item)
    return ordered[:PRIORITY_LIMIT]


def group_by_category(items: list[RecommendationItem]) -> dict[str, tuple[RecommendationItem, ...]]:
    grouped: dict[str, list[RecommendationItem]] = {key: [] for key in CATEGORY_KEYS.values()}
    for item in items:
        grouped[CATEGORY_KEYS[item.category]].append(item)
    return {key: tuple(values) for key, values in grouped.items()}


def build_recommendations(
    metrics: HeartMetrics, context: AnalysisContext, rules: RiskRules = DEFAULT_RULES
) -> RecommendationsResult:
    items = recommendation_items(metrics, context, rules)
    return RecommendationsResult(
        items=tuple(items),
        priority_recommendations=tuple(priority_recommendations(items)),
        categorized=group_by_category(items),
        disclaimer=DISCLAIMER,
    )
