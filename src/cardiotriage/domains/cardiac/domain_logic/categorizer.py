"""Categorizer — normalised risk percent to a clinical category."""

from __future__ import annotations

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.analysis_models import (
    CATEGORY_HIGH,
    CATEGORY_LOW,
    CATEGORY_MODERATE,
    CATEGORY_NORMAL,
    CategoryMeta,
    CategoryResult,
)

CATEGORY_COLORS = {
    CATEGORY_HIGH: "#DC2626",
    CATEGORY_MODERATE: "#F59E0B",
    CATEGORY_LOW: "#3B82F6",
    CATEGORY_NORMAL: "#10B981",
}

CATEGORY_ICONS = {
    CATEGORY_HIGH: "alert-triangle",
    CATEGORY_MODERATE: "zap",
    CATEGORY_LOW: "info",
    CATEGORY_NORMAL: "check-circle",
}

ACTION_TIMELINES = {
    CATEGORY_HIGH: (
        "Urgent clinical evaluation within 24-72 hours - Contact your healthcare "
        "provider immediately or visit urgent care"
    ),
    CATEGORY_MODERATE: (
        "Follow-up with doctor within 2-4 weeks - Contact your healthcare provider "
        "to schedule appointment"
    ),
    CATEGORY_LOW: "Routine care - Schedule regular check-up and focus on lifestyle modifications",
    CATEGORY_NORMAL: (
        "Continue current care - Maintain healthy lifestyle and attend regular "
        "preventive care visits"
    ),
}


def clamp_percent(percent: float, rules: RiskRules = DEFAULT_RULES) -> float:
    norm = rules.normalization
    return round(max(norm.floor_percent, min(norm.ceiling_percent, percent)), 1)


def categorize_risk(score: float, rules: RiskRules = DEFAULT_RULES) -> CategoryResult:
    """Map a normalised percent onto Normal / Low / Moderate / High.

    The input is clamped to the rule set's floor and ceiling first, so every
    result reports a non-zero baseline risk.
    """
    percent = clamp_percent(score, rules)
    cuts = rules.categories
    high = percent >= cuts.high if cuts.high_inclusive else percent > cuts.high
    if high:
        category = CATEGORY_HIGH
    elif percent >= cuts.moderate:
        category = CATEGORY_MODERATE
    elif percent >= cuts.low:
        category = CATEGORY_LOW
    else:
        category = CATEGORY_NORMAL
    return CategoryResult(category=category, normalized_risk_percent=percent)


def _band_label(category: str, rules: RiskRules) -> str:
    cuts = rules.categories
    high_op = ">=" if cuts.high_inclusive else ">"
    return {
        CATEGORY_HIGH: f"{high_op}{cuts.high:g}%",
        CATEGORY_MODERATE: f"{cuts.moderate:g}-{cuts.high:g}%",
        CATEGORY_LOW: f"{cuts.low:g}-{cuts.moderate:g}%",
        CATEGORY_NORMAL: f"<{cuts.low:g}%",
    }[category]


def category_description(category: str, rules: RiskRules = DEFAULT_RULES) -> str:
    band = _band_label(category, rules)
    if category == CATEGORY_HIGH:
        return (
            f"High cardiovascular risk detected ({band}). This indicates the presence "
            "of multiple severe risk factors, critical cardiac dysfunction, or major "
            "risk factors like diabetes + smoking. Urgent clinical evaluation within "
            "24-72 hours is required to prevent adverse cardiac events."
        )
    if category == CATEGORY_MODERATE:
        return (
            f"Moderate cardiovascular risk detected ({band}). Significant risk factors "
            "are present that require medical intervention. Follow-up with your doctor "
            "within 2-4 weeks to develop a risk reduction plan and consider medication "
            "or lifestyle changes."
        )
    if category == CATEGORY_LOW:
        return (
            f"Low cardiovascular risk detected ({band}). Some risk factors are present "
            "but not immediately concerning. Routine care recommended. Focus on "
            "lifestyle modifications to prevent progression."
        )
    return (
        f"Normal cardiovascular risk profile ({band}). Minimal or no significant risk "
        "factors detected. Continue preventive care and maintain healthy lifestyle habits."
    )


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[CATEGORY_NORMAL])


def category_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, CATEGORY_ICONS[CATEGORY_NORMAL])


def category_action_timeline(category: str) -> str:
    return ACTION_TIMELINES.get(category, ACTION_TIMELINES[CATEGORY_NORMAL])


def category_meta(category: str, rules: RiskRules = DEFAULT_RULES) -> CategoryMeta:
    """Bundle the display metadata for a category."""
    return CategoryMeta(
        description=category_description(category, rules),
        color=category_color(category),
        icon=category_icon(category),
        action_timeline=category_action_timeline(category),
    )
