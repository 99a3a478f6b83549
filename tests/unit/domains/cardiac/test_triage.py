"""Unit tests for the triage resolver and the recommendation generator."""

from __future__ import annotations

import pytest

from cardiotriage.core.rules.loader import load_ruleset_file
from cardiotriage.domains.cardiac.domain_logic import triage
from cardiotriage.domains.cardiac.domain_logic.analysis_models import AnalysisContext
from cardiotriage.domains.cardiac.domain_logic.categorizer import categorize_risk
from cardiotriage.domains.cardiac.domain_logic.confidence import estimate_confidence
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics
from cardiotriage.domains.cardiac.domain_logic.recommendations import (
    CATEGORY_KEYS,
    DISCLAIMER,
    DISCLAIMER_TEXT,
    IMMEDIATE_CARE,
    build_recommendations,
    generate_recommendations,
)
from cardiotriage.domains.cardiac.domain_logic.risk_scorer import score_risk
from cardiotriage.domains.cardiac.domain_logic.triage import (
    LEVEL_IMMEDIATE,
    TRIAGE_RULES,
    first_match,
    next_steps_checklist,
    resolve_triage,
    warning_signs,
)


def _context(metrics: HeartMetrics, rules) -> AnalysisContext:
    """Run the scoring stages the way the composer does."""
    scoring = score_risk(metrics, rules)
    categorised = categorize_risk(scoring.score, rules)
    return AnalysisContext(
        score=scoring.score,
        normalized_risk_percent=categorised.normalized_risk_percent,
        category=categorised.category,
        confidence=estimate_confidence(metrics, scoring.score, rules),
        reasons=scoring.reasons,
    )


def _fixed_context(percent: float, category: str = "Low") -> AnalysisContext:
    return AnalysisContext(
        score=percent, normalized_risk_percent=percent, category=category, confidence=0.5
    )


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

class TestTriageRuleTable:
    def test_rule_ids_are_unique(self):
        ids = [rule.rule_id for rule in TRIAGE_RULES]
        assert len(ids) == len(set(ids))

    def test_last_rule_always_matches(self, rules):
        last = TRIAGE_RULES[-1]
        assert last.predicate(HeartMetrics(), _fixed_context(0, "Low"), rules)

    def test_empty_rule_list_matches_nothing(self, rules):
        assert first_match((), HeartMetrics(), _fixed_context(50), rules) is None

    def test_immediate_rules_come_first(self):
        levels = [rule.level for rule in TRIAGE_RULES[:3]]
        assert levels == [LEVEL_IMMEDIATE] * 3


class TestResolveTriage:
    @pytest.mark.parametrize(
        "metrics, percent, rule_id, priority",
        [
            (HeartMetrics(ejection_fraction=30), 10, "critical_ejection_fraction", "IMMEDIATE"),
            (HeartMetrics(systolic=185, diastolic=95), 10, "hypertensive_crisis", "IMMEDIATE"),
            (HeartMetrics(systolic=130, diastolic=112), 10, "hypertensive_crisis", "IMMEDIATE"),
            (HeartMetrics(pasp=65), 10, "severe_pulmonary_hypertension", "IMMEDIATE"),
            (HeartMetrics(), 90, "very_high_score", "URGENT"),
            (HeartMetrics(), 70, "high_score", "URGENT"),
            (HeartMetrics(pasp=55), 10, "moderate_pulmonary_pressure", "URGENT"),
            (HeartMetrics(ejection_fraction=40), 10, "moderate_ejection_fraction", "URGENT"),
            (HeartMetrics(systolic=145, diastolic=85), 10, "stage2_hypertension", "URGENT"),
            (HeartMetrics(), 45, "moderate_score", "SEMI-URGENT"),
            (HeartMetrics(ejection_fraction=47), 10, "mildly_reduced_ejection_fraction", "SEMI-URGENT"),
            (HeartMetrics(systolic=132, diastolic=78), 10, "stage1_hypertension", "SEMI-URGENT"),
            (HeartMetrics(ldl=195), 10, "major_risk_factor", "SEMI-URGENT"),
            (HeartMetrics(fasting_blood_sugar=140), 10, "major_risk_factor", "SEMI-URGENT"),
            (HeartMetrics(), 25, "low_score", "NON-URGENT"),
        ],
    )
    def test_first_matching_rule_wins(self, rules, metrics, percent, rule_id, priority):
        result = resolve_triage(metrics, _fixed_context(percent), rules)
        assert result.rule_id == rule_id
        assert result.priority == priority

    def test_normal_category_is_monitoring(self, healthy_metrics, rules):
        result = resolve_triage(healthy_metrics, _context(healthy_metrics, rules), rules)
        assert result.rule_id == "minimal_risk"
        assert result.priority == "NON-URGENT"
        assert result.level.startswith("MONITORING")

    def test_wide_bands_low_floor_falls_to_default(self, ruleset_dir):
        wide = load_ruleset_file(ruleset_dir / "cardiac_points_wide_bands.v1.yaml")
        metrics = HeartMetrics(age=35)
        context = _context(metrics, wide)
        assert context.category == "Low"
        assert resolve_triage(metrics, context, wide).rule_id == "default_routine"

    def test_high_risk_scenario_is_immediate(self, high_risk_metrics, rules):
        result = resolve_triage(high_risk_metrics, _context(high_risk_metrics, rules), rules)
        assert result.priority == "IMMEDIATE"
        assert result.rule_id == "critical_ejection_fraction"
        assert result.reason.startswith(result.level + ":")
        assert result.action == "Call 911 or go to emergency room immediately"
        assert result.next_steps_checklist[0].startswith("1. Call 911")

    def test_exhausted_rule_table_raises(self, monkeypatch, rules):
        monkeypatch.setattr(triage, "TRIAGE_RULES", ())
        with pytest.raises(RuntimeError, match="No triage rule matched"):
            resolve_triage(HeartMetrics(), _fixed_context(10), rules)

    def test_deterministic(self, high_risk_metrics, rules):
        context = _context(high_risk_metrics, rules)
        assert resolve_triage(high_risk_metrics, context, rules) == resolve_triage(
            high_risk_metrics, context, rules
        )

    def test_very_high_score_quotes_critical_findings(self, rules):
        context = AnalysisContext(
            score=90, normalized_risk_percent=90, category="High", confidence=0.8,
            reasons=("CRITICAL: Current smoker (+10 points)", "Age 62 years (Elevated risk, +4 points)"),
        )
        result = resolve_triage(HeartMetrics(), context, rules)
        assert "Critical findings include: CRITICAL: Current smoker" in result.reason


class TestWarningSigns:
    def test_reduced_ef(self, rules):
        signs = warning_signs(HeartMetrics(ejection_fraction=40), "Low", rules)
        assert signs[0].startswith("Seek immediate care")

    def test_tr_velocity_adds_pulmonary_sign(self, rules):
        signs = warning_signs(HeartMetrics(tr_velocity=3.0), "Normal", rules)
        assert signs[0].startswith("Watch for")

    def test_elevated_category_adds_general_signs(self, rules):
        signs = warning_signs(HeartMetrics(), "Moderate", rules)
        assert signs[0].startswith("General cardiac warning signs")

    def test_default_awareness(self, rules):
        signs = warning_signs(HeartMetrics(), "Normal", rules)
        assert len(signs) == 1
        assert signs[0].startswith("Maintain awareness")

    def test_checklist_has_five_steps(self):
        for rule in TRIAGE_RULES:
            assert len(next_steps_checklist(rule.level)) == 5


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

class TestRecommendations:
    @pytest.mark.parametrize(
        "metrics",
        [
            HeartMetrics(),
            HeartMetrics(age=35, sex="female", systolic=115, diastolic=75),
            HeartMetrics(
                age=70, sex="male", systolic=190, diastolic=115, ldl=200, ejection_fraction=25,
                pasp=68, bmi=34, fasting_blood_sugar=180, diabetes=True, smoker=True,
                family_history=True,
            ),
            HeartMetrics(systolic=150, diastolic=95, ldl=170, bmi=28, smoker=True),
        ],
    )
    def test_no_duplicates_and_disclaimer_last(self, rules, metrics):
        texts = generate_recommendations(metrics, _context(metrics, rules), rules)
        assert len(texts) == len(set(texts))
        assert texts[-1] == DISCLAIMER_TEXT
        assert texts.count(DISCLAIMER_TEXT) == 1

    def test_sparse_record_gets_general_advice(self, healthy_metrics, rules):
        texts = generate_recommendations(healthy_metrics, _context(healthy_metrics, rules), rules)
        assert texts[0].startswith("Based on available data, maintain healthy lifestyle")
        assert len(texts) == 2

    def test_high_risk_leads_with_immediate_care(self, high_risk_metrics, rules):
        result = build_recommendations(high_risk_metrics, _context(high_risk_metrics, rules), rules)
        assert result.items[0].text.startswith("IMMEDIATE:")
        assert result.items[0].priority == "urgent"
        assert result.priority_recommendations[0].category == IMMEDIATE_CARE
        assert len(result.priority_recommendations) <= 5

    def test_smoker_priority_item_is_surfaced(self, rules):
        metrics = HeartMetrics(age=45, systolic=125, diastolic=78, smoker=True)
        result = build_recommendations(metrics, _context(metrics, rules), rules)
        assert any(i.text.startswith("PRIORITY: Quit smoking") for i in result.priority_recommendations)

    def test_grouped_by_category(self, high_risk_metrics, rules):
        result = build_recommendations(high_risk_metrics, _context(high_risk_metrics, rules), rules)
        assert set(result.categorized) == set(CATEGORY_KEYS.values())
        assert sum(len(group) for group in result.categorized.values()) == len(result.items)
        assert result.categorized["immediate"]
        assert result.disclaimer == DISCLAIMER

    def test_stage2_blood_pressure_advice(self, rules):
        metrics = HeartMetrics(systolic=150, diastolic=95)
        texts = generate_recommendations(metrics, _context(metrics, rules), rules)
        assert any(t.startswith("URGENT: Your blood pressure (150/95 mmHg)") for t in texts)
