"""Unit tests for the metrics record and the report-text extractor."""

from __future__ import annotations

import logging

import pytest

from cardiotriage.domains.cardiac.domain_logic.metrics_extractor import extract_metrics
from cardiotriage.domains.cardiac.domain_logic.metrics_models import (
    ECG_ABNORMAL,
    ECG_NORMAL,
    MILD_MITRAL_REGURGITATION,
    SEVERE_AORTIC_REGURGITATION,
    HeartMetrics,
)


# ---------------------------------------------------------------------------
# HeartMetrics
# ---------------------------------------------------------------------------

class TestHeartMetrics:
    def test_empty_record(self):
        metrics = HeartMetrics()
        assert metrics.is_empty()
        assert metrics.present_fields() == []
        assert metrics.to_dict() == {}

    def test_to_dict_omits_absent_fields(self):
        metrics = HeartMetrics(age=50, smoker=False, cardiac_abnormalities=(MILD_MITRAL_REGURGITATION,))
        assert metrics.to_dict() == {
            "age": 50,
            "smoker": False,
            "cardiac_abnormalities": [MILD_MITRAL_REGURGITATION],
        }

    def test_from_dict_maps_aliases_and_ignores_unknown(self):
        metrics = HeartMetrics.from_dict({"lvef": "55", "fbs": 99, "shoe_size": 42, "ldl": None})
        assert metrics.ejection_fraction == 55.0
        assert metrics.fasting_blood_sugar == 99.0
        assert metrics.ldl is None

    def test_from_dict_coerces_flags_and_sex(self):
        metrics = HeartMetrics.from_dict({"smoker": "yes", "diabetes": 0, "sex": "FEMALE"})
        assert metrics.smoker is True
        assert metrics.diabetes is False
        assert metrics.sex == "female"

    @pytest.mark.parametrize("raw, sex", [("M", "male"), ("f", "female"), (" Female ", "female"), ("male", "male")])
    def test_from_dict_normalises_sex(self, raw, sex):
        assert HeartMetrics.from_dict({"sex": raw}).sex == sex

    def test_from_dict_rejects_unknown_sex(self):
        with pytest.raises(ValueError, match="sex"):
            HeartMetrics.from_dict({"sex": "unknown"})

    def test_from_dict_rejects_boolean_number(self):
        with pytest.raises(TypeError):
            HeartMetrics.from_dict({"age": True})

    def test_has_blood_pressure_needs_both_values(self):
        assert not HeartMetrics(systolic=120).has_blood_pressure()
        assert HeartMetrics(systolic=120, diastolic=80).has_blood_pressure()


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class TestExtractClinicReport:
    def test_vitals_and_labs(self, clinic_report):
        m = extract_metrics(clinic_report)
        assert m.patient_name == "JOHN SMITH"
        assert m.age == 58
        assert m.sex == "male"
        assert (m.systolic, m.diastolic) == (150, 95)
        assert m.heart_rate == 78
        assert m.ejection_fraction == 40
        assert m.pasp == 45
        assert m.cholesterol == 240
        assert m.ldl == 165
        assert m.hdl == 38
        assert m.fasting_blood_sugar == 110
        assert m.bmi == 31.2

    def test_risk_flags_are_tri_state(self, clinic_report):
        m = extract_metrics(clinic_report)
        assert m.smoker is True
        assert m.diabetes is False
        assert m.family_history is True

    def test_findings_and_rhythm(self, clinic_report):
        m = extract_metrics(clinic_report)
        assert m.cardiac_abnormalities == (MILD_MITRAL_REGURGITATION,)
        assert m.ecg_result == ECG_NORMAL


class TestExtractEchoPrintout:
    def test_tabular_measurements(self, echo_printout):
        m = extract_metrics(echo_printout)
        assert m.ejection_fraction == 68
        assert m.fractional_shortening == 29.4
        assert m.ivsd == 1.02
        assert m.lvidd == 3.57
        assert m.tr_velocity == 2.4
        assert m.pasp == 35

    def test_ocr_age_repair_and_sex(self, echo_printout):
        m = extract_metrics(echo_printout)
        assert m.age == 29
        assert m.sex == "male"


class TestEjectionFraction:
    def test_typical_value_preferred_over_earlier_low_match(self):
        m = extract_metrics("Ejection fraction 30 on prior study. LVEF 60 today")
        assert m.ejection_fraction == 60

    def test_implausible_value_rejected(self):
        m = extract_metrics("LVEF: 95% noted on study")
        assert m.ejection_fraction is None

    def test_loose_mention_collapses_ocr_digits(self):
        m = extract_metrics("Systolic function preserved, EF approx 512 on visual estimate")
        assert m.ejection_fraction == 51

    def test_percent_scan_uses_context(self):
        m = extract_metrics("Views A4C obtained. Estimated 62% with good function. FS 28.0")
        assert m.ejection_fraction == 62


class TestRiskFlags:
    @pytest.mark.parametrize("text", ["Non-smoker", "Smoking: no", "denies tobacco use"])
    def test_smoking_negations(self, text):
        assert extract_metrics(text).smoker is False

    def test_smoker_positive(self):
        assert extract_metrics("Heavy smoker for 20 years").smoker is True

    def test_absent_keyword_is_unknown(self):
        m = extract_metrics("Routine follow-up visit.")
        assert m.smoker is None
        assert m.diabetes is None
        assert m.family_history is None

    def test_diabetes_negation(self):
        assert extract_metrics("Non-diabetic patient").diabetes is False


class TestQualitativeFindings:
    def test_severe_aortic_regurgitation(self):
        m = extract_metrics("Severe AR noted. Irregular rhythm.")
        assert SEVERE_AORTIC_REGURGITATION in m.cardiac_abnormalities
        assert m.ecg_result == ECG_ABNORMAL

    def test_finding_words_in_separate_sentences_do_not_combine(self):
        m = extract_metrics("Mild pericardial thickening. TR jet not seen.")
        assert m.cardiac_abnormalities == ()


class TestExtractionEdgeCases:
    def test_empty_text_gives_empty_record(self):
        assert extract_metrics("").is_empty()

    def test_non_string_rejected(self):
        with pytest.raises(TypeError):
            extract_metrics(None)  # type: ignore[arg-type]

    def test_bmi_derived_from_height_and_weight(self):
        m = extract_metrics("Height: 180 cm, Weight: 81 kg")
        assert m.bmi == 25.0

    def test_out_of_range_blood_pressure_ignored(self):
        m = extract_metrics("BP 300/20 recorded in error. Age: 44. Heart rate 70. Non-smoker.")
        assert m.systolic is None
        assert m.diastolic is None

    def test_sparse_text_falls_back_to_bare_numbers(self, caplog):
        with caplog.at_level(logging.WARNING):
            m = extract_metrics("Values noted: 145 and 88 today")
        assert m.systolic == 145
        assert m.diastolic == 88
        assert "inferred" in caplog.text
