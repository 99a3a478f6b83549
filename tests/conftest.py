"""Shared test fixtures for cardiac triage tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RULESET_ID", "cardiac_points")
    monkeypatch.setenv("RULESET_DIR", "")
    monkeypatch.setenv("CARDIO_HOST", "127.0.0.1")
    monkeypatch.setenv("CARDIO_ALLOW_INSECURE_BIND", "false")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from cardiotriage.core.clock import FixedClock  # noqa: E402
from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules  # noqa: E402
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics  # noqa: E402

FIXED_INSTANT = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

RULESET_DIR = _SRC_DIR / "cardiotriage" / "domains" / "cardiac" / "rulesets"


# ---------------------------------------------------------------------------
# Sample reports
# ---------------------------------------------------------------------------

CLINIC_REPORT = """Patient Name: John Smith
Age: 58 years   Sex: Male
Blood Pressure: 150/95 mmHg
Heart Rate: 78 bpm
LVEF: 40%
PASP: 45 mmHg
Total Cholesterol: 240 mg/dL
LDL: 165 mg/dL
HDL: 38 mg/dL
Fasting Glucose: 110 mg/dL
BMI: 31.2
Current smoker. No diabetes. Family history of coronary disease.
Mild mitral regurgitation. Normal sinus rhythm.
"""

# Tabular echo printout as it comes back from OCR ("Z9" for "29", "LVIDO" for "LVIDd")
ECHO_PRINTOUT = """Z9Y/M
EF (AAC) 68%
FS (MM Cubeid) 29.4%
IVSd (MM) 1.02
LVIDO (MM) 3.57
TR Velocity (MM) 2.4
PASP (MM) 35
"""


@pytest.fixture
def rules() -> RiskRules:
    return DEFAULT_RULES


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock(FIXED_INSTANT)


@pytest.fixture
def healthy_metrics() -> HeartMetrics:
    return HeartMetrics(
        age=35, sex="female", systolic=115, diastolic=75, ldl=90, hdl=62,
        ejection_fraction=60, bmi=22.5, smoker=False, diabetes=False,
    )


@pytest.fixture
def high_risk_metrics() -> HeartMetrics:
    return HeartMetrics(
        age=70, sex="male", systolic=190, diastolic=115, ldl=200, ejection_fraction=25,
        pasp=68, bmi=34, fasting_blood_sugar=180, diabetes=True, smoker=True,
        family_history=True,
    )


@pytest.fixture
def clinic_report() -> str:
    return CLINIC_REPORT


@pytest.fixture
def echo_printout() -> str:
    return ECHO_PRINTOUT


@pytest.fixture
def fixed_instant() -> datetime:
    return FIXED_INSTANT


@pytest.fixture
def ruleset_dir() -> Path:
    """Directory of the packaged YAML rule sets."""
    return RULESET_DIR
