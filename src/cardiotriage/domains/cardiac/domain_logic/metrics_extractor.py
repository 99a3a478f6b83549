"""Metrics extractor — free-form report text to a ``HeartMetrics`` record.

Each field is recovered by its own pass over the lower-cased text. A pass tries
an ordered list of regular expressions, most specific first, and keeps the
first match that falls inside the field's plausible clinical range. Fields that
cannot be recovered stay ``None``; extraction never fails on text input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules
from cardiotriage.domains.cardiac.domain_logic.metrics_models import (
    DILATED_LEFT_VENTRICLE,
    ECG_ABNORMAL,
    ECG_NORMAL,
    MILD_MITRAL_REGURGITATION,
    MILD_TRICUSPID_REGURGITATION,
    SEVERE_AORTIC_REGURGITATION,
    SEX_FEMALE,
    SEX_MALE,
    VALVE_CALCIFICATION,
    HeartMetrics,
)

logger = logging.getLogger(__name__)

Pattern = re.Pattern[str]


def _compile(*patterns: str) -> tuple[Pattern, ...]:
    return tuple(re.compile(p) for p in patterns)


# ---------------------------------------------------------------------------
# Plausibility ranges (inclusive) for fields recovered by pattern
# ---------------------------------------------------------------------------

AGE_RANGE = (1, 120)
SYSTOLIC_RANGE = (70, 250)
DIASTOLIC_RANGE = (40, 150)
HEART_RATE_RANGE = (30, 220)
TR_VELOCITY_RANGE = (0.5, 6.0)
PASP_RANGE = (10, 150)
IVSD_RANGE = (0.5, 3.0)
LVIDD_RANGE = (2.0, 7.0)
FRACTIONAL_SHORTENING_RANGE = (10, 50)
LA_DIMENSION_RANGE = (1.0, 7.0)
CHOLESTEROL_RANGE = (70, 600)
LDL_RANGE = (10, 500)
HDL_RANGE = (5, 200)
GLUCOSE_RANGE = (30, 700)
BMI_RANGE = (10, 80)
BSA_RANGE = (0.5, 3.5)
HEIGHT_RANGE = (50, 250)
WEIGHT_RANGE = (20, 350)
WAIST_RANGE = (40, 250)

# Loose EF mentions are only trusted inside this narrower window
FALLBACK_EF_RANGE = (35, 80)

# Bare-number inference when almost nothing was recovered.
# Order matters: each number is offered to these fields in this order.
MIN_FIELDS_BEFORE_INFERENCE = 3
INFERENCE_RANGES = (
    ("systolic", (90, 200)),
    ("diastolic", (50, 120)),
    ("age", (18, 100)),
    ("cholesterol", (120, 400)),
    ("heart_rate", (50, 150)),
)


# ---------------------------------------------------------------------------
# Pattern tables (applied to lower-cased text)
# ---------------------------------------------------------------------------

# Titles only count at the start of a line or after a name label, since
# "MR" and "MS" are also valve-lesion abbreviations in echo reports.
_TITLE_PREFIX = r"(?:^|\b(?:patient\s*name|patient|name)\s*:?[ \t]*)"

_NAME_PATTERNS = (
    re.compile(r"(?:patient\s*name|patient|name)[ \t]*:[ \t]*([a-z][a-z .]+)", re.IGNORECASE),
    re.compile(_TITLE_PREFIX + r"(?:mr|mrs|ms|dr)\.?[ \t]+([a-z][a-z .]+)", re.IGNORECASE | re.MULTILINE),
)

_AGE_PATTERNS = _compile(
    r"(\d{2,3})\s*y\s*/\s*[mf]\b",                  # 29Y/M
    r"z(\d)\s*y\s*/\s*[mf]\b",                      # Z9Y/M, "Z" misread for "2"
    r"\b(\d{1,3})[\s-]*(?:years?|yrs?|y)\b",
    r"\bage\s*:?\s*(\d{1,3})\b",
    r"\b(\d{1,3})[\s-]*years?[\s-]*old",
    r"patient.*?(\d{1,3})\s*y",
)

_FEMALE_PATTERNS = (
    re.compile(r"\d+\s*y\s*/\s*f\b"),
    re.compile(r"\b(?:female|woman)\b"),
    re.compile(r"\bsex\s*:?\s*f\b"),
    re.compile(_TITLE_PREFIX + r"(?:mrs|ms)\b", re.MULTILINE),
)
_MALE_PATTERNS = (
    re.compile(r"\d+\s*y\s*/\s*m\b"),
    re.compile(r"\b(?:male|man)\b"),
    re.compile(r"\bsex\s*:?\s*m\b"),
    re.compile(_TITLE_PREFIX + r"mr\b", re.MULTILINE),
)

_BP_PATTERNS = _compile(
    r"\b(?:bp|blood pressure|systolic|diastolic)\b.*?(\d{2,3})\s*/\s*(\d{2,3})",
    r"(\d{2,3})\s*/\s*(\d{2,3})\s*(?:mmhg|mm hg)",
    r"systolic.*?(\d{2,3}).*?diastolic.*?(\d{2,3})",
    r"pressure.*?(\d{2,3})\s*/\s*(\d{2,3})",
)

_HEART_RATE_PATTERNS = _compile(
    r"\b(?:heart rate|hr|pulse)\b.*?(\d{2,3})",
    r"(\d{2,3})\s*(?:bpm|beats)",
)

_TR_VELOCITY_PATTERNS = _compile(
    r"tr velocity\s*\([^)]+\)\s*(\d{1,2}\.\d+)",    # TR Velocity (MM) 2.4
    r"tr velocity.*?(\d{1,2}\.\d)\s*m?/s",
    r"peak tr velocity.*?(\d{1,2}\.\d)",
    r"trvelocity.*?(\d{1,2}\.\d+)",
)

_PASP_PATTERNS = _compile(
    r"\bpasp\s*\([^)]+\)\s*(\d{1,3})",              # PASP (MM) 35
    r"\bpasp.*?(\d{1,3})\s*mmhg",
    r"epasp.*?(\d{1,3})\s*mmhg",
    r"pulmonary.*?pressure.*?(\d{1,3})",
)

_IVSD_PATTERNS = _compile(
    r"ivsd\s*\([^)]+\)\s*(\d{1,2}\.\d+)",
    r"\bivsd?\s*:?\s*(\d{1,2}\.\d+)",
    r"interventricular septum.*?(\d{1,2}\.\d+)",
    r"ivsd.*?(\d\.\d{2,3})",
)

_LVIDD_PATTERNS = _compile(
    r"lvid[do]\s*\([^)]+\)\s*(\d{1,2}\.\d+)",       # LVIDO (MM) 3.57, "o" misread for "d"
    r"\blvid[do]?\s*:?\s*(\d{1,2}\.\d+)",
    r"\blv.*?internal.*?diameter.*?(\d{1,2}\.\d+)",
    r"lvido.*?(\d\.\d{1,2})",
)

_FS_PATTERNS = _compile(
    r"\bfs\s*\([^)]+\)\s*(\d{1,3}\.\d+)",           # FS (MM Cubeid) 29.4%
    r"(?:^|\s)fs[\s:]*(\d{1,3}\.\d+)",
    r"fractional shortening.*?(\d{1,3}\.\d+)",
    r"\bfs\b.*?(\d{2}\.\d)",
)

_LA_DIMENSION_PATTERNS = _compile(
    r"\bla dimen.*?(\d{1,2}\.\d+)\s*cm",
    r"\bla\s*(?:dimension|size)\s*:?\s*(\d{1,2}\.\d+)",
    r"left atrium.*?(\d{1,2}\.\d+)\s*cm",
)

_EF_PATTERNS = _compile(
    r"\bef\s*\([^)]+\)\s*(\d{2,3})%",               # EF (AAC) 68%
    r"(?:^|\s)ef[\s:]*(\d{2,3})%",
    r"\bef\s*:?\s*>?\s*(\d{2,3})%",
    r"ejection fraction\s*:?\s*>?\s*(\d{2,3})",
    r"\blvef\s*:?\s*>?\s*(\d{2,3})",
    r"left ventricular ejection fraction\s*:?\s*>?\s*(\d{2,3})",
    r"\bef:\s*>\s*(\d{2,3})",
    r"systolic function.*?\bef\b.*?(\d{2,3})",
    r"\bff\s*\([^)]+\)\s*(\d{2,3})",                # FF (40), alternate notation
    r"\(aac\)\s*(\d{2,3})%",
    r"\bef\s*[-:]?\s*(\d{2,3})\s*%",
)
_EF_LOOSE_MENTION = re.compile(r"\bef\b[^\d]*(\d{2,3})")
_FF_NOTATION = re.compile(r"\bff\s*\([^)]+\)\s*(\d{2,3})")
_PERCENT_TOKEN = re.compile(r"(\d{2,3})\s*%")
_EF_CONTEXT = re.compile(r"\b(?:lv)?ef\b")
_ECHO_VIEW_CONTEXT = re.compile(r"aac|a4c")
_FS_CONTEXT = re.compile(r"\bfs\b")

_CHOLESTEROL_PATTERNS = _compile(
    r"(?:total cholesterol|cholesterol|\btc\b)\s*:?\s*(\d{2,4})",
    r"cholesterol\s*[-:]?\s*(\d{2,4})\s*(?:mg/dl|mg)?",
    r"\btc\s*:?\s*(\d{2,4})",
)
_LDL_PATTERNS = _compile(
    r"\bldl\s*:?\s*(\d{1,4})",
    r"low density\s*:?\s*(\d{1,4})",
    r"\bldl.*?(\d{1,4})\s*(?:mg/dl|mg)?",
)
_HDL_PATTERNS = _compile(
    r"\bhdl\s*:?\s*(\d{1,4})",
    r"high density\s*:?\s*(\d{1,4})",
    r"\bhdl.*?(\d{1,4})\s*(?:mg/dl|mg)?",
)
_GLUCOSE_PATTERNS = _compile(
    r"(?:fasting glucose|\bfbs\b|blood sugar|glucose|sugar)\s*:?\s*(\d{2,4})",
    r"glucose\s*[-:]?\s*(\d{2,4})\s*(?:mg/dl|mg)?",
    r"random glucose\s*:?\s*(\d{2,4})",
)

_BMI_PATTERNS = _compile(
    r"\bbmi\s*:?\s*(\d{1,2}(?:\.\d)?)",
    r"body mass index\s*:?\s*(\d{1,2}(?:\.\d)?)",
    r"weight.*?(\d{1,2}\.\d)\s*(?:kg/m|bmi)",
)
_BSA_PATTERNS = _compile(
    r"\bbsa\s*:?\s*(\d{1,2}\.\d+)",
    r"body surface area\s*:?\s*(\d{1,2}\.\d+)",
    r"\bbsa.*?(\d{1,2}\.\d+)\s*m",
)
_HEIGHT_PATTERNS = _compile(
    r"height\s*:?\s*(\d{2,3})\s*(?:cm|centimeters?)",
    r"\bht\s*:?\s*(\d{2,3})\s*cm",
    r"(\d{2,3})\s*cm.*?tall",
)
_WEIGHT_PATTERNS = _compile(
    r"weight\s*:?\s*(\d{2,3}(?:\.\d)?)\s*(?:kg|kilograms?)",
    r"\bwt\s*:?\s*(\d{2,3}(?:\.\d)?)\s*kg",
    r"body weight\s*:?\s*(\d{2,3}(?:\.\d)?)",
)
_WAIST_PATTERNS = _compile(
    r"waist\s*(?:circumference)?\s*:?\s*(\d{2,3})\s*(?:cm|centimeters?)",
    r"waist\s*:?\s*(\d{2,3})\s*cm",
    r"\bwc\s*:?\s*(\d{2,3})",
)

_STRESS_TEST = re.compile(
    r"stress test\s*:?\s*(positive|negative|normal|abnormal|inconclusive)"
)

# Risk flags: (positive, explicit negation)
_SMOKER = (
    re.compile(r"smoker|smoking|tobacco"),
    re.compile(
        r"\b(?:non|no|never|denies)[\s-]*(?:a\s+)?(?:smoker|smoking|tobacco)"
        r"|(?:smoker|smoking|tobacco)\s*:\s*(?:no|none|never|negative)\b"
    ),
)
_DIABETES = (
    re.compile(r"diabet(?:es|ic)"),
    re.compile(
        r"\b(?:non|no|denies)[\s-]*(?:history of\s+)?diabet(?:es|ic)"
        r"|diabet(?:es|ic)\s*:\s*(?:no|none|negative)\b"
    ),
)
_FAMILY_HISTORY = (
    re.compile(r"family history|hereditary|genetic"),
    re.compile(r"\bno\s+(?:significant\s+)?family history"),
)

# Qualitative findings, matched within one sentence
_ABNORMALITY_PATTERNS = (
    (
        SEVERE_AORTIC_REGURGITATION,
        re.compile(r"severe[^.\n]*(?:\bar\b|aortic regurgitation)"),
    ),
    (
        MILD_MITRAL_REGURGITATION,
        re.compile(r"mild[^.\n]*(?:\bmr\b|mitral regurgitation)"),
    ),
    (
        MILD_TRICUSPID_REGURGITATION,
        re.compile(r"mild[^.\n]*(?:\btr\b|tricuspid regurgitation)"),
    ),
    (
        DILATED_LEFT_VENTRICLE,
        re.compile(r"dilated[^.\n]*(?:\blv\b|left ventricle)|(?:\blv\b|left ventricle)[^.\n]*dilated"),
    ),
    (
        VALVE_CALCIFICATION,
        re.compile(r"calcified[^.\n]*valve|valve[^.\n]*calcification"),
    ),
)
_NORMAL_RHYTHM = re.compile(r"normal[^.\n]*rhythm|sinus rhythm|\bregular[^.\n]*rhythm")
_ABNORMAL_RHYTHM = re.compile(r"abnormal|arrhythmia|irregular|afib|atrial fibrillation")

_BARE_NUMBER = re.compile(r"\d+\.?\d*")


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------

def _to_number(token: str) -> float | None:
    cleaned = re.sub(r"\s+", "", token.replace(",", "."))
    try:
        return float(cleaned)
    except ValueError:
        return None


def _in_range(value: float, bounds: tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def _find_number(
    text: str,
    patterns: tuple[Pattern, ...],
    bounds: tuple[float, float],
    field_name: str,
) -> float | None:
    """First pattern match whose value lies inside ``bounds``."""
    for pattern in patterns:
        match = pattern.search(text)
        if not match:
            continue
        value = _to_number(match.group(1))
        if value is None:
            continue
        if _in_range(value, bounds):
            logger.debug("Recovered %s=%s via %s", field_name, value, pattern.pattern)
            return value
        logger.debug("Rejected %s candidate %s (outside %s)", field_name, value, bounds)
    return None


def _tri_state(text: str, flag: tuple[Pattern, Pattern]) -> bool | None:
    positive, negation = flag
    if negation.search(text):
        return False
    if positive.search(text):
        return True
    return None


# ---------------------------------------------------------------------------
# Field passes
# ---------------------------------------------------------------------------

def _recover_patient_name(text: str) -> str | None:
    for pattern in _NAME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        name = match.group(1).strip()
        if 2 < len(name) < 50:
            return name.upper()
    return None


def _recover_age(t: str) -> float | None:
    for pattern in _AGE_PATTERNS:
        match = pattern.search(t)
        if not match:
            continue
        age = int(match.group(1))
        if match.group(0).startswith("z") and age < 10:
            logger.debug("Repaired OCR age token %r -> %d", match.group(0), 20 + age)
            age += 20
        if _in_range(age, AGE_RANGE):
            return float(age)
        logger.debug("Rejected age candidate %d", age)
    return None


def _recover_sex(t: str) -> str | None:
    if any(p.search(t) for p in _FEMALE_PATTERNS):
        return SEX_FEMALE
    if any(p.search(t) for p in _MALE_PATTERNS):
        return SEX_MALE
    return None


def _recover_blood_pressure(t: str) -> tuple[float | None, float | None]:
    for pattern in _BP_PATTERNS:
        match = pattern.search(t)
        if not match:
            continue
        systolic, diastolic = float(match.group(1)), float(match.group(2))
        if _in_range(systolic, SYSTOLIC_RANGE) and _in_range(diastolic, DIASTOLIC_RANGE):
            logger.debug("Recovered blood pressure %s/%s", systolic, diastolic)
            return systolic, diastolic
        logger.debug("Rejected blood pressure candidate %s/%s", systolic, diastolic)
    return None, None


def _recover_ejection_fraction(t: str, rules: RiskRules) -> float | None:
    """Dedicated patterns first, preferring a typical-range value, then fallbacks."""
    ef_rules = rules.ejection_fraction
    ef: float | None = None
    for pattern in _EF_PATTERNS:
        match = pattern.search(t)
        if not match:
            continue
        value = float(match.group(1))
        typical = ef_rules.typical_low <= value <= ef_rules.typical_high
        if ef_rules.severe <= value <= ef_rules.plausible_high:
            if ef is None or typical:
                ef = value
                if typical:
                    break
        elif ef_rules.plausible_low <= value < ef_rules.severe:
            if ef is None:
                ef = value
        else:
            logger.debug("Rejected EF candidate %s via %s", value, pattern.pattern)
    if ef is not None:
        return ef

    return _ef_from_loose_mention(t) or _ef_from_ff_notation(t) or _ef_from_percent_scan(t)


def _ef_from_loose_mention(t: str) -> float | None:
    match = _EF_LOOSE_MENTION.search(t)
    if not match:
        return None
    value = int(match.group(1))
    if value > 100:
        # "512" is an OCR rendering of "51%"
        value = int(str(value)[:2])
    if _in_range(value, FALLBACK_EF_RANGE):
        logger.debug("Recovered EF=%d from loose mention", value)
        return float(value)
    return None


def _ef_from_ff_notation(t: str) -> float | None:
    match = _FF_NOTATION.search(t)
    if not match:
        return None
    value = int(match.group(1))
    if _in_range(value, FALLBACK_EF_RANGE):
        logger.debug("Recovered EF=%d from FF notation", value)
        return float(value)
    return None


def _score_percent_candidate(t: str, start: int, value: int) -> int:
    before = t[max(0, start - 50):start]
    after = t[start:start + 20]
    score = 0
    if _EF_CONTEXT.search(before) or _EF_CONTEXT.search(after):
        score += 10
    if _ECHO_VIEW_CONTEXT.search(before):
        score += 8
    if "ejection" in before:
        score += 10
    if 45 <= value <= 75:
        score += 5
    if _FS_CONTEXT.search(before):
        score -= 5
    return score


def _ef_from_percent_scan(t: str) -> float | None:
    """Score every NN% token as an EF candidate by its surrounding words."""
    best_value: int | None = None
    best_score = 0
    for match in _PERCENT_TOKEN.finditer(t):
        value = int(match.group(1))
        if not _in_range(value, FALLBACK_EF_RANGE):
            continue
        score = _score_percent_candidate(t, match.start(), value)
        if best_value is None or score > best_score:
            best_value, best_score = value, score
    if best_value is not None and best_score > 0:
        logger.debug("Recovered EF=%d from percent scan (score %d)", best_value, best_score)
        return float(best_value)
    return None


def _recover_abnormalities(t: str) -> tuple[str, ...]:
    return tuple(tag for tag, pattern in _ABNORMALITY_PATTERNS if pattern.search(t))


def _recover_ecg(t: str, abnormalities: tuple[str, ...]) -> str | None:
    if _NORMAL_RHYTHM.search(t):
        return ECG_NORMAL
    if abnormalities or _ABNORMAL_RHYTHM.search(t):
        return ECG_ABNORMAL
    return None


def _infer_from_bare_numbers(text: str, found: dict[str, Any]) -> dict[str, Any]:
    """Assign bare numbers to still-unset vitals purely by numeric range.

    This path mis-assigns readily (a glucose of 150 becomes a systolic
    pressure), so callers should treat its output as weak evidence.
    """
    inferred: dict[str, Any] = {}
    for token in _BARE_NUMBER.findall(text):
        value = float(token)
        for field_name, bounds in INFERENCE_RANGES:
            if found.get(field_name) is not None or inferred.get(field_name) is not None:
                continue
            if not _in_range(value, bounds):
                continue
            if field_name == "diastolic":
                systolic = inferred.get("systolic", found.get("systolic"))
                if systolic is not None and value >= systolic:
                    continue
            inferred[field_name] = value
    return inferred


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_metrics(raw_text: str, rules: RiskRules = DEFAULT_RULES) -> HeartMetrics:
    """Recover a ``HeartMetrics`` record from report text.

    Args:
        raw_text: Text produced by OCR or a document reader.
        rules: Rule set supplying the ejection-fraction selection bands.

    Returns:
        A possibly empty record. Unrecoverable fields are ``None``.

    Raises:
        TypeError: If ``raw_text`` is not a string.
    """
    if not isinstance(raw_text, str):
        raise TypeError(f"extract_metrics expects str, got {type(raw_text).__name__}")

    logger.debug("Extracting metrics from %d characters of text", len(raw_text))
    t = raw_text.lower()

    systolic, diastolic = _recover_blood_pressure(t)
    height = _find_number(t, _HEIGHT_PATTERNS, HEIGHT_RANGE, "height")
    weight = _find_number(t, _WEIGHT_PATTERNS, WEIGHT_RANGE, "weight")
    bmi = _find_number(t, _BMI_PATTERNS, BMI_RANGE, "bmi")
    if bmi is None and height and weight:
        bmi = round(weight / (height / 100) ** 2, 1)
        logger.debug("Derived bmi=%s from height and weight", bmi)

    abnormalities = _recover_abnormalities(t)
    stress = _STRESS_TEST.search(t)

    found: dict[str, Any] = {
        "patient_name": _recover_patient_name(raw_text),
        "age": _recover_age(t),
        "sex": _recover_sex(t),
        "systolic": systolic,
        "diastolic": diastolic,
        "heart_rate": _find_number(t, _HEART_RATE_PATTERNS, HEART_RATE_RANGE, "heart_rate"),
        "tr_velocity": _find_number(t, _TR_VELOCITY_PATTERNS, TR_VELOCITY_RANGE, "tr_velocity"),
        "pasp": _find_number(t, _PASP_PATTERNS, PASP_RANGE, "pasp"),
        "ivsd": _find_number(t, _IVSD_PATTERNS, IVSD_RANGE, "ivsd"),
        "lvidd": _find_number(t, _LVIDD_PATTERNS, LVIDD_RANGE, "lvidd"),
        "fractional_shortening": _find_number(
            t, _FS_PATTERNS, FRACTIONAL_SHORTENING_RANGE, "fractional_shortening"
        ),
        "la_dimension": _find_number(t, _LA_DIMENSION_PATTERNS, LA_DIMENSION_RANGE, "la_dimension"),
        "ejection_fraction": _recover_ejection_fraction(t, rules),
        "cholesterol": _find_number(t, _CHOLESTEROL_PATTERNS, CHOLESTEROL_RANGE, "cholesterol"),
        "ldl": _find_number(t, _LDL_PATTERNS, LDL_RANGE, "ldl"),
        "hdl": _find_number(t, _HDL_PATTERNS, HDL_RANGE, "hdl"),
        "fasting_blood_sugar": _find_number(
            t, _GLUCOSE_PATTERNS, GLUCOSE_RANGE, "fasting_blood_sugar"
        ),
        "bmi": bmi,
        "bsa": _find_number(t, _BSA_PATTERNS, BSA_RANGE, "bsa"),
        "height": height,
        "weight": weight,
        "waist": _find_number(t, _WAIST_PATTERNS, WAIST_RANGE, "waist"),
        "smoker": _tri_state(t, _SMOKER),
        "diabetes": _tri_state(t, _DIABETES),
        "family_history": _tri_state(t, _FAMILY_HISTORY),
        "ecg_result": _recover_ecg(t, abnormalities),
        "stress_test": stress.group(1) if stress else None,
        "cardiac_abnormalities": abnormalities,
    }
    metrics = HeartMetrics(**found)

    if len(metrics.present_fields()) < MIN_FIELDS_BEFORE_INFERENCE:
        inferred = _infer_from_bare_numbers(t, found)
        if inferred:
            logger.warning(
                "Sparse document; inferred %s from bare numbers by range only",
                ", ".join(sorted(inferred)),
            )
            metrics = replace(metrics, **inferred)

    logger.debug("Extracted %d fields", len(metrics.present_fields()))
    return metrics
