"""Heart metrics record and the clinical vocabulary shared by every stage."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

SEX_MALE = "male"
SEX_FEMALE = "female"

ECG_NORMAL = "Normal"
ECG_ABNORMAL = "Abnormal"

SEVERE_AORTIC_REGURGITATION = "Severe Aortic Regurgitation"
MILD_MITRAL_REGURGITATION = "Mild Mitral Regurgitation"
MILD_TRICUSPID_REGURGITATION = "Mild Tricuspid Regurgitation"
DILATED_LEFT_VENTRICLE = "Dilated Left Ventricle"
VALVE_CALCIFICATION = "Valve Calcification"

# Fields that drive data completeness in the confidence model
IMPORTANT_FIELDS = (
    "age",
    "sex",
    "systolic",
    "diastolic",
    "cholesterol",
    "ldl",
    "hdl",
    "fasting_blood_sugar",
    "bmi",
    "smoker",
    "diabetes",
    "family_history",
    "heart_rate",
)

# Alternate spellings accepted by ``HeartMetrics.from_dict``
FIELD_ALIASES = {
    "lvef": "ejection_fraction",
    "ef": "ejection_fraction",
    "fbs": "fasting_blood_sugar",
    "fastingBloodSugar": "fasting_blood_sugar",
    "ejectionFraction": "ejection_fraction",
    "familyHistory": "family_history",
    "heartRate": "heart_rate",
    "patientName": "patient_name",
    "trVelocity": "tr_velocity",
    "fractionalShortening": "fractional_shortening",
    "laDimension": "la_dimension",
    "ecgResult": "ecg_result",
    "stressTest": "stress_test",
    "cardiacAbnormalities": "cardiac_abnormalities",
    "totalCholesterol": "cholesterol",
}

_BOOL_FIELDS = frozenset({"smoker", "diabetes", "family_history"})
_STR_FIELDS = frozenset({"patient_name", "sex", "ecg_result", "stress_test"})
_SEX_VALUES = {
    "m": SEX_MALE, "male": SEX_MALE, "man": SEX_MALE,
    "f": SEX_FEMALE, "female": SEX_FEMALE, "woman": SEX_FEMALE,
}


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeartMetrics:
    """Sparse record of clinical parameters recovered from one document.

    ``None`` means "not found"; it is never a stand-in for zero.
    """

    patient_name: str | None = None
    age: float | None = None
    sex: str | None = None                  # SEX_MALE | SEX_FEMALE

    # Vitals
    systolic: float | None = None           # mmHg
    diastolic: float | None = None          # mmHg
    heart_rate: float | None = None         # bpm

    # Lipids / metabolic (mg/dL)
    cholesterol: float | None = None
    ldl: float | None = None
    hdl: float | None = None
    fasting_blood_sugar: float | None = None

    # Anthropometrics
    bmi: float | None = None
    height: float | None = None             # cm
    weight: float | None = None             # kg
    waist: float | None = None              # cm
    bsa: float | None = None                # m^2

    # Risk factors (tri-state)
    smoker: bool | None = None
    diabetes: bool | None = None
    family_history: bool | None = None

    # Echocardiography
    ejection_fraction: float | None = None  # %
    pasp: float | None = None               # mmHg
    tr_velocity: float | None = None        # m/s
    ivsd: float | None = None               # cm
    lvidd: float | None = None              # cm
    fractional_shortening: float | None = None  # %
    la_dimension: float | None = None       # cm

    ecg_result: str | None = None           # ECG_NORMAL | ECG_ABNORMAL
    stress_test: str | None = None
    cardiac_abnormalities: tuple[str, ...] = ()

    # -- helpers ------------------------------------------------------------

    def present_fields(self) -> list[str]:
        """Names of fields that carry a value, in declaration order."""
        present = []
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == ():
                continue
            present.append(f.name)
        return present

    def is_empty(self) -> bool:
        return not self.present_fields()

    def has_blood_pressure(self) -> bool:
        return self.systolic is not None and self.diastolic is not None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly dict with absent fields omitted."""
        data = asdict(self)
        out: dict[str, Any] = {}
        for name in self.present_fields():
            value = data[name]
            out[name] = list(value) if isinstance(value, tuple) else value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartMetrics:
        """Build a record from a loose mapping.

        Unknown keys are ignored, aliases (``lvef``, camelCase names) are
        mapped, numeric strings are coerced and ``None`` values are skipped.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = FIELD_ALIASES.get(raw_key, raw_key)
            if key not in known or value is None:
                continue
            kwargs[key] = _coerce(key, value)
        return cls(**kwargs)


def _coerce(name: str, value: Any) -> Any:
    if name == "cardiac_abnormalities":
        if isinstance(value, str):
            return (value,)
        return tuple(str(v) for v in value)
    if name in _BOOL_FIELDS:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "y", "1")
        return bool(value)
    if name == "sex":
        sex = _SEX_VALUES.get(str(value).strip().lower())
        if sex is None:
            raise ValueError(f"Unrecognised sex {value!r}; expected male or female")
        return sex
    if name in _STR_FIELDS:
        return str(value)
    if isinstance(value, bool):
        raise TypeError(f"Field {name!r} expects a number, got a boolean")
    return float(value)
