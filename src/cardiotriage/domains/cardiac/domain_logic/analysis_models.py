"""Result types produced by the analysis pipeline stages."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from types import MappingProxyType
from typing import Any

from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

CATEGORY_HIGH = "High"
CATEGORY_MODERATE = "Moderate"
CATEGORY_LOW = "Low"
CATEGORY_NORMAL = "Normal"

# Ordered by severity, least severe first
CATEGORIES = (CATEGORY_NORMAL, CATEGORY_LOW, CATEGORY_MODERATE, CATEGORY_HIGH)

PRIORITY_IMMEDIATE = "IMMEDIATE"
PRIORITY_URGENT = "URGENT"
PRIORITY_SEMI_URGENT = "SEMI-URGENT"
PRIORITY_NON_URGENT = "NON-URGENT"

PRIORITIES = (PRIORITY_IMMEDIATE, PRIORITY_URGENT, PRIORITY_SEMI_URGENT, PRIORITY_NON_URGENT)


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskFactor:
    """One scored factor: its point delta and the reason shown to the reader."""

    name: str
    points: int
    reason: str


@dataclass(frozen=True)
class ScoringResult:
    score: float                    # normalised percent
    raw_score: int                  # additive point total
    max_points: float
    reasons: tuple[str, ...]
    factors: tuple[RiskFactor, ...] = ()


@dataclass(frozen=True)
class CategoryResult:
    category: str
    normalized_risk_percent: float


@dataclass(frozen=True)
class CategoryMeta:
    description: str
    color: str
    icon: str
    action_timeline: str


@dataclass(frozen=True)
class ConfidenceBreakdown:
    data_completeness: float
    key_marker_quality: float
    clinical_context: float


@dataclass(frozen=True)
class ConfidenceMeta:
    confidence: float
    description: str
    breakdown: ConfidenceBreakdown
    missing_parameters: tuple[str, ...]
    suggestions: tuple[str, ...]


@dataclass(frozen=True)
class AnalysisContext:
    """Aggregated output of the scoring stages, consumed by triage and recommendations."""

    score: float
    normalized_risk_percent: float
    category: str
    confidence: float
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class TriageResult:
    priority: str
    level: str
    time_window: str
    reason: str
    action: str
    warning_signs: tuple[str, ...]
    next_steps_checklist: tuple[str, ...]
    rule_id: str


@dataclass(frozen=True)
class RecommendationItem:
    text: str
    category: str
    priority: str                   # urgent | high | medium | low
    rationale: str | None = None


@dataclass(frozen=True)
class RecommendationsResult:
    items: tuple[RecommendationItem, ...]
    priority_recommendations: tuple[RecommendationItem, ...]
    categorized: Mapping[str, tuple[RecommendationItem, ...]]
    disclaimer: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "categorized", MappingProxyType(dict(self.categorized)))


@dataclass(frozen=True)
class AnalysisMeta:
    analysis_date: str
    version: str
    ruleset_id: str
    text_preview: str | None = None


# ---------------------------------------------------------------------------
# Root aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeartAnalysis:
    """Complete, immutable analysis of one metrics record."""

    normalized_risk_percent: float
    category: str
    confidence: float
    metrics: HeartMetrics
    scoring: ScoringResult
    category_meta: CategoryMeta
    confidence_meta: ConfidenceMeta
    triage: TriageResult
    recommendations: RecommendationsResult
    meta: AnalysisMeta

    @property
    def score(self) -> float:
        return self.scoring.score

    @property
    def reasons(self) -> tuple[str, ...]:
        return self.scoring.reasons

    @property
    def parsed_text_preview(self) -> str | None:
        return self.meta.text_preview

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable representation."""
        data = _plain(self)
        data["metrics"] = self.metrics.to_dict()
        data["score"] = self.score
        data["reasons"] = list(self.reasons)
        data["parsed_text_preview"] = self.parsed_text_preview
        return data


# ---------------------------------------------------------------------------
# Auxiliary operation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuickAssessment:
    score: float
    category: str
    normalized_risk_percent: float


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MetricChange:
    """Movement of one metric between two analyses."""

    metric: str
    label: str
    baseline: float
    followup: float
    change: float
    improved: bool
    description: str


@dataclass
class ComparisonResult:
    score_change: float
    risk_percent_change: float
    category_change: str
    improvements: list[str] = field(default_factory=list)
    deteriorations: list[str] = field(default_factory=list)
    changes: list[MetricChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


def _plain(value: Any) -> Any:
    """Records to dicts and tuples to lists, recursively, for ``json.dumps``."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
