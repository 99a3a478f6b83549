"""MCP tools for cardiac report analysis.

Thin adapters over the pure pipeline in ``domain_logic``: they parse tool
arguments, run the pipeline with the server's rule set and clock, and return
JSON strings. Rejected input comes back as ``{"status": "error", ...}``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from cardiotriage.core.clock import Clock
    from cardiotriage.core.config.settings import Settings
    from cardiotriage.core.rules.models import RiskRules

from cardiotriage.domains.cardiac.domain_logic.composer import (
    AnalysisInputError,
    analyze_report_text as run_text_analysis,
    compare_analyses,
    compose_analysis,
    generate_provider_summary,
    validate_metrics as run_validation,
)
from cardiotriage.domains.cardiac.domain_logic.metrics_models import HeartMetrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _check_text(text: str, min_chars: int, label: str = "text") -> str | None:
    """Return an error message if the document text is unusable."""
    if not text or not text.strip():
        return f"{label} is empty; provide the report text recovered from the document"
    if len(text.strip()) < min_chars:
        return f"{label} is too short to analyse (minimum {min_chars} characters)"
    return None


def _parse_metrics(metrics_json: str) -> HeartMetrics:
    """Parse a JSON object into a metrics record.

    Raises:
        ValueError: If the JSON is malformed, not an object, or holds bad values.
    """
    try:
        data: Any = json.loads(metrics_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"metrics_json is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ValueError("metrics_json must be a JSON object")
    try:
        return HeartMetrics.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"metrics_json holds an invalid value: {exc}") from exc


def register_cardiac_risk_tools(
    mcp: FastMCP,
    *,
    rules: RiskRules,
    clock: Clock,
    settings: Settings,
    rulesets_loaded: int = 0,
) -> None:
    """Register cardiac analysis tools on the MCP server."""

    def _compose(metrics: HeartMetrics, text: str | None = None):
        return compose_analysis(
            metrics,
            text,
            rules=rules,
            clock=clock,
            version=settings.analysis_version,
            preview_chars=settings.text_preview_chars,
        )

    def _analyze_text(text: str):
        return run_text_analysis(
            text,
            rules=rules,
            clock=clock,
            version=settings.analysis_version,
            preview_chars=settings.text_preview_chars,
        )

    @mcp.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Cardiac Triage",
            "version": settings.analysis_version,
            "ruleset_id": rules.id,
            "ruleset_version": rules.version,
            "rulesets_loaded": rulesets_loaded,
        }

    @mcp.tool
    async def analyze_report_text(ctx: Context, text: str) -> str:
        """Extract cardiac metrics from report text and run the full triage analysis.

        Args:
            text: Plain text of an echocardiogram, lab or clinic report
                (already recovered from the PDF or scan).
        """
        problem = _check_text(text, settings.min_document_chars)
        if problem:
            return _error(problem)
        logger.debug("analyze_report_text: %d characters", len(text))
        analysis = _analyze_text(text)
        return json.dumps({"status": "ok", "analysis": analysis.to_dict()})

    @mcp.tool
    async def analyze_metrics(ctx: Context, metrics_json: str) -> str:
        """Run the triage analysis on already-structured metrics.

        Args:
            metrics_json: JSON object of metric fields, e.g.
                '{"age": 62, "systolic": 150, "diastolic": 95, "ejection_fraction": 40}'.
                Unknown keys are ignored; 'lvef' is accepted for ejection_fraction.
        """
        try:
            metrics = _parse_metrics(metrics_json)
        except ValueError as exc:
            return _error(str(exc))
        analysis = _compose(metrics)
        return json.dumps({"status": "ok", "analysis": analysis.to_dict()})

    @mcp.tool
    async def validate_metrics(ctx: Context, metrics_json: str) -> str:
        """Check metric values for impossible readings (errors) and unusual ones (warnings).

        Args:
            metrics_json: JSON object of metric fields.
        """
        try:
            metrics = _parse_metrics(metrics_json)
        except ValueError as exc:
            return _error(str(exc))
        result = run_validation(metrics)
        return json.dumps({
            "status": "ok",
            "is_valid": result.is_valid,
            "errors": result.errors,
            "warnings": result.warnings,
        })

    @mcp.tool
    async def compare_reports(ctx: Context, baseline_text: str, followup_text: str) -> str:
        """Compare two reports for the same patient (e.g. before and after treatment).

        Args:
            baseline_text: Text of the earlier report.
            followup_text: Text of the later report.
        """
        for label, text in (("baseline_text", baseline_text), ("followup_text", followup_text)):
            problem = _check_text(text, settings.min_document_chars, label)
            if problem:
                return _error(problem)
        baseline = _analyze_text(baseline_text)
        followup = _analyze_text(followup_text)
        try:
            comparison = compare_analyses(baseline, followup)
        except AnalysisInputError as exc:  # pragma: no cover
            return _error(str(exc))
        return json.dumps({
            "status": "ok",
            "baseline": {
                "category": baseline.category,
                "normalized_risk_percent": baseline.normalized_risk_percent,
            },
            "followup": {
                "category": followup.category,
                "normalized_risk_percent": followup.normalized_risk_percent,
            },
            "comparison": comparison.to_dict(),
        })

    @mcp.tool
    async def provider_summary(ctx: Context, text: str) -> str:
        """Analyse report text and return a plain-text summary for a care provider.

        Args:
            text: Plain text of the report.
        """
        problem = _check_text(text, settings.min_document_chars)
        if problem:
            return _error(problem)
        analysis = _analyze_text(text)
        return json.dumps({
            "status": "ok",
            "priority": analysis.triage.priority,
            "summary": generate_provider_summary(analysis),
        })
