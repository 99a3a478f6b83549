"""MCP Prompts — pre-built interaction templates for cardiac report review."""

from __future__ import annotations

from fastmcp import FastMCP


def register_cardiac_prompts(mcp: FastMCP) -> None:
    """Register cardiac domain MCP prompts."""

    @mcp.prompt()
    def cardiac_report_review_prompt(report_kind: str = "echocardiogram") -> str:
        """Prompt template for reviewing a cardiac report with the triage tools."""
        return f"""Please review my {report_kind} report:

1. Run analyze_report_text on the report text
2. Tell me the risk category, the triage priority and how soon I should be seen
3. Explain the main findings driving the result in plain language
4. Point out which measurements were missing and how that affects confidence
5. List the recommendations, most urgent first

This is decision support only. Remind me to confirm everything with a clinician."""
