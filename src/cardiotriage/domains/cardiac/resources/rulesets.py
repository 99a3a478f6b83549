"""MCP Resources for rule-set discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from cardiotriage.core.rules.models import RiskRules
    from cardiotriage.core.rules.registry import RulesetRegistry


def register_ruleset_resources(mcp: FastMCP, registry: RulesetRegistry, active: RiskRules) -> None:
    """Register rule-set discovery resources on the MCP server."""

    @mcp.resource("ruleset://cardiac/registry")
    def cardiac_ruleset_registry_resource() -> str:
        """Discover the loaded cardiac rule sets and which one is active."""
        rulesets = registry.all()
        return json.dumps(
            {
                "domain": "cardiac",
                "active_ruleset": active.id,
                "ruleset_count": len(rulesets),
                "rulesets": [
                    {
                        "id": r.id,
                        "version": r.version,
                        "display_name": r.display_name,
                        "description": r.description,
                        "categories": {
                            "high": r.categories.high,
                            "high_inclusive": r.categories.high_inclusive,
                            "moderate": r.categories.moderate,
                            "low": r.categories.low,
                        },
                        "max_points": r.normalization.max_points,
                        "tags": list(r.tags),
                    }
                    for r in rulesets
                ],
            },
            indent=2,
        )
