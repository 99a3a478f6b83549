"""Cardiac Triage MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastmcp import FastMCP

from cardiotriage.core.clock import Clock, SystemClock
from cardiotriage.core.config.settings import get_settings
from cardiotriage.core.rules.loader import load_ruleset_directory
from cardiotriage.core.rules.models import RiskRules
from cardiotriage.core.rules.registry import build_default_registry
from cardiotriage.domains.cardiac.prompts.cardiac_prompts import register_cardiac_prompts
from cardiotriage.domains.cardiac.resources.rulesets import register_ruleset_resources
from cardiotriage.domains.cardiac.tools.cardiac_risk_tools import register_cardiac_risk_tools

logger = logging.getLogger(__name__)

# Shipped YAML rule sets live under src/cardiotriage/domains/cardiac/rulesets/
_RULESET_DIR = Path(__file__).resolve().parent.parent.parent / "domains" / "cardiac" / "rulesets"


def create_app(
    *,
    ruleset_override: RiskRules | None = None,
    clock_override: Clock | None = None,
) -> FastMCP:
    """Create and configure the Cardiac Triage MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the rule-set registry (canonical + shipped + configured directory)
    3. Selects the active rule set and clock
    4. Registers all tools, resources, and prompts
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "Cardiac Triage",
        instructions=(
            "Cardiovascular report triage server. Extracts cardiac metrics from "
            "echocardiogram, lab and clinic report text, scores cardiovascular "
            "risk, and returns a triage priority with recommendations. "
            "Decision support only; not a diagnosis."
        ),
    )

    # --- Rule sets ---
    registry = build_default_registry()
    ruleset_count = 1 + load_ruleset_directory(_RULESET_DIR, registry)
    logger.info("Loaded %d rulesets (including packaged set from %s)", ruleset_count, _RULESET_DIR)

    if settings.ruleset_dir:
        extra = load_ruleset_directory(settings.ruleset_dir, registry)
        ruleset_count += extra
        logger.info("Loaded %d rulesets from %s", extra, settings.ruleset_dir)

    if ruleset_override is not None:
        rules = ruleset_override
        if registry.get(rules.id) is None:
            registry.register(rules)
            ruleset_count += 1
    else:
        rules = registry.resolve(settings.ruleset_id)
    logger.info("Active ruleset: %s (v%s)", rules.id, rules.version)

    clock = clock_override if clock_override is not None else SystemClock()

    # --- Register tools ---
    register_cardiac_risk_tools(
        server, rules=rules, clock=clock, settings=settings, rulesets_loaded=ruleset_count
    )
    logger.info("Cardiac risk tools registered")

    # --- Register resources ---
    register_ruleset_resources(server, registry, rules)

    # --- Register prompts ---
    register_cardiac_prompts(server)

    return server


# Module-level instance for FastMCP discovery ("server": "...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
