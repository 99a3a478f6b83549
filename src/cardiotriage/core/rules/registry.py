"""Rule-set registry — in-memory index of loaded rule sets."""

from __future__ import annotations

import logging

from cardiotriage.core.rules.models import DEFAULT_RULES, RiskRules

logger = logging.getLogger(__name__)


class RulesetRegistry:
    """In-memory registry of all loaded rule sets."""

    def __init__(self) -> None:
        self._rulesets: dict[str, RiskRules] = {}
        self._by_tag: dict[str, list[str]] = {}

    def register(self, rules: RiskRules) -> None:
        """Add a rule set to all indexes."""
        if rules.id in self._rulesets:
            raise ValueError(f"Duplicate ruleset id registered: {rules.id!r}")
        self._rulesets[rules.id] = rules

        for tag in rules.tags:
            ids = self._by_tag.setdefault(tag, [])
            if rules.id not in ids:
                ids.append(rules.id)

    def get(self, ruleset_id: str) -> RiskRules | None:
        """Look up a rule set by ID."""
        return self._rulesets.get(ruleset_id)

    def find_by_tag(self, tag: str) -> list[RiskRules]:
        """Find rule sets with a given tag."""
        ids = self._by_tag.get(tag, [])
        return [self._rulesets[rid] for rid in ids]

    def all(self) -> list[RiskRules]:
        """Return all registered rule sets."""
        return list(self._rulesets.values())

    def resolve(self, ruleset_id: str) -> RiskRules:
        """Return the named rule set, falling back to the canonical defaults."""
        rules = self._rulesets.get(ruleset_id)
        if rules is None:
            logger.warning(
                "Ruleset %r not registered; using %s", ruleset_id, DEFAULT_RULES.id
            )
            return DEFAULT_RULES
        return rules


def build_default_registry() -> RulesetRegistry:
    """Registry seeded with the canonical rule set only."""
    registry = RulesetRegistry()
    registry.register(DEFAULT_RULES)
    return registry
