"""Rule-set loader — reads YAML overrides of the default rules from disk.

A rule-set file names itself (``id``, ``version``, ``display_name``,
``description``) and overrides any subset of the default sections::

    id: cardiac_points_wide_bands
    version: "1.0.0"
    display_name: Wide category bands
    description: ...
    categories:
      high: 60
      high_inclusive: false
      moderate: 25
      low: 5

Sections that are omitted keep the values of ``DEFAULT_RULES``.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from cardiotriage.core.rules.models import DEFAULT_RULES, AgeBand, RiskRules
from cardiotriage.core.rules.registry import RulesetRegistry

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["id", "version", "display_name", "description"]

_SECTIONS = (
    "ejection_fraction",
    "blood_pressure",
    "pulmonary",
    "lipids",
    "glucose",
    "body",
    "risk_factors",
    "normalization",
    "categories",
    "confidence",
    "triage",
)


class RulesetError(ValueError):
    """A rule-set definition could not be turned into ``RiskRules``."""


def load_ruleset_directory(directory: str | Path, registry: RulesetRegistry) -> int:
    """Load all YAML rule-set definitions from a directory (recursively).

    Returns the number of rule sets loaded.
    Skips files starting with underscore (like _schema.yaml).
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Ruleset directory does not exist: %s", directory)
        return 0

    count = 0
    for path in sorted(directory.rglob("*.yaml")):
        if path.name.startswith("_"):
            continue
        try:
            rules = load_ruleset_file(path)
            registry.register(rules)
            count += 1
            logger.info("Loaded ruleset: %s (v%s)", rules.id, rules.version)
        except (OSError, yaml.YAMLError, ValueError):
            logger.exception("Failed to load ruleset from %s", path)
    return count


def load_ruleset_file(path: Path) -> RiskRules:
    """Parse a YAML file into a RiskRules instance."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise RulesetError(f"{path}: top level must be a mapping")
    return rules_from_mapping(data)


def rules_from_mapping(data: dict[str, Any], base: RiskRules = DEFAULT_RULES) -> RiskRules:
    """Overlay a parsed mapping on ``base``, section by section."""
    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        raise RulesetError(f"Missing required field(s): {', '.join(missing)}")

    overrides: dict[str, Any] = {
        "id": str(data["id"]),
        "version": str(data["version"]),
        "display_name": str(data["display_name"]),
        "description": str(data["description"]).strip(),
    }

    tags = data.get("tags") or ()
    if not isinstance(tags, (list, tuple)):
        raise RulesetError(f"tags must be a list, got {type(tags).__name__}")
    overrides["tags"] = tuple(str(tag) for tag in tags)

    for section in _SECTIONS:
        section_data = data.get(section)
        if section_data is None:
            continue
        if not isinstance(section_data, dict):
            raise RulesetError(f"Section '{section}' must be a mapping")
        current = getattr(base, section)
        known = {f.name for f in dataclasses.fields(current)}
        unknown = sorted(str(key) for key in set(section_data) - known)
        if unknown:
            raise RulesetError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")
        if section == "confidence" and "context_bands" in section_data:
            section_data = dict(section_data)
            try:
                section_data["context_bands"] = tuple(
                    (float(threshold), float(value))
                    for threshold, value in section_data["context_bands"]
                )
            except (TypeError, ValueError) as exc:
                raise RulesetError(f"Malformed context_bands: {exc}") from exc
        overrides[section] = dataclasses.replace(current, **section_data)

    if "age_bands" in data:
        try:
            overrides["age_bands"] = tuple(
                AgeBand(upper=band.get("upper"), points=int(band["points"]), label=str(band["label"]))
                for band in data["age_bands"]
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise RulesetError(f"Malformed age_bands: {exc}") from exc

    return dataclasses.replace(base, **overrides)
