"""Rule-set YAML validator — ensures rule-set definitions are coherent."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from cardiotriage.core.rules.loader import load_ruleset_file
from cardiotriage.core.rules.models import RiskRules

logger = logging.getLogger(__name__)


def _display(path: Path, project_root: Path | None) -> str:
    if project_root:
        try:
            return str(path.relative_to(project_root))
        except ValueError:
            return str(path)
    return str(path)


def check_rules(rules: RiskRules) -> list[str]:
    """Semantic checks on a built rule set. Returns human-readable problems."""
    errors: list[str] = []

    cats = rules.categories
    if not (cats.low < cats.moderate < cats.high):
        errors.append(
            f"Category cutoffs must be increasing (low < moderate < high), "
            f"got {cats.low} / {cats.moderate} / {cats.high}"
        )
    norm = rules.normalization
    for name, value in (("low", cats.low), ("moderate", cats.moderate), ("high", cats.high)):
        if not (norm.floor_percent <= value <= norm.ceiling_percent):
            errors.append(
                f"Category cutoff '{name}'={value} outside "
                f"[{norm.floor_percent}, {norm.ceiling_percent}]"
            )
    if norm.max_points <= 0:
        errors.append(f"normalization.max_points must be positive, got {norm.max_points}")
    if norm.floor_percent >= norm.ceiling_percent:
        errors.append("normalization.floor_percent must be below ceiling_percent")

    ef = rules.ejection_fraction
    if not (ef.severe < ef.moderate < ef.mildly_reduced < ef.normal):
        errors.append("Ejection fraction bands must be increasing")

    bp = rules.blood_pressure
    if not (bp.elevated_systolic < bp.stage1_systolic < bp.stage2_systolic < bp.crisis_systolic):
        errors.append("Systolic bands must be increasing")
    if not (bp.stage1_diastolic < bp.stage2_diastolic < bp.crisis_diastolic):
        errors.append("Diastolic bands must be increasing")

    uppers = [band.upper for band in rules.age_bands]
    if not uppers or uppers[-1] is not None:
        errors.append("Last age band must be open-ended (upper: null)")
    bounded = [u for u in uppers[:-1] if u is not None]
    if len(bounded) != len(uppers) - 1 or bounded != sorted(bounded):
        errors.append("Age band upper bounds must be increasing")

    conf = rules.confidence
    weight_sum = conf.completeness_weight + conf.key_marker_weight + conf.context_weight
    if abs(weight_sum - 1.0) > 1e-6:
        errors.append(f"Confidence weights must sum to 1.0, got {weight_sum:.3f}")
    if not (0 <= conf.floor_empty <= conf.floor_with_data <= conf.cap <= 1):
        errors.append("Confidence bounds must satisfy 0 <= floor_empty <= floor_with_data <= cap <= 1")

    return errors


def validate_ruleset_file(
    path: Path, *, project_root: Path | None = None
) -> tuple[RiskRules | None, list[str]]:
    """Validate a single rule-set YAML file.

    Returns: (rules_or_none, errors)
    """
    display_path = _display(path, project_root)

    try:
        rules = load_ruleset_file(path)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        return None, [f"{display_path}: Failed to load: {exc}"]

    errors = [f"{display_path}: {problem}" for problem in check_rules(rules)]

    if rules.version and not all(c.isdigit() or c == "." for c in rules.version):
        errors.append(
            f"{display_path}: Version '{rules.version}' doesn't look like a version number"
        )

    # Filename should start with the ruleset id (supports suffixes like `.v1.yaml`).
    name = path.name
    if not (name == f"{rules.id}.yaml" or name.startswith(f"{rules.id}.")):
        errors.append(
            f"{display_path}: Filename '{name}' should match ruleset id '{rules.id}' "
            f"(expected '{rules.id}.*.yaml')"
        )

    return rules, errors


def validate_ruleset_directory(
    directory: str | Path, *, project_root: Path | None = None
) -> tuple[int, list[str]]:
    """Validate all rule-set YAML files in a directory (recursively).

    Returns: (ruleset_count, errors)
    """
    directory = Path(directory)
    if not directory.is_dir():
        return 0, [f"Ruleset directory not found: {directory}"]

    yaml_files = sorted(p for p in directory.rglob("*.yaml") if not p.name.startswith("_"))
    if not yaml_files:
        return 0, [f"No ruleset YAML files found in {directory}"]

    errors: list[str] = []
    seen_ids: dict[str, Path] = {}
    loaded = 0

    for path in yaml_files:
        rules, file_errors = validate_ruleset_file(path, project_root=project_root)
        if file_errors or rules is None:
            errors.extend(file_errors)
            continue

        loaded += 1

        if rules.id in seen_ids:
            errors.append(
                f"{_display(path, project_root)}: Duplicate ID '{rules.id}' "
                f"(already defined in {_display(seen_ids[rules.id], project_root)})"
            )
        else:
            seen_ids[rules.id] = path

    return loaded, errors
