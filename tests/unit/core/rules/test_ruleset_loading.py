"""Unit tests for rule-set models, registry, YAML loader and validator."""

from __future__ import annotations

import dataclasses
import logging

import pytest

from cardiotriage.core.rules.loader import (
    RulesetError,
    load_ruleset_directory,
    load_ruleset_file,
    rules_from_mapping,
)
from cardiotriage.core.rules.models import DEFAULT_RULES, AgeBand
from cardiotriage.core.rules.registry import RulesetRegistry, build_default_registry
from cardiotriage.core.rules.validator import (
    check_rules,
    validate_ruleset_directory,
    validate_ruleset_file,
)

_HEADER = """id: {id}
version: "1.0.0"
display_name: Test rules
description: Rules used in tests
"""


def _write(directory, filename: str, body: str = "", ruleset_id: str | None = None):
    path = directory / filename
    rid = ruleset_id or filename.split(".")[0]
    path.write_text(_HEADER.format(id=rid) + body)
    return path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaultRules:
    def test_default_rules_pass_semantic_checks(self):
        assert check_rules(DEFAULT_RULES) == []

    def test_defaults_are_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_RULES.categories.high = 10  # type: ignore[misc]

    def test_canonical_thresholds(self):
        assert DEFAULT_RULES.normalization.max_points == 45
        assert DEFAULT_RULES.categories.high == 80
        assert DEFAULT_RULES.categories.moderate == 50
        assert DEFAULT_RULES.categories.low == 20
        assert DEFAULT_RULES.triage.very_high == 85

    def test_last_age_band_is_open_ended(self):
        assert DEFAULT_RULES.age_bands[-1].upper is None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRulesetRegistry:
    def test_duplicate_id_raises(self):
        registry = build_default_registry()
        with pytest.raises(ValueError, match="Duplicate ruleset id"):
            registry.register(DEFAULT_RULES)

    def test_find_by_tag(self):
        registry = build_default_registry()
        assert registry.find_by_tag("canonical") == [DEFAULT_RULES]
        assert registry.find_by_tag("missing") == []

    def test_resolve_unknown_falls_back_to_defaults(self, caplog):
        registry = RulesetRegistry()
        with caplog.at_level(logging.WARNING):
            assert registry.resolve("nope") is DEFAULT_RULES
        assert "not registered" in caplog.text


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class TestRulesFromMapping:
    def test_section_override_keeps_other_fields(self):
        rules = rules_from_mapping({
            "id": "x", "version": "1.0.0", "display_name": "X", "description": "d",
            "categories": {"high": 70},
        })
        assert rules.categories.high == 70
        assert rules.categories.moderate == DEFAULT_RULES.categories.moderate
        assert rules.blood_pressure == DEFAULT_RULES.blood_pressure

    def test_missing_required_fields(self):
        with pytest.raises(RulesetError, match="display_name"):
            rules_from_mapping({"id": "x", "version": "1", "description": "d"})

    def test_unknown_key_rejected(self):
        with pytest.raises(RulesetError, match="Unknown key"):
            rules_from_mapping({
                "id": "x", "version": "1", "display_name": "X", "description": "d",
                "categories": {"severe": 90},
            })

    def test_age_bands_parsed(self):
        rules = rules_from_mapping({
            "id": "x", "version": "1", "display_name": "X", "description": "d",
            "age_bands": [
                {"upper": 50, "points": 0, "label": "Under 50"},
                {"upper": None, "points": 5, "label": "50+"},
            ],
        })
        assert rules.age_bands == (
            AgeBand(upper=50, points=0, label="Under 50"),
            AgeBand(upper=None, points=5, label="50+"),
        )

    def test_context_bands_become_tuples(self):
        rules = rules_from_mapping({
            "id": "x", "version": "1", "display_name": "X", "description": "d",
            "confidence": {"context_bands": [[70, 0.9], [30, 0.6]]},
        })
        assert rules.confidence.context_bands == ((70.0, 0.9), (30.0, 0.6))

    def test_scalar_tags_rejected(self):
        with pytest.raises(RulesetError, match="tags"):
            rules_from_mapping({
                "id": "x", "version": "1", "display_name": "X", "description": "d", "tags": 5,
            })

    @pytest.mark.parametrize("bands", [[70, 30], [[70]], [["high", 0.9]]])
    def test_malformed_context_bands_rejected(self, bands):
        with pytest.raises(RulesetError, match="context_bands"):
            rules_from_mapping({
                "id": "x", "version": "1", "display_name": "X", "description": "d",
                "confidence": {"context_bands": bands},
            })


class TestLoadRulesetFiles:
    def test_packaged_wide_bands_ruleset(self, ruleset_dir):
        rules = load_ruleset_file(ruleset_dir / "cardiac_points_wide_bands.v1.yaml")
        assert rules.id == "cardiac_points_wide_bands"
        assert rules.categories.high == 60
        assert rules.categories.high_inclusive is False
        assert rules.categories.low == 5
        assert rules.normalization == DEFAULT_RULES.normalization
        assert "alternate" in rules.tags

    def test_non_mapping_file_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(RulesetError):
            load_ruleset_file(path)

    def test_directory_skips_underscore_and_broken_files(self, tmp_path, caplog):
        _write(tmp_path, "good.yaml")
        _write(tmp_path, "_schema.yaml")
        (tmp_path / "broken.yaml").write_text("id: [unterminated\n")
        registry = RulesetRegistry()
        with caplog.at_level(logging.ERROR):
            count = load_ruleset_directory(tmp_path, registry)
        assert count == 1
        assert registry.get("good") is not None
        assert registry.get("_schema") is None
        assert "broken.yaml" in caplog.text

    def test_directory_skips_files_with_bad_shapes(self, tmp_path, caplog):
        _write(tmp_path, "good.yaml")
        _write(tmp_path, "scalar_tags.yaml", "tags: 5\n")
        _write(tmp_path, "bad_bands.yaml", "confidence:\n  context_bands: [70, 30]\n")
        registry = RulesetRegistry()
        with caplog.at_level(logging.ERROR):
            count = load_ruleset_directory(tmp_path, registry)
        assert count == 1
        assert registry.get("scalar_tags") is None
        assert "bad_bands.yaml" in caplog.text

    def test_missing_directory_loads_nothing(self, tmp_path):
        assert load_ruleset_directory(tmp_path / "absent", RulesetRegistry()) == 0


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class TestValidator:
    def test_packaged_rulesets_are_valid(self, ruleset_dir):
        count, errors = validate_ruleset_directory(ruleset_dir)
        assert errors == []
        assert count >= 1

    def test_cutoffs_out_of_order(self, tmp_path):
        path = _write(tmp_path, "swapped.yaml", "categories:\n  high: 40\n  moderate: 50\n")
        rules, errors = validate_ruleset_file(path)
        assert rules is not None
        assert any("increasing" in e for e in errors)

    def test_cutoff_outside_floor_and_ceiling(self, tmp_path):
        path = _write(tmp_path, "tiny.yaml", "categories:\n  low: 2\n")
        _, errors = validate_ruleset_file(path)
        assert any("outside" in e for e in errors)

    def test_non_positive_max_points(self, tmp_path):
        path = _write(tmp_path, "zero.yaml", "normalization:\n  max_points: 0\n")
        _, errors = validate_ruleset_file(path)
        assert any("max_points" in e for e in errors)

    def test_filename_must_match_id(self, tmp_path):
        path = _write(tmp_path, "other.yaml", ruleset_id="mismatch")
        _, errors = validate_ruleset_file(path)
        assert any("should match ruleset id" in e for e in errors)

    def test_versioned_filename_accepted(self, tmp_path):
        path = _write(tmp_path, "versioned.v2.yaml", ruleset_id="versioned")
        rules, errors = validate_ruleset_file(path)
        assert rules is not None
        assert errors == []

    def test_load_failure_reported(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("id: only\n")
        rules, errors = validate_ruleset_file(path)
        assert rules is None
        assert "Failed to load" in errors[0]

    def test_duplicate_ids_across_files(self, tmp_path):
        _write(tmp_path, "dup.yaml")
        _write(tmp_path, "dup.v2.yaml", ruleset_id="dup")
        count, errors = validate_ruleset_directory(tmp_path)
        assert count == 2
        assert any("Duplicate ID 'dup'" in e for e in errors)
