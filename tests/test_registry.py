"""Tests for the rule registry and the built-in catalog."""

import pytest

from webaudit.config import EffectiveConfig, default_config
from webaudit.errors import RuleConflictError
from webaudit.rules.base import RuleDefinition
from webaudit.rules.registry import RuleRegistry, builtin_rules
from webaudit.severity import Severity

EXPECTED_CATEGORIES = ("cookie-security", "cors-config", "env-exposure", "jwt-storage")


def _custom(rule_id: str = "custom-check") -> RuleDefinition:
    return RuleDefinition.model_validate(
        {
            "id": rule_id,
            "category": "custom",
            "severity": "info",
            "matcher": {"kind": "literal", "values": ["TODO"]},
        }
    )


def test_builtin_catalog_ids_unique():
    ids = [rule.id for rule in builtin_rules()]
    assert len(ids) == len(set(ids)) == 21


def test_with_builtins_categories():
    registry = RuleRegistry.with_builtins()
    assert registry.categories() == EXPECTED_CATEGORIES
    for category in EXPECTED_CATEGORIES:
        assert registry.by_category(category)
    assert len(registry.by_category("cookie-security")) == 7
    assert len(registry.by_category("jwt-storage")) == 2


def test_every_builtin_has_text():
    for rule in builtin_rules():
        assert rule.name and rule.description and rule.remediation
        assert rule.message != "{snippet}"


def test_catalog_severities():
    registry = RuleRegistry.with_builtins()
    assert registry.get("cors-wildcard-credentials").severity is Severity.CRITICAL
    assert registry.get("cors-reflected-origin-credentials").severity is Severity.CRITICAL
    assert registry.get("cookie-samesite-lax").severity is Severity.WARNING
    assert registry.get("cookie-missing-secure").severity is Severity.WARNING
    assert registry.get("cors-wildcard-origin").severity is Severity.VULNERABLE


def test_register_duplicate_raises():
    registry = RuleRegistry.with_builtins()
    with pytest.raises(RuleConflictError) as exc_info:
        registry.register(registry.get("cors-null-origin"))
    assert exc_info.value.rule_id == "cors-null-origin"


def test_register_custom_keeps_order():
    registry = RuleRegistry.with_builtins()
    registry.register(_custom())
    assert registry.ids()[-1] == "custom-check"
    assert "custom-check" in registry
    assert registry.get("missing") is None


def test_registries_are_independent():
    first = RuleRegistry.with_builtins()
    second = RuleRegistry.with_builtins()
    first.register(_custom())
    assert "custom-check" not in second
    second.register(_custom())


def test_effective_set_filters_and_overrides():
    registry = RuleRegistry.with_builtins()
    base = default_config(registry)
    enabled = dict(base.enabled_rules)
    enabled["cookie-samesite-lax"] = False
    config = EffectiveConfig(
        enabled_rules=enabled,
        severity_overrides={"cors-null-origin": Severity.CRITICAL},
    )

    rules = registry.effective_set(config)
    ids = [r.id for r in rules]
    assert "cookie-samesite-lax" not in ids
    assert ids == [i for i in registry.ids() if i != "cookie-samesite-lax"]

    null_origin = next(r for r in rules if r.id == "cors-null-origin")
    assert null_origin.severity is Severity.CRITICAL
    assert registry.get("cors-null-origin").severity is Severity.VULNERABLE


def test_unknown_rule_is_disabled():
    assert EffectiveConfig().is_enabled("anything") is False
