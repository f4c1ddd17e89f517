# Rule registry: built-in catalog plus custom rules, with unique ids.
# A registry is an explicit value passed to the resolver and the engine.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from webaudit.errors import RuleConflictError
from webaudit.rules import cookie_security, cors_config, env_exposure, jwt_storage
from webaudit.rules.base import RuleDefinition

if TYPE_CHECKING:
    from webaudit.config import EffectiveConfig

logger = logging.getLogger(__name__)

CATALOG_MODULES = (cookie_security, cors_config, env_exposure, jwt_storage)


def builtin_rules() -> tuple[RuleDefinition, ...]:
    """All built-in rule definitions, in catalog order."""
    rules: list[RuleDefinition] = []
    for module in CATALOG_MODULES:
        rules.extend(module.RULES)
    return tuple(rules)


class RuleRegistry:
    """Ordered collection of RuleDefinitions keyed by id."""

    def __init__(self, rules: Iterable[RuleDefinition] = ()) -> None:
        self._rules: dict[str, RuleDefinition] = {}
        for rule in rules:
            self.register(rule)

    @classmethod
    def with_builtins(cls) -> "RuleRegistry":
        registry = cls(builtin_rules())
        logger.debug("Registered %d built-in rule(s)", len(registry))
        return registry

    def register(self, rule: RuleDefinition) -> None:
        """Add a rule. Raises RuleConflictError if its id is already taken."""
        if rule.id in self._rules:
            raise RuleConflictError(rule.id)
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Optional[RuleDefinition]:
        return self._rules.get(rule_id)

    def all(self) -> tuple[RuleDefinition, ...]:
        return tuple(self._rules.values())

    def ids(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def by_category(self, category: str) -> tuple[RuleDefinition, ...]:
        return tuple(r for r in self._rules.values() if r.category == category)

    def categories(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(r.category for r in self._rules.values()))

    def effective_set(self, config: "EffectiveConfig") -> tuple[RuleDefinition, ...]:
        """
        Enabled rules in registration order, with severity overrides applied.

        The registered definitions are left untouched; overridden rules are copies.
        """
        selected: list[RuleDefinition] = []
        for rule in self._rules.values():
            if not config.is_enabled(rule.id):
                continue
            severity = config.severity_for(rule)
            if severity != rule.severity:
                rule = rule.model_copy(update={"severity": severity})
            selected.append(rule)
        return tuple(selected)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)
