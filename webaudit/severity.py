# Severity levels for findings: info < warning < vulnerable < critical.

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Ordered severity of a finding."""

    INFO = "info"
    WARNING = "warning"
    VULNERABLE = "vulnerable"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Parse a case-insensitive severity name (e.g. "Critical")."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown severity {value!r}; expected one of: {valid}") from None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.VULNERABLE: 2,
    Severity.CRITICAL: 3,
}
