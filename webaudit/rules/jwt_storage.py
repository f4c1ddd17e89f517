# JWT storage: authentication tokens written to localStorage / sessionStorage.

from __future__ import annotations

from webaudit.rules.base import ArgumentPredicate, CallShapeMatcher, RegexMatcher, RuleDefinition
from webaudit.severity import Severity

CATEGORY = "jwt-storage"

WEB_STORAGE_SET_ITEM = r"^(?:window\.|globalThis\.|self\.)?(?:localStorage|sessionStorage)\.setItem$"
TOKEN_LIKE = r"token|jwt|bearer|auth"

_USE_HTTPONLY_COOKIE = (
    "Return the token in an httpOnly, secure, sameSite=strict cookie, "
    "or keep it in memory only (let authToken = null)."
)

RULES: tuple[RuleDefinition, ...] = (
    RuleDefinition(
        id="jwt-web-storage",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Token in web storage",
        description="Web storage is readable by any script on the page, including XSS payloads.",
        message="Authentication token {arg0} is written to {callee}()",
        remediation=_USE_HTTPONLY_COOKIE,
        matcher=CallShapeMatcher(
            callee=WEB_STORAGE_SET_ITEM,
            arguments=(ArgumentPredicate(op="matches", pattern=TOKEN_LIKE),),
        ),
    ),
    RuleDefinition(
        id="jwt-web-storage-assignment",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Token assigned into web storage",
        description="A token is stored as a web storage property.",
        message="Authentication token stored in web storage: {match}",
        remediation=_USE_HTTPONLY_COOKIE,
        matcher=RegexMatcher(
            pattern=(
                r"\b(?:localStorage|sessionStorage)\s*"
                r"(?:\.\s*\w*(?:token|jwt|auth)\w*|\[\s*['\"`]\w*(?:token|jwt|auth)\w*['\"`]\s*\])"
                r"\s*=(?!=)"
            ),
            ignore_case=True,
        ),
    ),
)
