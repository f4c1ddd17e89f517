# Cookie security: cookies set without sameSite/httpOnly/secure protection.

from __future__ import annotations

from webaudit.rules.base import ArgumentPredicate, CallShapeMatcher, RuleDefinition
from webaudit.severity import Severity

CATEGORY = "cookie-security"

# res.cookie(name, value, options) (Express) and ctx.cookies.set(name, value, options) (Koa)
COOKIE_SETTER = r"(?:^|\.)(?:cookie|cookies\.set)$"
HEADER_SETTER = r"(?:^|\.)(?:setHeader|header|set|append)$"

_SECURE_COOKIE_FIX = (
    "Set all protection flags: res.cookie(name, value, "
    "{ httpOnly: true, secure: true, sameSite: 'strict' })."
)


def _options(key: str, op: str, **kwargs) -> ArgumentPredicate:
    return ArgumentPredicate(index=2, key=(key,), op=op, **kwargs)


def _set_cookie_header(value_op: str, pattern: str) -> tuple[ArgumentPredicate, ...]:
    return (
        ArgumentPredicate(index=0, op="equals", value="set-cookie"),
        ArgumentPredicate(index=1, op=value_op, pattern=pattern),
    )


RULES: tuple[RuleDefinition, ...] = (
    RuleDefinition(
        id="cookie-missing-samesite",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Cookie without sameSite",
        description="A cookie is set without a sameSite attribute, leaving it open to CSRF.",
        message="Cookie {arg0} is set by {callee}() without a sameSite attribute",
        remediation=_SECURE_COOKIE_FIX,
        matcher=CallShapeMatcher(
            callee=COOKIE_SETTER,
            arguments=(_options("sameSite", "missing"),),
        ),
    ),
    RuleDefinition(
        id="cookie-samesite-lax",
        category=CATEGORY,
        severity=Severity.WARNING,
        name="Cookie with sameSite=lax",
        description="sameSite 'lax' still sends the cookie on top-level cross-site navigations.",
        message="Cookie {arg0} uses sameSite 'lax'; prefer 'strict' for session cookies",
        remediation=_SECURE_COOKIE_FIX,
        matcher=CallShapeMatcher(
            callee=COOKIE_SETTER,
            arguments=(_options("sameSite", "equals", value="lax"),),
        ),
    ),
    RuleDefinition(
        id="cookie-samesite-none",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Cookie with sameSite disabled",
        description="sameSite 'none' or false disables cross-site request protection.",
        message="Cookie {arg0} disables sameSite protection",
        remediation=_SECURE_COOKIE_FIX,
        matcher=CallShapeMatcher(
            callee=COOKIE_SETTER,
            arguments=(_options("sameSite", "matches", pattern=r"^(?:none|false)$"),),
        ),
    ),
    RuleDefinition(
        id="cookie-missing-httponly",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Cookie without httpOnly",
        description="Without httpOnly, scripts (and XSS payloads) can read the cookie.",
        message="Cookie {arg0} is readable from JavaScript (httpOnly not set)",
        remediation=_SECURE_COOKIE_FIX,
        matcher=CallShapeMatcher(
            callee=COOKIE_SETTER,
            arguments=(_options("httpOnly", "unset-or-false"),),
        ),
    ),
    RuleDefinition(
        id="cookie-missing-secure",
        category=CATEGORY,
        severity=Severity.WARNING,
        name="Cookie without secure",
        description="Without secure, the cookie is also sent over plain HTTP.",
        message="Cookie {arg0} may be sent over plain HTTP (secure not set)",
        remediation=_SECURE_COOKIE_FIX,
        matcher=CallShapeMatcher(
            callee=COOKIE_SETTER,
            arguments=(_options("secure", "unset-or-false"),),
        ),
    ),
    RuleDefinition(
        id="cookie-header-missing-samesite",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Set-Cookie header without SameSite",
        description="A raw Set-Cookie header is sent without a SameSite attribute.",
        message="Set-Cookie header {arg1} has no SameSite attribute",
        remediation="Append '; HttpOnly; Secure; SameSite=Strict' to the Set-Cookie value.",
        matcher=CallShapeMatcher(
            callee=HEADER_SETTER,
            arguments=_set_cookie_header("not-matches", r";\s*SameSite\s*="),
        ),
    ),
    RuleDefinition(
        id="cookie-header-samesite-lax",
        category=CATEGORY,
        severity=Severity.WARNING,
        name="Set-Cookie header with SameSite=Lax",
        description="A raw Set-Cookie header uses the weaker SameSite=Lax setting.",
        message="Set-Cookie header uses SameSite=Lax; prefer Strict",
        remediation="Use SameSite=Strict for session and authentication cookies.",
        matcher=CallShapeMatcher(
            callee=HEADER_SETTER,
            arguments=_set_cookie_header("matches", r";\s*SameSite\s*=\s*Lax\b"),
        ),
    ),
)
