# CORS configuration: wildcard, null and reflected origins, credential sharing,
# and origin callbacks that grant every origin.

from __future__ import annotations

from webaudit.rules.base import PropertyCombinationMatcher, PropertyPredicate, RuleDefinition
from webaudit.severity import Severity

CATEGORY = "cors-config"

# cors({ origin, credentials }) options and the equivalent response headers
ORIGIN_KEYS = ("origin", "access-control-allow-origin")
CREDENTIAL_KEYS = ("credentials", "access-control-allow-credentials")

# origin: true (cors package), req.headers.origin, req.get('origin'), ctx.get('origin') ...
REFLECTED_ORIGIN = (
    r"^true$"
    r"|\b(?:req|request)\.(?:headers?(?:\.origin\b|\[\s*['\"`]origin['\"`]\s*\])"
    r"|get\(\s*['\"`]origin['\"`]\s*\)|header\(\s*['\"`]origin['\"`]\s*\))"
    r"|\bctx\.(?:request\.)?(?:headers?\.origin\b|get\(\s*['\"`]origin['\"`]\s*\))"
)

_ALLOW_LIST_FIX = (
    "Check the request origin against an explicit allow-list, e.g. "
    "origin: (origin, cb) => allowed.includes(origin) ? cb(null, true) : cb(new Error('blocked'))."
)


def _origin(op: str, **kwargs) -> PropertyPredicate:
    return PropertyPredicate(key=ORIGIN_KEYS, op=op, **kwargs)


_NO_CREDENTIALS = PropertyPredicate(key=CREDENTIAL_KEYS, op="unset-or-false")
_WITH_CREDENTIALS = PropertyPredicate(key=CREDENTIAL_KEYS, op="is-true")


RULES: tuple[RuleDefinition, ...] = (
    RuleDefinition(
        id="cors-wildcard-origin",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Wildcard CORS origin",
        description="Any website may read responses from this API.",
        message="CORS allows any origin ({key}: {value})",
        remediation=_ALLOW_LIST_FIX,
        matcher=PropertyCombinationMatcher(
            properties=(_origin("equals", value="*"), _NO_CREDENTIALS),
        ),
    ),
    RuleDefinition(
        id="cors-wildcard-credentials",
        category=CATEGORY,
        severity=Severity.CRITICAL,
        name="Wildcard CORS origin with credentials",
        description="Credentialed requests are allowed together with a wildcard origin.",
        message="CORS allows any origin ({key}: {value}) together with credentials",
        remediation=_ALLOW_LIST_FIX,
        matcher=PropertyCombinationMatcher(
            properties=(_origin("equals", value="*"), _WITH_CREDENTIALS),
        ),
    ),
    RuleDefinition(
        id="cors-null-origin",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="CORS allows the null origin",
        description="Sandboxed iframes and file: pages send Origin: null and would be trusted.",
        message="CORS accepts the 'null' origin",
        remediation="Never allow the 'null' origin; reject it before the allow-list check.",
        matcher=PropertyCombinationMatcher(properties=(_origin("equals", value="null"),)),
    ),
    RuleDefinition(
        id="cors-reflected-origin",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Reflected CORS origin",
        description="The request Origin header is echoed back without validation.",
        message="CORS reflects the request origin ({value}) without validation",
        remediation=_ALLOW_LIST_FIX,
        matcher=PropertyCombinationMatcher(
            properties=(_origin("matches", pattern=REFLECTED_ORIGIN), _NO_CREDENTIALS),
            unconditional=True,
        ),
    ),
    RuleDefinition(
        id="cors-reflected-origin-credentials",
        category=CATEGORY,
        severity=Severity.CRITICAL,
        name="Reflected CORS origin with credentials",
        description="Any site can make credentialed requests because the origin is reflected.",
        message="CORS reflects the request origin ({value}) and allows credentials",
        remediation=_ALLOW_LIST_FIX,
        matcher=PropertyCombinationMatcher(
            properties=(_origin("matches", pattern=REFLECTED_ORIGIN), _WITH_CREDENTIALS),
            unconditional=True,
        ),
    ),
    RuleDefinition(
        id="cors-permissive-origin-callback",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Origin callback grants every origin",
        description="The origin function grants access without checking the origin first.",
        message="CORS origin function grants every origin unconditionally",
        remediation=_ALLOW_LIST_FIX,
        matcher=PropertyCombinationMatcher(
            properties=(PropertyPredicate(key=("origin",), op="unconditional-grant"),),
            within="object",
        ),
    ),
)
