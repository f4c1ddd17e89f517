# Environment exposure: process.env leaked through logs, responses and errors,
# and .env files served or fetched over HTTP.

from __future__ import annotations

from webaudit.rules.base import (
    ArgumentPredicate,
    CallShapeMatcher,
    LiteralMatcher,
    RegexMatcher,
    RuleDefinition,
)
from webaudit.severity import Severity

CATEGORY = "env-exposure"

LOGGER_CALL = r"(?:^|\.)(?:console|logger|log|winston|pino)\.(?:log|info|warn|error|debug|trace|fatal)$"
RESPONSE_CALL = r"^(?:res|response|reply|ctx\.response)\b.*\.(?:json|jsonp|send|write|end)$"
ERROR_CONSTRUCTOR = r"(?:^|\.)(?:[A-Z]\w*)?Error$"

# process.env on its own, not process.env.X / process.env['X']
WHOLE_ENV = r"\b(?:process\.env|import\.meta\.env)\b(?!\s*(?:\.|\[|\?\.))"
SECRET_ENV = (
    r"\b(?:process\.env|import\.meta\.env)(?:\.|\[\s*['\"`])"
    r"\w*(?:SECRET|PASSWORD|PASSWD|PWD|TOKEN|API_?KEY|PRIVATE|CREDENTIAL|AUTH|_KEY)\w*"
)
ENV_FILE = r"(?:^|[/\\'\"`])\.env(?:\.[\w.-]+)?['\"`]?\)?$"

STATIC_SERVING_CALL = r"(?:^|\.)(?:static|serveStatic|sendFile|download)$"
CLIENT_REQUEST_CALL = (
    r"^(?:window\.)?fetch$"
    r"|^axios(?:\.(?:get|post|request))?$"
    r"|^(?:https?|got|superagent|request)(?:\.get)?$"
    r"|(?:^|\.)(?:open|getJSON|ajax)$"
)

_KEEP_SERVER_SIDE = (
    "Read individual variables server-side (const key = process.env.API_KEY) "
    "and never log, return or interpolate them."
)
_KEEP_ENV_PRIVATE = (
    "Keep .env files out of served directories (dotfiles: 'deny' for express.static) "
    "and inject public values at build time instead of fetching them."
)


RULES: tuple[RuleDefinition, ...] = (
    RuleDefinition(
        id="env-full-mapping-exposed",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Whole environment exposed",
        description="The full process.env mapping is logged, returned, or put into an error.",
        message="The whole environment is passed to {callee}()",
        remediation=_KEEP_SERVER_SIDE,
        matcher=CallShapeMatcher(
            callee=f"{LOGGER_CALL}|{RESPONSE_CALL}|{ERROR_CONSTRUCTOR}",
            arguments=(ArgumentPredicate(op="matches", pattern=WHOLE_ENV, ignore_case=False),),
        ),
    ),
    RuleDefinition(
        id="env-secret-interpolated",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Secret environment value exposed",
        description="A secret-looking environment variable ends up in a log line or error message.",
        message="Secret environment value is passed to {callee}()",
        remediation=_KEEP_SERVER_SIDE,
        matcher=CallShapeMatcher(
            callee=f"{LOGGER_CALL}|{ERROR_CONSTRUCTOR}",
            arguments=(ArgumentPredicate(op="matches", pattern=SECRET_ENV),),
        ),
    ),
    RuleDefinition(
        id="env-thrown-literal",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name="Environment value thrown",
        description="A thrown string or object carries environment values.",
        message="Thrown value contains environment data: {match}",
        remediation=_KEEP_SERVER_SIDE,
        matcher=RegexMatcher(
            pattern=r"^throw\s+(?!new\s)[\s\S]*?\b(?:process\.env|import\.meta\.env)\b",
        ),
    ),
    RuleDefinition(
        id="env-file-served-static",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name=".env served as a static asset",
        description="A .env file path is handed to static file serving.",
        message="{callee}() serves an env file",
        remediation=_KEEP_ENV_PRIVATE,
        matcher=CallShapeMatcher(
            callee=STATIC_SERVING_CALL,
            arguments=(ArgumentPredicate(op="matches", pattern=ENV_FILE, ignore_case=False),),
        ),
    ),
    RuleDefinition(
        id="env-file-fetch",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name=".env fetched by the client",
        description="Client code requests an env file over HTTP.",
        message="{callee}() requests an env file",
        remediation=_KEEP_ENV_PRIVATE,
        matcher=CallShapeMatcher(
            callee=CLIENT_REQUEST_CALL,
            arguments=(ArgumentPredicate(op="matches", pattern=ENV_FILE, ignore_case=False),),
        ),
    ),
    RuleDefinition(
        id="env-file-public-path",
        category=CATEGORY,
        severity=Severity.VULNERABLE,
        name=".env inside a public directory",
        description="An env file path points into a directory that is served to clients.",
        message="Env file path inside a served directory: {match}",
        remediation=_KEEP_ENV_PRIVATE,
        matcher=LiteralMatcher(
            values=("public/.env", "static/.env", "dist/.env", "build/.env", "www/.env"),
        ),
    ),
)
