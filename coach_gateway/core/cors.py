"""CORS headers for the protected functions.

The functions answer preflight requests themselves (no Starlette
CORSMiddleware) because a preflight must always succeed with the fixed
header set, whatever the origin, and must never reach the request gate.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from fastapi import Request, Response

from coach_gateway.core.config import settings

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
MAX_AGE_SECONDS = 86400


def parse_origin_patterns(patterns: str | None) -> list[str]:
    """Split the comma-separated origin allow-list.

    Examples:
        >>> parse_origin_patterns("https://*.lovable.app, https://*.salesforce.com")
        ['https://*.lovable.app', 'https://*.salesforce.com']
        >>> parse_origin_patterns(None)
        []
    """
    if not patterns:
        return []
    return [p.strip() for p in patterns.split(",") if p.strip()]


def match_origin(origin: str | None, patterns: list[str]) -> str | None:
    """Return the origin when it matches one of the allowed patterns."""
    if not origin:
        return None
    for pattern in patterns:
        if pattern == "*" or fnmatchcase(origin, pattern):
            return origin
    return None


def build_cors_headers(origin: str | None) -> dict[str, str]:
    """Build the fixed CORS header set for a request origin.

    Access-Control-Allow-Origin is only present when the origin is allowed.
    """
    headers = {
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": str(MAX_AGE_SECONDS),
        "Vary": "Origin",
    }
    allowed = match_origin(origin, parse_origin_patterns(settings.app.cors_allowed_origins))
    if allowed:
        headers["Access-Control-Allow-Origin"] = allowed
    return headers


def cors_headers_for(request: Request) -> dict[str, str]:
    return build_cors_headers(request.headers.get("origin"))


def preflight_response(request: Request) -> Response:
    """Answer a CORS preflight: 200, empty body, CORS headers."""
    return Response(status_code=200, headers=cors_headers_for(request))
