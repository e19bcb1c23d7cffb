"""
Same-origin CORS allowance for resolved tenants.

Resolving a tenant from a browser request always permits that tenant's own
canonical origin with credentials, so the HttpOnly session cookie travels on
cross-origin XHR/fetch calls from the tenant's frontend.
"""

from typing import Dict

from fastapi import Response

from frontdoor.tenants.models import TenantApp

ALLOW_ORIGIN = "Access-Control-Allow-Origin"
ALLOW_CREDENTIALS = "Access-Control-Allow-Credentials"
ALLOW_METHODS = "Access-Control-Allow-Methods"
ALLOW_HEADERS = "Access-Control-Allow-Headers"

PREFLIGHT_METHODS = "GET, POST, OPTIONS"
PREFLIGHT_HEADERS = "Content-Type"


def cors_headers(tenant: TenantApp) -> Dict[str, str]:
    return {
        ALLOW_ORIGIN: tenant.canonical_origin,
        ALLOW_CREDENTIALS: "true",
        "Vary": "Origin",
    }


def apply_cors(response: Response, tenant: TenantApp) -> Response:
    for name, value in cors_headers(tenant).items():
        response.headers[name] = value
    return response


def preflight_headers(tenant: TenantApp) -> Dict[str, str]:
    headers = cors_headers(tenant)
    headers[ALLOW_METHODS] = PREFLIGHT_METHODS
    headers[ALLOW_HEADERS] = PREFLIGHT_HEADERS
    return headers
