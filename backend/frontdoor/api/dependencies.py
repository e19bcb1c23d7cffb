"""
Shared FastAPI dependencies and response helpers.

Resolving a tenant records it on request.state together with its CORS
headers. Every response for that tenant, error responses included, carries
those headers.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from frontdoor.auth.principal import Principal
from frontdoor.errors import NotFoundError
from frontdoor.platform.container import Services
from frontdoor.platform.cors import cors_headers
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


def bind_tenant(request: Request, tenant: TenantApp) -> TenantApp:
    """Attach a resolved tenant and its CORS headers to the request."""
    request.state.tenant = tenant
    request.state.cors_headers = cors_headers(tenant)
    return tenant


def get_origin_tenant(
    request: Request,
    services: Services = Depends(get_services),
) -> TenantApp:
    """
    Resolve the tenant from Origin, falling back to Referer.

    Raises:
        NotFoundError: If neither header resolves to a configured tenant
    """
    tenant = services.registry.resolve_request(request)
    if tenant is None:
        raise NotFoundError("no tenant for request origin")
    return bind_tenant(request, tenant)


def get_principal(
    request: Request,
    tenant: TenantApp = Depends(get_origin_tenant),
    services: Services = Depends(get_services),
) -> Principal:
    """
    Resolve the session Principal for the origin tenant.

    Raises:
        UnauthorizedError: If the session cookie is missing or invalid
    """
    return services.sessions.require(request, tenant)


def response_headers(request: Request) -> Optional[Dict[str, str]]:
    return getattr(request.state, "cors_headers", None)


def text_response(request: Request, body: str, status_code: int = status.HTTP_200_OK) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers=response_headers(request))


def json_response(request: Request, content: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=response_headers(request))
