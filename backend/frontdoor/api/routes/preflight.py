"""
CORS preflight for every path.

A preflight from a configured tenant origin is answered with that tenant's
CORS headers; anything else is not found.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from frontdoor.platform.cors import preflight_headers
from frontdoor.api.dependencies import get_origin_tenant
from frontdoor.tenants.models import TenantApp

router = APIRouter(tags=["cors"])


@router.options("/{path:path}")
def preflight(path: str, request: Request, tenant: TenantApp = Depends(get_origin_tenant)):
    return PlainTextResponse("OK", headers=preflight_headers(tenant))
