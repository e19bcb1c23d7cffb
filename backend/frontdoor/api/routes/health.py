"""
Liveness probe scoped to a tenant origin.
"""

from fastapi import APIRouter, Depends, Request

from frontdoor.api.dependencies import get_origin_tenant, json_response
from frontdoor.tenants.models import TenantApp

router = APIRouter(tags=["health"])


@router.get("/ping")
def ping(request: Request, tenant: TenantApp = Depends(get_origin_tenant)):
    return json_response(request, {"message": "pong"})
