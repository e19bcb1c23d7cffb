"""
User data routes: field mutation and read-back.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from frontdoor.api.dependencies import (
    bind_tenant,
    get_origin_tenant,
    get_principal,
    get_services,
    json_response,
    text_response,
)
from frontdoor.api.schemas.mutations import MutationBody
from frontdoor.auth.principal import Principal
from frontdoor.errors import BadRequestError, NotFoundError, UnauthorizedError
from frontdoor.platform.container import Services
from frontdoor.policy.engine import DecisionReason, MutationRequest
from frontdoor.tenants.models import TenantApp
from frontdoor.tenants.registry import request_origin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["user data"])


def _mutation_tenant(request: Request, body: MutationBody, services: Services) -> TenantApp:
    origin = request_origin(request)
    tenant = services.registry.resolve_by_origin(origin) if origin else None
    if tenant is None and not origin:
        tenant = services.registry.resolve_by_domain(body.d or "")
    if tenant is None:
        raise NotFoundError("no tenant for mutation")
    return bind_tenant(request, tenant)


@router.post("/mutate")
def mutate(
    request: Request,
    body: MutationBody,
    services: Services = Depends(get_services),
):
    """
    Write one user data field if the policy allows it.

    The session token comes from the body, falling back to the tenant's
    session cookie. Shared-secret writes name their target user with `u`.
    """
    tenant = _mutation_tenant(request, body, services)
    if not body.f:
        raise BadRequestError("missing field name")

    session_token = body.s or services.sessions.session_token(request, tenant)
    decision = services.policy.evaluate(MutationRequest(
        tenant=tenant,
        field=body.f,
        value=body.v or "",
        shared_secret=body.k,
        session_token=session_token,
        target_user_id=body.u,
    ))
    if not decision.allowed:
        raise UnauthorizedError(f"mutation of {body.f} denied: {decision.reason.value}")

    if decision.reason == DecisionReason.SHARED_SECRET:
        if not body.u:
            raise BadRequestError("shared-secret mutation without target user")
        user_id = body.u
    else:
        user_id = decision.principal.user_id

    services.user_data.set_value(tenant.id, user_id, body.f, body.v or "")
    return text_response(request, "OK")


@router.get("/userdata")
def user_data(
    request: Request,
    f: Optional[str] = Query(None, description="Field name, SQL LIKE pattern"),
    tenant: TenantApp = Depends(get_origin_tenant),
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    if not f:
        raise BadRequestError("missing field pattern", body="invalid f value")
    values = services.user_data.query_fields(tenant.id, principal.user_id, f)
    return json_response(request, values)
