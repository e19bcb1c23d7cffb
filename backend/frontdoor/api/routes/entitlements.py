"""
Subscription status routes.

/api/substatus answers for the caller's own session. /api/service/substatus
is for backend services holding a tenant's service API key and may ask
about any user of that tenant.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from frontdoor.api.dependencies import get_origin_tenant, get_principal, get_services, text_response
from frontdoor.auth.principal import Principal
from frontdoor.errors import BadRequestError, InvalidAPIKeyError, UnauthorizedError
from frontdoor.platform.container import Services
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["entitlements"])

INVALID_P = "invalid p value"


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


@router.get("/substatus")
def subscription_status(
    request: Request,
    p: Optional[str] = Query(None, description="Billing product id"),
    tenant: TenantApp = Depends(get_origin_tenant),
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    if not p:
        raise BadRequestError("missing product id", body=INVALID_P)
    subscribed = services.entitlements.is_subscribed(tenant, principal, p)
    return text_response(request, _bool_text(subscribed))


@router.get("/service/substatus")
def service_subscription_status(
    request: Request,
    p: Optional[str] = Query(None, description="Billing product id"),
    u: Optional[str] = Query(None, description="Identity provider user id"),
    s: Optional[str] = Query(None, description="Session token"),
    x_api_key: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """
    Service-to-service subscription check.

    The API key selects the tenant. Exactly one of the user id or the
    session token identifies the user; the session token wins when both
    are given.
    """
    tenant = services.registry.resolve_by_api_key(x_api_key or "")
    if tenant is None:
        logger.warning("Service API key rejected", extra={"path": request.url.path})
        raise InvalidAPIKeyError("unknown service api key")
    if not p:
        raise BadRequestError("missing product id", body=INVALID_P)

    if s:
        principal = services.sessions.resolve_token(tenant, s)
        if principal is None:
            raise UnauthorizedError("service check with invalid session token")
        subscribed = services.entitlements.is_subscribed(tenant, principal, p)
    elif u:
        subscribed = services.entitlements.is_user_subscribed(tenant, u, p)
    else:
        raise BadRequestError("missing user id or session token", body="invalid u or s value")

    return text_response(request, _bool_text(subscribed))
