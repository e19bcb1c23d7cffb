"""
Login, OAuth callback and login-state routes.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from frontdoor.api.dependencies import (
    get_origin_tenant,
    get_services,
    json_response,
    text_response,
)
from frontdoor.api.schemas.auth import LoggedInResponse
from frontdoor.errors import NotFoundError
from frontdoor.platform.container import Services
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/login")
def login(
    request: Request,
    tenant: TenantApp = Depends(get_origin_tenant),
    services: Services = Depends(get_services),
):
    """
    Start a login, or report that the session cookie is already valid.

    An invalid cookie is ignored and a fresh login starts.
    """
    principal = services.login_flow.existing_session(request, tenant)
    if principal is not None:
        return text_response(request, "already logged in")

    _, url = services.login_flow.initiate(tenant)
    return RedirectResponse(
        url,
        status_code=status.HTTP_302_FOUND,
        headers=request.state.cors_headers,
    )


async def _callback_values(request: Request, name: str) -> List[str]:
    values = list(request.query_params.getlist(name))
    if request.method == "POST":
        form = await request.form()
        values.extend(v for v in form.getlist(name) if isinstance(v, str))
    return values


@router.api_route("/oauth-cb/{app_id}", methods=["GET", "POST"])
async def oauth_callback(
    app_id: str,
    request: Request,
    services: Services = Depends(get_services),
):
    """
    Finish a login for the tenant named in the path.

    state and code are read from the query string and, for POST, the form
    body. On success the session cookie is set and the browser is sent to
    the tenant's post-login URL.
    """
    tenant = services.registry.resolve_by_id(app_id)
    if tenant is None:
        raise NotFoundError(f"no tenant with id {app_id}")

    states = await _callback_values(request, "state")
    codes = await _callback_values(request, "code")
    result = await run_in_threadpool(services.login_flow.complete, tenant, states, codes)

    response = RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)
    services.login_flow.set_session_cookie(response, tenant, result.access_token)
    return response


@router.get("/loggedin")
def logged_in(
    request: Request,
    tenant: TenantApp = Depends(get_origin_tenant),
    services: Services = Depends(get_services),
):
    principal = services.sessions.resolve(request, tenant)
    if principal is None:
        return json_response(request, LoggedInResponse().model_dump())
    return json_response(request, LoggedInResponse(
        logged_in=True,
        user_id=principal.user_id,
        user_email=principal.email,
        user_full_name=principal.full_name,
    ).model_dump())
