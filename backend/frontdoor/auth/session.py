"""
Session resolution.

A session is the identity provider's access token carried in the tenant's
session cookie. Every resolution validates the token with the provider;
nothing is cached, so a revoked token stops working immediately.
"""

import logging
from typing import Optional

from fastapi import Request

from frontdoor.auth.principal import Principal
from frontdoor.errors import UnauthorizedError
from frontdoor.integrations.factory import ProviderClients
from frontdoor.integrations.identity.client import IdentityProviderError
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)


class SessionResolver:
    """Resolves the Principal behind a tenant's session cookie."""

    def __init__(self, clients: ProviderClients):
        self._clients = clients

    def session_token(self, request: Request, tenant: TenantApp) -> Optional[str]:
        return request.cookies.get(tenant.cookie.name) or None

    def resolve(self, request: Request, tenant: TenantApp) -> Optional[Principal]:
        """Return the Principal for the request, or None when unauthenticated."""
        token = self.session_token(request, tenant)
        if token is None:
            return None
        return self.resolve_token(tenant, token)

    def resolve_token(self, tenant: TenantApp, token: Optional[str]) -> Optional[Principal]:
        """
        Validate a raw session token.

        A provider rejection and a transport failure both yield None; the
        difference only shows up in the logs.
        """
        if not token:
            return None
        try:
            return self._clients.identity(tenant).get_user_by_token(token)
        except IdentityProviderError as e:
            logger.info("Session token did not validate", extra={
                "tenant_id": tenant.id,
                "status_code": e.status_code,
                "rejected": e.rejected,
            })
            return None

    def require(self, request: Request, tenant: TenantApp) -> Principal:
        principal = self.resolve(request, tenant)
        if principal is None:
            raise UnauthorizedError(f"no valid session for tenant {tenant.id}")
        return principal
