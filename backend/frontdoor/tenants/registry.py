"""
Tenant registry.

Resolves a TenantApp by request origin (Origin, falling back to Referer), by
domain, by application id or by service API key. Origin matching is exact
string equality against the configured domains, in configuration order;
the first match wins. There is no wildcard or suffix matching.
"""

import hmac
import logging
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

from fastapi import Request

from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)


def origin_host(origin_or_referer: str) -> Optional[str]:
    """
    Extract the host[:port] of an Origin or Referer header value.

    Returns None when the value cannot be parsed or carries no host.
    """
    if not origin_or_referer:
        return None
    try:
        parsed = urlparse(origin_or_referer.strip())
    except ValueError:
        return None
    return parsed.netloc or None


def request_origin(request: Request) -> Optional[str]:
    """Declared origin of a request, falling back to the referring page."""
    return request.headers.get("origin") or request.headers.get("referer") or None


class TenantRegistry:
    """Holds the configured tenant applications in configuration order."""

    def __init__(self, tenants: Iterable[TenantApp]):
        self._tenants: Tuple[TenantApp, ...] = tuple(tenants)

    def __len__(self) -> int:
        return len(self._tenants)

    def __iter__(self):
        return iter(self._tenants)

    def resolve_by_domain(self, domain: str) -> Optional[TenantApp]:
        if not domain:
            return None
        for tenant in self._tenants:
            if domain in tenant.domains:
                return tenant
        return None

    def resolve_by_origin(self, origin_or_referer: str) -> Optional[TenantApp]:
        host = origin_host(origin_or_referer)
        if host is None:
            return None
        return self.resolve_by_domain(host)

    def resolve_by_id(self, app_id: str) -> Optional[TenantApp]:
        if not app_id:
            return None
        for tenant in self._tenants:
            if tenant.id == app_id:
                return tenant
        return None

    def resolve_by_api_key(self, api_key: str) -> Optional[TenantApp]:
        """Constant-time match of a service API key."""
        if not api_key:
            return None
        match = None
        for tenant in self._tenants:
            if not tenant.service_api_key:
                continue
            if hmac.compare_digest(tenant.service_api_key.encode(), api_key.encode()):
                match = match or tenant
        return match

    def resolve_request(self, request: Request) -> Optional[TenantApp]:
        origin = request_origin(request)
        if origin is None:
            logger.debug("No Origin or Referer header", extra={"path": request.url.path})
            return None
        tenant = self.resolve_by_origin(origin)
        if tenant is None:
            logger.info(
                "No tenant for origin",
                extra={"origin": origin, "path": request.url.path},
            )
        return tenant
