"""
Per-tenant provider clients.

Each tenant has its own identity provider credentials and billing secret, so
clients are built lazily per tenant and reused for the life of the process.
"""

import logging
from threading import Lock
from typing import Callable, Dict, Optional

from frontdoor.integrations.billing.client import BillingClient
from frontdoor.integrations.identity.client import IdentityProviderClient
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

IdentityFactory = Callable[[TenantApp], IdentityProviderClient]
BillingFactory = Callable[[TenantApp], BillingClient]


class ProviderClients:
    """Lazily built, cached identity and billing clients keyed by tenant id."""

    def __init__(
        self,
        identity_timeout: float = 10.0,
        billing_timeout: float = 10.0,
        identity_factory: Optional[IdentityFactory] = None,
        billing_factory: Optional[BillingFactory] = None,
    ):
        self._identity_factory = identity_factory or (
            lambda tenant: IdentityProviderClient(tenant.identity, timeout=identity_timeout)
        )
        self._billing_factory = billing_factory or (
            lambda tenant: BillingClient(tenant.billing.secret_key, timeout=billing_timeout)
        )
        self._identity: Dict[str, IdentityProviderClient] = {}
        self._billing: Dict[str, BillingClient] = {}
        self._lock = Lock()

    def identity(self, tenant: TenantApp) -> IdentityProviderClient:
        with self._lock:
            client = self._identity.get(tenant.id)
            if client is None:
                client = self._identity_factory(tenant)
                self._identity[tenant.id] = client
            return client

    def billing(self, tenant: TenantApp) -> BillingClient:
        with self._lock:
            client = self._billing.get(tenant.id)
            if client is None:
                client = self._billing_factory(tenant)
                self._billing[tenant.id] = client
            return client

    def close(self) -> None:
        with self._lock:
            clients = list(self._identity.values()) + list(self._billing.values())
            self._identity.clear()
            self._billing.clear()
        for client in clients:
            try:
                client.close()
            except Exception as e:
                logger.warning("Failed to close provider client", extra={"error": str(e)})
