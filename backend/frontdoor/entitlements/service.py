"""
Entitlement service.

Answers "is this principal subscribed to this product?" using the
EntitlementCache first and the billing provider when the cached fact is
missing or stale. Every live answer, positive or negative, refreshes the
cache.

Failures talking to the billing or identity provider surface as
UpstreamFailureError; the detail is logged with the user, tenant and product
ids and never returned to the caller.
"""

import logging

from frontdoor.auth.principal import Principal
from frontdoor.entitlements.cache import EntitlementCache
from frontdoor.errors import UpstreamFailureError
from frontdoor.integrations.billing.client import BillingAPIError
from frontdoor.integrations.factory import ProviderClients
from frontdoor.integrations.identity.client import IdentityProviderError
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)


class EntitlementService:
    """Subscription checks backed by the cache and the billing provider."""

    def __init__(self, cache: EntitlementCache, clients: ProviderClients):
        self._cache = cache
        self._clients = clients

    def is_subscribed(self, tenant: TenantApp, principal: Principal, product_id: str) -> bool:
        """
        Check a principal's subscription to a product.

        A principal with no billing customer attribute was never provisioned
        and cannot hold a subscription. A principal whose attribute is
        present but empty has inconsistent data and fails.

        Raises:
            UpstreamFailureError: On provider failure or inconsistent data
        """
        customer_id = principal.billing_customer_id
        if customer_id is None:
            logger.info("Principal has no billing customer, not subscribed", extra={
                "tenant_id": tenant.id,
                "user_id": principal.user_id,
                "product_id": product_id,
            })
            return False
        if customer_id == "":
            logger.error("Principal has an empty billing customer id", extra={
                "tenant_id": tenant.id,
                "user_id": principal.user_id,
                "product_id": product_id,
            })
            raise UpstreamFailureError(
                f"empty billing customer id for user {principal.user_id}"
            )

        subscribed, fresh = self._cache.get(customer_id, product_id)
        if fresh:
            return subscribed

        subscribed = self.refresh(tenant, principal, customer_id, product_id)
        return subscribed

    def refresh(
        self,
        tenant: TenantApp,
        principal: Principal,
        customer_id: str,
        product_id: str,
    ) -> bool:
        """Query the billing provider and re-populate the cache."""
        extra = {
            "tenant_id": tenant.id,
            "user_id": principal.user_id,
            "customer_id": customer_id,
            "product_id": product_id,
        }
        try:
            customer = self._clients.billing(tenant).get_customer(customer_id)
        except BillingAPIError as e:
            logger.error("Billing lookup failed", extra={**extra, "error": str(e)})
            raise UpstreamFailureError(f"billing lookup failed for customer {customer_id}")

        if customer.id != customer_id:
            logger.error("Billing customer id mismatch", extra={
                **extra, "returned_customer_id": customer.id,
            })
            raise UpstreamFailureError(
                f"customer id {customer_id} mismatched billing customer id {customer.id}"
            )
        if customer.deleted:
            logger.warning("Billing customer is deleted", extra=extra)
            raise UpstreamFailureError(f"billing customer {customer_id} is deleted")

        subscribed = customer.has_active_subscription(product_id)
        self._cache.put(customer_id, product_id, subscribed)
        logger.info("Refreshed entitlement", extra={**extra, "subscribed": subscribed})
        return subscribed

    def is_user_subscribed(self, tenant: TenantApp, user_id: str, product_id: str) -> bool:
        """Service-to-service check by identity-provider user id."""
        try:
            principal = self._clients.identity(tenant).get_user(user_id)
        except IdentityProviderError as e:
            logger.error("Identity user lookup failed", extra={
                "tenant_id": tenant.id,
                "user_id": user_id,
                "product_id": product_id,
                "status_code": e.status_code,
            })
            raise UpstreamFailureError(f"user lookup failed for {user_id}")
        return self.is_subscribed(tenant, principal, product_id)
