"""
Billing customer provisioning.

After a successful login every user gets a billing customer. Its id is
written back to the identity provider user's attribute bag so later
entitlement checks can find it.
"""

import logging

from frontdoor.auth.principal import BILLING_CUSTOMER_ATTRIBUTE, Principal
from frontdoor.integrations.billing.client import BillingAPIError
from frontdoor.integrations.factory import ProviderClients
from frontdoor.integrations.identity.client import IdentityProviderError
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """Billing customer could not be created or recorded."""

    def __init__(self, message: str, customer_id: str = None):
        super().__init__(message)
        self.customer_id = customer_id


class BillingProvisioner:
    """Ensures a Principal has a billing customer."""

    def __init__(self, clients: ProviderClients):
        self._clients = clients

    def ensure_customer(self, tenant: TenantApp, principal: Principal) -> str:
        """
        Return the principal's billing customer id, creating one if needed.

        Raises:
            ProvisioningError: If the customer cannot be created, or was
                created but could not be recorded on the user
        """
        if principal.has_billing_customer:
            return principal.billing_customer_id

        try:
            customer_id = self._clients.billing(tenant).create_customer(
                email=principal.email,
                name=principal.full_name,
                phone=principal.mobile_phone,
                metadata={"user_id": principal.user_id, "app_id": tenant.id},
            )
        except BillingAPIError as e:
            raise ProvisioningError(
                f"failed to create billing customer for user {principal.user_id}: {e}"
            )

        try:
            self._clients.identity(tenant).update_user_data(
                principal.user_id,
                {BILLING_CUSTOMER_ATTRIBUTE: customer_id},
            )
        except IdentityProviderError as e:
            raise ProvisioningError(
                f"failed to record billing customer {customer_id} on user {principal.user_id}: {e}",
                customer_id=customer_id,
            )

        logger.info("Provisioned billing customer", extra={
            "tenant_id": tenant.id,
            "user_id": principal.user_id,
            "customer_id": customer_id,
        })
        return customer_id
