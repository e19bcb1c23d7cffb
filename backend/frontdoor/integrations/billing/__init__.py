from frontdoor.integrations.billing.client import (
    BillingAPIError,
    BillingClient,
    BillingCustomer,
    BillingPrice,
    BillingProductInfo,
    BillingSubscription,
)

__all__ = [
    "BillingAPIError",
    "BillingClient",
    "BillingCustomer",
    "BillingPrice",
    "BillingProductInfo",
    "BillingSubscription",
]
