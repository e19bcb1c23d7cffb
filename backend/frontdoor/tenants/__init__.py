"""
Tenant applications and their resolution.

- TenantApp: immutable per-application configuration
- TenantRegistry: resolution by origin, domain, app id or service API key
"""

from frontdoor.tenants.models import (
    BillableProduct,
    BillingSettings,
    CookiePolicy,
    FieldRule,
    IdentitySettings,
    MutableFields,
    SubscriberFieldRule,
    TenantApp,
)
from frontdoor.tenants.registry import TenantRegistry, origin_host

__all__ = [
    "BillableProduct",
    "BillingSettings",
    "CookiePolicy",
    "FieldRule",
    "IdentitySettings",
    "MutableFields",
    "SubscriberFieldRule",
    "TenantApp",
    "TenantRegistry",
    "origin_host",
]
