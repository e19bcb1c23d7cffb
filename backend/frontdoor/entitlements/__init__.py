"""
Subscription entitlements.

- EntitlementCache: in-process TTL cache keyed by (customer_id, product_id)
- EntitlementService: cache-first checks with live billing refresh
"""

from frontdoor.entitlements.cache import CachedEntitlement, EntitlementCache
from frontdoor.entitlements.service import EntitlementService

__all__ = ["CachedEntitlement", "EntitlementCache", "EntitlementService"]
