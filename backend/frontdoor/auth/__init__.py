"""
Identity: principals, session resolution and the delegated login flow.
"""

from frontdoor.auth.principal import BILLING_CUSTOMER_ATTRIBUTE, Principal
from frontdoor.auth.session import SessionResolver

__all__ = ["BILLING_CUSTOMER_ATTRIBUTE", "Principal", "SessionResolver"]
