"""
Authenticated identity resolved from a session credential.

Principals are built from identity-provider user payloads and never
persisted by the front door.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Attribute in the identity provider's user.data bag holding the billing
# customer provisioned at first login.
BILLING_CUSTOMER_ATTRIBUTE = "billingCustomerId"


@dataclass(frozen=True)
class Principal:
    """An identity-provider user."""

    user_id: str
    email: str = ""
    full_name: str = ""
    mobile_phone: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def billing_customer_id(self) -> Optional[str]:
        """
        Billing customer id stored on the user.

        Returns None when the attribute was never written, and the stored
        string (which may be empty) when it was. An empty string means
        provisioning wrote a bad value and is treated as inconsistent data
        by callers rather than as "not provisioned".
        """
        if BILLING_CUSTOMER_ATTRIBUTE not in self.attributes:
            return None
        value = self.attributes[BILLING_CUSTOMER_ATTRIBUTE]
        if value is None:
            return ""
        return str(value)

    @property
    def has_billing_customer(self) -> bool:
        return bool(self.billing_customer_id)

    @classmethod
    def from_user_payload(cls, user: Dict[str, Any]) -> "Principal":
        """Build from the provider's `user` object."""
        full_name = user.get("fullName") or " ".join(
            part for part in (user.get("firstName"), user.get("lastName")) if part
        )
        return cls(
            user_id=str(user.get("id") or ""),
            email=user.get("email") or "",
            full_name=full_name,
            mobile_phone=user.get("mobilePhone") or "",
            attributes=dict(user.get("data") or {}),
        )
