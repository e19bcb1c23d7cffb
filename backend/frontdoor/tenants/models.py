"""
Tenant application models.

A TenantApp is one configured application sharing the front door. Instances
are built once by the config loader and never mutated afterwards.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class CookiePolicy:
    """Session cookie settings. Always HttpOnly and SameSite=Lax."""

    name: str
    domain: Optional[str] = None
    path: str = "/"
    max_age_seconds: int = 3600
    secure: bool = True

    http_only: bool = field(default=True, init=False)
    same_site: str = field(default="lax", init=False)


@dataclass(frozen=True)
class FieldRule:
    """
    Matches a user data field by exact name, by pattern, or both.

    Pattern matching uses re.search, so unanchored patterns match anywhere
    in the field name.
    """

    field: Optional[str] = None
    pattern: Optional[re.Pattern] = None

    def matches(self, field_name: str) -> bool:
        if self.field is not None and field_name == self.field:
            return True
        if self.pattern is not None and self.pattern.search(field_name):
            return True
        return False

    def describe(self) -> str:
        if self.pattern is not None and self.field is not None:
            return f"{self.field}|/{self.pattern.pattern}/"
        if self.pattern is not None:
            return f"/{self.pattern.pattern}/"
        return self.field or ""


@dataclass(frozen=True)
class SubscriberFieldRule(FieldRule):
    """Field rule that requires an active subscription to product_id."""

    product_id: str = ""


@dataclass(frozen=True)
class MutableFields:
    """The three permission tiers, evaluated system → user → subscriber."""

    system: Tuple[FieldRule, ...] = ()
    user: Tuple[FieldRule, ...] = ()
    subscriber_only: Tuple[SubscriberFieldRule, ...] = ()


@dataclass(frozen=True)
class IdentitySettings:
    """Identity provider coordinates and OAuth client credentials."""

    host: str
    public_host: str
    api_key: str
    client_id: str
    client_secret: str
    oauth_redirect_url: str
    post_login_url: str
    tenant_id: Optional[str] = None
    scopes: Tuple[str, ...] = ("openid",)

    @property
    def authorize_url(self) -> str:
        return f"{self.public_host.rstrip('/')}/oauth2/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.public_host.rstrip('/')}/oauth2/token"


@dataclass(frozen=True)
class BillableProduct:
    """A billing provider product and the price ids offered for it."""

    product_id: str
    price_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BillingSettings:
    """Billing provider credentials and checkout redirect targets."""

    secret_key: str
    products: Tuple[BillableProduct, ...] = ()
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    def product_ids(self) -> List[str]:
        return [p.product_id for p in self.products]

    def price_ids(self) -> List[str]:
        return [price_id for p in self.products for price_id in p.price_ids]


@dataclass(frozen=True)
class TenantApp:
    """One configured tenant application."""

    id: str
    domains: Tuple[str, ...]
    canonical_origin: str
    identity: IdentitySettings
    cookie: CookiePolicy
    billing: BillingSettings
    mutation_key: str = ""
    service_api_key: str = ""
    mutable_fields: MutableFields = field(default_factory=MutableFields)

    def __repr__(self) -> str:
        return f"<TenantApp(id={self.id}, domains={list(self.domains)})>"
