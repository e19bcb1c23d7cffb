"""
Tenant configuration loader.

Loads the tenant applications from a YAML file (FRONTDOOR_CONFIG, default
config/tenants.yml) and turns each entry into an immutable TenantApp.

Every field pattern is compiled here. An invalid pattern aborts loading with
a TenantConfigError naming the tenant, the tier and the pattern, so a typo
fails at startup instead of silently never matching at request time.

Example:

    applications:
      - id: 85a03867-dccf-4882-adde-1a79aeec50df
        domains: [shop.test, www.shop.test]
        canonical_origin: https://shop.test
        mutation_key: change-me
        service_api_key: change-me-too
        identity:
          host: http://fusionauth:9011
          public_host: https://auth.shop.test
          api_key: ...
          tenant_id: ...
          client_id: 85a03867-dccf-4882-adde-1a79aeec50df
          client_secret: ...
          oauth_redirect_url: https://api.shop.test/auth/oauth-cb/85a03867-dccf-4882-adde-1a79aeec50df
          post_login_url: https://shop.test/welcome
        cookie:
          name: shop_session
          domain: shop.test
          max_age_seconds: 86400
          secure: true
        billing:
          secret_key: sk_test_...
          success_url: https://shop.test/paid
          cancel_url: https://shop.test/cancelled
          products:
            - product_id: prod_X
              price_ids: [price_1, price_2]
        mutable_fields:
          system: [plan, {pattern: "^internal_"}]
          user: [nickname, {field: avatar, pattern: "^pref_"}]
          subscriber_only:
            - {field: theme, product_id: prod_X}
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

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

logger = logging.getLogger(__name__)


class TenantConfigError(Exception):
    """Raised when the tenant configuration is missing or invalid."""
    pass


def _require(section: Dict[str, Any], key: str, where: str) -> Any:
    value = section.get(key)
    if value is None or value == "":
        raise TenantConfigError(f"{where}: '{key}' is required")
    return value


def _compile(pattern: str, where: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise TenantConfigError(f"{where}: invalid pattern {pattern!r}: {e}")


def _parse_field_rule(entry: Any, where: str) -> FieldRule:
    if isinstance(entry, str):
        if not entry:
            raise TenantConfigError(f"{where}: empty field name")
        return FieldRule(field=entry)
    if not isinstance(entry, dict):
        raise TenantConfigError(f"{where}: expected a field name or mapping")

    field_name = entry.get("field") or None
    pattern = entry.get("pattern") or None
    if field_name is None and pattern is None:
        raise TenantConfigError(f"{where}: rule needs 'field' or 'pattern'")
    return FieldRule(
        field=field_name,
        pattern=_compile(pattern, where) if pattern else None,
    )


def _parse_subscriber_rule(entry: Any, where: str) -> SubscriberFieldRule:
    if not isinstance(entry, dict):
        raise TenantConfigError(f"{where}: subscriber rule must be a mapping")
    base = _parse_field_rule(entry, where)
    return SubscriberFieldRule(
        field=base.field,
        pattern=base.pattern,
        product_id=_require(entry, "product_id", where),
    )


def _parse_mutable_fields(raw: Optional[Dict[str, Any]], app_id: str) -> MutableFields:
    raw = raw or {}
    system = tuple(
        _parse_field_rule(e, f"app {app_id} system[{i}]")
        for i, e in enumerate(raw.get("system") or [])
    )
    user = tuple(
        _parse_field_rule(e, f"app {app_id} user[{i}]")
        for i, e in enumerate(raw.get("user") or [])
    )
    subscriber_only = tuple(
        _parse_subscriber_rule(e, f"app {app_id} subscriber_only[{i}]")
        for i, e in enumerate(raw.get("subscriber_only") or [])
    )
    return MutableFields(system=system, user=user, subscriber_only=subscriber_only)


def _parse_identity(raw: Dict[str, Any], app_id: str) -> IdentitySettings:
    where = f"app {app_id} identity"
    host = _require(raw, "host", where).rstrip("/")
    public_host = (raw.get("public_host") or host).rstrip("/")
    scopes = raw.get("scopes") or ["openid"]
    return IdentitySettings(
        host=host,
        public_host=public_host,
        api_key=_require(raw, "api_key", where),
        client_id=raw.get("client_id") or app_id,
        client_secret=_require(raw, "client_secret", where),
        oauth_redirect_url=_require(raw, "oauth_redirect_url", where),
        post_login_url=_require(raw, "post_login_url", where),
        tenant_id=raw.get("tenant_id"),
        scopes=tuple(scopes),
    )


def _parse_cookie(raw: Dict[str, Any], app_id: str) -> CookiePolicy:
    where = f"app {app_id} cookie"
    return CookiePolicy(
        name=_require(raw, "name", where),
        domain=raw.get("domain"),
        path=raw.get("path") or "/",
        max_age_seconds=int(raw.get("max_age_seconds", 3600)),
        secure=bool(raw.get("secure", True)),
    )


def _parse_billing(raw: Dict[str, Any], app_id: str) -> BillingSettings:
    where = f"app {app_id} billing"
    products = tuple(
        BillableProduct(
            product_id=_require(p, "product_id", f"{where} products[{i}]"),
            price_ids=tuple(p.get("price_ids") or []),
        )
        for i, p in enumerate(raw.get("products") or [])
    )
    return BillingSettings(
        secret_key=_require(raw, "secret_key", where),
        products=products,
        success_url=raw.get("success_url"),
        cancel_url=raw.get("cancel_url"),
    )


def parse_tenant(raw: Dict[str, Any]) -> TenantApp:
    """Build a TenantApp from one `applications` entry."""
    app_id = str(_require(raw, "id", "application"))
    domains = raw.get("domains") or []
    if isinstance(domains, str):
        domains = [domains]
    if not domains:
        raise TenantConfigError(f"app {app_id}: at least one domain is required")

    canonical_origin = raw.get("canonical_origin") or f"https://{domains[0]}"

    return TenantApp(
        id=app_id,
        domains=tuple(str(d) for d in domains),
        canonical_origin=canonical_origin.rstrip("/"),
        identity=_parse_identity(raw.get("identity") or {}, app_id),
        cookie=_parse_cookie(raw.get("cookie") or {}, app_id),
        billing=_parse_billing(raw.get("billing") or {}, app_id),
        mutation_key=str(raw.get("mutation_key") or ""),
        service_api_key=str(raw.get("service_api_key") or ""),
        mutable_fields=_parse_mutable_fields(raw.get("mutable_fields"), app_id),
    )


def parse_tenants(raw: Dict[str, Any]) -> Tuple[TenantApp, ...]:
    """Build all tenants, preserving configuration order."""
    entries = (raw or {}).get("applications") or []
    if not entries:
        raise TenantConfigError("no applications configured")

    tenants: List[TenantApp] = []
    seen_ids = set()
    claimed_domains: Dict[str, str] = {}

    for entry in entries:
        tenant = parse_tenant(entry)
        if tenant.id in seen_ids:
            raise TenantConfigError(f"duplicate application id {tenant.id}")
        seen_ids.add(tenant.id)

        for domain in tenant.domains:
            if domain in claimed_domains:
                logger.warning(
                    "Domain claimed by more than one application, first wins",
                    extra={
                        "domain": domain,
                        "winner": claimed_domains[domain],
                        "ignored": tenant.id,
                    },
                )
            else:
                claimed_domains[domain] = tenant.id

        tenants.append(tenant)

    return tuple(tenants)


class TenantConfigLoader:
    """Reads and validates the tenant YAML file."""

    def __init__(self, config_path: str):
        self._config_path = Path(config_path)

    def load(self) -> Tuple[TenantApp, ...]:
        if not self._config_path.exists():
            raise TenantConfigError(f"tenant config not found: {self._config_path}")

        logger.info("Loading tenant config from %s", self._config_path)
        with open(self._config_path, "r") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise TenantConfigError(f"invalid YAML in {self._config_path}: {e}")

        tenants = parse_tenants(raw)
        logger.info(
            "Loaded tenant config: %d applications",
            len(tenants),
            extra={"app_ids": [t.id for t in tenants]},
        )
        return tenants
