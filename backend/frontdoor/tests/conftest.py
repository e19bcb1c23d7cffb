"""
Shared test fixtures.

Provides:
- Tenant fixtures: shop.test (with field rules) and a.test/b.test
- Fake identity and billing clients standing in for the remote providers
- A controllable clock for TTL tests
- An in-memory SQLite engine and fully wired Services / TestClient
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import yaml
from fastapi.testclient import TestClient

from frontdoor.auth.login_flow import LoginAttemptStore
from frontdoor.auth.principal import BILLING_CUSTOMER_ATTRIBUTE, Principal
from frontdoor.config.settings import Settings
from frontdoor.database.session import create_db_engine
from frontdoor.entitlements.cache import EntitlementCache
from frontdoor.integrations.billing.client import (
    BillingAPIError,
    BillingCustomer,
    BillingPrice,
    BillingProductInfo,
    BillingSubscription,
)
from frontdoor.integrations.factory import ProviderClients
from frontdoor.integrations.identity.client import IdentityProviderError, TokenResponse
from frontdoor.platform.container import build_services
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
from frontdoor.tenants.registry import TenantRegistry

os.environ.setdefault("ENV", "test")

SHOP_APP_ID = "85a03867-dccf-4882-adde-1a79aeec50df"
SHOP_ORIGIN = "https://shop.test"
MUTATION_KEY = "shop-mutation-secret"
SERVICE_API_KEY = "shop-service-key"


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Tenants
# =============================================================================

def make_identity(app_id: str, host: str = "http://idp.internal") -> IdentitySettings:
    return IdentitySettings(
        host=host,
        public_host="https://auth.example.test",
        api_key="idp-api-key",
        client_id=app_id,
        client_secret="client-secret",
        oauth_redirect_url=f"https://api.example.test/auth/oauth-cb/{app_id}",
        post_login_url="https://shop.test/welcome",
        tenant_id="idp-tenant",
    )


def make_tenant(
    app_id: str = SHOP_APP_ID,
    domains: Tuple[str, ...] = ("shop.test", "www.shop.test"),
    canonical_origin: str = SHOP_ORIGIN,
    mutable_fields: Optional[MutableFields] = None,
    mutation_key: str = MUTATION_KEY,
    service_api_key: str = SERVICE_API_KEY,
    cookie_name: str = "shop_session",
) -> TenantApp:
    if mutable_fields is None:
        mutable_fields = MutableFields(
            system=(FieldRule(field="plan"), FieldRule(pattern=re.compile(r"^internal_"))),
            user=(FieldRule(field="nickname"), FieldRule(pattern=re.compile(r"^pref_"))),
            subscriber_only=(SubscriberFieldRule(field="theme", product_id="prod_X"),),
        )
    return TenantApp(
        id=app_id,
        domains=domains,
        canonical_origin=canonical_origin,
        identity=make_identity(app_id),
        cookie=CookiePolicy(name=cookie_name, domain=domains[0], max_age_seconds=3600),
        billing=BillingSettings(
            secret_key="sk_test_shop",
            products=(BillableProduct(product_id="prod_X", price_ids=("price_month", "price_once")),),
            success_url="https://shop.test/paid",
            cancel_url="https://shop.test/cancelled",
        ),
        mutation_key=mutation_key,
        service_api_key=service_api_key,
        mutable_fields=mutable_fields,
    )


@pytest.fixture
def tenant_factory():
    """Build a TenantApp with overrides, see make_tenant."""
    return make_tenant


@pytest.fixture
def shop_tenant():
    return make_tenant()


@pytest.fixture
def ab_tenant():
    return make_tenant(
        app_id="app-ab",
        domains=("a.test", "b.test"),
        canonical_origin="https://a.test",
        mutation_key="ab-secret",
        service_api_key="ab-service-key",
        cookie_name="ab_session",
    )


@pytest.fixture
def registry(shop_tenant, ab_tenant):
    return TenantRegistry([shop_tenant, ab_tenant])


# =============================================================================
# Fake provider clients
# =============================================================================

class FakeIdentityClient:
    """In-memory identity provider: tokens, users and authorization codes."""

    def __init__(self):
        self.tokens: Dict[str, Principal] = {}
        self.users: Dict[str, Principal] = {}
        self.codes: Dict[str, Tuple[str, str]] = {}  # code -> (access_token, verifier)
        self.exchanges: List[Tuple[str, str]] = []
        self.data_updates: List[Tuple[str, dict]] = []
        self.fail_updates = False
        self.closed = False

    def add_user(self, principal: Principal, token: Optional[str] = None) -> Principal:
        self.users[principal.user_id] = principal
        if token:
            self.tokens[token] = principal
        return principal

    def add_code(self, code: str, access_token: str, verifier: Optional[str] = None) -> None:
        self.codes[code] = (access_token, verifier)

    def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        self.exchanges.append((code, code_verifier))
        entry = self.codes.pop(code, None)
        if entry is None:
            raise IdentityProviderError("exchange_code: invalid_grant", status_code=400)
        access_token, expected_verifier = entry
        if expected_verifier is not None and expected_verifier != code_verifier:
            raise IdentityProviderError("exchange_code: verifier mismatch", status_code=400)
        return TokenResponse(access_token=access_token)

    def get_user_by_token(self, token: str) -> Principal:
        principal = self.tokens.get(token)
        if principal is None:
            raise IdentityProviderError("get_user_by_token: rejected", status_code=401)
        return principal

    def get_user(self, user_id: str) -> Principal:
        principal = self.users.get(user_id)
        if principal is None:
            raise IdentityProviderError("get_user: not found", status_code=404)
        return principal

    def update_user_data(self, user_id: str, data: dict) -> Principal:
        if self.fail_updates:
            raise IdentityProviderError("update_user_data: unavailable", status_code=503)
        self.data_updates.append((user_id, data))
        return self.users.get(user_id)

    def close(self) -> None:
        self.closed = True


class FakeBillingClient:
    """In-memory billing provider."""

    def __init__(self):
        self.customers: Dict[str, BillingCustomer] = {}
        self.products: Dict[str, BillingProductInfo] = {}
        self.prices: Dict[str, BillingPrice] = {}
        self.customer_lookups: List[str] = []
        self.created_customers: List[dict] = []
        self.checkout_sessions: List[dict] = []
        self.fail_lookups = False
        self.fail_creates = False
        self.closed = False

    def set_subscription(self, customer_id: str, product_id: str, status: str = "active") -> None:
        self.customers[customer_id] = BillingCustomer(
            id=customer_id,
            subscriptions=[BillingSubscription(id=f"sub_{product_id}", status=status, product_ids=[product_id])],
        )

    def get_customer(self, customer_id: str) -> BillingCustomer:
        self.customer_lookups.append(customer_id)
        if self.fail_lookups:
            raise BillingAPIError("Request timeout")
        customer = self.customers.get(customer_id)
        if customer is None:
            raise BillingAPIError("Billing API error: 404", status_code=404, code="resource_missing")
        return customer

    def create_customer(self, email, name=None, phone=None, metadata=None) -> str:
        if self.fail_creates:
            raise BillingAPIError("Billing API error: 500", status_code=500)
        customer_id = f"cus_{len(self.created_customers) + 1}"
        self.created_customers.append({"email": email, "name": name, "phone": phone, "metadata": metadata})
        self.customers[customer_id] = BillingCustomer(id=customer_id, email=email)
        return customer_id

    def get_product(self, product_id: str) -> BillingProductInfo:
        product = self.products.get(product_id)
        if product is None:
            raise BillingAPIError("Billing API error: 404", status_code=404)
        return product

    def get_price(self, price_id: str) -> BillingPrice:
        price = self.prices.get(price_id)
        if price is None:
            raise BillingAPIError("Billing API error: 404", status_code=404)
        return price

    def create_checkout_session(self, price_ids, mode, success_url, cancel_url,
                                customer_email=None, customer_id=None) -> str:
        self.checkout_sessions.append({
            "price_ids": list(price_ids),
            "mode": mode,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "customer_id": customer_id,
        })
        return f"cs_test_{len(self.checkout_sessions)}"

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def identity():
    return FakeIdentityClient()


@pytest.fixture
def billing():
    return FakeBillingClient()


@pytest.fixture
def clients(identity, billing):
    """ProviderClients handing out the same fakes for every tenant."""
    return ProviderClients(
        identity_factory=lambda tenant: identity,
        billing_factory=lambda tenant: billing,
    )


@pytest.fixture
def catalog_prices(billing):
    """prod_X with a monthly recurring price and a one-time price."""
    billing.products["prod_X"] = BillingProductInfo(
        id="prod_X", name="Pro", description="Pro plan", images=["https://img.test/pro.png"],
    )
    billing.prices["price_month"] = BillingPrice(
        id="price_month", product_id="prod_X", active=True, unit_amount=999,
        unit_amount_decimal=999.0, currency="usd", nickname="Monthly",
        recurring_interval="month", recurring_interval_count=1,
    )
    billing.prices["price_once"] = BillingPrice(
        id="price_once", product_id="prod_X", active=True, unit_amount=4900,
        unit_amount_decimal=4900.0, currency="usd", nickname="Lifetime",
    )
    return billing


# =============================================================================
# Principals
# =============================================================================

@pytest.fixture
def alice(identity):
    """Provisioned user with a billing customer, session token tok-alice."""
    return identity.add_user(Principal(
        user_id="user-alice",
        email="alice@shop.test",
        full_name="Alice Example",
        attributes={BILLING_CUSTOMER_ATTRIBUTE: "cus_alice"},
    ), token="tok-alice")


@pytest.fixture
def bob(identity):
    """User never provisioned with a billing customer, session token tok-bob."""
    return identity.add_user(Principal(
        user_id="user-bob",
        email="bob@shop.test",
        full_name="Bob Example",
    ), token="tok-bob")


# =============================================================================
# Database, services and app
# =============================================================================

@pytest.fixture
def db_engine():
    """SQLite in-memory engine shared across threads."""
    engine = create_db_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def cache(clock):
    return EntitlementCache(ttl_seconds=30, sweep_interval_seconds=0, clock=clock)


@pytest.fixture
def login_attempts(clock):
    return LoginAttemptStore(ttl_seconds=600, max_pending=100, clock=clock)


@pytest.fixture
def services(registry, clients, cache, login_attempts, db_engine):
    return build_services(
        Settings(),
        registry=registry,
        clients=clients,
        cache=cache,
        login_attempts=login_attempts,
        engine=db_engine,
    )


@pytest.fixture
def app(services):
    from main import create_app

    return create_app(services)


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


# =============================================================================
# Config files
# =============================================================================

@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("tenants.yml", {"applications": [...]})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
