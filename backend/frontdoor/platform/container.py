"""
Service container.

Builds every long-lived component once at startup and tears them down at
shutdown: provider HTTP clients are closed and the entitlement cache
sweeper is stopped.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from frontdoor.auth.login_flow import LoginAttemptStore, LoginFlowCoordinator
from frontdoor.auth.session import SessionResolver
from frontdoor.config.settings import Settings
from frontdoor.config.tenants import TenantConfigLoader
from frontdoor.database.session import create_db_engine, create_session_factory, init_schema
from frontdoor.entitlements.cache import EntitlementCache
from frontdoor.entitlements.service import EntitlementService
from frontdoor.integrations.factory import ProviderClients
from frontdoor.policy.engine import MutationPolicyEngine
from frontdoor.services.catalog import CatalogService
from frontdoor.services.provisioning import BillingProvisioner
from frontdoor.services.user_data import UserDataStore
from frontdoor.tenants.registry import TenantRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler may need."""

    settings: Settings
    registry: TenantRegistry
    clients: ProviderClients
    cache: EntitlementCache
    entitlements: EntitlementService
    sessions: SessionResolver
    login_flow: LoginFlowCoordinator
    policy: MutationPolicyEngine
    user_data: UserDataStore
    catalog: CatalogService
    engine: Optional[Engine] = None

    def start(self) -> None:
        self.cache.start()

    def shutdown(self) -> None:
        self.cache.close()
        self.clients.close()
        if self.engine is not None:
            self.engine.dispose()
        logger.info("Services shut down")


def build_services(
    settings: Settings,
    registry: Optional[TenantRegistry] = None,
    clients: Optional[ProviderClients] = None,
    cache: Optional[EntitlementCache] = None,
    login_attempts: Optional[LoginAttemptStore] = None,
    engine: Optional[Engine] = None,
) -> Services:
    """
    Wire the components from settings.

    Any component passed in is used as is, which is how tests swap in fake
    provider clients, a controllable clock or an in-memory database.

    Raises:
        TenantConfigError: If the tenant configuration is missing or invalid
    """
    if registry is None:
        registry = TenantRegistry(TenantConfigLoader(settings.config_path).load())
    if clients is None:
        clients = ProviderClients(
            identity_timeout=settings.identity_timeout_seconds,
            billing_timeout=settings.billing_timeout_seconds,
        )
    if cache is None:
        cache = EntitlementCache(
            ttl_seconds=settings.entitlement_cache_ttl_seconds,
            sweep_interval_seconds=settings.entitlement_sweep_interval_seconds,
        )
    if login_attempts is None:
        login_attempts = LoginAttemptStore(
            ttl_seconds=settings.login_attempt_ttl_seconds,
            max_pending=settings.login_max_pending,
        )
    if engine is None:
        engine = create_db_engine(settings.database_url)
    init_schema(engine)

    sessions = SessionResolver(clients)
    entitlements = EntitlementService(cache, clients)
    services = Services(
        settings=settings,
        registry=registry,
        clients=clients,
        cache=cache,
        entitlements=entitlements,
        sessions=sessions,
        login_flow=LoginFlowCoordinator(
            login_attempts,
            clients,
            sessions,
            BillingProvisioner(clients),
        ),
        policy=MutationPolicyEngine(sessions, entitlements),
        user_data=UserDataStore(create_session_factory(engine)),
        catalog=CatalogService(clients),
        engine=engine,
    )
    logger.info("Services built", extra={"tenant_count": len(registry)})
    return services
