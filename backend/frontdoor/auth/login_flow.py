"""
Delegated OAuth2 login with PKCE.

Each login attempt gets its own state token and PKCE verifier. The attempt
is stored keyed by state until the callback consumes it, so concurrent
logins for the same tenant never share or overwrite a verifier.

Attempt lifecycle: issued (awaiting callback) -> consumed by exactly one
callback, which then completes or fails. An attempt that is never consumed
expires after the TTL (10 minutes by default) and is evicted lazily.
"""

import base64
import hashlib
import logging
import secrets
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import Response

from frontdoor.auth.principal import Principal
from frontdoor.auth.session import SessionResolver
from frontdoor.errors import UnauthorizedError
from frontdoor.integrations.factory import ProviderClients
from frontdoor.integrations.identity.client import IdentityProviderError
from frontdoor.services.provisioning import BillingProvisioner, ProvisioningError
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPT_TTL_SECONDS = 600
DEFAULT_MAX_PENDING = 10000


def generate_code_verifier() -> str:
    """PKCE verifier: 86 URL-safe characters, within the 43-128 allowed."""
    return secrets.token_urlsafe(64)


def code_challenge(verifier: str) -> str:
    """S256 challenge: unpadded base64url of the verifier's SHA-256."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class LoginAttempt:
    """One pending login, keyed by its state token."""

    state: str
    verifier: str
    challenge: str
    tenant_id: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class LoginResult:
    """A completed login."""

    principal: Principal
    access_token: str
    redirect_url: str


class LoginAttemptStore:
    """
    Thread-safe store of pending login attempts.

    Expired attempts are evicted on every issue and consume. When more than
    max_pending attempts are outstanding the oldest are dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_ATTEMPT_TTL_SECONDS,
        max_pending: int = DEFAULT_MAX_PENDING,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl_seconds
        self._max_pending = max_pending
        self._clock = clock
        self._attempts: "OrderedDict[str, LoginAttempt]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _evict_expired(self, now: float) -> None:
        # Insertion order is creation order, so expired attempts are at the front.
        while self._attempts:
            state, attempt = next(iter(self._attempts.items()))
            if not attempt.is_expired(now):
                break
            del self._attempts[state]

    def issue(self, tenant_id: str) -> LoginAttempt:
        verifier = generate_code_verifier()
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            state = secrets.token_urlsafe(32)
            while state in self._attempts:
                state = secrets.token_urlsafe(32)
            attempt = LoginAttempt(
                state=state,
                verifier=verifier,
                challenge=code_challenge(verifier),
                tenant_id=tenant_id,
                created_at=now,
                expires_at=now + self._ttl_seconds,
            )
            self._attempts[state] = attempt
            while len(self._attempts) > self._max_pending:
                self._attempts.popitem(last=False)
                logger.warning("Dropped oldest pending login attempt", extra={
                    "max_pending": self._max_pending,
                })
        return attempt

    def consume(self, state: str) -> Optional[LoginAttempt]:
        """Remove and return the attempt for state; None if missing or expired."""
        if not state:
            return None
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            attempt = self._attempts.pop(state, None)
        if attempt is None or attempt.is_expired(now):
            return None
        return attempt


class LoginFlowCoordinator:
    """
    Runs the login / callback pair for every tenant.

    Usage:
        attempt, url = coordinator.initiate(tenant)
        # ... browser returns to the callback ...
        result = coordinator.complete(tenant, states, codes)
        coordinator.set_session_cookie(response, tenant, result.access_token)
    """

    def __init__(
        self,
        attempts: LoginAttemptStore,
        clients: ProviderClients,
        sessions: SessionResolver,
        provisioner: BillingProvisioner,
    ):
        self._attempts = attempts
        self._clients = clients
        self._sessions = sessions
        self._provisioner = provisioner

    def existing_session(self, request, tenant: TenantApp) -> Optional[Principal]:
        """Principal for an already valid session cookie, if any."""
        return self._sessions.resolve(request, tenant)

    def authorization_url(self, tenant: TenantApp, attempt: LoginAttempt) -> str:
        identity = tenant.identity
        query = urlencode({
            "client_id": identity.client_id,
            "redirect_uri": identity.oauth_redirect_url,
            "response_type": "code",
            "scope": " ".join(identity.scopes),
            "state": attempt.state,
            "code_challenge": attempt.challenge,
            "code_challenge_method": "S256",
        })
        return f"{identity.authorize_url}?{query}"

    def initiate(self, tenant: TenantApp) -> Tuple[LoginAttempt, str]:
        attempt = self._attempts.issue(tenant.id)
        logger.info("Login attempt issued", extra={"tenant_id": tenant.id})
        return attempt, self.authorization_url(tenant, attempt)

    def complete(self, tenant: TenantApp, states: List[str], codes: List[str]) -> LoginResult:
        """
        Finish a login from the callback's state and code values.

        The attempt is consumed before anything else is checked, so a
        state value can complete at most one login.

        Raises:
            UnauthorizedError: On any malformed, unknown, expired, replayed
                or rejected callback
        """
        if len(states) != 1 or len(codes) != 1:
            logger.warning("Callback parameter cardinality rejected", extra={
                "tenant_id": tenant.id,
                "state_count": len(states),
                "code_count": len(codes),
            })
            raise UnauthorizedError("callback requires exactly one state and one code")

        attempt = self._attempts.consume(states[0])
        if attempt is None:
            logger.warning("Callback state unknown, expired or replayed", extra={
                "tenant_id": tenant.id,
            })
            raise UnauthorizedError("invalid login state")
        if attempt.tenant_id != tenant.id:
            logger.warning("Callback state issued for another tenant", extra={
                "tenant_id": tenant.id,
                "attempt_tenant_id": attempt.tenant_id,
            })
            raise UnauthorizedError("login state tenant mismatch")

        identity = self._clients.identity(tenant)
        try:
            token = identity.exchange_code(codes[0], attempt.verifier)
            principal = identity.get_user_by_token(token.access_token)
        except IdentityProviderError as e:
            logger.warning("Login code exchange failed", extra={
                "tenant_id": tenant.id,
                "status_code": e.status_code,
                "error": str(e),
            })
            raise UnauthorizedError("code exchange failed")

        try:
            self._provisioner.ensure_customer(tenant, principal)
        except ProvisioningError as e:
            logger.error("Billing customer provisioning failed", extra={
                "tenant_id": tenant.id,
                "user_id": principal.user_id,
                "customer_id": e.customer_id,
                "error": str(e),
            })

        logger.info("Login completed", extra={
            "tenant_id": tenant.id,
            "user_id": principal.user_id,
        })
        return LoginResult(
            principal=principal,
            access_token=token.access_token,
            redirect_url=tenant.identity.post_login_url,
        )

    @staticmethod
    def set_session_cookie(response: Response, tenant: TenantApp, token: str) -> None:
        policy = tenant.cookie
        response.set_cookie(
            key=policy.name,
            value=token,
            max_age=policy.max_age_seconds,
            path=policy.path,
            domain=policy.domain,
            secure=policy.secure,
            httponly=policy.http_only,
            samesite=policy.same_site,
        )
