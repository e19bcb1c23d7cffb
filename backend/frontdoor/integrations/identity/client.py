"""
Identity provider client (FusionAuth-compatible REST API).

Handles:
- OAuth2 authorization-code exchange with a PKCE verifier
- Session token validation (user lookup by JWT)
- User lookup by id and user.data updates (API key authenticated)

All calls are synchronous and bounded by an overall timeout.

SECURITY: tokens, verifiers and API keys are never logged.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from frontdoor.auth.principal import Principal
from frontdoor.tenants.models import IdentitySettings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class IdentityProviderError(Exception):
    """Error communicating with the identity provider or a rejected request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def rejected(self) -> bool:
        """True when the provider answered and refused (4xx)."""
        return self.status_code is not None and 400 <= self.status_code < 500


@dataclass(frozen=True)
class TokenResponse:
    """Result of exchanging an authorization code."""

    access_token: str
    user_id: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


class IdentityProviderClient:
    """
    Client for one tenant's identity provider.

    Usage:
        client = IdentityProviderClient(tenant.identity)
        token = client.exchange_code(code, verifier)
        principal = client.get_user_by_token(token.access_token)
    """

    def __init__(
        self,
        settings: IdentitySettings,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not settings.host:
            raise ValueError("identity host is required")
        self.settings = settings
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _api_headers(self) -> Dict[str, str]:
        headers = {"Authorization": self.settings.api_key}
        if self.settings.tenant_id:
            headers["X-FusionAuth-TenantId"] = self.settings.tenant_id
        return headers

    def _request(self, method: str, url: str, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Identity provider timeout", extra={
                "operation": operation,
                "client_id": self.settings.client_id,
                "error_type": type(e).__name__,
            })
            raise IdentityProviderError(f"{operation}: request timeout")
        except httpx.RequestError as e:
            logger.error("Identity provider request error", extra={
                "operation": operation,
                "client_id": self.settings.client_id,
                "error": str(e),
            })
            raise IdentityProviderError(f"{operation}: request error: {e}")

        if response.status_code >= 400:
            log = logger.warning if response.status_code < 500 else logger.error
            log("Identity provider returned an error", extra={
                "operation": operation,
                "client_id": self.settings.client_id,
                "status_code": response.status_code,
            })
            raise IdentityProviderError(
                f"{operation}: identity provider returned {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise IdentityProviderError(
                f"{operation}: response is not JSON",
                status_code=response.status_code,
            )

    def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """
        Exchange an authorization code and PKCE verifier for an access token.

        Client credentials travel in the Authorization header.

        Raises:
            IdentityProviderError: If the exchange fails
        """
        if not code:
            raise IdentityProviderError("exchange_code: code is required")

        data = self._request(
            "POST",
            self.settings.token_url,
            "exchange_code",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.oauth_redirect_url,
                "code_verifier": code_verifier,
                "client_id": self.settings.client_id,
            },
            auth=(self.settings.client_id, self.settings.client_secret),
        )

        access_token = data.get("access_token")
        if not access_token:
            raise IdentityProviderError("exchange_code: token response missing access_token")

        return TokenResponse(
            access_token=access_token,
            user_id=data.get("userId"),
            expires_in=data.get("expires_in"),
            refresh_token=data.get("refresh_token"),
        )

    def get_user_by_token(self, token: str) -> Principal:
        """
        Validate a session token and return its user.

        Raises:
            IdentityProviderError: If the token is rejected or the call fails
        """
        if not token:
            raise IdentityProviderError("get_user_by_token: token is required")

        data = self._request(
            "GET",
            f"{self.settings.host}/api/user",
            "get_user_by_token",
            headers={"Authorization": f"Bearer {token}"},
        )
        return self._principal_from(data, "get_user_by_token")

    def get_user(self, user_id: str) -> Principal:
        """Look a user up by id with the tenant API key."""
        if not user_id:
            raise IdentityProviderError("get_user: user_id is required")

        data = self._request(
            "GET",
            f"{self.settings.host}/api/user/{user_id}",
            "get_user",
            headers=self._api_headers(),
        )
        return self._principal_from(data, "get_user")

    def update_user_data(self, user_id: str, data: Dict[str, Any]) -> Principal:
        """Merge `data` into the user's attribute bag (PATCH semantics)."""
        result = self._request(
            "PATCH",
            f"{self.settings.host}/api/user/{user_id}",
            "update_user_data",
            headers=self._api_headers(),
            json={"user": {"data": data}},
        )
        logger.info("Updated identity user data", extra={
            "user_id": user_id,
            "keys": sorted(data.keys()),
        })
        return self._principal_from(result, "update_user_data")

    @staticmethod
    def _principal_from(data: Dict[str, Any], operation: str) -> Principal:
        user = data.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            raise IdentityProviderError(f"{operation}: response missing user")
        return Principal.from_user_payload(user)
