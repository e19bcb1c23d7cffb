from frontdoor.integrations.identity.client import (
    IdentityProviderClient,
    IdentityProviderError,
    TokenResponse,
)

__all__ = ["IdentityProviderClient", "IdentityProviderError", "TokenResponse"]
