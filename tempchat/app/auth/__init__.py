"""Identity, registration and session principals."""

from .identity import IdentityProvider, LocalIdentityProvider, get_identity_provider, set_identity_provider
from .oidc import get_oidc_client
from .principal import Principal, require_principal

__all__ = [
    "IdentityProvider",
    "LocalIdentityProvider",
    "Principal",
    "get_identity_provider",
    "get_oidc_client",
    "require_principal",
    "set_identity_provider",
]
