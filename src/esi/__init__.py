"""EVE SSO and ESI access.

Modules:
    sso    — Refresh-token exchange with EVE SSO
    tokens — Per-character access-token resolution and renewal
    client — Authenticated and public ESI requests
"""

from src.esi.client import EsiClient
from src.esi.sso import OAuthTokens, SsoClient
from src.esi.tokens import TokenManager

__all__ = [
    "EsiClient",
    "OAuthTokens",
    "SsoClient",
    "TokenManager",
]
