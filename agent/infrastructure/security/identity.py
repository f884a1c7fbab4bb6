"""
Identity resolution for the tutor entry points
"""

from typing import Dict, Mapping, Optional, Protocol
from pydantic import BaseModel
import structlog

logger = structlog.get_logger(__name__)


class Identity(BaseModel):
    """Authenticated user"""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None


class IdentityProvider(Protocol):
    async def authenticate(self, token: Optional[str]) -> Optional[Identity]:
        ...


class StaticTokenIdentityProvider:
    """Resolves bearer tokens against a configured token -> user id table"""

    def __init__(self, tokens: Optional[Mapping[str, str]] = None):
        self.identities: Dict[str, Identity] = {
            token: Identity(user_id=user_id) for token, user_id in (tokens or {}).items()
        }

    def register(self, token: str, identity: Identity):
        self.identities[token] = identity

    async def authenticate(self, token: Optional[str]) -> Optional[Identity]:
        """
        Resolve a token to an identity

        Args:
            token: Bearer token, may be missing

        Returns:
            The identity, or None for anonymous and unknown tokens
        """

        if not token:
            return None

        identity = self.identities.get(token)
        if identity is None:
            logger.warning("Unknown token", token_prefix=token[:4])
            return None

        return identity


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an Authorization header"""

    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()
