from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, Request

from domain.context.state.session_store import SessionStore
from infrastructure.security.identity import Identity, IdentityProvider, extract_bearer_token


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


async def get_identity(
    identity_provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
    authorization: Annotated[Optional[str], Header()] = None
) -> Optional[Identity]:
    """Resolve the caller; anonymous callers get None"""

    token = extract_bearer_token(authorization)
    identity = await identity_provider.authenticate(token)
    if token and identity is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return identity


async def require_identity(
    identity: Annotated[Optional[Identity], Depends(get_identity)]
) -> Identity:
    """Only authenticated callers may read stored sessions"""

    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity
