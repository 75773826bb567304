"""Request-scoped dependencies shared by the routers."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from smokefree.app_factory import ServiceContainer
from smokefree.core.errors import Forbidden, TokenInvalid
from smokefree.domain.roles import Role
from smokefree.services.token_service import AccessClaims

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def client_ip(request: Request) -> str:
    """Peer address; X-Forwarded-For counts only when the peer is a configured proxy."""
    peer = request.client.host if request.client and request.client.host else "unknown"
    trusted = get_container(request).settings.trusted_proxies
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded or peer not in trusted:
        return peer
    # walk right to left past our own proxies; the first other hop is the client
    for hop in reversed([part.strip() for part in forwarded.split(",") if part.strip()]):
        if hop not in trusted:
            return hop
    return peer


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "unknown")[:255]


def bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


def current_claims(
    token: Optional[str] = Depends(bearer_token),
    container: ServiceContainer = Depends(get_container),
) -> AccessClaims:
    if not token:
        raise TokenInvalid("Missing access token")
    return container.auth.authenticate(token)


def require_admin(claims: AccessClaims = Depends(current_claims)) -> AccessClaims:
    if claims.role is not Role.ADMIN:
        raise Forbidden()
    return claims
