"""
Session resolution
Maps a request to the signed-in user id, or None for anonymous callers
"""
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from fastapi import Request

from before_send.services.check_service import Caller
from before_send.services.rate_limiter import client_ip


class SessionResolver(ABC):
    """Maps a request to the signed-in user's id."""

    @abstractmethod
    def resolve(self, request: Request) -> Optional[str]:
        """Return the user id, or ``None`` for anonymous requests."""


class BearerTokenResolver(SessionResolver):
    """Looks up ``Authorization: Bearer <token>`` in a token -> user id table."""

    def __init__(self, tokens: Mapping[str, str]):
        self.tokens = dict(tokens)

    def resolve(self, request: Request) -> Optional[str]:
        authorization = request.headers.get("authorization")
        if not authorization:
            return None

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None

        return self.tokens.get(token.strip())


async def get_caller(request: Request) -> Caller:
    """FastAPI dependency describing the caller for the check pipeline."""
    resolver: SessionResolver = request.app.state.session_resolver
    return Caller(
        user_id=resolver.resolve(request),
        ip=client_ip(request.headers),
    )
