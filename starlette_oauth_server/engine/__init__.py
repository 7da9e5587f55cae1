"""Engine contract consumed by the adapter."""

from typing import Any, Mapping, Protocol

from starlette_oauth_server.integration.request import ProtocolRequest
from starlette_oauth_server.integration.response import ProtocolResponse


class OAuth2Engine(Protocol):
    """OAuth2 core operations; each may populate the response and raise OAuthError."""

    async def authenticate(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Validate the access token carried by the request and return it."""
        ...

    async def authorize(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Issue an authorization code."""
        ...

    async def token(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Grant a token."""
        ...

    async def revoke(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """Revoke a token."""
        ...


__all__ = ["OAuth2Engine"]
