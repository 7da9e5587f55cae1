"""Capability set a model must provide to ``AuthlibEngine``."""

from typing import Any, Protocol

from authlib.oauth2.rfc6749 import ClientMixin, TokenMixin
from authlib.oauth2.rfc6749.requests import OAuth2Request


class OAuth2Model(Protocol):
    """Persistence and lookup callbacks backing the authlib core.

    ``query_client`` and ``save_token`` are required. The remaining methods
    are only needed by the flows that use them.
    """

    def query_client(self, client_id: str) -> ClientMixin | None:
        """Return the client registered under ``client_id``."""
        ...

    def save_token(self, token: dict[str, Any], request: OAuth2Request) -> None:
        """Persist a freshly issued token."""
        ...

    def authenticate_token(self, token_string: str) -> TokenMixin | None:
        """Return the access token matching a bearer string."""
        ...

    def query_token(self, token_string: str, token_type_hint: str | None) -> TokenMixin | None:
        """Return the access or refresh token to revoke."""
        ...

    def revoke_token(self, token: TokenMixin, request: OAuth2Request) -> None:
        """Mark a token as revoked."""
        ...


REQUIRED_METHODS: tuple[str, ...] = ("query_client", "save_token")
