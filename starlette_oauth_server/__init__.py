"""OAuth2 authorization-server engine exposed as Starlette pipeline stages.

Usage:
    from starlette_oauth_server import OAuth2Server, Pipeline, as_stage

    oauth = OAuth2Server(model=model, grants=[AuthorizationCodeGrant])

    app = Starlette(
        routes=[
            Route("/oauth/authorize", Pipeline(oauth.authorize()), methods=["GET", "POST"]),
            Route("/oauth/token", Pipeline(oauth.token()), methods=["POST"]),
            Route("/oauth/revoke", Pipeline(oauth.revoke()), methods=["POST"]),
            Route("/me", Pipeline(oauth.authenticate(), as_stage(me))),
        ]
    )
"""

from starlette_oauth_server.errors import (
    AccessDeniedError,
    InsufficientScopeError,
    InvalidArgumentError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    InvalidTokenError,
    OAuthError,
    ServerError,
    UnauthorizedClientError,
    UnauthorizedRequestError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
    UnsupportedTokenTypeError,
)
from starlette_oauth_server.integration.request import ProtocolRequest
from starlette_oauth_server.integration.response import ProtocolResponse
from starlette_oauth_server.integration.transport import HttpResponse, Pipeline, as_stage
from starlette_oauth_server.server import OAuth2Server

__all__ = [
    "AccessDeniedError",
    "HttpResponse",
    "InsufficientScopeError",
    "InvalidArgumentError",
    "InvalidClientError",
    "InvalidGrantError",
    "InvalidRequestError",
    "InvalidScopeError",
    "InvalidTokenError",
    "OAuth2Server",
    "OAuthError",
    "Pipeline",
    "ProtocolRequest",
    "ProtocolResponse",
    "ServerError",
    "UnauthorizedClientError",
    "UnauthorizedRequestError",
    "UnsupportedGrantTypeError",
    "UnsupportedResponseTypeError",
    "UnsupportedTokenTypeError",
    "as_stage",
]
