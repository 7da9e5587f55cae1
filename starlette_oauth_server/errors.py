"""OAuth2 protocol errors surfaced by engines and translated into HTTP."""

from http import HTTPStatus
from typing import Any

from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)


class OAuthError(Exception):
    """Base protocol error carrying an HTTP status code, a name and a message."""

    code: int = 500
    name: str = "server_error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: int | None = None,
        name: str | None = None,
    ) -> None:
        """Constructor."""
        if code is not None:
            self.code = code
        if name is not None:
            self.name = name
        self.message = message or _status_phrase(self.code)
        super().__init__(self.message)

    def __repr__(self) -> str:
        """Short representation with the protocol fields."""
        return (
            f"{type(self).__name__}(code={self.code}, name={self.name!r}, "
            f"message={self.message!r})"
        )


class AccessDeniedError(OAuthError):
    """The resource owner or authorization server denied the request."""

    code = 400
    name = "access_denied"


class InsufficientScopeError(OAuthError):
    """The request requires higher privileges than the access token provides."""

    code = 403
    name = "insufficient_scope"


class InvalidArgumentError(OAuthError):
    """Server misconfiguration, raised at construction time."""

    code = 500
    name = "invalid_argument"


class InvalidClientError(OAuthError):
    """Client authentication failed."""

    code = 400
    name = "invalid_client"


class InvalidGrantError(OAuthError):
    """The authorization grant or refresh token is invalid or expired."""

    code = 400
    name = "invalid_grant"


class InvalidRequestError(OAuthError):
    """The request is missing or repeats a parameter, or is otherwise malformed."""

    code = 400
    name = "invalid_request"


class InvalidScopeError(OAuthError):
    """The requested scope is invalid, unknown, or malformed."""

    code = 400
    name = "invalid_scope"


class InvalidTokenError(OAuthError):
    """The access token is expired, revoked, malformed, or unknown."""

    code = 401
    name = "invalid_token"


class ServerError(OAuthError):
    """Unexpected condition in the authorization server."""

    code = 503
    name = "server_error"


class UnauthorizedClientError(OAuthError):
    """The client is not authorized to use the requested grant."""

    code = 400
    name = "unauthorized_client"


class UnauthorizedRequestError(OAuthError):
    """The request carried no authentication information at all.

    Everything the client needs is conveyed by the status code and the
    ``WWW-Authenticate`` header (RFC 6750 section 3.1), so no body is sent.
    """

    code = 401
    name = "unauthorized_request"


class UnsupportedGrantTypeError(OAuthError):
    """The grant type is not supported by the authorization server."""

    code = 400
    name = "unsupported_grant_type"


class UnsupportedResponseTypeError(OAuthError):
    """The response type is not supported by the authorization server."""

    code = 400
    name = "unsupported_response_type"


class UnsupportedTokenTypeError(OAuthError):
    """The server does not support revocation of the presented token type."""

    code = 400
    name = "unsupported_token_type"


ERRORS_BY_NAME: dict[str, type[OAuthError]] = {
    cls.name: cls
    for cls in (
        AccessDeniedError,
        InsufficientScopeError,
        InvalidArgumentError,
        InvalidClientError,
        InvalidGrantError,
        InvalidRequestError,
        InvalidScopeError,
        InvalidTokenError,
        ServerError,
        UnauthorizedClientError,
        UnauthorizedRequestError,
        UnsupportedGrantTypeError,
        UnsupportedResponseTypeError,
        UnsupportedTokenTypeError,
    )
}


def _status_phrase(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown Error"


def _usable_code(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 400 <= value <= 599


def as_oauth_error(error: BaseException) -> OAuthError:
    """Normalize any exception into an OAuthError suitable for an HTTP reply.

    Errors that already look like protocol errors (an integer ``code`` in the
    4xx/5xx range plus ``name`` and ``message``) keep their fields. Anything
    else is reported as a 500 ``server_error`` without leaking its message.
    """
    if isinstance(error, OAuthError):
        return error

    code = getattr(error, "code", None)
    name = getattr(error, "name", None)
    message = getattr(error, "message", None)
    if _usable_code(code) and isinstance(name, str) and name:
        return OAuthError(message if isinstance(message, str) else None, code=code, name=name)

    logger.exception("oauth2.unexpected_error", error_type=type(error).__name__, exc_info=error)
    return OAuthError(code=500, name="server_error")
