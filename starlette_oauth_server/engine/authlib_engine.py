"""Default engine: the adapter's engine contract on top of the authlib core."""

import inspect
import re
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qs, urlsplit

from authlib.common.security import generate_token
from authlib.oauth2 import ResourceProtector
from authlib.oauth2.rfc6749 import AuthorizationServer
from authlib.oauth2.rfc6749.errors import MissingAuthorizationError, OAuth2Error
from authlib.oauth2.rfc6749.requests import BasicOAuth2Payload, OAuth2Request
from authlib.oauth2.rfc6750 import BearerTokenGenerator, BearerTokenValidator
from authlib.oauth2.rfc6750 import InvalidTokenError as BearerInvalidTokenError
from starlette.datastructures import Headers

from starlette_oauth_server.config import settings
from starlette_oauth_server.consts import (
    FORM_CONTENT_TYPE,
    NO_STORE,
    REDIRECT_STATUS,
    TOKEN_TYPE_HINTS,
)
from starlette_oauth_server.engine.model import REQUIRED_METHODS, OAuth2Model
from starlette_oauth_server.errors import (
    ERRORS_BY_NAME,
    InvalidArgumentError,
    InvalidClientError,
    InvalidRequestError,
    InvalidTokenError,
    OAuthError,
    UnauthorizedRequestError,
    UnsupportedTokenTypeError,
)
from starlette_oauth_server.integration.request import ProtocolRequest
from starlette_oauth_server.integration.response import ProtocolResponse
from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)

_BEARER_HEADER = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)

# Checked in order, before the name-based lookup.
_ERROR_KINDS: tuple[tuple[type[OAuth2Error], type[OAuthError]], ...] = (
    (MissingAuthorizationError, UnauthorizedRequestError),
    (BearerInvalidTokenError, InvalidTokenError),
)

DEFAULT_REVOCATION_AUTH_METHODS = ("client_secret_basic", "client_secret_post", "none")


class CoreAuthorizationServer(AuthorizationServer):
    """AuthorizationServer that accepts prebuilt OAuth2Request objects."""

    def create_oauth2_request(self, request) -> OAuth2Request:  # type: ignore[override]
        """Expect the engine to build OAuth2Request."""
        if isinstance(request, OAuth2Request):
            return request
        raise InvalidRequestError("Invalid request: expected an OAuth2Request")

    def handle_response(self, status_code: int, payload, headers):  # type: ignore[override]
        """Return (status, body, headers) with no-store caching headers."""
        present = {name.lower() for name, _ in headers}
        extra = [(name, value) for name, value in NO_STORE if name.lower() not in present]
        return status_code, payload, list(headers) + extra

    def send_signal(self, name, *args, **kwargs):
        """Log grant signals; no receivers are registered."""
        logger.debug("oauth2.engine.signal", signal=name)


class ModelBearerTokenValidator(BearerTokenValidator):
    """Bearer validator delegating token lookup to the model."""

    def __init__(self, model: OAuth2Model, realm: str | None = None, **extra_attributes):
        """Constructor."""
        super().__init__(realm, **extra_attributes)
        self.model = model

    def authenticate_token(self, token_string: str):
        """Look the bearer string up through the model."""
        return self.model.authenticate_token(token_string)


def _single(name: str, value: Any) -> Any:
    """Return a parameter value, rejecting repeated parameters (RFC 6749 3.1)."""
    if not isinstance(value, (list, tuple)):
        return value
    values = list(value)
    if len(values) > 1:
        raise InvalidRequestError(f"Invalid parameter: `{name}` must not be repeated")
    return values[0] if values else None


def _flatten(params: Mapping[str, Any]) -> dict[str, Any]:
    data = {}
    for name, value in params.items():
        value = _single(name, value)
        if value is not None:
            data[name] = value
    return data


class AdapterOAuth2Request(OAuth2Request):
    """OAuth2Request reading ``args`` and ``form`` from a ProtocolRequest."""

    def __init__(self, request: ProtocolRequest, params: Mapping[str, Any], headers: Headers):
        """Constructor."""
        super().__init__(method=request.method, uri=request.url, headers=headers)
        self._request = request
        self.payload = BasicOAuth2Payload(_flatten(params))

    @property
    def args(self) -> dict[str, Any]:
        """Query parameters."""
        return _flatten(self._request.query)

    @property
    def form(self) -> dict[str, Any]:
        """Body parameters."""
        return _flatten(self._request.body)


def _to_oauth2_request(
    request: ProtocolRequest,
    params: Mapping[str, Any] | None = None,
    authorization: str | None = None,
) -> OAuth2Request:
    """Build an authlib OAuth2Request from a ProtocolRequest."""
    headers = {
        name: value if isinstance(value, str) else ", ".join(value)
        for name, value in request.headers.items()
    }
    if authorization is not None:
        headers["authorization"] = authorization
    return AdapterOAuth2Request(request, params or {}, Headers(headers=headers))


def _translate_error(error: OAuth2Error, response: ProtocolResponse) -> OAuthError:
    """Map an authlib error onto the adapter taxonomy, keeping its headers."""
    status, _, headers = error()
    headers = {name.lower(): value for name, value in headers}
    headers.pop("content-type", None)
    location = headers.pop("location", None)
    for name, value in headers.items():
        response.set(name, value)
    if status == REDIRECT_STATUS and location:
        response.redirect(location)

    message = error.get_error_description() or None
    for authlib_cls, kind in _ERROR_KINDS:
        if isinstance(error, authlib_cls):
            return kind(message, code=error.status_code)
    kind = ERRORS_BY_NAME.get(error.error)
    if kind is not None:
        return kind(message, code=error.status_code)
    return OAuthError(message, code=error.status_code, name=error.error)


def _scopes(value: str | Iterable[str] | None) -> list[str] | None:
    if not value:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


def _require_form_post(request: ProtocolRequest) -> None:
    if request.method != "POST":
        raise InvalidRequestError("Invalid request: method must be POST")
    if not request.is_content_type(FORM_CONTENT_TYPE):
        raise InvalidRequestError(
            "Invalid request: content must be application/x-www-form-urlencoded"
        )


def _code_from_location(location: str | None) -> str | None:
    if not location:
        return None
    split = urlsplit(location)
    params = parse_qs(split.query) or parse_qs(split.fragment)
    codes = params.get("code")
    return codes[0] if codes else None


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AuthlibEngine:
    """OAuth2 engine backed by authlib grants and resource protection."""

    def __init__(
        self,
        model: OAuth2Model,
        *,
        grants: Iterable[Any] = (),
        scopes_supported: list[str] | None = None,
        realm: str | None = None,
        access_token_lifetime: int | None = None,
        allow_bearer_tokens_in_query_string: bool | None = None,
        allow_empty_state: bool | None = None,
        revocation_auth_methods: Iterable[str] = DEFAULT_REVOCATION_AUTH_METHODS,
        token_generator: Any = None,
    ) -> None:
        """Constructor."""
        if model is None:
            raise InvalidArgumentError("Missing parameter: `model`")
        for name in REQUIRED_METHODS:
            if not callable(getattr(model, name, None)):
                raise InvalidArgumentError(
                    f"Invalid argument: model does not implement `{name}()`"
                )

        self.model = model
        self.realm = realm or settings.REALM
        self.access_token_lifetime = access_token_lifetime or settings.ACCESS_TOKEN_LIFETIME
        self.allow_bearer_tokens_in_query_string = (
            settings.ALLOW_BEARER_TOKENS_IN_QUERY_STRING
            if allow_bearer_tokens_in_query_string is None
            else allow_bearer_tokens_in_query_string
        )
        self.allow_empty_state = (
            settings.ALLOW_EMPTY_STATE if allow_empty_state is None else allow_empty_state
        )
        self.revocation_auth_methods = list(revocation_auth_methods)

        self.server = CoreAuthorizationServer(scopes_supported=scopes_supported)
        self.server.query_client = model.query_client  # type: ignore[method-assign]
        self.server.save_token = model.save_token  # type: ignore[method-assign]
        self.server.register_token_generator(
            "default",
            token_generator
            or BearerTokenGenerator(
                access_token_generator=self._generate_token,
                refresh_token_generator=self._generate_token,
                expires_generator=self._expires_in,
            ),
        )
        for grant in grants:
            if isinstance(grant, tuple):
                self.server.register_grant(*grant)
            else:
                self.server.register_grant(grant)

        self.protector = ResourceProtector()
        self.protector.register_token_validator(
            ModelBearerTokenValidator(model, realm=self.realm)
        )

    @staticmethod
    def _generate_token(**kwargs) -> str:
        return generate_token(42)

    def _expires_in(self, client, grant_type) -> int:
        return self.access_token_lifetime

    def _require_model_method(self, name: str):
        method = getattr(self.model, name, None)
        if not callable(method):
            raise InvalidArgumentError(
                f"Invalid argument: model does not implement `{name}()`"
            )
        return method

    def _token_from_request(self, request: ProtocolRequest) -> str:
        """Extract the bearer token from exactly one of header, query or body."""
        header = request.get("authorization")
        query = _single("access_token", request.query.get("access_token"))
        body = _single("access_token", request.body.get("access_token"))

        if sum(1 for source in (header, query, body) if source) > 1:
            raise InvalidRequestError(
                "Invalid request: only one authentication method is allowed"
            )

        if header:
            match = _BEARER_HEADER.match(header)
            if not match:
                raise InvalidRequestError("Invalid request: malformed authorization header")
            return match.group(1)

        if query:
            if not self.allow_bearer_tokens_in_query_string:
                raise InvalidRequestError(
                    "Invalid request: do not send bearer tokens in query URLs"
                )
            return query

        if body:
            if request.method == "GET":
                raise InvalidRequestError(
                    "Invalid request: token may not be passed in the body "
                    "when using the GET verb"
                )
            if not request.is_content_type(FORM_CONTENT_TYPE):
                raise InvalidRequestError(
                    "Invalid request: content must be application/x-www-form-urlencoded"
                )
            return body

        raise UnauthorizedRequestError("Unauthorized request: no authentication given")

    async def authenticate(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Validate the bearer token and return the model's token object."""
        options = options or {}
        self._require_model_method("authenticate_token")
        try:
            token_string = self._token_from_request(request)
        except UnauthorizedRequestError:
            response.set("WWW-Authenticate", f'Bearer realm="{self.realm}"')
            raise
        try:
            oauth2_req = _to_oauth2_request(request, authorization=f"Bearer {token_string}")
            token = self.protector.validate_request(_scopes(options.get("scope")), oauth2_req)
        except OAuth2Error as error:
            raise _translate_error(error, response) from error
        logger.debug("oauth2.engine.authenticated")
        return token

    async def _authenticate_user(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any],
    ) -> Any:
        handler = options.get("authenticate_handler")
        if handler is not None:
            return await _resolve(handler(request, response))
        authenticate_user = getattr(self.model, "authenticate_user", None)
        if callable(authenticate_user):
            return await _resolve(authenticate_user(request))
        token = await self.authenticate(request, response)
        return getattr(token, "user", None)

    async def authorize(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        """Run the authorization endpoint and return the issued code."""
        options = options or {}
        params = {**request.query, **request.body}
        if not self.allow_empty_state and not params.get("state"):
            raise InvalidRequestError("Missing parameter: `state`")

        oauth2_req = _to_oauth2_request(request, params)
        try:
            grant = self.server.get_authorization_grant(oauth2_req)
            redirect_uri = grant.validate_authorization_request()
            user = await self._authenticate_user(request, response, options)
            status, body, headers = grant.create_authorization_response(redirect_uri, user)
        except OAuth2Error as error:
            error.state = oauth2_req.payload.state
            raise _translate_error(error, response) from error

        response.status = status
        response.body = body
        for name, value in headers:
            response.set(name, value)
        logger.debug("oauth2.engine.authorized", status=status)
        return _code_from_location(response.get("location"))

    async def token(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run the token endpoint and return the issued token payload."""
        _require_form_post(request)
        try:
            oauth2_req = _to_oauth2_request(request, request.body)
            grant = self.server.get_token_grant(oauth2_req)
            grant.validate_token_request()
            status, body, headers = self.server.handle_response(*grant.create_token_response())
        except OAuth2Error as error:
            raise _translate_error(error, response) from error

        response.status = status
        response.body = body
        for name, value in headers:
            response.set(name, value)
        logger.debug("oauth2.engine.token_issued", grant_type=oauth2_req.payload.grant_type)
        return body

    async def revoke(
        self,
        request: ProtocolRequest,
        response: ProtocolResponse,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """Revoke an access or refresh token (RFC 7009)."""
        query_token = self._require_model_method("query_token")
        revoke_token = self._require_model_method("revoke_token")
        _require_form_post(request)
        try:
            oauth2_req = _to_oauth2_request(request, request.body)
            client = self.server.authenticate_client(
                oauth2_req, self.revocation_auth_methods, endpoint="revocation"
            )
        except OAuth2Error as error:
            raise _translate_error(error, response) from error

        data = oauth2_req.payload.data
        token_string = data.get("token")
        if not token_string:
            raise InvalidRequestError("Missing parameter: `token`")
        hint = data.get("token_type_hint")
        if hint is not None and hint not in TOKEN_TYPE_HINTS:
            raise UnsupportedTokenTypeError(
                f"Unsupported token type: `{hint}` is not a supported token_type_hint"
            )

        token = query_token(token_string, hint)
        if token is None:
            raise InvalidTokenError("Invalid token: token is invalid")
        if not token.check_client(client):
            raise InvalidClientError("Invalid client: token was not issued to this client")

        revoke_token(token, oauth2_req)
        response.status = 200
        response.body = {}
        for name, value in NO_STORE:
            response.set(name, value)
        logger.debug("oauth2.engine.revoked", token_type_hint=hint)
