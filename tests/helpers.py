import base64
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock
from urllib.parse import urlencode, urlsplit

from authlib.oauth2.rfc6749 import ClientMixin, TokenMixin
from authlib.oauth2.rfc6749.grants import AuthorizationCodeGrant
from starlette.requests import Request


def make_request(
    method: str = "GET",
    url: str = "https://testserver/resource",
    headers: dict[str, str] | None = None,
    body: bytes = b"",
    form: dict[str, Any] | None = None,
) -> Request:
    headers = dict(headers or {})
    if form is not None:
        body = urlencode(form, doseq=True).encode()
        headers.setdefault("content-type", "application/x-www-form-urlencoded")

    parsed = urlsplit(url)
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": parsed.scheme,
        "server": (parsed.hostname, 443 if parsed.scheme == "https" else 80),
        "client": ("127.0.0.1", 50000),
        "root_path": "",
        "path": parsed.path,
        "raw_path": parsed.path.encode(),
        "query_string": parsed.query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


class NextRecorder:
    def __init__(self, on_call=None):
        self.calls: list[BaseException | None] = []
        self.on_call = on_call

    async def __call__(self, error: BaseException | None = None) -> None:
        self.calls.append(error)
        if self.on_call is not None:
            self.on_call(error)


class FakeEngine:
    def __init__(self, model=None, **options):
        self.model = model
        self.options = options
        self.authenticate = AsyncMock(return_value={"access_token": "abc"})
        self.authorize = AsyncMock(return_value="code-123")
        self.token = AsyncMock(return_value={"access_token": "abc"})
        self.revoke = AsyncMock(return_value=None)


REDIRECT_URI = "https://client.example.org/cb"


class Client(ClientMixin):
    def __init__(self, client_id="client-1", client_secret="secret", scope="read write"):
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope

    def get_client_id(self):
        return self.client_id

    def get_default_redirect_uri(self):
        return REDIRECT_URI

    def get_allowed_scope(self, scope):
        if not scope:
            return ""
        allowed = set(self.scope.split())
        return " ".join(s for s in scope.split() if s in allowed)

    def check_redirect_uri(self, redirect_uri):
        return redirect_uri == REDIRECT_URI

    def check_client_secret(self, client_secret):
        return client_secret == self.client_secret

    def check_endpoint_auth_method(self, method, endpoint):
        return method in ("client_secret_basic", "client_secret_post")

    def check_response_type(self, response_type):
        return response_type == "code"

    def check_grant_type(self, grant_type):
        return grant_type in ("authorization_code", "client_credentials")


class Token(TokenMixin):
    def __init__(self, access_token, client_id="client-1", scope="read", user="alice"):
        self.access_token = access_token
        self.client_id = client_id
        self.scope = scope
        self.user = user
        self.expired = False
        self.revoked = False

    def check_client(self, client):
        return client.get_client_id() == self.client_id

    def get_scope(self):
        return self.scope

    def get_expires_in(self):
        return 3600

    def is_expired(self):
        return self.expired

    def is_revoked(self):
        return self.revoked


class Model:
    def __init__(self):
        self.clients = {"client-1": Client(), "client-2": Client("client-2", "other")}
        self.tokens = {"abc": Token("abc")}
        self.codes = {}
        self.revoked = []

    def query_client(self, client_id):
        return self.clients.get(client_id)

    def save_token(self, token, request):
        self.tokens[token["access_token"]] = Token(
            token["access_token"],
            request.client.get_client_id(),
            token.get("scope", ""),
        )

    def authenticate_token(self, token_string):
        return self.tokens.get(token_string)

    def query_token(self, token_string, token_type_hint):
        return self.tokens.get(token_string)

    def revoke_token(self, token, request):
        token.revoked = True
        self.revoked.append(token)


def code_grant(model):
    class CodeGrant(AuthorizationCodeGrant):
        def save_authorization_code(self, code, request):
            model.codes[code] = SimpleNamespace(
                client_id=request.client.get_client_id(),
                scope=request.scope,
                user=request.user,
            )

    return CodeGrant


def basic_auth(client_id="client-1", secret="secret"):
    return "Basic " + base64.b64encode(f"{client_id}:{secret}".encode()).decode()
