import httpx
import pytest
import pytest_asyncio
from authlib.oauth2.rfc6749.grants import ClientCredentialsGrant
from fastapi import FastAPI
from fastapi.responses import JSONResponse as FastAPIJSONResponse
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

from starlette_oauth_server import OAuth2Server, OAuthError, Pipeline, as_stage
from starlette_oauth_server.observability import request_context
from tests.helpers import REDIRECT_URI, Model, code_grant


async def me(request):
    token = request.state.oauth["token"]
    return JSONResponse({"user": token.user, "scope": token.scope})


def build_routes(oauth: OAuth2Server) -> list[Route]:
    return [
        Route(
            "/oauth/authorize",
            Pipeline(oauth.authorize({"authenticate_handler": lambda req, res: "alice"})),
            methods=["GET", "POST"],
        ),
        Route("/oauth/token", Pipeline(request_context(), oauth.token()), methods=["POST"]),
        Route("/oauth/revoke", Pipeline(oauth.revoke()), methods=["POST"]),
        Route(
            "/me",
            Pipeline(oauth.authenticate({"scope": "read"}), as_stage(me)),
            methods=["GET"],
        ),
    ]


def make_oauth(model, **options) -> OAuth2Server:
    return OAuth2Server(
        model=model,
        grants=[code_grant(model), ClientCredentialsGrant],
        scopes_supported=["read", "write"],
        **options,
    )


@pytest.fixture
def model():
    return Model()


@pytest_asyncio.fixture
async def client(model):
    app = Starlette(routes=build_routes(make_oauth(model)))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as c:
        yield c


@pytest_asyncio.fixture
async def delegating_client(model):
    app = FastAPI()

    @app.exception_handler(OAuthError)
    async def oauth_error_handler(request, exc: OAuthError):
        return FastAPIJSONResponse(
            {"detail": exc.message, "error": exc.name}, status_code=exc.code
        )

    for route in build_routes(make_oauth(model, use_error_handler=True)):
        app.router.routes.append(route)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as c:
        yield c


async def _issue_token(client, scope="read"):
    resp = await client.post(
        "/oauth/token",
        data={"grant_type": "client_credentials", "scope": scope},
        auth=("client-1", "secret"),
    )
    assert resp.status_code == 200, resp.text
    return resp


@pytest.mark.asyncio
async def test_token_then_protected_resource(client):
    resp = await _issue_token(client)

    body = resp.json()
    assert body["token_type"] == "Bearer"
    assert body["scope"] == "read"
    assert resp.headers["cache-control"] == "no-store"
    assert resp.headers["pragma"] == "no-cache"
    assert resp.headers["x-request-id"]

    me_resp = await client.get(
        "/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me_resp.status_code == 200
    assert me_resp.json() == {"user": "alice", "scope": "read"}


@pytest.mark.asyncio
async def test_protected_resource_without_token(client):
    resp = await client.get("/me")

    assert resp.status_code == 401
    assert resp.content == b""
    assert "www-authenticate" not in resp.headers


@pytest.mark.asyncio
async def test_protected_resource_with_invalid_token(client):
    resp = await client.get("/me", headers={"Authorization": "Bearer nope"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_token"


@pytest.mark.asyncio
async def test_protected_resource_with_insufficient_scope(client):
    resp = await _issue_token(client, scope="write")
    token = resp.json()["access_token"]

    me_resp = await client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert me_resp.status_code == 403
    assert me_resp.json()["error"] == "insufficient_scope"


@pytest.mark.asyncio
async def test_authorize_redirects_with_code(client, model):
    resp = await client.get(
        "/oauth/authorize",
        params={
            "response_type": "code",
            "client_id": "client-1",
            "redirect_uri": REDIRECT_URI,
            "scope": "read",
            "state": "xyz",
        },
    )

    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(f"{REDIRECT_URI}?code=")
    assert "state=xyz" in location
    assert len(model.codes) == 1


@pytest.mark.asyncio
async def test_authorize_without_state(client):
    resp = await client.get(
        "/oauth/authorize", params={"response_type": "code", "client_id": "client-1"}
    )

    assert resp.status_code == 400
    assert resp.json() == {
        "error": "invalid_request",
        "error_description": "Missing parameter: `state`",
    }


@pytest.mark.asyncio
async def test_token_requires_form_body(client):
    resp = await client.post("/oauth/token", json={"grant_type": "client_credentials"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_revoke_then_token_is_rejected(client):
    token = (await _issue_token(client)).json()["access_token"]

    resp = await client.post("/oauth/revoke", data={"token": token}, auth=("client-1", "secret"))
    assert resp.status_code == 200
    assert resp.json() == {}

    me_resp = await client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me_resp.status_code == 401


@pytest.mark.asyncio
async def test_revoke_unknown_token_is_empty_success(client):
    resp = await client.post("/oauth/revoke", data={"token": "nope"}, auth=("client-1", "secret"))

    assert resp.status_code == 200
    assert resp.content == b""


@pytest.mark.asyncio
async def test_method_not_allowed(client):
    resp = await client.get("/oauth/token")
    assert resp.status_code == 405


@pytest.mark.asyncio
async def test_errors_delegated_to_exception_handler(delegating_client):
    resp = await delegating_client.post(
        "/oauth/token", data={"grant_type": "password"}, auth=("client-1", "secret")
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "unsupported_grant_type"


@pytest.mark.asyncio
async def test_delegated_revoke_of_unknown_token(delegating_client):
    resp = await delegating_client.post(
        "/oauth/revoke", data={"token": "nope"}, auth=("client-1", "secret")
    )

    assert resp.status_code == 401
    assert resp.json() == {
        "detail": "Invalid token: token is invalid",
        "error": "invalid_token",
    }


@pytest.mark.asyncio
async def test_delegated_authenticate_failure(delegating_client):
    resp = await delegating_client.get("/me", headers={"Authorization": "Bearer nope"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_token"
