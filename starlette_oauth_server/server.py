"""OAuth2 engine exposed as Starlette pipeline stages."""

from typing import Any, Mapping

from pydantic import ValidationError
from starlette.requests import Request

from starlette_oauth_server.config import OAuth2ServerOptions
from starlette_oauth_server.consts import LOCALS_KEY
from starlette_oauth_server.engine import OAuth2Engine
from starlette_oauth_server.engine.authlib_engine import AuthlibEngine
from starlette_oauth_server.errors import InvalidArgumentError, InvalidTokenError
from starlette_oauth_server.integration.request import to_protocol_request
from starlette_oauth_server.integration.response import ProtocolResponse
from starlette_oauth_server.integration.transport import (
    HttpResponse,
    NextFunction,
    Stage,
)
from starlette_oauth_server.integration.translate import handle_error, handle_response
from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)


def set_locals(request: Request, **values: Any) -> None:
    """Expose flow results to downstream stages under ``request.state.oauth``."""
    setattr(request.state, LOCALS_KEY, values)


class OAuth2Server:
    """Adapter building authenticate/authorize/token/revoke stages around an engine.

    Usage:
        oauth = OAuth2Server(model=model, grants=[AuthorizationCodeGrant])

        routes = [
            Route("/oauth/token", Pipeline(oauth.token()), methods=["POST"]),
            Route("/me", Pipeline(oauth.authenticate(), as_stage(me)), methods=["GET"]),
        ]
    """

    def __init__(self, **options: Any) -> None:
        """Validate options and build the engine.

        ``use_error_handler`` and ``engine_factory`` are consumed here; every
        other option is forwarded to the engine factory.
        """
        if options.get("model") is None:
            raise InvalidArgumentError("Missing parameter: `model`")
        try:
            config = OAuth2ServerOptions(**options)
        except ValidationError as ex:
            raise InvalidArgumentError(f"Invalid argument: {ex}") from ex

        engine_factory = config.engine_factory or AuthlibEngine
        self.use_error_handler = config.use_error_handler
        self.server: OAuth2Engine = engine_factory(model=config.model, **config.engine_options)

    def _handle_error(
        self,
        error: BaseException,
        res: HttpResponse,
        response: ProtocolResponse | None,
        invalid_token_on_revoke: bool = False,
    ) -> BaseException | None:
        return handle_error(
            error,
            res,
            response,
            use_error_handler=self.use_error_handler,
            invalid_token_on_revoke=invalid_token_on_revoke,
        )

    def authenticate(self, options: Mapping[str, Any] | None = None) -> Stage:
        """Return a stage validating the access token (RFC 6749 section 7).

        On success the token is available as ``request.state.oauth["token"]``.
        """

        async def stage(req: Request, res: HttpResponse, call_next: NextFunction) -> None:
            response = ProtocolResponse()
            try:
                request = await to_protocol_request(req)
                token = await self.server.authenticate(request, response, options)
            except Exception as error:
                logger.debug("oauth2.authenticate.error", error_type=type(error).__name__)
                await call_next(self._handle_error(error, res, None))
                return

            set_locals(req, token=token)
            logger.debug("oauth2.authenticate.success")
            await call_next()

        return stage

    def authorize(self, options: Mapping[str, Any] | None = None) -> Stage:
        """Return a stage issuing authorization codes (RFC 6749 section 3.1)."""

        async def stage(req: Request, res: HttpResponse, call_next: NextFunction) -> None:
            response = ProtocolResponse()
            forward: BaseException | None = None
            try:
                request = await to_protocol_request(req)
                code = await self.server.authorize(request, response, options)
                set_locals(req, code=code)
                handle_response(res, response)
                logger.debug("oauth2.authorize.success", status=response.status)
            except Exception as error:
                logger.debug("oauth2.authorize.error", error_type=type(error).__name__)
                forward = self._handle_error(error, res, response)
            finally:
                await call_next(forward)

        return stage

    def token(self, options: Mapping[str, Any] | None = None) -> Stage:
        """Return a stage granting tokens (RFC 6749 section 3.2)."""

        async def stage(req: Request, res: HttpResponse, call_next: NextFunction) -> None:
            response = ProtocolResponse()
            forward: BaseException | None = None
            try:
                request = await to_protocol_request(req)
                token = await self.server.token(request, response, options)
                set_locals(req, token=token)
                handle_response(res, response)
                logger.debug("oauth2.token.success", status=response.status)
            except Exception as error:
                logger.debug("oauth2.token.error", error_type=type(error).__name__)
                forward = self._handle_error(error, res, response)
            finally:
                await call_next(forward)

        return stage

    def revoke(self, options: Mapping[str, Any] | None = None) -> Stage:
        """Return a stage revoking tokens (RFC 7009 section 2)."""

        async def stage(req: Request, res: HttpResponse, call_next: NextFunction) -> None:
            response = ProtocolResponse()
            forward: BaseException | None = None
            try:
                request = await to_protocol_request(req)
                await self.server.revoke(request, response, options)
                handle_response(res, response)
                logger.debug("oauth2.revoke.success", status=response.status)
            except Exception as error:
                logger.debug("oauth2.revoke.error", error_type=type(error).__name__)
                forward = self._handle_error(
                    error,
                    res,
                    response,
                    invalid_token_on_revoke=isinstance(error, InvalidTokenError),
                )
            finally:
                await call_next(forward)

        return stage
