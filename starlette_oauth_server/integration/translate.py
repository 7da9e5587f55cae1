"""Translate engine results and errors into HTTP responses."""

from starlette_oauth_server.consts import REDIRECT_STATUS
from starlette_oauth_server.errors import UnauthorizedRequestError, as_oauth_error
from starlette_oauth_server.integration.response import ProtocolResponse
from starlette_oauth_server.integration.transport import HttpResponse
from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)


def handle_response(res: HttpResponse, response: ProtocolResponse) -> None:
    """Write a ProtocolResponse to the HTTP response."""
    if response.status == REDIRECT_STATUS:
        headers = dict(response.headers)
        location = headers.pop("location", None)
        res.set(headers)
        res.redirect(location)
        return

    res.set(response.headers)
    res.status(response.status).send(response.body)


def handle_error(
    error: BaseException,
    res: HttpResponse,
    response: ProtocolResponse | None = None,
    *,
    use_error_handler: bool = False,
    invalid_token_on_revoke: bool = False,
) -> BaseException | None:
    """Write an error to the HTTP response, or return it for the upstream handler.

    The return value is what the calling flow passes to ``call_next``: the raw
    error when it must be delegated, otherwise None.
    """
    if use_error_handler:
        logger.debug("oauth2.error.delegated", error_type=type(error).__name__)
        return error

    if res.finished:
        logger.warning("oauth2.error.response_already_sent", error_type=type(error).__name__)
        return None

    if response is not None:
        res.set(response.headers)

    oauth_error = as_oauth_error(error)
    logger.info("oauth2.error", name=oauth_error.name, code=oauth_error.code)

    # All necessary information is conveyed by the status and headers.
    if isinstance(oauth_error, UnauthorizedRequestError):
        res.status(oauth_error.code).end()
        return None

    # Invalid tokens are not an error on revocation: the token is already
    # unusable. See RFC 7009 section 2.2.
    if invalid_token_on_revoke:
        res.status(200).send()
        return None

    res.status(oauth_error.code).send(
        {"error": oauth_error.name, "error_description": oauth_error.message}
    )
    return None
