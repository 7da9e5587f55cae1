"""Mutable HTTP response and the stage pipeline that drives it."""

import typing
from typing import Any, Awaitable, Callable, Mapping

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import (
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from starlette.types import Receive, Scope, Send

from starlette_oauth_server.consts import REDIRECT_STATUS
from starlette_oauth_server.utils.json import json_dumps
from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)

NextFunction = Callable[..., Awaitable[None]]
Stage = Callable[[Request, "HttpResponse", NextFunction], Awaitable[None]]
ErrorHandler = Callable[[BaseException, Request, "HttpResponse"], Awaitable[None]]


class OrjsonResponse(JSONResponse):
    """JSON response rendered with orjson."""

    def render(self, content: typing.Any) -> bytes:
        """Serialize the content."""
        return json_dumps(content)


class HttpResponse:
    """Response written by pipeline stages and rendered once they are done."""

    def __init__(self) -> None:
        """Constructor."""
        self.status_code = 200
        self.headers = MutableHeaders()
        self.body: Any = None
        self.location: str | None = None
        self._attached: Response | None = None
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once a body, redirect or attached response has been written."""
        return self._finished

    def _finish(self) -> None:
        if self._finished:
            raise RuntimeError("Response has already been sent")
        self._finished = True

    def status(self, code: int) -> "HttpResponse":
        """Set the status code."""
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError(f"Invalid status code: {code!r}")
        self.status_code = code
        return self

    def set(self, headers: Mapping[str, Any]) -> "HttpResponse":
        """Set headers; sequence values become repeated headers."""
        for name, value in headers.items():
            if isinstance(value, (list, tuple)):
                del self.headers[name]
                for item in value:
                    self.headers.append(name, str(item))
            else:
                self.headers[name] = str(value)
        return self

    def send(self, body: Any = None) -> None:
        """Write the body and finish the response."""
        self._finish()
        self.body = body

    def end(self) -> None:
        """Finish the response without a body."""
        self._finish()

    def redirect(self, location: str, status_code: int = REDIRECT_STATUS) -> None:
        """Finish the response as a redirect to ``location``."""
        if not location:
            raise ValueError("Redirect location is required")
        self._finish()
        self.status_code = status_code
        self.location = location

    def attach(self, response: Response) -> None:
        """Finish with a response produced by a Starlette endpoint."""
        self._finish()
        self._attached = response

    def render(self) -> Response:
        """Build the Starlette response to send."""
        if self._attached is not None:
            for name, value in self.headers.items():
                self._attached.headers.append(name, value)
            return self._attached
        if not self._finished:
            return PlainTextResponse("Not Found", status_code=404)
        if self.location is not None:
            return RedirectResponse(
                self.location, status_code=self.status_code, headers=self.headers
            )
        if self.body is None:
            return Response(status_code=self.status_code, headers=self.headers)
        if isinstance(self.body, (str, bytes)):
            media_type = "text/html" if isinstance(self.body, str) else None
            return Response(
                self.body,
                status_code=self.status_code,
                headers=self.headers,
                media_type=media_type,
            )
        return OrjsonResponse(self.body, status_code=self.status_code, headers=self.headers)


class Pipeline:
    """ASGI app running stages in order, each advancing with ``call_next``.

    ``await call_next()`` hands control to the next stage, or ends the
    pipeline once the response is finished. ``await call_next(error)`` hands
    the error to ``error_handler``, or re-raises it so the surrounding
    Starlette/FastAPI exception handlers format the reply.
    """

    def __init__(self, *stages: Stage, error_handler: ErrorHandler | None = None) -> None:
        """Constructor."""
        self.stages = stages
        self.error_handler = error_handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the stages for one HTTP request."""
        request = Request(scope, receive)
        response = HttpResponse()
        await self.run(request, response)
        await response.render()(scope, receive, send)

    async def run(self, request: Request, response: HttpResponse) -> None:
        """Run the stages against an existing request/response pair."""
        await self._dispatch(0, request, response)

    async def _dispatch(
        self,
        index: int,
        request: Request,
        response: HttpResponse,
        error: BaseException | None = None,
    ) -> None:
        if error is not None:
            if self.error_handler is None:
                raise error
            logger.debug("pipeline.error_handler", error_type=type(error).__name__)
            await self.error_handler(error, request, response)
            return

        if response.finished or index >= len(self.stages):
            return

        advanced = False

        async def call_next(error: BaseException | None = None) -> None:
            nonlocal advanced
            if advanced:
                raise RuntimeError("call_next() was called more than once")
            advanced = True
            await self._dispatch(index + 1, request, response, error)

        await self.stages[index](request, response, call_next)


def as_stage(endpoint: Callable[[Request], Awaitable[Response]]) -> Stage:
    """Wrap a Starlette endpoint as a terminal pipeline stage."""

    async def stage(request: Request, response: HttpResponse, call_next: NextFunction) -> None:
        response.attach(await endpoint(request))
        await call_next()

    return stage
