"""Build protocol-neutral requests from Starlette requests."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from starlette_oauth_server.consts import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    MULTIPART_CONTENT_TYPE,
)
from starlette_oauth_server.errors import InvalidArgumentError, InvalidRequestError
from starlette_oauth_server.utils.json import safe_json_loads

HeaderValue = str | Sequence[str]


@dataclass(frozen=True)
class ProtocolRequest:
    """Immutable view of an inbound HTTP request handed to the engine."""

    method: str
    headers: Mapping[str, HeaderValue]
    query: Mapping[str, Any]
    body: Mapping[str, Any] = field(default_factory=dict)
    url: str = ""
    transport: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        """Validate required fields and freeze the mappings."""
        if not self.method:
            raise InvalidArgumentError("Missing parameter: `method`")
        if self.headers is None:
            raise InvalidArgumentError("Missing parameter: `headers`")
        if self.query is None:
            raise InvalidArgumentError("Missing parameter: `query`")

        headers = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(headers))
        object.__setattr__(self, "query", MappingProxyType(dict(self.query)))
        object.__setattr__(self, "body", MappingProxyType(dict(self.body or {})))

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return a header value, joining repeated headers with commas."""
        value = self.headers.get(name.lower())
        if value is None:
            return default
        if isinstance(value, str):
            return value
        return ", ".join(value)

    @property
    def content_type(self) -> str:
        """Media type of the body without parameters, lower-cased."""
        return (self.get("content-type") or "").split(";", 1)[0].strip().lower()

    def is_content_type(self, *types: str) -> bool:
        """Return True when the body media type is one of ``types``."""
        return self.content_type in {t.lower() for t in types}


def _collect(items: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Fold repeated keys into lists, keeping single values as scalars."""
    collected: dict[str, Any] = {}
    for key, value in items:
        if key not in collected:
            collected[key] = value
        elif isinstance(collected[key], list):
            collected[key].append(value)
        else:
            collected[key] = [collected[key], value]
    return collected


async def _parse_body(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if content_type in (FORM_CONTENT_TYPE, MULTIPART_CONTENT_TYPE):
        # Starlette raises HTTPException instead of MultiPartException once an app is mounted.
        try:
            form = await request.form()
        except (MultiPartException, HTTPException, KeyError) as ex:
            raise InvalidRequestError("Invalid request: malformed body") from ex
        return _collect((k, v) for k, v in form.multi_items() if isinstance(v, str))
    if content_type == JSON_CONTENT_TYPE:
        return safe_json_loads(await request.body())
    return {}


async def to_protocol_request(request: Request) -> ProtocolRequest:
    """Convert a Starlette Request into a ProtocolRequest."""
    return ProtocolRequest(
        method=request.method,
        headers=_collect(request.headers.items()),
        query=_collect(request.query_params.multi_items()),
        body=await _parse_body(request),
        url=str(request.url),
        transport=request,
    )
