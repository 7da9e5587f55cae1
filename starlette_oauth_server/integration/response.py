"""Protocol-neutral response populated by the engine."""

from dataclasses import dataclass, field
from typing import Any

from starlette_oauth_server.consts import REDIRECT_STATUS


@dataclass
class ProtocolResponse:
    """Mutable accumulator for the engine's status, headers and body."""

    status: int | None = None
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = None

    def get(self, name: str, default: Any = None) -> Any:
        """Return a header by case-insensitive name."""
        return self.headers.get(name.lower(), default)

    def set(self, name: str, value: Any) -> None:
        """Set a header, normalizing its name to lower case."""
        self.headers[name.lower()] = value

    def redirect(self, url: str) -> None:
        """Turn the response into a redirect to ``url``."""
        self.set("location", url)
        self.status = REDIRECT_STATUS
