"""Adapter configuration."""

from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide defaults, overridable through ``OAUTH2_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="OAUTH2_", extra="ignore")

    USE_ERROR_HANDLER: bool = False

    REALM: str = "Service"
    ACCESS_TOKEN_LIFETIME: int = 3600
    ALLOW_BEARER_TOKENS_IN_QUERY_STRING: bool = False
    ALLOW_EMPTY_STATE: bool = False

    LOG_LEVEL: str = "INFO"


settings = Settings()


class OAuth2ServerOptions(BaseModel):
    """Options accepted by ``OAuth2Server``.

    Unknown keys are kept in ``model_extra`` and forwarded to the engine.
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    model: Any
    use_error_handler: bool = Field(default_factory=lambda: settings.USE_ERROR_HANDLER)
    engine_factory: Callable[..., Any] | None = None

    @property
    def engine_options(self) -> dict[str, Any]:
        """Options passed through unmodified to the engine."""
        return dict(self.model_extra or {})
