from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "pm-sandbox"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: str | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Static validator policy: "deny" (blocked-name tables) or "allow" (permitted-name tables)
    VALIDATOR_MODE: Literal["deny", "allow"] = "deny"

    # Isolation host used when the caller does not pick one
    SCRIPT_ISOLATION_HOST: Literal["worker", "compartment", "embedded", "direct"] = (
        "compartment"
    )

    # Seconds to wait for an execution's completion signal; None or 0 waits forever
    SCRIPT_EXEC_TIMEOUT: int | None = 30

    # Comma-separated host allow-list for pm.sendRequest; empty disables it
    SCRIPT_HTTP_ALLOWED_HOSTS: str = ""
    SCRIPT_HTTP_TIMEOUT: float = 30.0

    # Seconds to wait for the background worker's ready handshake
    WORKER_START_TIMEOUT: float = 30.0

    @property
    def script_http_allowed_hosts(self) -> frozenset[str]:
        raw = (self.SCRIPT_HTTP_ALLOWED_HOSTS or "").strip()
        return frozenset(h.strip().lower() for h in raw.split(",") if h.strip())


settings = Settings()  # type: ignore
