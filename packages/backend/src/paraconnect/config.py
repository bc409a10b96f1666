"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with PARACONNECT_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: list settings (cors_origins, service_api_keys, ...) are read as JSON
from the environment, e.g. PARACONNECT_SERVICE_API_KEYS='["k1", "k2"]'.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via PARACONNECT_* env vars."""

    # Redis (cross-process relay + rate limiting; optional)
    redis_url: str = "redis://localhost:6379/0"

    # Auth: stream tokens are minted by the main web app with the same secret
    jwt_secret: str = "change-me-in-production"
    jwt_previous_secrets: list[str] = []  # still accepted during rotation
    jwt_algorithm: str = "HS256"
    jwt_leeway_seconds: int = 5
    access_token_expire_minutes: int = 60

    # Service-to-service publishing (X-API-Key)
    service_api_keys: list[str] = []

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    rate_limit_rpm: int = 100  # requests per minute per IP
    rate_limit_stream_rpm: int = 20  # stricter limit for opening streams

    # Realtime
    sse_keepalive_seconds: float = 25.0
    sse_retry_ms: int = 5000
    sse_queue_size: int = 100  # buffered messages before a client counts as dead
    max_subscribers_per_case: int = 50
    max_subscribers_per_user: int = 10
    max_event_payload_bytes: int = 64 * 1024

    model_config = {"env_prefix": "PARACONNECT_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if self.environment == "development":
            return self
        if self.jwt_secret == "change-me-in-production":
            raise ValueError(
                "PARACONNECT_JWT_SECRET must be set to the web app's token "
                "secret in non-development environments."
            )
        if not self.service_api_keys:
            raise ValueError(
                "PARACONNECT_SERVICE_API_KEYS must list at least one key in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self


# Singleton: import this everywhere
settings = Settings()
