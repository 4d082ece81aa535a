"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with GENREMNANT_ prefix.
No config files: just env vars (12-factor app style).

Learn: the relational store is chosen by `database_url` (SQLite file for
local work, PostgreSQL in production). `query_backend` picks what serves
raw `query(sql, params)` calls: the same SQL engine, or a Cloudflare D1
database reached over HTTP.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via GENREMNANT_* env vars."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./genremnant.db"

    # Redis (rate limiting only: optional)
    redis_url: str = "redis://localhost:6379/0"

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    refresh_token_expire_days: int = 30
    bcrypt_rounds: int = 12

    # Server
    environment: str = "development"
    debug: bool = False
    json_logs: bool = False
    host: str = "0.0.0.0"
    port: int = 5000

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Rate limiting
    rate_limit_rpm: int = 120  # requests per minute per IP
    rate_limit_auth_rpm: int = 10  # stricter limit for login/register

    # Raw query backend: "sql" (database_url) or "d1" (Cloudflare D1 over HTTP)
    query_backend: str = "sql"
    d1_account_id: str = ""
    d1_database: str = ""  # database uuid or name
    d1_api_token: str = ""
    d1_api_base: str = "https://api.cloudflare.com/client/v4"
    d1_use_worker: bool = False
    d1_worker_url: str = ""
    d1_worker_secret: str = ""

    # Realtime
    ws_path: str = "/ws"
    updates_page_size: int = 100

    model_config = {"env_prefix": "GENREMNANT_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "GENREMNANT_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self

    @model_validator(mode="after")
    def validate_query_backend(self):
        if self.query_backend not in ("sql", "d1"):
            raise ValueError("GENREMNANT_QUERY_BACKEND must be 'sql' or 'd1'")
        if self.query_backend == "d1":
            if self.d1_use_worker:
                if not self.d1_worker_url or not self.d1_worker_secret:
                    raise ValueError(
                        "D1 worker proxy not configured: set "
                        "GENREMNANT_D1_WORKER_URL and GENREMNANT_D1_WORKER_SECRET"
                    )
            elif not (self.d1_account_id and self.d1_database and self.d1_api_token):
                raise ValueError(
                    "Cloud D1 not configured: set GENREMNANT_D1_ACCOUNT_ID, "
                    "GENREMNANT_D1_DATABASE and GENREMNANT_D1_API_TOKEN"
                )
        return self


# Singleton: import this everywhere
settings = Settings()
