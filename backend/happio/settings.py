from __future__ import annotations

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"

SERVICE_NAME = "happio"
SERVICE_VERSION = "0.1.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    DEBUG: bool = False
    DEV_ROUTES_ENABLED: bool = False

    # persistence directory (defaults to ~/.happio-data)
    DATA_DIR: Path | None = None
    DATABASE_URL: str | None = None

    # CORS allow origins (comma-separated). Default empty (no cross-origin).
    CORS_ALLOW_ORIGINS: str = ""

    # Public site, used for links in emails and the sitemap
    SITE_URL: str = "https://happio.nl"

    # Auth0 integration
    AUTH0_DOMAIN: str | None = None
    AUTH0_AUDIENCE: str | None = None
    AUTH0_BYPASS: bool = False  # require explicit opt-in for bypass
    ADMIN_SCOPE: str = "admin:directory"

    # Serverless functions (email, human verification, bulk import, photo refresh)
    FUNCTIONS_BASE_URL: str | None = None
    FUNCTIONS_API_KEY: str | None = None
    FUNCTIONS_TIMEOUT_SECONDS: float = 15.0
    RECAPTCHA_BYPASS: bool = False

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 300  # per window per client
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Only trust X-Forwarded-For from these proxies (comma-separated IPs/CIDRs, "*" for all)
    TRUSTED_PROXIES: str = ""

    # Listings
    NEARBY_DEFAULT_LIMIT: int = 10
    NEARBY_SCAN_CEILING: int = 5000  # nearby ranking scans every positioned row
    LOCATIONS_BATCH_SIZE: int = 1000
    REFERENCE_CACHE_TTL_SECONDS: float = 300.0

    # Bulk import
    IMPORT_POLL_INTERVAL_SECONDS: float = 3.0
    IMPORT_WATCH_TIMEOUT_SECONDS: float = 900.0
    IMPORT_ERROR_HISTORY: int = 50

    # Observability
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2

    @property
    def allow_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if s == "*":
            return ["*"]
        if s == "":
            return []
        return [part.strip() for part in s.split(",") if part.strip()]

    @property
    def data_dir(self) -> Path:
        # A blank DATA_DIR in `.env` would resolve to the repository root; treat it as unset.
        def _materialize(path: Path) -> Path:
            path.mkdir(parents=True, exist_ok=True)
            return path

        raw_env = os.getenv("DATA_DIR")
        if raw_env is not None:
            trimmed = raw_env.strip()
            if trimmed:
                return _materialize(Path(trimmed).expanduser().resolve())
            return _materialize(Path.home() / ".happio-data")

        if self.DATA_DIR is not None:
            candidate = Path(self.DATA_DIR).expanduser()
            if str(candidate).strip() not in {"", ".", "./", ".\\"}:
                return _materialize(candidate.resolve())
        return _materialize(Path.home() / ".happio-data")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        default_path = self.data_dir / "happio.db"
        return f"sqlite:///{default_path}"

    @property
    def async_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def auth0_issuer(self) -> str | None:
        if not self.AUTH0_DOMAIN:
            return None
        domain = self.AUTH0_DOMAIN.removeprefix("https://").removeprefix("http://")
        return f"https://{domain}/"

    @property
    def site_url(self) -> str:
        return self.SITE_URL.rstrip("/")


settings = Settings()
