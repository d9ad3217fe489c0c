"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (highest priority first):
#
#   1. **Environment variables** - e.g. API_BASE_URL=https://x.example/api
#   2. **.env file** - key=value lines in the working directory
#
# Field ``api_base_url`` maps to env var ``API_BASE_URL``.  Defaults below
# apply when neither source sets a value.
#
# The session token is issued by the identity provider's login flow,
# which lives outside this package.  We only forward it as a cookie.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """expense-sync client and reference-backend settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Expense API ===
    api_base_url: str = "http://localhost:3000/api"
    expenses_path: str = "/expenses"
    sign_path: str = "/upload/sign"
    # Empty string = anonymous; no cookie is sent.
    session_token: str = ""
    session_cookie_name: str = "access_token"
    request_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 120.0

    # === Client cache ===
    # Matches the 5 s staleTime of the expense list query.
    cache_stale_seconds: float = 5.0
    cache_max_entries: int = 512

    # === Reference backend ===
    app_host: str = "127.0.0.1"
    app_port: int = 3000
    storage_url_ttl_seconds: int = 300

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def session_cookies(self) -> dict[str, str]:
        """Return the cookie jar to send with API requests."""
        if not self.session_token:
            return {}
        return {self.session_cookie_name: self.session_token}
