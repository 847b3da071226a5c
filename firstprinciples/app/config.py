"""
Runtime configuration for the First Principles portal.

All values come from environment variables. Accessors for required values
raise ConfigurationError immediately so that misconfigured deployments fail
at construction time rather than on the first backend call.

Key naming:
- SUPABASE_ANON_KEY is the publishable key. It is safe for end-user
  (request-scoped) clients and is always subject to row-level policies.
- SUPABASE_SERVICE_ROLE_KEY is the secret key. It bypasses row-level
  policies and is only read by the privileged client factory.

Neither accessor falls back to the other variable.
"""

import os


class ConfigurationError(RuntimeError):
    """Raised when a required configuration value is missing."""

    def __init__(self, *names: str):
        self.names = names
        joined = " and ".join(names)
        super().__init__(f"Missing backend configuration. Set {joined}.")


def _require(*names: str) -> tuple:
    values = tuple(os.getenv(name) for name in names)
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        raise ConfigurationError(*missing)
    return values


def get_service_role_config() -> tuple:
    """
    Return (url, service_role_key) for the privileged client.

    Both values are checked together so the error names every missing
    variable at once.

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset
    """
    url, key = _require("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")
    return url.rstrip("/"), key


def get_backend_timeout() -> float:
    return float(os.getenv("BACKEND_TIMEOUT_SECONDS", "10"))


def get_provisioning_domain() -> str:
    return os.getenv("USER_PROVISIONING_EMAIL_DOMAIN", "firstprinciples.local")


def get_site_url() -> str:
    return os.getenv("SITE_URL", "http://localhost:3000").rstrip("/")


def rate_limits_disabled() -> bool:
    """Rate limiting is off when ENV=TEST or DISABLE_RATE_LIMITS=1."""
    return os.environ.get("ENV") == "TEST" or os.environ.get("DISABLE_RATE_LIMITS") == "1"


def get_session_client_config() -> tuple:
    """Return (url, anon_key) for request-scoped clients."""
    url, key = _require("SUPABASE_URL", "SUPABASE_ANON_KEY")
    return url.rstrip("/"), key


def get_jwt_settings() -> tuple:
    """
    Return (secret, algorithm, audience) for verifying backend access tokens.

    Raises:
        ConfigurationError: If SUPABASE_JWT_SECRET is unset
    """
    (secret,) = _require("SUPABASE_JWT_SECRET")
    algorithm = os.getenv("JWT_ALGORITHM", "HS256")
    audience = os.getenv("JWT_AUDIENCE", "authenticated")
    return secret, algorithm, audience
