import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # No .env (or python-dotenv missing) means plain environment variables only.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set SUPPORT_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: SUPPORT_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("SUPPORT_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("SUPPORT_DB_PATH", "./support_desk.sqlite")
    )

    # -----------------
    # Sessions
    # -----------------
    # Signs the session cookie. In production you MUST set SECRET to a strong random value.
    SESSION_SECRET: str = os.environ.get("SECRET", "dev_change_me")
    SESSION_TTL_MINUTES: int = int(os.environ.get("SESSION_TTL_MINUTES", str(14 * 24 * 60)))
    SESSION_COOKIE_NAME: str = os.environ.get("SESSION_COOKIE_NAME", "sd_session")
    SESSION_COOKIE_PATH: str = os.environ.get("SESSION_COOKIE_PATH", "/")
    SESSION_COOKIE_SAMESITE: str = os.environ.get("SESSION_COOKIE_SAMESITE", "lax")  # lax|strict|none

    # Browsers only send Secure cookies over https; leave off for local http development.
    USE_SECURE_COOKIES: bool = _env_bool("USE_SECURE_COOKIES", False) is True

    # Bootstrap the first staff account if the users table is empty.
    # Nothing is created unless both are set.
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_EMAIL", "")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD", "")

    # -----------------
    # CORS
    # -----------------
    # A single frontend origin; credentials are allowed so it must not be "*".
    CORS_ALLOW_ORIGIN: str = (
        os.environ.get("CORS_ALLOW_ORIGIN")
        or os.environ.get("DOMAIN")
        or "http://localhost:3000"
    )

    # -----------------
    # Billing (Stripe)
    # -----------------
    # Without a secret key billing is disabled: no customers are created and every
    # user reports subscription "None".
    STRIPE_SECRET_KEY: str | None = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str | None = os.environ.get("STRIPE_WEBHOOK_SECRET")

    # How long a looked-up subscription status is reused before asking Stripe again.
    SUBSCRIPTION_CACHE_SECONDS: int = int(os.environ.get("SUBSCRIPTION_CACHE_SECONDS", "300"))
    # Oldest entries are evicted past this many cached customers.
    SUBSCRIPTION_CACHE_MAX_ENTRIES: int = int(os.environ.get("SUBSCRIPTION_CACHE_MAX_ENTRIES", "10000"))


def load_config() -> Config:
    return Config()
