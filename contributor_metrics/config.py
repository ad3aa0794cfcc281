import os
from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _int_env(name, default):
    value = (os.getenv(name) or "").strip()
    return int(value) if value.isdigit() else default


def _float_env(name, default):
    value = (os.getenv(name) or "").strip()
    try:
        return float(value) if value else default
    except ValueError:
        return default


GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")

BITBUCKET_USERNAME = os.getenv("BITBUCKET_USERNAME")
BITBUCKET_TOKEN = os.getenv("BITBUCKET_TOKEN")
BITBUCKET_API_URL = os.getenv("BITBUCKET_API_URL", "https://api.bitbucket.org/2.0")

AZURE_DEVOPS_TOKEN = os.getenv("AZURE_DEVOPS_TOKEN")
AZURE_DEVOPS_URL = os.getenv("AZURE_DEVOPS_URL", "https://dev.azure.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Trailing window used when neither --since nor --months is given
DAYS = _int_env("DAYS", 90)

REQUEST_TIMEOUT_SECONDS = _float_env("REQUEST_TIMEOUT_SECONDS", 60.0)
MAX_RETRIES = _int_env("MAX_RETRIES", 5)
BACKOFF_SECONDS = _float_env("BACKOFF_SECONDS", 1.0)
GIT_TIMEOUT_SECONDS = _float_env("GIT_TIMEOUT_SECONDS", 300.0)

CA_BUNDLE = os.getenv("CA_BUNDLE") or None

API_CONCURRENCY = 8
LOCAL_CONCURRENCY = 2
CONCURRENCY = _int_env("CONTRIBUTORS_CONCURRENCY", 0) or None


def require_token(value, env_name, flag_name):
    """Return a usable credential or raise a configuration error."""
    token = (value or "").strip()
    if not token:
        raise ConfigurationError(
            f"No credential found: pass {flag_name} or set {env_name} in the environment / .env"
        )
    return token
