import os

from dotenv import load_dotenv

load_dotenv()


class ConfigError(RuntimeError):
    """A required setting is missing from the environment."""


# Postgres (Supabase) connection string
DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

# CountIt showtimes feed
SHOWTIMES_API_KEY: str = os.environ.get("SHOWTIMES_API_KEY", "")
SHOWTIMES_API_URL: str = os.environ.get(
    "SHOWTIMES_API_URL",
    "https://admin.countit.online/api/v2/getview/showtimes_webSite/5000/ISRAEL",
)

# Meilisearch (host may be given without scheme, as in the site's .env)
MEILISEARCH_HOST: str = os.environ.get(
    "MEILISEARCH_HOST", os.environ.get("NEXT_PUBLIC_MEILISEARCH_HOST", "")
)
MEILISEARCH_ADMIN_KEY: str = os.environ.get("MEILISEARCH_ADMIN_KEY", "")
MEILISEARCH_SEARCH_KEY: str = os.environ.get(
    "MEILISEARCH_SEARCH_KEY", os.environ.get("NEXT_PUBLIC_MEILISEARCH_SEARCH_KEY", "")
)

# API server
API_PORT: int = int(os.environ.get("API_PORT", "3848"))

# Scheduled jobs (seconds)
SHOWTIME_SYNC_INTERVAL: int = int(os.environ.get("SHOWTIME_SYNC_INTERVAL", "21600"))
QUEUE_SYNC_INTERVAL: int = int(os.environ.get("QUEUE_SYNC_INTERVAL", "60"))
QUEUE_BATCH_SIZE: int = int(os.environ.get("QUEUE_BATCH_SIZE", "50"))

LOG_DIR: str = os.environ.get("LOG_DIR", "logs")


def require(name: str) -> str:
    """Return a setting from this module, raising if it is empty."""
    value = globals().get(name, "")
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def meilisearch_url() -> str:
    host = require("MEILISEARCH_HOST")
    if host.startswith(("http://", "https://")):
        return host
    return f"https://{host}"
