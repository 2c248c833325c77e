from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CARDDEX_")

    app_name: str = "CardDex Sync"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/carddex"

    # Client-side offline cache locations
    offline_cache_path: Path = Path.home() / ".carddex" / "offline-cache.json"
    image_cache_dir: Path = Path.home() / ".carddex" / "images"

    # Per-request timeout for background image fetches
    image_fetch_timeout: float = 10.0


settings = Settings()


# =============================================================================
# SNAPSHOT / INTEGRITY
# =============================================================================

# Bump when the snapshot wire shape changes. Consumers compare, never assume.
SNAPSHOT_VERSION = 1


# =============================================================================
# OFFLINE CACHE POLICY
# =============================================================================

# Bump to orphan every key written under the previous layout
CACHE_VERSION = 1

CACHE_KEY_PREFIX = f"carddex:v{CACHE_VERSION}:"

# Max age for collection-class data (collection, wishlist, cards): 24 hours
COLLECTION_CACHE_MAX_AGE_MS = 24 * 60 * 60 * 1000

# Max age for image-class data: 7 days
IMAGE_CACHE_MAX_AGE_MS = 7 * 24 * 60 * 60 * 1000

# Conservative local storage capacity, not negotiated with the host
STORAGE_LIMIT_BYTES = 5 * 1024 * 1024

# Hard cap on images handed to the background agent per submission
MAX_CACHED_IMAGES = 500
