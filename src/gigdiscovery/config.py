from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path

# Get the absolute path to the project root
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_DB_PATH = str(PROJECT_ROOT / "databases" / "gigs.db")


class Settings(BaseSettings):
    """
    Centralized runtime configuration for the gig discovery pipeline.
    All defaults match the mobile browsing experience; ops override via ENV
    (prefixed with GIG_DISCOVERY_).
    """
    model_config = SettingsConfigDict(
        env_prefix="GIG_DISCOVERY_",
        env_file=".env",
        extra="ignore",
    )

    # --- Database ---
    db_path: str = Field(default=DEFAULT_DB_PATH)

    # --- Paging ---
    page_size: int = Field(default=20, gt=0)
    search_limit: int = Field(default=100, gt=0)
    listing_status: str = Field(default="open")

    # --- Cache ---
    cache_ttl_seconds: float = Field(default=300.0, ge=0)  # 5 minutes for 2G/3G
    cache_key_prefix: str = Field(default="gigdiscovery_gigs_")

    # --- Debounce windows (seconds) ---
    search_debounce_seconds: float = Field(default=0.5, ge=0)
    location_debounce_seconds: float = Field(default=0.3, ge=0)
    filter_debounce_seconds: float = Field(default=0.15, ge=0)

    # --- Location ---
    default_radius_km: float = Field(default=25.0, gt=0)

    # --- Fallback ---
    demo_when_empty: bool = Field(default=False)

    # --- API ---
    session_idle_seconds: float = Field(default=1800.0, gt=0)
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)


# Create a singleton instance
settings = Settings()
