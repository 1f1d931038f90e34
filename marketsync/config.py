"""Configuration management for marketplace acquisition and sync.

Handles all application configuration including environment variables, the
YAML scraping tuning file, and default settings. Provides structured
configuration classes for the different parts of the pipeline (acquisition
strategy, official API credentials, catalog storage, account sync).
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class AcquisitionConfig(BaseSettings):
    """Listing acquisition strategy and anti-bot tuning.

    Attributes:
        provider_mode: 'scrape' for scraping only, 'api' for API with scrape fallback.
        enable_headless_browser: Whether blocked pages may be retried in a headless browser.
        min_interval_seconds: Floor interval between two outbound scraping requests.
        timeout_seconds: Per-request timeout for HTTP and browser page loads.
        cache_ttl_seconds: Lifetime of listing cache entries.
    """

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    provider_mode: Literal["scrape", "api"] = Field(default="scrape", validation_alias="ETSY_PROVIDER")
    enable_headless_browser: bool = Field(default=False, validation_alias="ENABLE_HEADLESS_BROWSER")
    min_interval_seconds: float = Field(default=1.5, validation_alias="SCRAPE_MIN_INTERVAL_SECONDS")
    timeout_seconds: float = Field(default=25.0, validation_alias="SCRAPE_TIMEOUT_SECONDS")
    cache_ttl_seconds: float = Field(default=300.0, validation_alias="LISTING_CACHE_TTL_SECONDS")

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)


class EtsyApiConfig(BaseSettings):
    """Marketplace-issued credentials.

    The API provider needs key, secret and base URL; the OAuth flow used by
    account sync needs client id, client secret and redirect URI. Nothing is
    required at load time; each consumer validates what it needs.
    """

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    api_key: str | None = Field(default=None, validation_alias="ETSY_API_KEY")
    api_secret: str | None = Field(default=None, validation_alias="ETSY_API_SECRET")
    base_url: str | None = Field(default=None, validation_alias="ETSY_BASE_URL")
    client_id: str | None = Field(default=None, validation_alias="ETSY_CLIENT_ID")
    client_secret: str | None = Field(default=None, validation_alias="ETSY_CLIENT_SECRET")
    redirect_uri: str | None = Field(default=None, validation_alias="ETSY_REDIRECT_URI")

    def missing_api_settings(self) -> list[str]:
        """Return env names of API provider settings that are not set."""
        required = {
            "ETSY_API_KEY": self.api_key,
            "ETSY_API_SECRET": self.api_secret,
            "ETSY_BASE_URL": self.base_url,
        }
        return [name for name, value in required.items() if not value]

    @property
    def oauth_configured(self) -> bool:
        """True when the OAuth client credentials are all present."""
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class CatalogConfig(BaseSettings):
    """Catalog store location.

    Attributes:
        db_path: Path to the SQLite catalog database.
    """

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    db_path: str = Field(default="data/catalog.db", validation_alias="CATALOG_DB_PATH")


class SyncConfig(BaseSettings):
    """Seller account sync parameters.

    Attributes:
        page_limit: Listings requested per page (the API caps this at 200).
        token_refresh_margin_seconds: Refresh tokens expiring within this window.
        next_run_interval_hours: Offset used for SyncState.next_run_at.
        max_concurrency: Accounts synced in parallel by sync_all_accounts.
    """

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    page_limit: int = Field(default=100, validation_alias="SYNC_PAGE_LIMIT")
    token_refresh_margin_seconds: int = 300
    next_run_interval_hours: int = 6
    max_concurrency: int = Field(default=1, validation_alias="SYNC_MAX_CONCURRENCY")


class ScrapingConfig(BaseSettings):
    """Marketplace page tuning loaded from data/scraping.yml.

    Attributes:
        allowed_host_suffix: Hostname suffix accepted by the scraping engine.
        site_root: Root URL used as the default referer.
        best_seller_urls: Curated category pages, primary first.
        block_signatures: Lower-case page fragments that indicate a bot block.
        user_agent: Browser User-Agent sent with every request.
    """

    model_config = SettingsConfigDict(extra="ignore")

    allowed_host_suffix: str = "etsy.com"
    site_root: str = "https://www.etsy.com/"
    best_seller_urls: list[str] = [
        "https://www.etsy.com/market/top_sellers",
        "https://www.etsy.com/c/best-selling-items",
    ]
    block_signatures: list[str] = ["captcha", "pardon our interruption"]
    user_agent: str = DEFAULT_USER_AGENT


class Config:
    """Application configuration manager.

    Centralizes loading of environment variables, the YAML tuning file and
    default values, and exposes typed sections for each component.
    """

    def __init__(self, config_dir: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_dir: Directory holding scraping.yml, defaults to marketsync/data.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent / "data"

        self.config_dir = Path(config_dir)

        self.acquisition = AcquisitionConfig()
        self.etsy_api = EtsyApiConfig()
        self.catalog = CatalogConfig()
        self.sync = SyncConfig()
        self.scraping = self._load_scraping_config()
        self.log_level = self._read_log_level()

    def _load_scraping_config(self) -> ScrapingConfig:
        """Load marketplace page tuning from YAML.

        Returns:
            ScrapingConfig built from the file, or defaults if it is missing.
        """
        scraping_path = self.config_dir / "scraping.yml"
        if not scraping_path.exists():
            return ScrapingConfig()

        with open(scraping_path) as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        etsy_data = data.get("etsy", {})
        defaults = ScrapingConfig()
        return ScrapingConfig(
            allowed_host_suffix=etsy_data.get("allowed_host_suffix", defaults.allowed_host_suffix),
            site_root=etsy_data.get("site_root", defaults.site_root),
            best_seller_urls=etsy_data.get("best_seller_urls", defaults.best_seller_urls),
            block_signatures=[
                signature.lower()
                for signature in data.get("block_signatures", defaults.block_signatures)
            ],
            user_agent=data.get("user_agent", defaults.user_agent),
        )

    @staticmethod
    def _read_log_level() -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()


# Global configuration instance
config = Config()
