"""Dependency-injection container.

This module defines the container that wires the acquisition, extraction and
sync components together. Every long-lived object (cache, cookie jar,
throttle, browser, provider) is constructed once here and injected into its
consumers, so tests can build fresh instances or override any provider.
"""

from dependency_injector import containers, providers

from ..config import Config
from ..extraction.service import ProductExtractionService
from ..providers.factory import create_etsy_provider
from ..providers.scrape import ScrapeEtsyProvider
from ..services.cookie_jar import CookieJar
from ..services.headless import HeadlessFetcher
from ..services.listing_cache import ListingCache
from ..services.listing_service import ListingService
from ..services.throttle import RequestThrottle
from ..sync.catalog import SqliteCatalogStore
from ..sync.etsy_client import EtsyApiClient
from ..sync.orchestrator import SyncOrchestrator


class Container(containers.DeclarativeContainer):
    """DI container for the application."""

    settings = providers.Singleton(Config)

    acquisition = settings.provided.acquisition
    scraping = settings.provided.scraping

    # Acquisition plumbing
    listing_cache = providers.Singleton(ListingCache, default_ttl=acquisition.cache_ttl_seconds)
    throttle = providers.Singleton(RequestThrottle, min_interval=acquisition.min_interval_seconds)
    cookie_jar = providers.Singleton(CookieJar)
    headless_fetcher = providers.Singleton(
        HeadlessFetcher,
        enabled=acquisition.enable_headless_browser,
        timeout_ms=acquisition.timeout_ms,
        user_agent=scraping.user_agent,
    )

    # Providers
    scrape_provider = providers.Singleton(
        ScrapeEtsyProvider,
        scraping=scraping,
        throttle=throttle,
        cookie_jar=cookie_jar,
        headless=headless_fetcher,
        timeout_seconds=acquisition.timeout_seconds,
    )
    etsy_provider = providers.Singleton(
        create_etsy_provider,
        acquisition=acquisition,
        api_config=settings.provided.etsy_api,
        scraper=scrape_provider,
    )

    # Services
    listing_service = providers.Singleton(
        ListingService,
        provider=etsy_provider,
        cache=listing_cache,
        allowed_host_suffix=scraping.allowed_host_suffix,
    )
    extraction_service = providers.Singleton(
        ProductExtractionService,
        timeout_seconds=acquisition.timeout_seconds,
    )

    # Account sync
    catalog_store = providers.Singleton(SqliteCatalogStore, db_path=settings.provided.catalog.db_path)
    etsy_client = providers.Singleton(
        EtsyApiClient,
        api_config=settings.provided.etsy_api,
        timeout_seconds=acquisition.timeout_seconds,
    )
    sync_orchestrator = providers.Singleton(
        SyncOrchestrator,
        store=catalog_store,
        client=etsy_client,
        sync_config=settings.provided.sync,
    )
