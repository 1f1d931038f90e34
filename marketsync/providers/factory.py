"""Provider selection.

The single construction point for listing providers: ``scrape`` mode yields
the bare scraping engine, ``api`` mode wraps the API provider with the
scraping engine as fallback.
"""

import logging

from ..config import AcquisitionConfig, EtsyApiConfig
from .api import ApiEtsyProvider
from .base import EtsyProvider
from .fallback import FallbackEtsyProvider
from .scrape import ScrapeEtsyProvider

logger = logging.getLogger(__name__)


def create_etsy_provider(
    acquisition: AcquisitionConfig,
    api_config: EtsyApiConfig,
    scraper: ScrapeEtsyProvider,
) -> EtsyProvider:
    """Build the provider selected by ``acquisition.provider_mode``.

    Args:
        acquisition: Acquisition settings holding the strategy selector.
        api_config: Marketplace credentials for API mode.
        scraper: Scraping engine used alone or as fallback.

    Returns:
        Provider implementing the EtsyProvider protocol.

    Raises:
        ProviderError: CONFIGURATION when API mode lacks credentials.
    """
    if acquisition.provider_mode == "api":
        logger.info("Using Etsy API provider with scraping fallback")
        return FallbackEtsyProvider(ApiEtsyProvider(api_config), scraper)

    logger.info("Using Etsy scraping provider")
    return scraper
