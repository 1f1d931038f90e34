"""Primary-marketplace listing providers.

Contains the scraping engine, the official API provider, the fallback chain
and the factory selecting between them.
"""

from .api import ApiEtsyProvider
from .base import EtsyProvider
from .factory import create_etsy_provider
from .fallback import FallbackEtsyProvider
from .scrape import ScrapeEtsyProvider

__all__ = [
    "ApiEtsyProvider",
    "EtsyProvider",
    "FallbackEtsyProvider",
    "ScrapeEtsyProvider",
    "create_etsy_provider",
]
