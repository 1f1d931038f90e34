"""Product extraction service.

Routes arbitrary product URLs to the first marketplace extractor whose
``can_handle`` accepts them, falls back to the generic extractor, and
rejects results that carry no title, description or price.
"""

import logging

import aiohttp

from ..errors import ErrorKind, ExtractionError
from ..models import NormalizedProduct
from ..services.http import create_session
from ..urls import hostname, is_http_url
from .base import MarketplaceExtractor
from .extractors import (
    AmazonExtractor,
    EbayExtractor,
    EtsyExtractor,
    GenericExtractor,
    ShopifyExtractor,
)

logger = logging.getLogger(__name__)

SUPPORTED_HINT = "Supported marketplaces: Etsy, Amazon, Shopify, eBay"


class ProductExtractionService:
    """Ordered registry of marketplace extractors.

    Attributes:
        extractors: Specific extractors, tried in order.
        generic: Last-resort extractor for unmatched URLs.
    """

    def __init__(
        self,
        extractors: list[MarketplaceExtractor] | None = None,
        generic: MarketplaceExtractor | None = None,
        timeout_seconds: float = 25.0,
    ):
        if extractors is None:
            extractors = [EtsyExtractor(), AmazonExtractor(), ShopifyExtractor(), EbayExtractor()]
        self.extractors: list[MarketplaceExtractor] = extractors
        self.generic = generic or GenericExtractor()
        self.timeout_seconds = timeout_seconds

    def detect_marketplace(self, url: str) -> str | None:
        """Best-effort marketplace name for a URL, None when unknown."""
        for extractor in self.extractors:
            if extractor.can_handle(url):
                return extractor.name

        host = hostname(url)
        host = host[4:] if host.startswith("www.") else host
        if host == "etsy.com" or host.endswith(".etsy.com"):
            return "etsy"
        if "amazon." in host:
            return "amazon"
        if host.endswith(".myshopify.com"):
            return "shopify"
        if "ebay." in host:
            return "ebay"
        return None

    def is_supported(self, url: str) -> bool:
        return any(extractor.can_handle(url) for extractor in self.extractors)

    def supported_marketplaces(self) -> list[str]:
        return [extractor.name for extractor in self.extractors]

    async def extract(self, url: str, session: aiohttp.ClientSession | None = None) -> NormalizedProduct:
        """Extract a product from any marketplace URL.

        Args:
            url: Product page URL.
            session: HTTP session to reuse; a temporary one is created if None.

        Returns:
            NormalizedProduct with at least a title, description or price.

        Raises:
            ExtractionError: INVALID_URL, INSUFFICIENT_DATA, EXTRACTION_FAILED,
                UNSUPPORTED_MARKETPLACE, or an extractor's own kind.
        """
        if not isinstance(url, str) or not is_http_url(url):
            raise ExtractionError(ErrorKind.INVALID_URL, "Invalid URL", details={"url": url})

        if session is None:
            async with create_session(self.timeout_seconds) as owned_session:
                return await self._extract(url, owned_session)
        return await self._extract(url, session)

    async def _extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        extractor = next((e for e in self.extractors if e.can_handle(url)), None)

        if extractor is None:
            logger.info(f"No specific extractor found for {hostname(url)}, trying generic extraction")
            try:
                product = await self.generic.extract(url, session)
            except Exception as e:
                marketplace = self.detect_marketplace(url)
                message = (
                    f"{marketplace} extraction is not yet fully supported"
                    if marketplace
                    else f"Could not extract product data. {SUPPORTED_HINT}"
                )
                raise ExtractionError(
                    ErrorKind.UNSUPPORTED_MARKETPLACE,
                    message,
                    details={
                        "url": url,
                        "hostname": hostname(url),
                        "detected_marketplace": marketplace,
                        "error": str(e),
                    },
                ) from e
            return self._validate(product, url, self.generic.name)

        try:
            product = await extractor.extract(url, session)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Extractor {extractor.name} failed for {url}: {e}")
            raise ExtractionError(
                ErrorKind.EXTRACTION_FAILED,
                f"Failed to extract product from {extractor.name}",
                details={"marketplace": extractor.name, "url": url, "error": str(e)},
            ) from e

        return self._validate(product, url, extractor.name)

    @staticmethod
    def _validate(product: NormalizedProduct, url: str, marketplace: str) -> NormalizedProduct:
        if product.is_empty():
            raise ExtractionError(
                ErrorKind.INSUFFICIENT_DATA,
                "Could not extract meaningful product data from URL",
                details={"url": url, "marketplace": marketplace},
            )
        return product
