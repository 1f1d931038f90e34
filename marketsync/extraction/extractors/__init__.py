"""Per-marketplace product extractors."""

from .amazon import AmazonExtractor
from .ebay import EbayExtractor
from .etsy import EtsyExtractor
from .generic import GenericExtractor
from .shopify import ShopifyExtractor

__all__ = [
    "AmazonExtractor",
    "EbayExtractor",
    "EtsyExtractor",
    "GenericExtractor",
    "ShopifyExtractor",
]
