"""Multi-marketplace product extraction."""

from .base import MarketplaceExtractor
from .service import ProductExtractionService

__all__ = ["MarketplaceExtractor", "ProductExtractionService"]
