"""Authenticated seller account sync into the catalog store."""

from .catalog import CatalogStore, SqliteCatalogStore
from .etsy_client import EtsyApiClient
from .orchestrator import SYNC_TYPE, SyncOrchestrator

__all__ = ["CatalogStore", "EtsyApiClient", "SYNC_TYPE", "SqliteCatalogStore", "SyncOrchestrator"]
