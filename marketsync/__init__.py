"""Marketplace listing acquisition and catalog sync package.

Acquires product listings from third-party marketplaces, normalizes them into a
single canonical schema and keeps a persistent catalog in sync with sellers'
live inventories.

The package follows a modular architecture with separate concerns for:
- Acquisition providers (scraping engine, official API stub, fallback chain)
- Multi-marketplace product extraction (Etsy, Amazon, Shopify, eBay, generic)
- Short-lived listing cache and anti-bot request plumbing
- Authenticated seller account sync into the catalog store
"""
