"""Shared services: HTTP session, throttle, cookie jar, headless browser, cache."""
