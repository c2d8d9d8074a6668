"""Pharos content-acquisition pipeline.

Sub-packages:
- ``config``: pydantic-settings configuration
- ``core``: exception hierarchy and structured logging
- ``scraper``: hybrid static/headless source scraping and article extraction
- ``stream``: server-sent-event relay with reconnect and backoff
- ``api``: FastAPI surface over the scraper and the relay
"""

__version__ = "0.1.0"
