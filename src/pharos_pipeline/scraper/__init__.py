"""News-source scraping and article extraction.

Fetches headline links from many front pages concurrently and extracts
structured article content from individual pages.

Sub-modules:
- ``config``             : constants and tuning parameters
- ``sources``            : source descriptors, selectors and article previews
- ``filters``            : headline filtering policy with per-source overrides
- ``http_fetcher``       : static httpx + BeautifulSoup fetcher
- ``playwright_fetcher`` : headless Chromium fetcher for JS-heavy pages
- ``coordinator``        : concurrent fan-out over all sources
- ``rules``              : site-specific extraction rules by domain
- ``content_extractor``  : rule chain with generic and paragraph fallbacks
- ``article_batch``      : sequential extraction for a list of URLs
"""
