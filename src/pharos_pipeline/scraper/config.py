"""Constants and tuning parameters for the content-acquisition pipeline."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fetch timing
# ---------------------------------------------------------------------------

#: Static HTTP GET timeout (seconds).  No retry on failure.
STATIC_FETCH_TIMEOUT: float = 10.0

#: Headless navigation timeout (seconds).  Rendered sources share the event
#: loop with every other source, so this is deliberately generous.
RENDER_NAVIGATION_TIMEOUT: float = 30.0

#: Pause after DOM-content-loaded before the page is queried (seconds).
RENDER_SETTLE_DELAY: float = 1.5

#: Default per-source article cap.
DEFAULT_MAX_ARTICLES: int = 20

#: Multiplier applied to the cap when collecting raw candidates inside the
#: browser; most raw links are dropped by the filtering policy.
RENDER_CANDIDATE_FACTOR: int = 3

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: Desktop browser user-agent sent by both fetch strategies.
USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

#: Headers for static fetches.
STATIC_REQUEST_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

#: Default candidate selector when a source configures neither
#: ``linkFilter`` nor ``container``.
DEFAULT_LINK_SELECTOR: str = "a[href]"

# ---------------------------------------------------------------------------
# Headless browser
# ---------------------------------------------------------------------------

#: Chromium flags for a minimal-footprint, single-process instance.
CHROMIUM_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-background-timer-throttling",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-sync",
    "--no-first-run",
    "--disable-gpu",
    "--single-process",
)

#: Playwright resource types aborted by the request interceptor.
BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset(
    {"image", "stylesheet", "font", "media"}
)

# ---------------------------------------------------------------------------
# Article-title filtering
# ---------------------------------------------------------------------------

#: Inclusive bounds on candidate title length (characters).
MIN_TITLE_LENGTH: int = 10
MAX_TITLE_LENGTH: int = 200

# ---------------------------------------------------------------------------
# Article extraction thresholds
# ---------------------------------------------------------------------------

#: A domain rule succeeds when its content is longer than this.
RULE_CONTENT_MIN_LENGTH: int = 100

#: Generic container extraction succeeds when content is longer than this.
GENERIC_CONTENT_MIN_LENGTH: int = 200

#: Paragraphs shorter than this are skipped by the paragraph fallback.
PARAGRAPH_MIN_LENGTH: int = 50

#: Elements stripped before generic extraction.
GENERIC_NOISE_SELECTOR: str = (
    "script, style, nav, header, footer, aside, "
    ".ad, .advertisement, .related, .sidebar"
)

#: Generic content containers, most specific first.
GENERIC_CONTENT_SELECTORS: tuple[str, ...] = (
    'article [role="main"]',
    "article",
    '[role="main"]',
    ".article-content",
    ".article-body",
    ".entry-content",
    ".post-content",
    ".content",
    "main",
    "#content",
    "#main",
)

#: Generic title candidates in preference order.
GENERIC_TITLE_SELECTORS: tuple[str, ...] = ("h1", '[role="heading"]', "title")

#: Common byline patterns used by the generic path.
GENERIC_AUTHOR_SELECTOR: str = (
    '[rel="author"], .author, .byline, [class*="author"], [class*="byline"]'
)

#: Publication-date candidates for the generic path, with the attribute
#: holding the machine-readable value.
GENERIC_DATE_SELECTORS: tuple[tuple[str, str], ...] = (
    ("time[datetime]", "datetime"),
    ('meta[property="article:published_time"]', "content"),
    ('meta[name="publishdate"]', "content"),
)
