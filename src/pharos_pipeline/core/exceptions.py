"""Application-wide exception hierarchy for the Pharos pipeline.

All custom exceptions subclass ``PharosPipelineError``, enabling
consistent error handling and structured logging across the pipeline.

Hierarchy::

    PharosPipelineError
    ├── SourceConfigError
    ├── FetchError
    ├── RenderError
    ├── ExtractionFailure
    └── StreamError
        ├── StreamUpstreamError   (status_code, details)
        └── StreamReadError
"""

from __future__ import annotations


class PharosPipelineError(Exception):
    """Base class for all Pharos pipeline exceptions.

    All pipeline-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------


class SourceConfigError(PharosPipelineError):
    """Raised when a source descriptor or extraction rule is malformed.

    Raised eagerly while loading configuration, before any network activity.

    Args:
        message: Human-readable description of the problem.
        source: Name of the offending source, when known.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


# ---------------------------------------------------------------------------
# Scraping exceptions
# ---------------------------------------------------------------------------


class FetchError(PharosPipelineError):
    """Raised when a static HTTP fetch fails, times out or returns an error status.

    Args:
        message: Human-readable description of the failure.
        url: The URL that was requested.
        status_code: HTTP status code, or ``None`` on network error.
        source: Name of the source being scraped, when known.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.source = source


class RenderError(PharosPipelineError):
    """Raised when a headless-browser launch, navigation or evaluation fails.

    Args:
        message: Human-readable description of the failure.
        url: The URL that was being rendered.
        source: Name of the source being scraped, when known.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.source = source


class ExtractionFailure(PharosPipelineError):
    """Raised when no extraction rule path cleared its minimum content length.

    Args:
        message: Human-readable description of the failure.
        domain: Hostname the rules were looked up for.
        url: Article URL, when the HTML came from a fetch.
    """

    def __init__(
        self,
        message: str,
        domain: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.domain = domain
        self.url = url


# ---------------------------------------------------------------------------
# Stream relay exceptions
# ---------------------------------------------------------------------------


class StreamError(PharosPipelineError):
    """Base class for event-stream relay errors.

    Args:
        message: Human-readable description of the failure.
        session_id: ID of the relayed stream session.
    """

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class StreamUpstreamError(StreamError):
    """Raised when the upstream endpoint answers with a bad status or no body.

    Args:
        message: Human-readable description of the failure.
        status_code: Upstream HTTP status, or ``None`` when no response arrived.
        details: Response body text or transport error description.
        session_id: ID of the relayed stream session.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: str | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message, session_id=session_id)
        self.status_code = status_code
        self.details = details


class StreamReadError(StreamError):
    """Raised when reading an already-open upstream stream fails mid-way."""
