"""Configuration package for the Pharos pipeline.

Re-exports the settings symbols so that callers can write::

    from pharos_pipeline.config import get_settings
"""

from __future__ import annotations

from pharos_pipeline.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
