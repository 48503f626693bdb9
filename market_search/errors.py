"""Exceptions raised by the search layer.

Only :class:`SearchValidationError` is meant to reach an end user. Index
failures are converted into fallback behaviour at the orchestrator seam.
"""
from __future__ import annotations


class SearchError(Exception):
    """Base class for search layer errors."""


class SearchValidationError(SearchError, ValueError):
    """The keyword is empty or otherwise unusable."""


class IndexUnavailableError(SearchError):
    """The search index is disabled or could not be reached."""
