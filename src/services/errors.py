"""Ingestion error taxonomy.

Every error raised along the per-URL path is a signal for logging and control
flow: the orchestrator catches it, logs, and moves on to the next page.
"""

from __future__ import annotations


class IngestionError(RuntimeError):
    """Base error for the ingestion pipeline."""


class ParseError(IngestionError):
    """Raised when HTML or a classifier response cannot be parsed."""


class NoBodyError(IngestionError):
    """Raised when an HTML document has no <body> element."""


class ClassifierError(IngestionError):
    """Raised when the text-classification service call fails."""


class StoreError(IngestionError):
    """Raised when the keyed store fails for reasons other than a create race."""
