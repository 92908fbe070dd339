"""
Custom exception hierarchy for extraction reconciliation.

The reconciliation core is total over well-formed JSON input: these
exceptions are raised at narrow seams and caught by the component that
owns the seam, which reports the problem instead of propagating it.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base exception for all reconciliation failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class UnsupportedPathError(ReconciliationError):
    """A field path addresses a sequence element or descends through a non-mapping."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UNSUPPORTED_FIELD_PATH", message, details)


class VerificationParseError(ReconciliationError):
    """The verification report is not structured data."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("VERIFICATION_UNPARSEABLE", message, details)


class RecordShapeError(ReconciliationError):
    """The record is neither a single property mapping nor a portfolio list."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("RECORD_SHAPE_INVALID", message, details)
