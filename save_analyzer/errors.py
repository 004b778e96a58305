"""
save_analyzer/errors.py
-----------------------------------------------------------------------------
Exception taxonomy for the Factory Save Analyzer.

Every failure a caller can observe is one of the classes below.  Each class
carries the HTTP status code it maps to, so the exception handlers in
``main.py`` can turn any of them into a uniform ``ServiceResponse`` envelope
without a lookup table.

Hierarchy
---------
SaveAnalyzerError
├── ValidationError   (400) bad type / size / missing parameter, no side effects
├── NotFoundError     (404) unresolved generated name
├── DecodeError       (400) missing header entry, codec failure, empty buffer
├── AnalysisError     (500) engine failure on an otherwise valid snapshot
└── InternalError     (500) storage I/O failure, cause logged but not echoed
"""

from __future__ import annotations


class SaveAnalyzerError(Exception):
    """Base class for all caller-visible failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SaveAnalyzerError):
    status_code = 400


class NotFoundError(SaveAnalyzerError):
    status_code = 404


class DecodeError(SaveAnalyzerError):
    """
    Raised when a stored archive cannot be turned into a save record.

    ``entries`` holds up to the first 10 archive member names when the
    failure is a missing header entry, so the caller can see what the
    archive actually contained.
    """

    status_code = 400

    def __init__(self, message: str, entries: list[str] | None = None) -> None:
        super().__init__(message)
        self.entries: list[str] = list(entries or [])


class AnalysisError(SaveAnalyzerError):
    status_code = 500


class InternalError(SaveAnalyzerError):
    status_code = 500
