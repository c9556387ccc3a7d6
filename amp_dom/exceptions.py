"""
Custom exceptions for the AMP document adapter.

Error philosophy:
  - RewriteError            → RECOVERABLE: the text transform is skipped, input passes through.
  - EncodingConversionError → RECOVERABLE: the unconverted bytes are handed to the parser.
  - UnknownAccessorError    → PROGRAMMING ERROR: propagated to the caller.

Malformed markup never raises. Parser trouble is reported through the boolean
returned by Document.load(); everything else degrades to "leave the input as it was".
"""

from typing import Optional


class DocumentError(Exception):
    """Base exception for all document adapter errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- RECOVERABLE: caught where the fallback is applied, never reaches callers ---

class RewriteError(DocumentError):
    """
    Raised when a textual rewrite cannot be applied.

    Carries the pattern name so the warning says which transform was skipped.
    """

    def __init__(self, message: str, pattern: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.pattern = pattern


class EncodingConversionError(DocumentError):
    """Raised when source bytes cannot be converted to UTF-8."""

    def __init__(self, message: str, encoding: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.encoding = encoding


# --- PROGRAMMING ERROR: caller defect, not bad input ---

class UnknownAccessorError(DocumentError, AttributeError):
    """
    Raised when an unrecognized lazily-resolved property is requested.

    Subclasses AttributeError so getattr() with a default keeps working,
    while staying distinguishable from a legitimately missing element.
    """

    def __init__(self, name: str, owner: str = "Document"):
        super().__init__(f"Undefined property: {owner}::{name}", {"name": name})
        self.name = name
