"""
AMP DOM Document

Loads arbitrary, possibly malformed HTML into an lxml tree shaped the way AMP
requires (doctype, html, head, body; UTF-8), and serializes it back while
undoing every workaround needed to get it through libxml2.
- Tag syntax:  amp-bind attributes and void elements made parser-safe
- Structure:   missing html/head/body inserted, misplaced nodes relocated
- Encoding:    declared or guessed charset converted to UTF-8
- Shield:      noscript and template tokens protected across the round trip

Public API surface:
  Facade:         Document, load_document, normalize_html
  Configuration:  DocumentConfig
  Error types:    DocumentError, UnknownAccessorError
  Head predicate: is_valid_head_element
"""

# --- Facade ---
from .document import Document, load_document, normalize_html

# --- Configuration ---
from .schemas import DocumentConfig

# --- Exceptions (only UnknownAccessorError ever reaches callers) ---
from .exceptions import DocumentError, UnknownAccessorError

# --- Structural predicate (swap in your own via Document(is_valid_head=...)) ---
from .structure import is_valid_head_element

__version__ = "0.1.0"
__all__ = [
    "Document",
    "load_document",
    "normalize_html",
    "DocumentConfig",
    "DocumentError",
    "UnknownAccessorError",
    "is_valid_head_element",
]
