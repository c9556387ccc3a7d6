"""
Encoding detection and conversion for documents headed to the parser.

AMP requires UTF-8. Source markup may declare another charset in-band
(http-equiv or HTML5 <meta charset>), or declare nothing at all. This module:
- finds the declared charset in the raw text and strips declarations that
  would contradict the UTF-8 bytes the parser is about to receive,
- guesses the encoding from a fixed candidate list when nothing is declared,
- converts the bytes to UTF-8, falling back to the unconverted bytes,
- adds and removes the transitional http-equiv tag that pins libxml2 to UTF-8.

None of these functions raise for bad input; each falls back and logs.
"""

import codecs
import re
from typing import Optional

from bs4 import UnicodeDammit
from lxml import html as lxml_html

from .exceptions import EncodingConversionError, RewriteError
from .logger import get_module_logger
from .patterns import compiled, substitute

logger = get_module_logger("encoding")

# AMP requires the HTML markup to be encoded in UTF-8.
AMP_ENCODING = "utf-8"

# Sentinel for "not declared, not guessed yet".
UNKNOWN_ENCODING = "auto"

# Candidates tried in order when nothing was declared. A wild guess that may
# need tuning; without an explicit charset detection is never fully reliable.
ENCODING_DETECTION_ORDER = (
    "UTF-8",
    "EUC-JP",
    "eucJP-win",
    "JIS",
    "ISO-2022-JP",
    "ISO-8859-15",
    "ISO-8859-1",
    "ASCII",
)

# HTML charset labels that the codec registry does not know under that name.
ENCODING_MAP = {
    "latin-1": "ISO-8859-1",
    "eucjp-win": "EUC-JP",
    "jis": "ISO-2022-JP",
    "x-sjis": "Shift_JIS",
}

HTTP_EQUIV_VALUE = "content-type"
HTTP_EQUIV_CONTENT_VALUE = "text/html; charset=utf-8"
TRANSITIONAL_CHARSET_TAG = f'<meta http-equiv="{HTTP_EQUIV_VALUE}" content="{HTTP_EQUIV_CONTENT_VALUE}">'

HEAD_OPENING_TAG_PATTERN = r"<head(?:\s[^>]*)?>"
TRANSITIONAL_CHARSET_PATTERN = (
    r"<meta http-equiv=(['\"])content-type\1 content=(['\"])text/html; charset=utf-8\2>"
)

# Raw-text tag lookup and attribute extraction.
FIND_TAG_WITHOUT_ATTRIBUTE_PATTERN = r"<{element}[^>]*?>[^<]*(?:</{element}>)?"
FIND_TAG_WITH_ATTRIBUTE_PATTERN = r"<{element}\s[^>]*?{attribute}=[^>]*?>[^<]*(?:</{element}>)?"
EXTRACT_ATTRIBUTE_VALUE_PATTERN = r"{attribute}=(?:(['\"])(?P<full>.*?)\1|(?P<partial>[^ '\";>]+))"


def _tag_pattern(element: str, attribute: Optional[str]) -> re.Pattern:
    if attribute:
        source = FIND_TAG_WITH_ATTRIBUTE_PATTERN.format(
            element=re.escape(element), attribute=re.escape(attribute)
        )
    else:
        source = FIND_TAG_WITHOUT_ATTRIBUTE_PATTERN.format(element=re.escape(element))
    return compiled(source, re.IGNORECASE)


def find_tag(content: str, element: str, attribute: Optional[str] = None) -> Optional[str]:
    """
    Find the first tag of an element, optionally carrying a given attribute.

    The match includes any text up to the next tag and an explicit end tag,
    so removing it leaves no stray </meta> behind.

    Returns:
        The literal tag text, or None if not found
    """
    match = _tag_pattern(element, attribute).search(content)
    return match.group(0) if match else None


def extract_value(tag: str, attribute: str) -> Optional[str]:
    """
    Extract an attribute (or content parameter) value from a tag.

    Works for charset="x", charset='x', charset=x and the charset=x parameter
    inside an http-equiv content attribute.
    """
    pattern = compiled(
        EXTRACT_ATTRIBUTE_VALUE_PATTERN.format(attribute=re.escape(attribute)),
        re.IGNORECASE,
    )
    match = pattern.search(tag)
    if not match:
        return None
    return match.group("full") or match.group("partial")


def _find_charset_tag(content: str, attribute: str) -> Optional[str]:
    """
    First meta tag with `attribute` that actually declares a charset.

    "charset=" also occurs inside http-equiv content values; those tags are
    left to the http-equiv lookup.
    """
    for match in _tag_pattern("meta", attribute).finditer(content):
        tag = match.group(0)
        if attribute != "http-equiv" and _tag_pattern("meta", "http-equiv").match(tag):
            continue
        if extract_value(tag, "charset"):
            return tag
    return None


def is_target_encoding(encoding: Optional[str]) -> bool:
    """Tell whether an encoding name designates UTF-8."""
    if not encoding:
        return False
    if encoding.lower() == AMP_ENCODING:
        return True
    try:
        return codecs.lookup(encoding).name == AMP_ENCODING
    except LookupError:
        return False


def detect_and_strip_encoding(content: str, default: str = UNKNOWN_ENCODING) -> tuple[str, str]:
    """
    Detect the declared encoding of a document and strip conflicting declarations.

    The http-equiv meta tag is checked first; an HTML5 charset meta tag
    overrides it. When the result is not UTF-8 the tags found are removed,
    so the parser never sees a charset contradicting its input bytes.

    Args:
        content: Raw HTML text
        default: Encoding to report when nothing is declared

    Returns:
        Tuple of (encoding, content with conflicting tags removed)
    """
    encoding = None

    http_equiv_tag = _find_charset_tag(content, "http-equiv")
    if http_equiv_tag:
        encoding = extract_value(http_equiv_tag, "charset")

    # The HTML5 charset tag overrides the HTML4 one.
    charset_tag = _find_charset_tag(content, "charset")
    if charset_tag:
        encoding = extract_value(charset_tag, "charset")

    if not encoding:
        return default, content

    if not is_target_encoding(encoding):
        for tag in (http_equiv_tag, charset_tag):
            if tag:
                content = content.replace(tag, "")
        logger.debug(f"Stripped in-band charset declaration for {encoding}")

    return encoding, content


def sanitize_encoding(encoding: str) -> str:
    """
    Map an HTML charset label onto a name the codec registry knows.

    Returns:
        The usable encoding name, or UNKNOWN_ENCODING if there is none
    """
    encoding = ENCODING_MAP.get(encoding.lower(), encoding)
    try:
        codecs.lookup(encoding)
    except LookupError:
        logger.warning(f"Unknown encoding '{encoding}', falling back to '{UNKNOWN_ENCODING}'")
        return UNKNOWN_ENCODING
    return encoding


def _detection_candidates() -> list[str]:
    candidates = []
    for name in ENCODING_DETECTION_ORDER:
        name = ENCODING_MAP.get(name.lower(), name)
        try:
            codecs.lookup(name)
        except LookupError:
            continue
        if name.lower() not in (c.lower() for c in candidates):
            candidates.append(name)
    return candidates


def detect_encoding(data: bytes) -> Optional[str]:
    """
    Guess the encoding of undeclared bytes.

    Candidates from ENCODING_DETECTION_ORDER are tried strictly, in order;
    the first one that decodes the whole input wins.

    Returns:
        The winning candidate, or None if none of them fits
    """
    candidates = _detection_candidates()
    dammit = UnicodeDammit(data, known_definite_encodings=candidates, is_html=True)
    if dammit.unicode_markup is None or not dammit.original_encoding:
        return None

    detected = dammit.original_encoding.lower()
    for candidate in candidates:
        if candidate.lower() == detected:
            return candidate

    # UnicodeDammit moved on to its own guesses; those are not ours to trust.
    return None


def _convert(data: bytes, encoding: str) -> bytes:
    try:
        return data.decode(encoding).encode(AMP_ENCODING)
    except (UnicodeDecodeError, LookupError) as e:
        raise EncodingConversionError(
            f"Cannot convert from {encoding}: {e}",
            encoding=encoding
        ) from e


def adapt_encoding(data: bytes, encoding: str) -> tuple[bytes, str]:
    """
    Convert document bytes to UTF-8.

    Args:
        data: Raw document bytes
        encoding: Declared encoding, or UNKNOWN_ENCODING

    Returns:
        Tuple of (bytes for the parser, encoding they were converted from)
    """
    # No encoding was provided, so we need to guess.
    if encoding == UNKNOWN_ENCODING:
        encoding = detect_encoding(data) or ""
        logger.debug(f"Detected encoding: {encoding or 'none'}")

    # Guessing the encoding seems to have failed, so we assume UTF-8 instead.
    if not encoding:
        encoding = AMP_ENCODING

    encoding = sanitize_encoding(encoding)
    if encoding == UNKNOWN_ENCODING or is_target_encoding(encoding):
        return data, encoding

    try:
        converted = _convert(data, encoding)
    except EncodingConversionError as e:
        logger.warning(f"{e.message}; parsing unconverted bytes")
        return data, encoding

    logger.debug(f"Converted document from {encoding} to {AMP_ENCODING}")
    return converted, encoding


def add_transitional_charset(content: str) -> str:
    """
    Insert the UTF-8 http-equiv tag right after the first <head> tag.

    libxml2 only reliably treats its input as UTF-8 when told so in-band.
    """
    try:
        return substitute(
            "transitional-charset",
            compiled(HEAD_OPENING_TAG_PATTERN, re.IGNORECASE),
            lambda match: match.group(0) + TRANSITIONAL_CHARSET_TAG,
            content,
            count=1,
        )
    except RewriteError as e:
        logger.warning(e.message)
        return content


def strip_transitional_charset(content: str) -> str:
    """Remove the first serialized transitional charset tag."""
    try:
        return substitute(
            "transitional-charset-strip",
            compiled(TRANSITIONAL_CHARSET_PATTERN, re.IGNORECASE),
            "",
            content,
            count=1,
        )
    except RewriteError as e:
        logger.warning(e.message)
        return content


def create_transitional_charset():
    """Build the transitional charset tag as an element."""
    meta = lxml_html.Element("meta")
    meta.set("http-equiv", HTTP_EQUIV_VALUE)
    meta.set("content", HTTP_EQUIV_CONTENT_VALUE)
    return meta


def is_transitional_charset(node) -> bool:
    """Tell whether a node is the transitional charset tag."""
    return (
        node is not None
        and node.tag == "meta"
        and node.get("http-equiv") == HTTP_EQUIV_VALUE
        and node.get("content") == HTTP_EQUIV_CONTENT_VALUE
    )
