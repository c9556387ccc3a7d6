"""
Tests for charset detection, stripping and UTF-8 conversion.
"""

# Add parent to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent))

import time

from lxml import html as lxml_html

from amp_dom.encoding import (
    TRANSITIONAL_CHARSET_TAG,
    UNKNOWN_ENCODING,
    adapt_encoding,
    add_transitional_charset,
    create_transitional_charset,
    detect_and_strip_encoding,
    detect_encoding,
    extract_value,
    find_tag,
    is_target_encoding,
    is_transitional_charset,
    sanitize_encoding,
    strip_transitional_charset,
)


# --- Raw-text lookup ---

def test_find_tag_with_attribute():
    html = '<head><title>T</title><meta charset="ISO-8859-1"><link rel="x"></head>'
    assert find_tag(html, "meta", "charset") == '<meta charset="ISO-8859-1">'


def test_find_tag_includes_explicit_end_tag():
    html = '<head><meta charset="ISO-8859-1"></meta><title>T</title></head>'
    assert find_tag(html, "meta", "charset") == '<meta charset="ISO-8859-1"></meta>'


def test_find_tag_missing():
    assert find_tag("<p>x</p>", "meta", "charset") is None


def test_extract_value_quoted_and_unquoted():
    assert extract_value('<meta charset="ISO-8859-1">', "charset") == "ISO-8859-1"
    assert extract_value("<meta charset='euc-jp'>", "charset") == "euc-jp"
    assert extract_value("<meta charset=utf-8>", "charset") == "utf-8"


def test_extract_value_from_content_parameter():
    tag = '<meta http-equiv="Content-Type" content="text/html; charset=Shift_JIS">'
    assert extract_value(tag, "charset") == "Shift_JIS"


# --- Detection and stripping ---

def test_detect_charset_tag_and_strip_it():
    html = '<head><meta charset="ISO-8859-1"><title>T</title></head>'
    encoding, stripped = detect_and_strip_encoding(html)
    assert encoding == "ISO-8859-1"
    assert stripped == "<head><title>T</title></head>"


def test_detect_http_equiv_tag():
    html = '<head><meta http-equiv="Content-Type" content="text/html; charset=windows-1252"></head>'
    encoding, stripped = detect_and_strip_encoding(html)
    assert encoding == "windows-1252"
    assert stripped == "<head></head>"


def test_charset_tag_overrides_http_equiv():
    html = (
        '<head><meta http-equiv="Content-Type" content="text/html; charset=windows-1252">'
        '<meta charset="ISO-8859-1"></head>'
    )
    encoding, stripped = detect_and_strip_encoding(html)
    assert encoding == "ISO-8859-1"
    assert "meta" not in stripped


def test_utf8_declaration_is_kept():
    html = '<head><meta charset="UTF-8"></head>'
    assert detect_and_strip_encoding(html) == ("UTF-8", html)


def test_http_equiv_without_charset_is_ignored():
    html = '<head><meta http-equiv="X-UA-Compatible" content="IE=edge"><meta charset="Shift_JIS"></head>'
    encoding, stripped = detect_and_strip_encoding(html)
    assert encoding == "Shift_JIS"
    assert stripped == '<head><meta http-equiv="X-UA-Compatible" content="IE=edge"></head>'


def test_nothing_declared_reports_default():
    assert detect_and_strip_encoding("<p>x</p>") == (UNKNOWN_ENCODING, "<p>x</p>")
    assert detect_and_strip_encoding("<p>x</p>", default="cp1252") == ("cp1252", "<p>x</p>")


# --- Names ---

def test_is_target_encoding():
    assert is_target_encoding("utf-8")
    assert is_target_encoding("UTF8")
    assert not is_target_encoding("ISO-8859-1")
    assert not is_target_encoding(UNKNOWN_ENCODING)
    assert not is_target_encoding(None)


def test_sanitize_encoding():
    assert sanitize_encoding("latin-1") == "ISO-8859-1"
    assert sanitize_encoding("x-sjis") == "Shift_JIS"
    assert sanitize_encoding("windows-1252") == "windows-1252"
    assert sanitize_encoding("no-such-charset") == UNKNOWN_ENCODING


# --- Detection and conversion ---

def test_detect_encoding_utf8():
    assert detect_encoding("<p>Café</p>".encode("utf-8")) == "UTF-8"


def test_detect_encoding_latin():
    """Latin bytes are not valid UTF-8 or EUC-JP; an ISO-8859 candidate wins."""
    assert detect_encoding("<p>Café</p>".encode("latin-1")) in ("ISO-8859-15", "ISO-8859-1")


def test_adapt_encoding_converts_to_utf8():
    data, encoding = adapt_encoding("<p>Café</p>".encode("latin-1"), "latin-1")
    assert encoding == "ISO-8859-1"
    assert data == "<p>Café</p>".encode("utf-8")


def test_adapt_encoding_detects_when_unknown():
    data, encoding = adapt_encoding("<p>Café</p>".encode("latin-1"), UNKNOWN_ENCODING)
    assert not is_target_encoding(encoding)
    assert data.decode("utf-8") == "<p>Café</p>"


def test_adapt_encoding_unknown_name_skips_conversion():
    source = "<p>Café</p>".encode("latin-1")
    assert adapt_encoding(source, "no-such-charset") == (source, UNKNOWN_ENCODING)


def test_adapt_encoding_failed_conversion_keeps_bytes():
    source = b"<p>\xff\xfe</p>"
    assert adapt_encoding(source, "ascii") == (source, "ascii")


# --- Transitional charset ---

def test_add_transitional_charset_after_first_head_tag():
    html = '<html><head lang="en"><title>T</title></head><body><header></header></body></html>'
    assert add_transitional_charset(html) == (
        '<html><head lang="en">' + TRANSITIONAL_CHARSET_TAG + "<title>T</title></head>"
        "<body><header></header></body></html>"
    )


def test_strip_transitional_charset_removes_first_occurrence_only():
    html = "<head>" + TRANSITIONAL_CHARSET_TAG + "</head><body>" + TRANSITIONAL_CHARSET_TAG + "</body>"
    assert strip_transitional_charset(html) == "<head></head><body>" + TRANSITIONAL_CHARSET_TAG + "</body>"


def test_transitional_charset_element_serializes_to_tag():
    meta = create_transitional_charset()
    assert is_transitional_charset(meta)
    assert strip_transitional_charset(lxml_html.tostring(meta, encoding="unicode")) == ""


def test_is_transitional_charset_rejects_other_meta():
    assert not is_transitional_charset(lxml_html.Element("meta", charset="utf-8"))
    assert not is_transitional_charset(None)


def test_find_tag_in_huge_meta_tag_stays_fast():
    html = "<head><meta " + " " * 30000 + 'charset="ISO-8859-1"></head>'

    started = time.perf_counter()
    encoding, stripped = detect_and_strip_encoding(html)
    elapsed = time.perf_counter() - started

    assert encoding == "ISO-8859-1"
    assert stripped == "<head></head>"
    assert elapsed < 1.0
