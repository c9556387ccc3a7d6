"""
Tests for noscript isolation and template token protection.
"""

# Add parent to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent))

import random

from lxml import etree
from lxml import html as lxml_html

from amp_dom.shield import (
    TEMPLATE_PLACEHOLDER_PREFIX,
    TEMPLATE_TOKENS,
    isolate_noscript,
    replace_template_tokens,
    restore_noscript,
    restore_template_token_attributes,
    restore_template_tokens,
    template_token_placeholders,
)

HEAD_NOSCRIPT = "<noscript><style>body{opacity:1}</style></noscript>"
BODY_NOSCRIPT = "<noscript><img src=\"pixel.gif\"></noscript>"


def test_isolate_noscript_in_head_only():
    html = f"<!DOCTYPE html><html><head>{HEAD_NOSCRIPT}</head><body>{BODY_NOSCRIPT}</body></html>"
    placeholders = {}

    isolated = isolate_noscript(html, placeholders, random.Random(1))

    assert len(placeholders) == 1
    placeholder, original = next(iter(placeholders.items()))
    assert original == HEAD_NOSCRIPT
    assert placeholder.startswith("<!--noscript:")
    assert placeholder in isolated
    assert HEAD_NOSCRIPT not in isolated.split("<body>")[0]
    assert BODY_NOSCRIPT in isolated
    assert restore_noscript(isolated, placeholders) == html


def test_isolate_noscript_placeholders_are_unique():
    html = "<html><head><noscript>a</noscript><noscript>b</noscript></head><body></body></html>"
    placeholders = {}

    isolated = isolate_noscript(html, placeholders, random.Random(3))

    assert len(placeholders) == 2
    assert sorted(placeholders.values()) == ["<noscript>a</noscript>", "<noscript>b</noscript>"]
    assert restore_noscript(isolated, placeholders) == html


def test_isolate_noscript_is_deterministic_with_seeded_rng():
    html = f"<html><head>{HEAD_NOSCRIPT}</head><body></body></html>"
    first = isolate_noscript(html, {}, random.Random(42))
    second = isolate_noscript(html, {}, random.Random(42))
    assert first == second


def test_isolate_noscript_without_body_does_nothing():
    html = f"<head>{HEAD_NOSCRIPT}</head>"
    placeholders = {}
    assert isolate_noscript(html, placeholders, random.Random(1)) == html
    assert placeholders == {}


def test_template_token_placeholders():
    placeholders = template_token_placeholders(1234)
    assert tuple(placeholders) == TEMPLATE_TOKENS
    assert len(set(placeholders.values())) == len(TEMPLATE_TOKENS)
    assert all(value.startswith(TEMPLATE_PLACEHOLDER_PREFIX) for value in placeholders.values())
    assert template_token_placeholders(1234) == placeholders
    assert template_token_placeholders(4321) != placeholders


def _template_with_link(href):
    root = lxml_html.Element("body")
    template = etree.SubElement(root, "template", type="amp-mustache")
    link = etree.SubElement(template, "a", href=href)
    outside = etree.SubElement(root, "a", href=href)
    return template, link, outside


def test_replace_and_restore_template_tokens_in_attributes():
    placeholders = template_token_placeholders(7)
    template, link, outside = _template_with_link("/item/{{id}}")

    edits = replace_template_tokens([template], placeholders)

    assert len(edits) == 1
    assert link.get("href") == "/item/" + placeholders["{{"] + "id" + placeholders["}}"]
    assert outside.get("href") == "/item/{{id}}"

    restore_template_token_attributes(edits)
    assert link.get("href") == "/item/{{id}}"


def test_triple_mustache_is_replaced_as_a_whole():
    placeholders = template_token_placeholders(7)
    template, link, _ = _template_with_link("{{{raw}}}")

    replace_template_tokens([template], placeholders)

    assert link.get("href") == placeholders["{{{"] + "raw" + placeholders["}}}"]


def test_attributes_without_tokens_are_not_edited():
    template, _, _ = _template_with_link("/static")
    assert replace_template_tokens([template], template_token_placeholders(7)) == []


def test_restore_template_tokens_in_serialized_html():
    placeholders = template_token_placeholders(9)
    html = '<a href="' + placeholders["{{#"] + "section" + placeholders["}}"] + '">'
    assert restore_template_tokens(html, placeholders) == '<a href="{{#section}}">'
