"""
Protection of content the parser or its serializer would mangle.

Two independent, reversible protections:

Noscript isolation
    libxml2 < 2.8 closes <head> early when it meets a <noscript> there and
    drags the rest of the head into the body. Before parsing, every noscript
    element ahead of <body> is swapped for a unique comment placeholder; after
    serializing, the placeholders are swapped back.

Template token protection
    libxml2 URI-escapes src/href/action values when serializing, which turns
    amp-mustache tokens like {{value}} into %7B%7Bvalue%7D%7D and breaks the
    template. Inside <template> elements the tokens are replaced by salted
    placeholders for the duration of the serialization.

The placeholder mappings are owned by the caller and threaded through both
halves of each pair.
"""

import hashlib
import random
import re
from typing import Iterable

from lxml import etree

from .exceptions import RewriteError
from .logger import get_module_logger
from .patterns import compiled, substitute
from .schemas import AttributeEdit

logger = get_module_logger("shield")

TAG_TEMPLATE = "template"

PRE_BODY_PATTERN = r"^.+?(?=<body)"
NOSCRIPT_PATTERN = r"<noscript[^>]*>.*?</noscript>"
NOSCRIPT_PLACEHOLDER = "<!--noscript:{}-->"

# Attributes libxml2 URI-escapes on output.
URL_ENCODED_ATTRIBUTES_QUERY = ".//*/@src|.//*/@href|.//*/@action"

# Order matters: longer tokens must be replaced before the shorter ones they contain.
TEMPLATE_TOKENS = (
    "{{{",
    "}}}",
    "{{#",
    "{{^",
    "{{/",
    "{{",
    "}}",
)

TEMPLATE_PLACEHOLDER_PREFIX = "_amp_mustache_"

# The libxml2 release that stopped misplacing <noscript> in <head>.
NOSCRIPT_SAFE_LIBXML_VERSION = (2, 8, 0)


def noscript_isolation_required() -> bool:
    """Tell whether the running libxml2 needs the noscript workaround."""
    return etree.LIBXML_VERSION < NOSCRIPT_SAFE_LIBXML_VERSION


def _unique_placeholder(rng: random.Random, taken: Iterable[str], content: str) -> str:
    taken = set(taken)
    while True:
        placeholder = NOSCRIPT_PLACEHOLDER.format(rng.randint(0, 2 ** 31 - 1))
        if placeholder not in taken and placeholder not in content:
            return placeholder


def isolate_noscript(html: str, placeholders: dict[str, str], rng: random.Random) -> str:
    """
    Replace noscript elements ahead of <body> with placeholder comments.

    Only the text before <body is touched: noscript elements in the body
    must stay visible to whoever processes the tree.

    Args:
        html: Normalized HTML text
        placeholders: Mapping filled with placeholder → original markup
        rng: Random source for the placeholder numbers

    Returns:
        HTML with head noscripts isolated, or the input if rewriting failed
    """
    found: dict[str, str] = {}

    def replace_noscript(match: re.Match) -> str:
        placeholder = _unique_placeholder(rng, list(placeholders) + list(found), html)
        found[placeholder] = match.group(0)
        return placeholder

    def isolate_head(match: re.Match) -> str:
        if "</noscript" not in match.group(0).lower():
            return match.group(0)
        return substitute(
            "noscript",
            compiled(NOSCRIPT_PATTERN, re.IGNORECASE | re.DOTALL),
            replace_noscript,
            match.group(0),
        )

    try:
        isolated = substitute(
            "noscript-head",
            compiled(PRE_BODY_PATTERN, re.IGNORECASE | re.DOTALL),
            isolate_head,
            html,
            count=1,
        )
    except RewriteError as e:
        logger.warning(f"{e.message}; noscript elements left in place")
        return html

    placeholders.update(found)
    if found:
        logger.debug(f"Isolated {len(found)} noscript elements ahead of <body>")
    return isolated


def restore_noscript(html: str, placeholders: dict[str, str]) -> str:
    """Put the original noscript markup back in place of its placeholders."""
    for placeholder, original in placeholders.items():
        html = html.replace(placeholder, original)
    return html


def template_token_placeholders(salt: int) -> dict[str, str]:
    """
    Build the token → placeholder mapping for one document.

    Placeholders are hex digests, so the serializer leaves them alone and
    they cannot be mistaken for real markup.
    """
    return {
        token: TEMPLATE_PLACEHOLDER_PREFIX + hashlib.md5(f"{salt}{token}".encode("utf-8")).hexdigest()
        for token in TEMPLATE_TOKENS
    }


def replace_template_tokens(templates: Iterable, placeholders: dict[str, str]) -> list[AttributeEdit]:
    """
    Swap template tokens in URL attributes for placeholders.

    Args:
        templates: <template> elements of the document
        placeholders: Mapping from template_token_placeholders()

    Returns:
        The edits made, for restore_template_token_attributes()
    """
    edits = []
    for template in templates:
        for attribute in template.xpath(URL_ENCODED_ATTRIBUTES_QUERY):
            original = str(attribute)
            value = original
            for token, placeholder in placeholders.items():
                value = value.replace(token, placeholder)
            if value == original:
                continue

            element = attribute.getparent()
            element.set(attribute.attrname, value)
            edits.append(AttributeEdit(element=element, name=attribute.attrname, original=original))

    return edits


def restore_template_token_attributes(edits: list[AttributeEdit]) -> None:
    """Give the edited attributes their original values back."""
    for edit in reversed(edits):
        edit.element.set(edit.name, edit.original)


def restore_template_tokens(html: str, placeholders: dict[str, str]) -> str:
    """Turn placeholders in serialized HTML back into template tokens."""
    for token, placeholder in placeholders.items():
        html = html.replace(placeholder, token)
    return html
