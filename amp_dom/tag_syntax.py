"""
Reversible tag-syntax rewrites applied around the libxml2 HTML parser.

libxml2 cannot cope with two syntaxes AMP documents rely on:
- amp-bind attributes such as [href]="url": the bracketed name is rejected
  as an attribute name and the attribute is dropped.
- Void elements written without end tags: some code paths lose them.

encode() makes both parser-safe before loading; decode() undoes it after
serializing. Both directions degrade to "return the input" if the pattern
engine fails, so the parser still gets a chance at the original markup.
"""

import re

from .exceptions import RewriteError
from .logger import get_module_logger
from .patterns import compiled, substitute

logger = get_module_logger("tag_syntax")

# Reserved attribute prefix that bracketed amp-bind names are rewritten to.
AMP_BIND_DATA_ATTR_PREFIX = "data-amp-bind-"

# Void elements. Not all of them are valid AMP, the list is kept complete so
# nothing unpaired ever reaches the parser.
SELF_CLOSING_TAGS = (
    "area",
    "base",
    "basefont",
    "bgsound",
    "br",
    "col",
    "embed",
    "frame",
    "hr",
    "img",
    "input",
    "keygen",
    "link",
    "meta",
    "param",
    "source",
    "track",
    "wbr",
)

# One attribute: binding-or-plain name, then an optional double-quoted,
# single-quoted or unquoted value. Matched repeatedly with a moving offset.
ATTRIBUTE_PATTERN = (
    r"\s+(?P<name>\[?[a-zA-Z0-9_\-]+\]?)"
    r"(?P<value>=(?:\"[^\"]*+\"|'[^']*+'|[^'\"\s]+))?"
)

# A start tag carrying at least one [binding] attribute.
BIND_TAG_PATTERN = (
    r"<"
    r"(?P<name>[a-zA-Z0-9_\-]+)"
    r"(?P<attrs>\s"
    r"(?:[^>\"'\[\]]+|\"[^\"]*+\"|'[^']*+')*+"   # non-binding attribute tokens
    r"\[[a-zA-Z0-9_\-]+\]"                       # one binding attribute name
    r"(?:[^>\"']+|\"[^\"]*+\"|'[^']*+')*+"       # anything else, bindings included
    r")>"
)

BIND_RESTORE_PATTERN = r"\s" + re.escape(AMP_BIND_DATA_ATTR_PREFIX) + r"([a-zA-Z0-9_\-]+)"

# Self-closing slash at the end of the attribute list, unless it is an
# unquoted attribute value (<a href=/>).
TRAILING_SLASH_PATTERN = r"(?<!=)/$"


def _self_closing_names() -> str:
    return "|".join(SELF_CLOSING_TAGS)


def _self_closing_start_pattern() -> re.Pattern:
    # Quoted values are skipped as a whole so a ">" inside one does not end the tag.
    return compiled(
        r"<(" + _self_closing_names() + r")(?=[\s/>])"
        r"(?:[^>\"']|\"[^\"]*+\"|'[^']*+')*+>"
        r"(?!</\1>)",
        re.IGNORECASE,
    )


def _self_closing_end_pattern() -> re.Pattern:
    return compiled(r"</(" + _self_closing_names() + r")>", re.IGNORECASE)


def _convert_bind_tag(match: re.Match) -> str:
    """Rewrite the binding attributes of one start tag, or leave it as is."""
    attribute_pattern = compiled(ATTRIBUTE_PATTERN)
    old_attrs = compiled(TRAILING_SLASH_PATTERN).sub("", match.group("attrs")).rstrip()

    new_attrs = []
    offset = 0
    while True:
        attr = attribute_pattern.match(old_attrs, offset)
        if not attr:
            break
        offset = attr.end()

        name = attr.group("name")
        if name.startswith("["):
            new_attrs.append(" " + AMP_BIND_DATA_ATTR_PREFIX + name.strip("[]"))
            if attr.group("value") is not None:
                new_attrs.append(attr.group("value"))
        else:
            new_attrs.append(attr.group(0))

    # Parse error: the grammar could not consume the whole attribute list.
    if offset != len(old_attrs):
        return match.group(0)

    return "<" + match.group("name") + "".join(new_attrs) + ">"


def convert_bind_attributes(html: str) -> str:
    """
    Replace amp-bind attribute names with data-amp-bind-* names.

    Example: <a [href]="url"> becomes <a data-amp-bind-href="url">.

    Args:
        html: HTML that may contain bracketed binding attributes

    Returns:
        HTML the parser can read without dropping the bindings
    """
    try:
        return substitute("bind-attributes", compiled(BIND_TAG_PATTERN, re.DOTALL),
                          _convert_bind_tag, html)
    except RewriteError as e:
        logger.warning(f"{e.message}; loading bind attributes unconverted")
        return html


def restore_bind_attributes(html: str) -> str:
    """Convert data-amp-bind-* attributes back to their bracketed syntax."""
    try:
        return substitute("bind-restore", compiled(BIND_RESTORE_PATTERN), r" [\1]", html)
    except RewriteError as e:
        logger.warning(e.message)
        return html


def replace_self_closing_tags(html: str) -> str:
    """
    Give every void element an explicit end tag.

    Tags already followed by their own end tag are left alone.
    """
    try:
        return substitute("self-closing", _self_closing_start_pattern(), r"\g<0></\1>", html)
    except RewriteError as e:
        logger.warning(e.message)
        return html


def restore_self_closing_tags(html: str) -> str:
    """Strip the end tags of void elements again."""
    try:
        return substitute("self-closing-restore", _self_closing_end_pattern(), "", html)
    except RewriteError as e:
        logger.warning(e.message)
        return html


def encode(html: str) -> str:
    """Apply both parser-safe rewrites. Reciprocal of decode()."""
    return replace_self_closing_tags(convert_bind_attributes(html))


def decode(html: str) -> str:
    """Undo encode() on serialized HTML."""
    return restore_bind_attributes(restore_self_closing_tags(html))
