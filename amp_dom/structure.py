"""
Structure normalization for AMP documents.

AMP requires the general document shape

    <!DOCTYPE html>
    <html>
      <head>...</head>
      <body>...</body>
    </html>

normalize_structure() works on the raw text before parsing and inserts whatever
landmarks are missing. normalize_tree() repairs an already parsed (or manually
assembled) tree: it guarantees head and body exist and moves misplaced nodes
between them.
"""

import re
from typing import Callable, Optional

from lxml import etree
from lxml import html as lxml_html

from .logger import get_module_logger
from .patterns import compiled
from .schemas import StructureParts

logger = get_module_logger("structure")

DOCTYPE = "<!DOCTYPE html>"

TAG_HTML = "html"
TAG_HEAD = "head"
TAG_BODY = "body"

DOCTYPE_PATTERN = r"<!doctype(?:\s[^>]*)?>"
HTML_START_PATTERN = r"<html(?:\s[^>]*)?>"
HEAD_PATTERN = r"<head(?:\s[^>]*)?>.*?</head\s*>"
BODY_PATTERN = r"<body(?:\s[^>]*)?>.*?</body\s*>"
HTML_END_PATTERN = r"</html\s*>"

# Elements allowed to stay in <head>.
HEAD_ELEMENTS = frozenset([
    "base",
    "link",
    "meta",
    "noscript",
    "script",
    "style",
    "template",
    "title",
])

# Elements that only make sense in <head>; found directly in <body> they move up.
HEAD_ONLY_ELEMENTS = frozenset(["base", "style", "title"])

HeadPredicate = Callable[[object], bool]


def _search(pattern: str, text: str, pos: int) -> Optional[re.Match]:
    return compiled(pattern, re.IGNORECASE | re.DOTALL).search(text, pos)


def scan_structure(content: str) -> Optional[StructureParts]:
    """
    Locate the structural landmarks of an HTML string.

    The scan runs front to back: doctype, then the html start tag (with the
    text before it), then a complete head section, then a complete body
    section, then the last html end tag and whatever trails it. Each step
    only looks after the previous landmark it found.

    Returns:
        StructureParts, or None if the pattern engine gave up
    """
    try:
        parts = StructureParts()
        pos = 0

        match = _search(DOCTYPE_PATTERN, content, pos)
        if match:
            parts.doctype = match.group(0)
            pos = match.end()

        match = _search(HTML_START_PATTERN, content, pos)
        if match:
            parts.pre_html = content[pos:match.start()]
            parts.html_start = match.group(0)
            pos = match.end()

        # Without an end tag every unclosed start tag would be rescanned to the end.
        match = _search(HEAD_PATTERN, content, pos) if _search(r"</head", content, pos) else None
        if match:
            parts.head = match.group(0)
            pos = match.end()

        match = _search(BODY_PATTERN, content, pos) if _search(r"</body", content, pos) else None
        if match:
            parts.body = match.group(0)
            pos = match.end()

        last_end = None
        for last_end in compiled(HTML_END_PATTERN, re.IGNORECASE).finditer(content, pos):
            pass
        if last_end:
            parts.html_end = last_end.group(0)
            parts.post_html = content[last_end.end():]
        else:
            parts.post_html = content[pos:]

        return parts
    except (re.error, RecursionError) as e:
        logger.warning(f"Structure scan failed, leaving markup to the parser: {e}")
        return None


def _wrap_between(content: str, start: str, end: str, prefix: str, suffix: str) -> str:
    """
    Wrap what lies between the first `start` and the last `end` in prefix/suffix.

    An empty `end` means "up to the end of the string".
    """
    begin = 0
    if start:
        match = compiled(re.escape(start), re.IGNORECASE).search(content)
        begin = match.end() if match else 0

    stop = len(content)
    if end:
        for match in compiled(re.escape(end), re.IGNORECASE).finditer(content, begin):
            stop = match.start()

    return content[:begin] + prefix + content[begin:stop] + suffix + content[stop:]


def normalize_structure(content: str) -> str:
    """
    Normalize the document structure of raw HTML text.

    Decision table on the head/body sections found:
      - neither: wrap the content of the root in an empty head plus a body
      - head only: wrap everything after head (up to </html>) in a body
      - body only: put an empty head in front of the body
      - both: nothing to add

    A missing root gets synthesized around everything; the original doctype
    is dropped and a single canonical one is prefixed.

    Args:
        content: Raw HTML text

    Returns:
        Text with doctype, html, head and body in place
    """
    parts = scan_structure(content)

    # Unable to scan, so skip normalization and hope for the best.
    if parts is None:
        return content

    if parts.doctype:
        content = content.partition(parts.doctype)[2]

    if not parts.head and not parts.body:
        if parts.html_start:
            content = _wrap_between(content, parts.html_start, parts.html_end,
                                    "<head></head><body>", "</body>")
        else:
            content = "<head></head><body>" + content.lstrip() + "</body>"
    elif parts.head and not parts.body:
        content = _wrap_between(content, parts.head, parts.html_end, "<body>", "</body>")
    elif parts.body and not parts.head:
        content = content.replace(parts.body, "<head></head>" + parts.body, 1)

    if not parts.html_start:
        content = f"<{TAG_HTML}>{content}</{TAG_HTML}>"

    return DOCTYPE + content


def is_valid_head_element(node) -> bool:
    """
    Tell whether a node may stay in <head>.

    Comments and processing instructions are always fine; elements must be
    one of the metadata elements in HEAD_ELEMENTS.
    """
    if node.tag is etree.Comment or node.tag is etree.ProcessingInstruction:
        return True
    if not isinstance(node.tag, str):
        return False
    return node.tag.lower() in HEAD_ELEMENTS


def _has_text(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def _prepend_to_body(body, node) -> None:
    """Insert node as the first thing in body, ahead of body's leading text."""
    if body.text:
        node.tail = (node.tail or "") + body.text
        body.text = None
    body.insert(0, node)


def _prepend_text_to_body(body, text: str) -> None:
    body.text = text + (body.text or "")


def detach(node) -> None:
    """Remove node from its parent, leaving its tail text where it was."""
    parent = node.getparent()
    tail = node.tail
    node.tail = None
    if tail:
        previous = node.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(node)


def _find_child(root, tag: str):
    found = root.find(tag)
    if found is None:
        found = root.find(f".//{tag}")
    return found


def normalize_tree(root, is_valid_head: Optional[HeadPredicate] = None) -> tuple:
    """
    Normalize the structure of an already built tree.

    Makes sure head and body exist under the root, then walks the head from
    its last child to its first and moves everything that does not belong
    there to the front of body. Walking backwards keeps the moved nodes in
    their original order. Finally, title/base/style elements sitting directly
    in body are moved to the end of head.

    Args:
        root: The <html> element
        is_valid_head: Predicate deciding what may stay in head

    Returns:
        Tuple of (head, body) elements
    """
    is_valid_head = is_valid_head or is_valid_head_element

    head = _find_child(root, TAG_HEAD)
    if head is None:
        head = lxml_html.Element(TAG_HEAD)
        root.insert(0, head)
        logger.debug("Inserted missing <head>")

    body = _find_child(root, TAG_BODY)
    if body is None:
        body = lxml_html.Element(TAG_BODY)
        root.append(body)
        logger.debug("Inserted missing <body>")

    moved = 0
    for node in reversed(list(head)):
        if not is_valid_head(node):
            # remove() keeps the tail on the node: text after misplaced content moves too.
            head.remove(node)
            _prepend_to_body(body, node)
            moved += 1
        elif _has_text(node.tail):
            _prepend_text_to_body(body, node.tail)
            node.tail = None

    if _has_text(head.text):
        _prepend_text_to_body(body, head.text)
        head.text = None

    for node in list(body):
        if isinstance(node.tag, str) and node.tag.lower() in HEAD_ONLY_ELEMENTS:
            detach(node)
            head.append(node)
            moved += 1

    if moved:
        logger.debug(f"Relocated {moved} nodes between head and body")

    return head, body
