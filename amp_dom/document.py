"""
The AMP document facade.

Document wraps an lxml (libxml2) HTML tree and owns its load/save cycle:

load():  tag-syntax encode → structure normalization → noscript isolation
         → charset detection/stripping → UTF-8 conversion → transitional
         charset → libxml2 parse → transitional charset removal
save():  template token protection → transitional charset → libxml2 serialize
         → template token / noscript restoration → tag-syntax decode

Design principle: malformed input never raises. load() reports parser
failure through its return value; everything else degrades to a fallback.
"""

import random
from contextlib import contextmanager
from typing import Callable, Optional, Union

from lxml import etree
from lxml import html as lxml_html

from . import tag_syntax
from .encoding import (
    AMP_ENCODING,
    UNKNOWN_ENCODING,
    adapt_encoding,
    add_transitional_charset,
    create_transitional_charset,
    detect_and_strip_encoding,
    is_target_encoding,
    is_transitional_charset,
    strip_transitional_charset,
)
from .exceptions import UnknownAccessorError
from .logger import get_module_logger
from .schemas import AttributeEdit, DocumentConfig
from .shield import (
    TAG_TEMPLATE,
    isolate_noscript,
    noscript_isolation_required,
    replace_template_tokens,
    restore_noscript,
    restore_template_token_attributes,
    restore_template_tokens,
    template_token_placeholders,
)
from .structure import (
    TAG_BODY,
    TAG_HEAD,
    TAG_HTML,
    detach,
    is_valid_head_element,
    normalize_structure,
    normalize_tree,
)

logger = get_module_logger("document")

ACCESSOR_XPATH = "xpath"

# Closed set of lazily resolved properties; anything else is a caller bug.
ACCESSORS = (ACCESSOR_XPATH, TAG_HEAD, TAG_BODY)

# Bytes are read as latin-1 for the text rewrites: one byte per code point,
# so no pattern can split a multi-byte sequence of the real encoding.
BYTE_TRANSPARENT_ENCODING = "latin-1"

Source = Union[str, bytes, bytearray]


@contextmanager
def _captured_parser_errors(parser):
    """
    Collect libxml2 diagnostics for the duration of a parse, then discard them.

    The parser runs in recover mode, so errors land in its own error log
    instead of being raised; the global log is cleared afterwards.
    """
    try:
        yield
    finally:
        errors = parser.error_log
        if len(errors):
            logger.debug(f"libxml2 reported {len(errors)} recoverable parse errors")
            for entry in list(errors)[:5]:
                logger.debug(f"  line {entry.line}: {entry.message}")
        etree.clear_error_log()


class Document:
    """
    An HTML document prepared for AMP processing.

    After load() the tree always has a doctype, one <html> root, and a
    <head> and <body> under it, and its text is UTF-8 regardless of the
    source encoding.
    """

    def __init__(
        self,
        version: str = "",
        encoding: Optional[str] = None,
        *,
        config: Optional[DocumentConfig] = None,
        rng: Optional[random.Random] = None,
        is_valid_head: Optional[Callable[[object], bool]] = None
    ):
        """
        Create a document.

        Args:
            version: XML-declaration style version (defaults to "1.0")
            encoding: Encoding hint, used when the markup declares none
            config: Document options; version/encoding arguments override it
            rng: Random source for placeholder salts (inject for determinism)
            is_valid_head: Predicate deciding which nodes may stay in <head>
        """
        config = config or DocumentConfig()
        overrides = {}
        if version:
            overrides["version"] = version
        if encoding:
            overrides["encoding"] = encoding
        self.config = config.model_copy(update=overrides) if overrides else config

        # Informational only: HTML serialization writes no XML declaration.
        self.version = self.config.version or "1.0"
        self.original_encoding = self.config.encoding or UNKNOWN_ENCODING

        self._rng = rng or random.Random()
        self._is_valid_head = is_valid_head or is_valid_head_element
        self._tree = None
        self._reset()

    def _reset(self) -> None:
        """Forget everything tied to the previous load."""
        self._handles: dict = {}
        self._xpath = None
        self.noscript_placeholders: dict[str, str] = {}
        self.template_tokens_replaced = False
        self._template_placeholders = template_token_placeholders(self._rng.getrandbits(32))

    # --- Tree handles ---

    @property
    def tree(self):
        """The lxml ElementTree; an empty <html> root until something is loaded."""
        if self._tree is None:
            self._tree = lxml_html.Element(TAG_HTML).getroottree()
        return self._tree

    @property
    def root(self):
        return self.tree.getroot()

    @property
    def head(self):
        return self.get(TAG_HEAD)

    @property
    def body(self):
        return self.get(TAG_BODY)

    @property
    def xpath(self):
        return self.get(ACCESSOR_XPATH)

    def get(self, name: str):
        """
        Resolve a lazily created, cached property.

        Args:
            name: One of ACCESSORS

        Raises:
            UnknownAccessorError: for any other name
        """
        if name == ACCESSOR_XPATH:
            if self._xpath is None:
                self._xpath = etree.XPathDocumentEvaluator(self.tree)
            return self._xpath

        if name in (TAG_HEAD, TAG_BODY):
            cached = self._handles.get(name)
            if cached is not None and self._is_attached(cached):
                return cached

            element = self._find(name)
            if element is None:
                # Document was assembled manually and bypassed normalization.
                self.normalize_tree()
                element = self._find(name)
            self._handles[name] = element
            return element

        error = UnknownAccessorError(name, owner=type(self).__name__)
        logger.error(error.message)
        raise error

    def _find(self, tag: str):
        found = self.root.find(tag)
        if found is None:
            found = self.root.find(f".//{tag}")
        return found

    def _is_attached(self, element) -> bool:
        # Removed elements keep their document, so walk the ancestors instead.
        root = self.root
        return element is root or any(ancestor is root for ancestor in element.iterancestors())

    def normalize_tree(self) -> None:
        """Ensure <head> and <body> exist and hold the right nodes."""
        head, body = normalize_tree(self.root, self._is_valid_head)
        self._handles[TAG_HEAD] = head
        self._handles[TAG_BODY] = body

    def create_element(self, tag: str, attributes: Optional[dict] = None):
        """Create a detached element for this document."""
        element = lxml_html.Element(tag)
        for name, value in (attributes or {}).items():
            element.set(name, str(value))
        return element

    def query(self, expression: str, context=None, **variables):
        """
        Evaluate an XPath expression, optionally relative to a context node.

        Returns:
            Whatever lxml's XPath evaluation yields (usually a list)
        """
        if context is None:
            return self.xpath(expression, **variables)
        return context.xpath(expression, **variables)

    # --- Load ---

    def _isolate_noscript(self) -> bool:
        if self.config.isolate_noscript is not None:
            return self.config.isolate_noscript
        return noscript_isolation_required()

    def _make_parser(self, options: Optional[dict]):
        kwargs = {
            "encoding": AMP_ENCODING,
            "recover": True,
            "huge_tree": self.config.huge_tree,
        }
        kwargs.update(options or {})
        return lxml_html.HTMLParser(**kwargs)

    def load(self, source: Source, options: Optional[dict] = None) -> bool:
        """
        Load HTML into the document.

        Args:
            source: HTML as bytes (any encoding) or as already decoded text
            options: Extra keyword arguments for lxml.html.HTMLParser

        Returns:
            True if libxml2 produced a document, False otherwise
        """
        self._reset()
        self._tree = None

        is_bytes = isinstance(source, (bytes, bytearray))
        html = bytes(source).decode(BYTE_TRANSPARENT_ENCODING) if is_bytes else source

        html = tag_syntax.encode(html)
        html = normalize_structure(html)

        if self._isolate_noscript():
            html = isolate_noscript(html, self.noscript_placeholders, self._rng)

        self.original_encoding, html = detect_and_strip_encoding(
            html, default=self.config.encoding or UNKNOWN_ENCODING
        )

        # Text input is already decoded; only bytes can (and need to) be converted.
        if is_bytes:
            data = html.encode(BYTE_TRANSPARENT_ENCODING)
            if not is_target_encoding(self.original_encoding):
                data, self.original_encoding = adapt_encoding(data, self.original_encoding)
            html = data.decode(BYTE_TRANSPARENT_ENCODING)

        # Force-add http-equiv charset to make libxml2 read the bytes as UTF-8.
        html = add_transitional_charset(html)
        data = html.encode(BYTE_TRANSPARENT_ENCODING) if is_bytes else html.encode(AMP_ENCODING, errors="replace")

        parser = self._make_parser(options)
        try:
            with _captured_parser_errors(parser):
                root = lxml_html.document_fromstring(data, parser=parser)
        except (etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
            logger.warning(f"Parsing failed: {e}")
            return False

        self._tree = root.getroottree()

        # Remove the http-equiv charset again. Text ahead of <html> makes libxml2
        # open the body early, and the tag then lands there instead of in head.
        for meta in root.iter("meta"):
            if is_transitional_charset(meta):
                detach(meta)
                break

        logger.debug(f"Loaded document (original encoding: {self.original_encoding})")
        return True

    # --- Save ---

    def _protect_template_tokens(self) -> list[AttributeEdit]:
        templates = list(self.root.iter(TAG_TEMPLATE))
        if not templates:
            return []

        edits = replace_template_tokens(templates, self._template_placeholders)
        if edits:
            self.template_tokens_replaced = True
        return edits

    def _serialize(self, node=None) -> str:
        if node is None:
            return etree.tostring(self.tree, method="html", encoding="unicode")
        return etree.tostring(node, method="html", encoding="unicode", with_tail=False)

    def _extract_node_via_fragment_boundaries(self, node) -> str:
        """
        Serialize a node by cutting it out of the whole serialized document.

        Boundary comments are placed right before and after the node, the
        document is serialized, and the text between them is returned. The
        comments are removed again afterwards.
        """
        if node.getparent() is None:
            return self._serialize(node)

        boundary = f"fragment_boundary:{self._rng.randint(0, 2 ** 31 - 1)}"
        start = etree.Comment(f"{boundary}:start")
        end = etree.Comment(f"{boundary}:end")

        tail, node.tail = node.tail, None
        node.addprevious(start)
        node.addnext(end)
        end.tail = tail

        try:
            html = self._serialize()
        finally:
            detach(start)
            detach(end)

        start_marker = f"<!--{boundary}:start-->"
        end_marker = f"<!--{boundary}:end-->"
        begin = html.find(start_marker) + len(start_marker)
        return html[begin:html.rfind(end_marker)]

    def save(self, node=None) -> str:
        """
        Serialize the document, or a single node of it, to HTML.

        Saving does not change the tree, so repeated calls give identical output.

        Args:
            node: Optional node to serialize instead of the whole document

        Returns:
            The HTML string
        """
        edits = self._protect_template_tokens()

        # Force-add http-equiv charset to make libxml2 serialize as UTF-8.
        charset = create_transitional_charset()
        self.head.insert(0, charset)

        try:
            if node is None:
                html = self._serialize()
            elif self.config.fragment_boundaries:
                html = self._extract_node_via_fragment_boundaries(node)
            else:
                html = self._serialize(node)
        finally:
            detach(charset)
            restore_template_token_attributes(edits)

        html = strip_transitional_charset(html)

        if self.template_tokens_replaced:
            html = restore_template_tokens(html, self._template_placeholders)
        html = restore_noscript(html, self.noscript_placeholders)

        return tag_syntax.decode(html)


def load_document(source: Source, **kwargs) -> Document:
    """Convenience function to create and load a Document."""
    document = Document(**kwargs)
    document.load(source)
    return document


def normalize_html(source: Source, **kwargs) -> str:
    """Convenience function to run HTML through a full load/save cycle."""
    return load_document(source, **kwargs).save()
