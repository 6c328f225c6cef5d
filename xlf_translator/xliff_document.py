"""In-memory XLIFF document with an explicit mutation API."""
import logging
import os
import tempfile
from typing import Iterator, List, Optional

from lxml import etree

from xlf_translator.exceptions import DocumentParseError

logger = logging.getLogger(__name__)


def _make_parser() -> etree.XMLParser:
    # CDATA sections and whitespace must survive an unchanged round trip.
    return etree.XMLParser(
        remove_blank_text=False,
        strip_cdata=False,
        resolve_entities=False,
        no_network=True
    )


class XliffDocument:
    """
    Wraps a parsed XLIFF tree (``xliff > file > body > trans-unit``).

    Lookups use ``local-name()`` so XLIFF 1.2 documents with or without the
    default namespace are handled alike.
    """

    def __init__(self, tree: etree._ElementTree, path: Optional[str] = None):
        self.tree = tree
        self.root = tree.getroot()
        self.path = path

    @classmethod
    def from_bytes(cls, data: bytes, path: Optional[str] = None) -> "XliffDocument":
        """
        Parse a document from raw bytes.

        Raises:
            DocumentParseError: If the data is empty or not well-formed XML.
        """
        if not data or not data.strip():
            raise DocumentParseError(f"Document '{path or '<bytes>'}' is empty.")
        try:
            root = etree.fromstring(data, _make_parser())
        except etree.XMLSyntaxError as xml_exc:
            raise DocumentParseError(f"Failed to parse '{path or '<bytes>'}': {xml_exc}") from xml_exc
        return cls(root.getroottree(), path)

    @classmethod
    def load(cls, path: str) -> "XliffDocument":
        with open(path, 'rb') as f:
            data = f.read()
        return cls.from_bytes(data, path)

    def bodies(self) -> List[etree._Element]:
        return self.root.xpath('//*[local-name()="file"]/*[local-name()="body"]')

    def trans_units(self) -> Iterator[etree._Element]:
        """Yield every trans-unit of every file body in document order."""
        for body in self.bodies():
            yield from body.xpath('.//*[local-name()="trans-unit"]')

    @staticmethod
    def _child(unit: etree._Element, name: str) -> Optional[etree._Element]:
        children = unit.xpath(f'*[local-name()="{name}"]')
        return children[0] if children else None

    @staticmethod
    def _text(node: Optional[etree._Element]) -> str:
        if node is None:
            return ''
        return ''.join(node.itertext())

    def source_node(self, unit: etree._Element) -> Optional[etree._Element]:
        return self._child(unit, 'source')

    def target_node(self, unit: etree._Element) -> Optional[etree._Element]:
        return self._child(unit, 'target')

    def source_text(self, unit: etree._Element) -> str:
        return self._text(self.source_node(unit))

    def target_text(self, unit: etree._Element) -> str:
        return self._text(self.target_node(unit))

    @staticmethod
    def get_attribute(node: etree._Element, name: str) -> Optional[str]:
        return node.get(name)

    @staticmethod
    def set_attribute(node: etree._Element, name: str, value: str) -> None:
        """Create the attribute if absent, overwrite it otherwise."""
        node.set(name, value)

    @staticmethod
    def _clear_content(node: etree._Element) -> None:
        for child in list(node):
            node.remove(child)
        node.text = None

    def set_text(self, node: etree._Element, text: str) -> None:
        """Replace the content of ``node`` with plain text, escaped on serialization."""
        self._clear_content(node)
        node.text = text

    def set_cdata(self, node: etree._Element, text: str) -> None:
        """Replace the content of ``node`` with a single CDATA section holding ``text``."""
        self._clear_content(node)
        node.text = etree.CDATA(text)

    def to_bytes(self) -> bytes:
        return etree.tostring(self.tree, xml_declaration=True, encoding='utf-8')

    def save(self, path: Optional[str] = None) -> None:
        """
        Serialize the whole document to ``path`` (defaults to the path it was loaded from).

        The data is written to a temporary file in the same directory first and
        then moved over the destination, so either the complete new document or
        the previous content is on disk.
        """
        path = path or self.path
        if not path:
            raise ValueError("No path given to save the document to.")

        data = self.to_bytes()
        directory = os.path.dirname(os.path.abspath(path))
        fd, temp_path = tempfile.mkstemp(prefix='.xlf-', suffix='.tmp', dir=directory)
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(temp_path, path)
        except OSError:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
        logger.debug("Wrote %s bytes to '%s'.", len(data), path)
