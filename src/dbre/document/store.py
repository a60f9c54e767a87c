"""
Storage for the persisted schema document.

The document is an XML tree rooted at ``dbMetadata``. It is created from a
packaged template on the first run and rewritten wholesale on every later
run, always through a temporary file so that a failed run never leaves a
partially written document behind.
"""

import logging
import os
import tempfile
from importlib import resources
from pathlib import Path
from typing import Optional, Union

from lxml import etree

from ..exceptions import ConfigurationError, DocumentError, DocumentNotFoundError, DocumentParseError


logger = logging.getLogger(__name__)


ROOT_TAG = "dbMetadata"
PACKAGE_ATTRIBUTE = "package"
TEMPLATE_RESOURCE = "dbre.xml"


def _parser() -> etree.XMLParser:
    return etree.XMLParser(remove_blank_text=True)


def normalize_whitespace(document: etree._ElementTree) -> None:
    """Drop whitespace-only text nodes so pretty printing is stable."""
    for element in document.getroot().iter():
        if element.text is not None and not element.text.strip():
            element.text = None
        if element.tail is not None and not element.tail.strip():
            element.tail = None


class DocumentStore:
    """Loads and writes the persisted document at a fixed path."""

    def __init__(self, path: Union[str, Path], template: Optional[Union[str, Path]] = None):
        self.path = Path(path)
        self.template = Path(template) if template else None

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> etree._ElementTree:
        """Load the existing document, or a fresh template when there is none."""
        if self.exists():
            return self.load_existing()
        logger.info(f"{self.path} does not exist, starting from template")
        return self.load_template()

    def load_existing(self) -> etree._ElementTree:
        """Load the existing document; it must exist."""
        if not self.exists():
            raise DocumentNotFoundError(f"{self.path} does not exist", path=str(self.path))
        return self._parse_file(self.path)

    def load_template(self) -> etree._ElementTree:
        """Load the empty document skeleton."""
        if self.template is not None:
            if not self.template.is_file():
                raise ConfigurationError(f"Document template not found: {self.template}")
            return self._parse_file(self.template)

        try:
            content = (resources.files(__package__) / "templates" / TEMPLATE_RESOURCE).read_bytes()
        except (FileNotFoundError, ModuleNotFoundError) as e:
            raise ConfigurationError("Packaged document template not found", cause=e) from e

        try:
            root = etree.fromstring(content, _parser())
        except etree.XMLSyntaxError as e:
            raise ConfigurationError("Packaged document template is not valid XML", cause=e) from e
        return root.getroottree()

    def write(self, document: etree._ElementTree) -> None:
        """Write the document atomically."""
        normalize_whitespace(document)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self._serialize(document))
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning(f"Could not remove temporary file {tmp_name}")
            raise DocumentError(f"Failed to write {self.path}", path=str(self.path), cause=e) from e

        logger.info(f"Wrote {self.path}")

    def to_string(self, document: etree._ElementTree) -> str:
        """Serialize the document exactly as write() would."""
        normalize_whitespace(document)
        return self._serialize(document).decode("utf-8")

    @staticmethod
    def _serialize(document: etree._ElementTree) -> bytes:
        return etree.tostring(
            document,
            pretty_print=True,
            xml_declaration=True,
            encoding="UTF-8",
            standalone=False,
        )

    def _parse_file(self, path: Path) -> etree._ElementTree:
        try:
            document = etree.parse(str(path), _parser())
        except etree.XMLSyntaxError as e:
            raise DocumentParseError(f"Unable to parse {path}", path=str(path), cause=e) from e
        except OSError as e:
            raise DocumentError(f"Unable to read {path}", path=str(path), cause=e) from e

        if document.getroot().tag != ROOT_TAG:
            raise DocumentParseError(
                f"Unexpected root element <{document.getroot().tag}>, expected <{ROOT_TAG}>",
                path=str(path),
            )
        return document
