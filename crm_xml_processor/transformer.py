"""Downgrade CRM customization XML in place.

The :class:`CrmXmlProcessor` workflow backs the file up, parses it with
:mod:`lxml` and applies three steps in a fixed order:

1. :func:`remove_elements` deletes elements unknown to the older schema,
2. :func:`remove_attributes` strips attributes the older schema rejects,
3. :func:`add_object_type_code` gives every ``<Entity>`` an
   ``<ObjectTypeCode>`` child.

Each step sees the tree as left by the previous one and returns its own
counts.  The result is serialized completely in memory before the original
file is overwritten, so a failure never leaves a half written document; the
backup remains the recovery point.
"""

from __future__ import annotations

import datetime
import io
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from lxml import etree

import config
from . import backup
from . import type_codes
from . import utils
from .exceptions import ProcessingIoError, XmlParseError
from .rules import TransformConfig
from .type_codes import TypeCodeTable

ENTITY_TAG = "Entity"
NAME_TAG = "Name"
OBJECT_TYPE_CODE_TAG = "ObjectTypeCode"


@dataclass
class ProcessingReport:
    """Counts collected while processing one file.

    ``removed_elements`` and ``removed_attributes`` are keyed by element name.
    ``placeholder_type_codes`` is the subset of ``added_type_codes`` that
    received the placeholder because the entity had no known code.
    """

    path: str
    backup_path: Optional[str] = None
    log_path: Optional[str] = None
    removed_elements: Dict[str, int] = field(default_factory=dict)
    removed_attributes: Dict[str, int] = field(default_factory=dict)
    added_type_codes: int = 0
    placeholder_type_codes: int = 0


def remove_elements(root: etree._Element, tag_names: Iterable[str]) -> Dict[str, int]:
    """Delete every element with one of the given names.

    Names are handled in order.  For each name the matching elements are
    collected before anything is removed, then each one still attached to a
    parent is detached with its subtree.  Elements that disappeared with an
    element removed for an earlier name are not found again.

    :param root: Root element of the document.
    :param tag_names: Element names to delete.
    :returns: Number of elements removed per name.
    """
    counts: Dict[str, int] = {}
    for tag_name in tag_names:
        removed = 0
        for elem in utils.find_named(root, tag_name):
            if utils.detach(elem):
                removed += 1
        counts[tag_name] = counts.get(tag_name, 0) + removed
    return counts


def remove_attributes(root: etree._Element, tag_name: str, attributes: Iterable[str]) -> int:
    """Strip ``attributes`` from every element named ``tag_name``.

    :returns: Number of individual attributes removed.
    """
    attributes = list(attributes)
    removed = 0
    for elem in utils.iter_named(root, tag_name):
        for attr in attributes:
            if attr in elem.attrib:
                del elem.attrib[attr]
                removed += 1
    return removed


def add_object_type_code(root: etree._Element, table: TypeCodeTable) -> Tuple[int, int]:
    """Insert ``<ObjectTypeCode>`` as first child of each ``<Entity>``.

    Entities that already have the child are left alone, as are entities
    without a ``<Name>`` child since there is nothing to look up.  The text of
    ``<Name>`` is looked up in ``table``; unknown names get
    :data:`config.PLACEHOLDER_CODE`.

    :param root: Root element of the document.
    :param table: Entity name to type code lookup.
    :returns: ``(added, placeholders)`` counts.
    """
    added = 0
    placeholders = 0
    for entity in utils.find_named(root, ENTITY_TAG):
        if utils.find_child(entity, OBJECT_TYPE_CODE_TAG) is not None:
            continue
        name = utils.find_child(entity, NAME_TAG)
        if name is None:
            continue
        code = table.lookup(utils.text_content(name).strip())
        if code is None:
            code = config.PLACEHOLDER_CODE
            placeholders += 1
        namespace = etree.QName(entity).namespace
        tag = f"{{{namespace}}}{OBJECT_TYPE_CODE_TAG}" if namespace else OBJECT_TYPE_CODE_TAG
        type_code = etree.Element(tag)
        type_code.text = code
        utils.insert_first(entity, type_code)
        added += 1
    return added, placeholders


class CrmXmlProcessor:
    """Apply a rule set to CRM customization files.

    The rules and the type-code table are fixed for the lifetime of the
    object; :meth:`process_file` can then be called for each file.
    """

    def __init__(
        self,
        rules: TransformConfig,
        table: TypeCodeTable | None = None,
        log_dir: str | None = None,
    ) -> None:
        self.rules = rules
        self.table = table if table is not None else type_codes.load(rules)
        self.log_dir = config.LOG_DIR if log_dir is None else log_dir
        self.logger = logging.getLogger("crm_xml_processor.CrmXmlProcessor")
        self.logger.setLevel(getattr(logging, config.LOG_LEVEL))
        self._file_handler: logging.Handler | None = None

    # Utility functions
    def _init_log(self, xml_path: str) -> str | None:
        """Attach a dedicated log file for one processing run.

        Nothing is done when no log directory is configured.

        :param xml_path: Path of the XML file being processed.
        :returns: The log file path, or ``None``.
        """
        self._close_log()
        if not self.log_dir:
            return None
        os.makedirs(self.log_dir, exist_ok=True)
        ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
        base = os.path.splitext(os.path.basename(xml_path))[0]
        log_path = os.path.join(self.log_dir, f"{base}_{ts}.log")
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(message)s"))
        self.logger.addHandler(fh)
        self._file_handler = fh
        return log_path

    def _close_log(self) -> None:
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def _detect_encoding(self, data: bytes) -> str | None:
        """Return the encoding named in the XML declaration, if any.

        Only the first bytes are inspected, which covers any declaration.
        """
        header = data[:200].decode("ascii", errors="ignore")
        match = re.search(r"<\?xml[^>]*encoding=[\"']([^\"']+)[\"']", header)
        return match.group(1) if match else None

    def _has_declaration(self, data: bytes) -> bool:
        return data.lstrip(b"\xef\xbb\xbf").lstrip().startswith(b"<?xml")

    def parse(self, data: bytes) -> etree._ElementTree:
        """Parse document bytes into a tree.

        :param data: Raw file content.
        :returns: The parsed tree.
        :raises XmlParseError: On a syntax error, or when the tree contains a
            parser error marker element.
        """
        parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
        try:
            tree = etree.parse(io.BytesIO(data), parser)
        except etree.XMLSyntaxError as exc:
            raise XmlParseError(f"XML parsing failed: {exc}") from exc
        if next(utils.iter_named(tree.getroot(), config.PARSER_ERROR_TAG), None) is not None:
            raise XmlParseError("XML parsing failed: document contains a parser error marker")
        return tree

    def serialize(self, tree: etree._ElementTree, source: bytes) -> bytes:
        """Serialize ``tree`` keeping the declaration style of ``source``."""
        encoding = self._detect_encoding(source) or tree.docinfo.encoding or "utf-8"
        return etree.tostring(
            tree,
            encoding=encoding,
            xml_declaration=self._has_declaration(source),
        )

    def transform(self, root: etree._Element, report: ProcessingReport) -> ProcessingReport:
        """Run the enabled steps over ``root`` in their fixed order.

        :param root: Root element, modified in place.
        :param report: Report to fill in.
        :returns: ``report``.
        """
        if self.rules.remove_elements:
            self.logger.info("Removing elements...")
            report.removed_elements = remove_elements(root, self.rules.remove_elements)
            for tag_name, count in report.removed_elements.items():
                if count:
                    self.logger.info("Removed %s <%s> elements", count, tag_name)

        for rule in self.rules.remove_attributes:
            self.logger.info("Removing attributes from <%s>...", rule.tag_name)
            count = remove_attributes(root, rule.tag_name, rule.attributes)
            report.removed_attributes[rule.tag_name] = (
                report.removed_attributes.get(rule.tag_name, 0) + count
            )
            if count:
                self.logger.info("Removed %s attributes from <%s> elements", count, rule.tag_name)

        if self.rules.add_object_type_code:
            self.logger.info("Adding %s elements...", OBJECT_TYPE_CODE_TAG)
            added, missing = add_object_type_code(root, self.table)
            report.added_type_codes = added
            report.placeholder_type_codes = missing
            if added:
                self.logger.info("Added %s <%s> elements", added, OBJECT_TYPE_CODE_TAG)
            if missing:
                self.logger.warning(
                    "%s entities had no known type code and received %r",
                    missing,
                    config.PLACEHOLDER_CODE,
                )
        return report

    def process_file(self, xml_path: str) -> ProcessingReport:
        """Back up, transform and overwrite one customization file.

        :param xml_path: File to rewrite in place.
        :returns: Counts for the run.
        :raises ProcessingIoError: When the backup, read or write fails.
        :raises XmlParseError: When the file is not well formed.
        """
        report = ProcessingReport(path=xml_path)
        report.log_path = self._init_log(xml_path)
        try:
            self.logger.info("Processing: %s", xml_path)
            report.backup_path = backup.create_backup(xml_path)
            self.logger.info("Backup created: %s", report.backup_path)

            try:
                with open(xml_path, "rb") as f:
                    source = f.read()
            except OSError as exc:
                raise ProcessingIoError(f"Cannot read {xml_path}: {exc}") from exc

            tree = self.parse(source)
            self.transform(tree.getroot(), report)
            output = self.serialize(tree, source)

            try:
                with open(xml_path, "wb") as f:
                    f.write(output)
            except OSError as exc:
                raise ProcessingIoError(f"Cannot write {xml_path}: {exc}") from exc

            self.logger.info("Successfully processed %s", xml_path)
            return report
        finally:
            self._close_log()
