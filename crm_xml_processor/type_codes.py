"""Entity type-code lookup.

Older CRM schemas require an ``<ObjectTypeCode>`` for every entity.  The
codes can be supplied as a two column text file (``entityName,typeCode``),
typically exported from the source organization.  The table is optional:
when it is missing or broken the processor still runs and every entity gets
the placeholder code instead.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Mapping
from typing import Dict, Iterator, Optional

import config
from .exceptions import LookupTableLoadError
from .rules import TransformConfig

logger = logging.getLogger(__name__)

_TRIM = string.whitespace + "\"'"


class TypeCodeTable(Mapping):
    """Read-only mapping of entity schema name to type code."""

    def __init__(self, codes: Dict[str, str] | None = None) -> None:
        self._codes = dict(codes or {})

    def __getitem__(self, name: str) -> str:
        return self._codes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._codes)

    def __len__(self) -> int:
        return len(self._codes)

    def lookup(self, name: str) -> Optional[str]:
        """Return the code for ``name`` or ``None`` when it is unknown."""
        return self._codes.get(name)

    def __repr__(self) -> str:
        return f"TypeCodeTable({len(self._codes)} entries)"


def _is_header(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in config.TYPE_CODE_HEADER_MARKERS)


def parse(text: str) -> TypeCodeTable:
    """Parse delimited ``entityName,typeCode`` records.

    Blank lines are dropped and a first row mentioning ``entity`` or ``name``
    is treated as a header.  Each record is split on its first comma; both
    fields are trimmed of whitespace and quotes and the pair is kept only when
    neither is empty.  Later duplicates win.

    :param text: Whole content of the lookup file.
    :returns: The populated table.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if lines and _is_header(lines[0]):
        lines = lines[1:]
    codes: Dict[str, str] = {}
    for line in lines:
        if "," not in line:
            continue
        name, code = line.split(",", 1)
        name = name.strip(_TRIM)
        code = code.strip(_TRIM)
        if name and code:
            codes[name] = code
    return TypeCodeTable(codes)


def read(path: str) -> TypeCodeTable:
    """Load a lookup file, raising on any read problem.

    :raises LookupTableLoadError: When the file is unreadable or not UTF-8.
    """
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise LookupTableLoadError(f"Cannot read type-code file {path}: {exc}") from exc
    return parse(text)


def load(rules: TransformConfig) -> TypeCodeTable:
    """Build the table referenced by ``rules``.

    An unset ``entity_type_codes_file`` yields an empty table silently.  A
    file that cannot be loaded is logged as a warning and also yields an
    empty table, so generated codes fall back to the placeholder.
    """
    if not rules.entity_type_codes_file:
        return TypeCodeTable()
    try:
        table = read(rules.entity_type_codes_file)
    except LookupTableLoadError as exc:
        logger.warning("%s; using placeholder codes", exc)
        return TypeCodeTable()
    logger.info("Loaded %s entity type codes from %s", len(table), rules.entity_type_codes_file)
    return table
