"""Library configuration.

The processor reads its defaults from an external ``TOML`` file so operators
can adjust the placeholder code, logging and parser conventions without
patching the code.  ``CRM_PROCESSOR_CONFIG`` is consulted first, falling back
to a ``config.toml`` next to this module when the environment variable is
unset.  The transformation rules themselves are *not* configured here; they
are passed per run as a separate rules file.
"""

from __future__ import annotations

import os
import pytoml

_CONFIG_PATH = os.environ.get(
    "CRM_PROCESSOR_CONFIG",
    os.path.join(os.path.dirname(__file__), "config.toml"),
)

if os.path.exists(_CONFIG_PATH):
    with open(_CONFIG_PATH, "r", encoding="utf-8") as _cfg:
        _CONF = pytoml.load(_cfg)
else:
    _CONF = {}

# Text written into a generated ``<ObjectTypeCode>`` when the entity has no
# entry in the type-code table.
PLACEHOLDER_CODE: str = "##"

# A first row containing any of these (case-insensitive) is a header.
TYPE_CODE_HEADER_MARKERS = ("entity", "name")

# Element name that marks a failed parse in the document tree.
PARSER_ERROR_TAG: str = "parsererror"

# Backups are written as ``<file><BACKUP_INFIX><timestamp>``.
BACKUP_INFIX: str = ".backup."

# Default log level used by :class:`~crm_xml_processor.transformer.CrmXmlProcessor`.
LOG_LEVEL: str = "INFO"

# Directory for per-file log files. Empty disables them.
LOG_DIR: str = ""

# Override with TOML values if provided
PLACEHOLDER_CODE = str(_CONF.get("PLACEHOLDER_CODE", PLACEHOLDER_CODE))
TYPE_CODE_HEADER_MARKERS = tuple(
    m.lower() for m in _CONF.get("TYPE_CODE_HEADER_MARKERS", TYPE_CODE_HEADER_MARKERS)
)
PARSER_ERROR_TAG = _CONF.get("PARSER_ERROR_TAG", PARSER_ERROR_TAG)
BACKUP_INFIX = _CONF.get("BACKUP_INFIX", BACKUP_INFIX)
LOG_LEVEL = _CONF.get("LOG_LEVEL", LOG_LEVEL)
LOG_DIR = _CONF.get("LOG_DIR", LOG_DIR)
