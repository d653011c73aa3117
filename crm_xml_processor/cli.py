"""Command line entry point.

Usage: ``crm-xml-processor <config.json> <customizations.xml>``

Progress is reported through :mod:`logging` on standard output.  Every fatal
problem ends up as one error line and exit status ``1``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional

import config
from . import rules
from . import type_codes
from .exceptions import CrmProcessorError, MissingFileError, UsageError
from .transformer import CrmXmlProcessor

USAGE = (
    "Usage: crm-xml-processor <config.json> <customizations.xml>\n"
    "Example: crm-xml-processor config.json customizations.xml"
)

logger = logging.getLogger("crm_xml_processor")


def _setup_console() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, config.LOG_LEVEL))
    return handler


def _check_args(argv: List[str]) -> List[str]:
    if len(argv) != 2:
        raise UsageError(USAGE)
    config_path, xml_path = argv
    if not os.path.exists(config_path):
        raise MissingFileError(f"Config file not found: {config_path}")
    if not os.path.exists(xml_path):
        raise MissingFileError(f"XML file not found: {xml_path}")
    return argv


def run(config_path: str, xml_path: str) -> int:
    """Load the rules and process one file.

    :returns: ``0`` on success.
    """
    transform_rules = rules.load(config_path)
    table = type_codes.load(transform_rules)
    processor = CrmXmlProcessor(transform_rules, table)
    report = processor.process_file(xml_path)
    if report.placeholder_type_codes:
        logger.info(
            "%s of %s generated type codes are placeholders",
            report.placeholder_type_codes,
            report.added_type_codes,
        )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the processor and return the process exit status."""
    argv = sys.argv[1:] if argv is None else argv
    handler = _setup_console()
    try:
        try:
            config_path, xml_path = _check_args(argv)
        except UsageError as exc:
            print(exc)
            return 1
        return run(config_path, xml_path)
    except CrmProcessorError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:
        logger.debug("Unexpected failure", exc_info=True)
        logger.error("Error processing file: %s", exc)
        return 1
    finally:
        logger.removeHandler(handler)
