"""Error kinds raised by the processor.

Library code raises these and leaves the decision about exit codes to the
command line wrapper.  Only :class:`LookupTableLoadError` is recoverable: the
type-code loader catches it and continues with an empty table.
"""

from __future__ import annotations


class CrmProcessorError(Exception):
    """Base class for all processor errors."""


class UsageError(CrmProcessorError):
    """Wrong number of command line arguments."""


class MissingFileError(CrmProcessorError):
    """A rules or XML path does not exist."""


class ConfigError(CrmProcessorError):
    """The rules file cannot be read."""


class ConfigParseError(ConfigError):
    """The rules file is not valid JSON/TOML or has the wrong shape."""


class LookupTableLoadError(CrmProcessorError):
    """The type-code table cannot be read."""


class XmlParseError(CrmProcessorError):
    """The input document is not well formed."""


class ProcessingIoError(CrmProcessorError):
    """Copying, reading or writing a file failed."""
