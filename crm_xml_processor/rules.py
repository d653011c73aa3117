"""Transformation rules for a processing run.

A rules file tells the processor which elements to delete, which attributes
to strip and whether ``<ObjectTypeCode>`` placeholders should be generated.
It is a small JSON object (``.toml`` files are accepted as well) using the
camel-cased keys of the original tooling::

    {
      "removeElements": ["IsQuickCreateEnabled"],
      "removeAttributes": [{"tagName": "option", "attributes": ["Color"]}],
      "addObjectTypeCode": true,
      "entityTypeCodesFile": "typecodes.csv"
    }

Missing keys fall back to empty lists and ``false``; nothing else is
defaulted.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import pytoml

from .exceptions import ConfigError, ConfigParseError


@dataclass(frozen=True)
class AttributeRule:
    """Attributes to strip from every element named ``tag_name``."""

    tag_name: str
    attributes: Tuple[str, ...]


@dataclass(frozen=True)
class TransformConfig:
    """Validated, immutable rule set."""

    remove_elements: Tuple[str, ...] = ()
    remove_attributes: Tuple[AttributeRule, ...] = ()
    add_object_type_code: bool = False
    entity_type_codes_file: Optional[str] = None


def _names(value: Any, where: str) -> Tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigParseError(f"{where} must be a list of names")
    for name in value:
        if not isinstance(name, str) or not name:
            raise ConfigParseError(f"{where} contains an empty or non-string name: {name!r}")
    return tuple(value)


def _attribute_rule(entry: Any, index: int) -> AttributeRule:
    where = f"removeAttributes[{index}]"
    if not isinstance(entry, dict):
        raise ConfigParseError(f"{where} must be an object")
    tag_name = entry.get("tagName")
    if not isinstance(tag_name, str) or not tag_name:
        raise ConfigParseError(f"{where}.tagName must be a non-empty string")
    return AttributeRule(tag_name, _names(entry.get("attributes", []), f"{where}.attributes"))


def from_dict(data: Dict[str, Any], base_dir: str | None = None) -> TransformConfig:
    """Build a :class:`TransformConfig` from decoded rules data.

    :param data: Mapping decoded from JSON or TOML.
    :param base_dir: Directory used to resolve a relative
        ``entityTypeCodesFile``.
    :returns: The validated rule set.
    :raises ConfigParseError: When the data does not have the expected shape.
    """
    if not isinstance(data, dict):
        raise ConfigParseError("rules must be an object")

    remove_elements = _names(data.get("removeElements", []), "removeElements")

    raw_rules = data.get("removeAttributes", [])
    if not isinstance(raw_rules, list):
        raise ConfigParseError("removeAttributes must be a list")
    remove_attributes = tuple(_attribute_rule(e, i) for i, e in enumerate(raw_rules))

    add_code = data.get("addObjectTypeCode", False)
    if not isinstance(add_code, bool):
        raise ConfigParseError("addObjectTypeCode must be true or false")

    codes_file = data.get("entityTypeCodesFile")
    if codes_file is not None:
        if not isinstance(codes_file, str) or not codes_file:
            raise ConfigParseError("entityTypeCodesFile must be a non-empty string")
        if base_dir and not os.path.isabs(codes_file):
            codes_file = os.path.join(base_dir, codes_file)

    return TransformConfig(remove_elements, remove_attributes, add_code, codes_file)


def load(path: str) -> TransformConfig:
    """Read and validate a rules file.

    :param path: Location of the JSON or TOML rules file.
    :returns: The rule set.
    :raises ConfigError: When the file cannot be read.
    :raises ConfigParseError: When it cannot be decoded or validated.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Error loading config file: {exc}") from exc

    try:
        if path.lower().endswith(".toml"):
            data = pytoml.loads(content)
        else:
            data = json.loads(content)
    except (ValueError, pytoml.TomlError) as exc:
        raise ConfigParseError(f"Error parsing config file {path}: {exc}") from exc

    return from_dict(data, os.path.dirname(os.path.abspath(path)))
