"""Public entry points for :mod:`crm_xml_processor`.

Applications usually need only :class:`~crm_xml_processor.transformer.CrmXmlProcessor`
together with the rule loader, so those are re-exported here.  The step
functions stay importable from :mod:`crm_xml_processor.transformer` for
callers that work on an already parsed tree.
"""

from .rules import AttributeRule, TransformConfig
from .transformer import CrmXmlProcessor, ProcessingReport
from .type_codes import TypeCodeTable

__all__ = [
    "AttributeRule",
    "CrmXmlProcessor",
    "ProcessingReport",
    "TransformConfig",
    "TypeCodeTable",
]
