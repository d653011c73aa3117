"""Allow ``python -m crm_xml_processor <config.json> <customizations.xml>``."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
