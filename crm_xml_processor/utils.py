"""Small lxml helpers used by the pipeline.

CRM customization files are addressed by plain element names, the way DOM
``getElementsByTagName`` does it, while lxml works with ``{namespace}local``
tags.  The helpers below bridge that gap and keep surrounding text intact when
the tree is edited.
"""

from __future__ import annotations

from typing import Iterator, List, Optional

from lxml import etree


def qualified_name(elem: etree._Element) -> str:
    """Return the element name as written in the source (``prefix:local``).

    :param elem: Element to name.
    :returns: The local name, prefixed when the element uses a prefix.
    """
    local = etree.QName(elem).localname
    return f"{elem.prefix}:{local}" if elem.prefix else local


def iter_named(root: etree._Element, name: str) -> Iterator[etree._Element]:
    """Yield ``root`` and its descendants named ``name`` in document order.

    Comments and processing instructions are skipped.
    """
    for elem in root.iter(etree.Element):
        if qualified_name(elem) == name:
            yield elem


def find_named(root: etree._Element, name: str) -> List[etree._Element]:
    """Snapshot of :func:`iter_named` safe to use while editing the tree."""
    return list(iter_named(root, name))


def find_child(elem: etree._Element, name: str) -> Optional[etree._Element]:
    """Return the first direct child element called ``name``, if any."""
    for child in elem.iterchildren(etree.Element):
        if qualified_name(child) == name:
            return child
    return None


def text_content(elem: etree._Element) -> str:
    """Concatenate all text inside ``elem``, like DOM ``textContent``.

    Comments and processing instructions do not contribute.
    """
    return str(elem.xpath("string()"))


def detach(elem: etree._Element) -> bool:
    """Remove ``elem`` and its subtree from its parent.

    lxml drops an element's ``tail`` together with the element, so the tail
    is first moved to the previous sibling or to the parent's text.

    :param elem: Element to remove.
    :returns: ``False`` when the element had no parent and nothing was done.
    """
    parent = elem.getparent()
    if parent is None:
        return False
    if elem.tail:
        previous = elem.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + elem.tail
        else:
            parent.text = (parent.text or "") + elem.tail
    parent.remove(elem)
    return True


def insert_first(parent: etree._Element, child: etree._Element) -> None:
    """Insert ``child`` before every existing node of ``parent``.

    Leading text of ``parent`` becomes the tail of ``child`` so the new
    element really is the first node, ahead of any whitespace.
    """
    child.tail = parent.text
    parent.text = None
    parent.insert(0, child)
