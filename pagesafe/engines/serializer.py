"""HTML5 parsing and serialization primitives.

Thin wrappers around html5lib so the rest of the package only deals with
ElementTree fragments. Parsing follows the HTML5 tree-construction algorithm
(unbalanced tags are already fixed when the walker sees the tree); the
serializer quotes every attribute with double quotes and never omits tags,
so an accepted attribute value comes out byte-identical apart from escaping.
"""

from xml.etree import ElementTree

import html5lib

FRAGMENT_TAG = "DOCUMENT_FRAGMENT"

_SERIALIZER_OPTIONS = {
    "quote_attr_values": "always",
    "quote_char": '"',
    "use_best_quote_char": False,
    "omit_optional_tags": False,
    "minimize_boolean_attributes": False,
    "use_trailing_solidus": False,
    "alphabetical_attributes": False,
    "strip_whitespace": False,
}


def parse_fragment(raw_html: str) -> ElementTree.Element:
    """Parses `raw_html` as the body of a <div>.

    A fresh parser is created per call; html5lib parsers hold state and
    must not be shared between threads.
    """
    return html5lib.parseFragment(raw_html, treebuilder="etree", namespaceHTMLElements=False)


def new_fragment() -> ElementTree.Element:
    return ElementTree.Element(FRAGMENT_TAG)


def serialize_fragment(fragment: ElementTree.Element) -> str:
    return html5lib.serialize(fragment, tree="etree", **_SERIALIZER_OPTIONS)
