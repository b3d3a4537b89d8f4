"""Element policy table and the immutable `Policy` aggregate.

The allow-list is plain data: each element name maps to an `ElementRule`
listing the attributes it may carry and the validator for each. Adding an
element or attribute is a table edit, never a new branch in the walker.

Elements missing from the table are unwrapped (tag dropped, children kept).
Elements in `DANGEROUS_ELEMENTS` are stripped together with their content.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from pagesafe.app.config import PolicyOptions
from pagesafe.engines.validators import (
    Validator,
    make_data_attribute_validator,
    make_integer_validator,
    make_url_validator,
    validate_class,
    validate_dir,
    validate_rel,
    validate_style,
    validate_target,
    validate_text,
)

_NAME_RE = re.compile(r"[a-z][a-z0-9-]*")
_DATA_ATTRIBUTE_RE = re.compile(r"data-[a-z0-9_-]+")


class Removal(str, Enum):
    """What happens to an element that is not allowed."""
    STRIP_SUBTREE = "strip-subtree"
    UNWRAP = "unwrap"


def _check_attributes(attributes: Mapping[str, Validator], where: str):
    for name, validator in attributes.items():
        if not _NAME_RE.fullmatch(name):
            raise ValueError(f"Invalid attribute name {name!r} in {where}")
        if not callable(validator):
            raise ValueError(f"Validator for {name!r} in {where} is not callable")


@dataclass(frozen=True)
class ElementRule:
    attributes: Mapping[str, Validator] = field(default_factory=dict)
    allowed: bool = True
    on_disallowed: Removal = Removal.UNWRAP

    def __post_init__(self):
        _check_attributes(self.attributes, "element rule")
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))


DEFAULT_RULE = ElementRule(allowed=False, on_disallowed=Removal.UNWRAP)
STRIP_RULE = ElementRule(allowed=False, on_disallowed=Removal.STRIP_SUBTREE)

# Their text content is the payload, so the whole subtree goes.
DANGEROUS_ELEMENTS = frozenset({
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
    "form", "input", "button", "select", "option", "textarea", "template",
    "noscript", "noembed", "noframes", "xmp", "plaintext", "title",
    "svg", "math", "link", "meta", "base", "marquee",
})


@dataclass(frozen=True)
class Policy:
    """Immutable allow-list shared by every sanitize call.

    Attributes:
        name (str): Profile name, used in logs.
        elements (Mapping[str, ElementRule]): Element policy table.
        global_attributes (Mapping[str, Validator]): Attributes accepted on
            every allowed element.
        data_attribute_validator (Optional[Validator]): Validator for `data-*`
            attributes on every allowed element; None refuses them.
        link_rel_on_blank (Optional[str]): Rel tokens forced onto anchors with
            `target="_blank"`.
    """
    name: str
    elements: Mapping[str, ElementRule]
    global_attributes: Mapping[str, Validator] = field(default_factory=dict)
    data_attribute_validator: Optional[Validator] = None
    link_rel_on_blank: Optional[str] = None

    def __post_init__(self):
        for tag, rule in self.elements.items():
            if not _NAME_RE.fullmatch(tag) or not isinstance(rule, ElementRule):
                raise ValueError(f"Invalid element rule for {tag!r} in policy {self.name!r}")
        _check_attributes(self.global_attributes, f"policy {self.name!r}")
        if self.data_attribute_validator is not None and not callable(self.data_attribute_validator):
            raise ValueError(f"data-* validator of policy {self.name!r} is not callable")
        object.__setattr__(self, "elements", MappingProxyType(dict(self.elements)))
        object.__setattr__(self, "global_attributes", MappingProxyType(dict(self.global_attributes)))

    def rule_for(self, tag: str) -> ElementRule:
        rule = self.elements.get(tag)
        if rule is not None:
            return rule
        if tag in DANGEROUS_ELEMENTS:
            return STRIP_RULE
        return DEFAULT_RULE

    def validator_for(self, rule: ElementRule, attribute: str) -> Optional[Validator]:
        """Finds the validator governing `attribute`, element rules first."""
        validator = rule.attributes.get(attribute)
        if validator is not None:
            return validator
        validator = self.global_attributes.get(attribute)
        if validator is not None:
            return validator
        if self.data_attribute_validator is not None and _DATA_ATTRIBUTE_RE.fullmatch(attribute):
            return self.data_attribute_validator
        return None


# --- Built-in tables ---

_BLOCK_ELEMENTS = (
    "p", "br", "hr", "blockquote", "h1", "h2", "h3", "h4", "h5", "h6",
    "figure", "figcaption", "ul",
)
_INLINE_ELEMENTS = (
    "strong", "b", "em", "i", "u", "s", "sub", "sup", "span", "pre", "code",
)
_TABLE_ELEMENTS = ("table", "thead", "tbody", "tfoot", "tr", "caption", "colgroup")

_span = make_integer_validator(1, 1000)
_dimension = make_integer_validator(0, 10000)
_ordinal = make_integer_validator(0, 100000)


def _link_attributes(options: PolicyOptions) -> Dict[str, Validator]:
    return {
        "href": make_url_validator(options.url_schemes),
        "target": validate_target,
        "rel": validate_rel,
        "title": validate_text,
    }


def _rich_text_elements(options: PolicyOptions) -> Dict[str, ElementRule]:
    cell = {"colspan": _span, "rowspan": _span}
    table = {name: ElementRule() for name in _BLOCK_ELEMENTS + _INLINE_ELEMENTS + _TABLE_ELEMENTS}
    table.update({
        "a": ElementRule(_link_attributes(options)),
        "img": ElementRule({
            "src": make_url_validator(options.url_schemes, allow_data_images=options.allow_data_images),
            "alt": validate_text,
            "title": validate_text,
            "width": _dimension,
            "height": _dimension,
        }),
        "ol": ElementRule({"start": _ordinal}),
        "li": ElementRule({"value": _ordinal}),
        "th": ElementRule(cell),
        "td": ElementRule(cell),
        "col": ElementRule({"span": _span}),
    })
    return table


def _comment_elements(options: PolicyOptions) -> Dict[str, ElementRule]:
    table = {
        name: ElementRule()
        for name in ("p", "br", "strong", "b", "em", "i", "u", "s", "code", "pre",
                     "blockquote", "ul", "ol", "li")
    }
    table["a"] = ElementRule(_link_attributes(options))
    return table


def create_html_policy(options: Optional[PolicyOptions] = None) -> Policy:
    """Builds the rich-text policy for content produced by the page editor."""
    options = options or PolicyOptions()
    return Policy(
        name="rich-text",
        elements=_rich_text_elements(options),
        global_attributes={
            "class": validate_class,
            "style": validate_style,
            "dir": validate_dir,
        },
        data_attribute_validator=make_data_attribute_validator(options.max_data_attribute_length),
        link_rel_on_blank=options.link_rel_on_blank,
    )


def create_comment_policy(options: Optional[PolicyOptions] = None) -> Policy:
    """Builds a stricter policy for public comments: text formatting and links only."""
    options = options or PolicyOptions()
    return Policy(
        name="comments",
        elements=_comment_elements(options),
        link_rel_on_blank=options.link_rel_on_blank,
    )


POLICY_PROFILES: Mapping[str, Callable[[Optional[PolicyOptions]], Policy]] = MappingProxyType({
    "rich-text": create_html_policy,
    "comments": create_comment_policy,
})
