"""Attribute value validators.

Every validator takes the raw attribute value and returns a ``(value, keep)``
tuple. ``keep`` is False when the attribute must be dropped; in that case the
value is meaningless. Validators are total: any input, including non-strings,
produces a result instead of an exception.

Composite attributes (``class``, ``style``, ``rel``) are all-or-nothing: one bad
token rejects the whole attribute.
"""

import re
from typing import Callable, Iterable, Tuple

Validator = Callable[[str], Tuple[str, bool]]

REJECT: Tuple[str, bool] = ("", False)

HTML_METACHARACTERS = frozenset("<>\"'")
DEFAULT_URL_SCHEMES = ("http", "https", "mailto")
REL_TOKENS = frozenset({"noopener", "noreferrer", "nofollow", "ugc", "external"})

_ASCII_WHITESPACE = " \t\n\f\r"
_ASCII_WHITESPACE_RE = re.compile(r"[ \t\n\f\r]+")

_CLASS_TOKEN_RE = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")
_DATA_VALUE_RE = re.compile(r"[A-Za-z0-9_-]+")
_INTEGER_RE = re.compile(r"[0-9]{1,6}")

# C0 controls and space around a URL, and tab/CR/LF anywhere inside it, are
# ignored when checking it, as browsers do. An accepted value is kept as given.
_URL_TRIM = "".join(chr(c) for c in range(0x21))
_URL_NOISE_RE = re.compile(r"[\t\n\r]")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_URL_SCHEME_RE = re.compile(r"([A-Za-z][A-Za-z0-9+.\-]*):")
_DATA_IMAGE_RE = re.compile(
    r"data:image/(?:png|gif|jpe?g|webp);base64,[A-Za-z0-9+/]+={0,2}", re.I
)


def _has_metacharacter(value: str) -> bool:
    return any(ch in HTML_METACHARACTERS for ch in value)


def _split_tokens(value: str):
    stripped = value.strip(_ASCII_WHITESPACE)
    if not stripped:
        return []
    return _ASCII_WHITESPACE_RE.split(stripped)


# --- class ---

def validate_class(value: str) -> Tuple[str, bool]:
    """Accepts a whitespace separated list of ``[A-Za-z][A-Za-z0-9_-]*`` tokens."""
    if not isinstance(value, str) or _has_metacharacter(value):
        return REJECT
    tokens = _split_tokens(value)
    if not tokens:
        return REJECT
    if all(_CLASS_TOKEN_RE.fullmatch(token) for token in tokens):
        return value, True
    return REJECT


# --- style ---

_NUMBER = r"(?:[0-9]+(?:\.[0-9]+)?|\.[0-9]+)"
_CHANNEL = rf"\s*{_NUMBER}%?\s*"
_NAMED_COLORS = (
    "transparent|currentcolor|inherit|black|white|red|green|blue|yellow|orange"
    "|purple|gray|grey|silver|maroon|navy|teal|olive|lime|aqua|fuchsia|pink|brown"
)
_COLOR = (
    r"#[0-9a-f]{3}|#[0-9a-f]{4}|#[0-9a-f]{6}|#[0-9a-f]{8}"
    rf"|rgba?\({_CHANNEL},{_CHANNEL},{_CHANNEL}(?:,{_CHANNEL})?\)"
    rf"|{_NAMED_COLORS}"
)
_LENGTH = rf"0|{_NUMBER}(?:px|em|rem|%|pt)"
_DECORATION = r"underline|line-through|overline"


def _grammar(pattern: str):
    return re.compile(rf"(?:{pattern})", re.I)


STYLE_PROPERTIES = {
    "color": _grammar(_COLOR),
    "background-color": _grammar(_COLOR),
    "font-size": _grammar(
        rf"{_LENGTH}|xx-small|x-small|small|medium|large|x-large|xx-large|smaller|larger"
    ),
    "font-weight": _grammar(r"normal|bold|bolder|lighter|[1-9]00"),
    "font-style": _grammar(r"normal|italic|oblique"),
    "text-align": _grammar(r"left|right|center|justify|start|end"),
    "text-decoration": _grammar(rf"none|(?:{_DECORATION})(?:\s+(?:{_DECORATION}))*"),
    "white-space": _grammar(r"normal|nowrap|pre|pre-wrap|pre-line|break-spaces"),
    "vertical-align": _grammar(r"baseline|sub|super|top|middle|bottom|text-top|text-bottom"),
    "padding-inline-start": _grammar(_LENGTH),
    "width": _grammar(rf"{_LENGTH}|auto"),
    "height": _grammar(rf"{_LENGTH}|auto"),
    "max-width": _grammar(rf"{_LENGTH}|none"),
}

# Never part of any accepted grammar; checked up front so the intent is explicit.
_STYLE_DANGER_RE = re.compile(
    r"url\s*\(|expression\s*\(|@import|javascript\s*:|behavior\s*:|-moz-binding|\\|/\*",
    re.I,
)


def validate_style(value: str) -> Tuple[str, bool]:
    """Accepts ``property: value`` declarations whose properties and values are allow-listed.

    The accepted value is returned untouched, so spacing and trailing
    semicolons survive byte for byte.
    """
    if not isinstance(value, str) or _has_metacharacter(value):
        return REJECT
    if _STYLE_DANGER_RE.search(value):
        return REJECT

    declarations = 0
    for chunk in value.split(";"):
        declaration = chunk.strip()
        if not declaration:
            continue
        prop, sep, prop_value = declaration.partition(":")
        if not sep:
            return REJECT
        grammar = STYLE_PROPERTIES.get(prop.strip().lower())
        if grammar is None or not grammar.fullmatch(prop_value.strip()):
            return REJECT
        declarations += 1

    if not declarations:
        return REJECT
    return value, True


# --- URLs ---

def make_url_validator(
    schemes: Iterable[str] = DEFAULT_URL_SCHEMES, allow_data_images: bool = False
) -> Validator:
    """Builds a validator for ``href``/``src`` values.

    Root-relative paths and absolute URLs with one of ``schemes`` pass.
    Scheme-relative (``//host``) URLs are refused. With ``allow_data_images``,
    base64 ``data:image/*`` URLs for raster formats pass as well.
    """
    allowed = frozenset(scheme.lower() for scheme in schemes)

    def validate_url(value: str) -> Tuple[str, bool]:
        if not isinstance(value, str):
            return REJECT
        cleaned = value.strip(_URL_TRIM)
        compact = _URL_NOISE_RE.sub("", cleaned)
        if not compact or _CONTROL_RE.search(compact):
            return REJECT

        if compact.startswith("/"):
            if compact[1:2] in ("/", "\\"):
                return REJECT
            return value, True

        match = _URL_SCHEME_RE.match(compact)
        if match is None:
            return REJECT
        scheme = match.group(1).lower()
        if scheme in allowed:
            return value, True
        if scheme == "data" and allow_data_images and _DATA_IMAGE_RE.fullmatch(compact):
            return value, True
        return REJECT

    return validate_url


validate_url = make_url_validator()


# --- data-* ---

def make_data_attribute_validator(max_length: int = 64) -> Validator:
    """Builds a validator for ``data-*`` metadata values (``[A-Za-z0-9_-]+``)."""

    def validate_data_attribute(value: str) -> Tuple[str, bool]:
        if not isinstance(value, str) or not 0 < len(value) <= max_length:
            return REJECT
        if _DATA_VALUE_RE.fullmatch(value):
            return value, True
        return REJECT

    return validate_data_attribute


validate_data_attribute = make_data_attribute_validator()


# --- enumerations and token lists ---

def make_enum_validator(*choices: str) -> Validator:
    allowed = frozenset(choices)

    def validate_enum(value: str) -> Tuple[str, bool]:
        if isinstance(value, str) and value in allowed:
            return value, True
        return REJECT

    return validate_enum


validate_target = make_enum_validator("_blank")
validate_dir = make_enum_validator("ltr", "rtl", "auto")


def make_token_list_validator(choices: Iterable[str]) -> Validator:
    """All tokens must be in ``choices`` (case-insensitive) or the value is dropped."""
    allowed = frozenset(choice.lower() for choice in choices)

    def validate_tokens(value: str) -> Tuple[str, bool]:
        if not isinstance(value, str):
            return REJECT
        tokens = _split_tokens(value)
        if tokens and all(token.lower() in allowed for token in tokens):
            return value, True
        return REJECT

    return validate_tokens


validate_rel = make_token_list_validator(REL_TOKENS)


# --- numbers and free text ---

def make_integer_validator(minimum: int, maximum: int) -> Validator:
    def validate_integer(value: str) -> Tuple[str, bool]:
        if not isinstance(value, str) or not _INTEGER_RE.fullmatch(value):
            return REJECT
        if minimum <= int(value) <= maximum:
            return value, True
        return REJECT

    return validate_integer


def make_text_validator(max_length: int = 512) -> Validator:
    """Free text such as ``alt`` or ``title``; escaping is left to the serializer."""

    def validate_text(value: str) -> Tuple[str, bool]:
        if not isinstance(value, str) or len(value) > max_length:
            return REJECT
        if _CONTROL_RE.search(_URL_NOISE_RE.sub("", value)):
            return REJECT
        return value, True

    return validate_text


validate_text = make_text_validator()
