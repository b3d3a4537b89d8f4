"""PageSafe: allow-list sanitizer for rich-text editor HTML."""

from pagesafe.app.config import PolicyOptions
from pagesafe.engines.rules import Policy, create_comment_policy, create_html_policy
from pagesafe.engines.sanitizer_engine import SanitizerEngine, sanitize

__all__ = [
    "Policy",
    "PolicyOptions",
    "SanitizerEngine",
    "create_comment_policy",
    "create_html_policy",
    "sanitize",
]
