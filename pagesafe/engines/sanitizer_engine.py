"""HTML Sanitization Engine for XSS Protection.

This module applies a `Policy` to untrusted rich-text HTML. The input is
parsed into a tree, walked depth-first, and copied node by node into a fresh
tree that only holds what the policy allows:

- Comments are dropped.
- Text is copied as-is; escaping is the serializer's job.
- Allowed elements keep the attributes their validators accept, in input order.
- Disallowed elements are either unwrapped (children spliced into the parent
  and sanitized in turn) or stripped together with their whole subtree.

Source nodes are never mutated, so removing or re-parenting a node can not
invalidate the traversal. The walk keeps its own stack, so nesting depth is
bounded by memory only.

The serialized result must parse back into the tree it came from. The parser
relocates some content (foster-parenting out of tables, implied end tags), so
a copied element is unwrapped where re-parsing would close or move it. The
output is then checked against one more pass and re-run until it settles.
"""

import logging
from typing import Dict, List, Optional
from xml.etree import ElementTree

from pagesafe.engines.rules import ElementRule, Policy, Removal
from pagesafe.engines.serializer import new_fragment, parse_fragment, serialize_fragment

logger = logging.getLogger("pagesafe.sanitizer")

# Passes allowed on top of the first one for the output to settle.
_MAX_SETTLE_PASSES = 3

_HEADINGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

# Inside these the parser runs the cell/caption insertion mode, which keeps
# the newline after <pre>.
_CELLS = frozenset({"td", "th", "caption"})

# Elements that stop the parser's search for an open <li> to close.
_LIST_ITEM_BOUNDARIES = frozenset({
    "blockquote", "figure", "figcaption", "ul", "ol", "pre",
    "table", "thead", "tbody", "tfoot", "tr", "td", "th", "caption", "colgroup",
}) | _HEADINGS

# tag -> (open elements closed when it starts, elements that stop the search).
# A boundary set of None means only the direct parent is looked at.
_IMPLIED_CLOSE = {
    "li": (frozenset({"li"}), _LIST_ITEM_BOUNDARIES),
    "p": (frozenset({"p"}), frozenset({"table"}) | _CELLS),
    "a": (frozenset({"a"}), _CELLS),
}
_IMPLIED_CLOSE.update({heading: (_HEADINGS, None) for heading in _HEADINGS})

# Children the parser keeps inside table structure; it moves anything else out.
_SECTION_CONTENT = frozenset({"tr"})
_TABLE_CONTENT = {
    "table": frozenset({"caption", "colgroup", "thead", "tbody", "tfoot"}),
    "thead": _SECTION_CONTENT,
    "tbody": _SECTION_CONTENT,
    "tfoot": _SECTION_CONTENT,
    "tr": frozenset({"td", "th"}),
    "colgroup": frozenset({"col"}),
}


def _append_text(target: ElementTree.Element, text: Optional[str]):
    if not text:
        return
    if len(target):
        last = target[-1]
        last.tail = (last.tail or "") + text
    else:
        target.text = (target.text or "") + text


def _merge_rel(current: Optional[str], required: str) -> str:
    tokens = current.split() if current else []
    present = {token.lower() for token in tokens}
    missing = [token for token in required.split() if token.lower() not in present]
    if not missing:
        return current
    return " ".join(tokens + missing)


def _closed_on_reparse(tag: str, open_tags: List[str]) -> bool:
    """True if re-parsing would close an enclosing element when `tag` starts."""
    entry = _IMPLIED_CLOSE.get(tag)
    if entry is None or not open_tags:
        return False
    closers, boundaries = entry
    if boundaries is None:
        return open_tags[-1] in closers
    for ancestor in reversed(open_tags):
        if ancestor in closers:
            return True
        if ancestor in boundaries:
            return False
    return False


def _in_cell(open_tags: List[str]) -> bool:
    for ancestor in reversed(open_tags):
        if ancestor in _CELLS:
            return True
        if ancestor == "table":
            return False
    return False


class SanitizerEngine:
    """A configured HTML cleaner enforcing one `Policy`.

    The engine holds no per-call state and can be shared between threads.
    """

    def __init__(self, policy: Policy):
        self.policy = policy

    def sanitize(self, raw_html) -> str:
        """Returns the sanitized form of `raw_html`.

        Never raises. If the pipeline fails on some pathological input, or
        its output does not settle, the result degrades to the escaped text
        of the input with every tag removed and dangerous content dropped.
        """
        if not raw_html:
            return ""
        if isinstance(raw_html, bytes):
            raw_html = raw_html.decode("utf-8", errors="replace")
        elif not isinstance(raw_html, str):
            raw_html = str(raw_html)

        try:
            output = self._sanitize_once(raw_html)
            for _ in range(_MAX_SETTLE_PASSES):
                settled = self._sanitize_once(output)
                if settled == output:
                    return output
                output = settled
        except Exception as e:
            logger.error(
                f"❌ Sanitization failed under policy '{self.policy.name}', "
                f"falling back to text-only output: {e}",
                exc_info=True,
            )
            return self._text_only(raw_html)

        logger.warning(
            f"⚠️ Output did not settle under policy '{self.policy.name}', "
            f"falling back to text-only output"
        )
        return self._text_only(raw_html)

    def _sanitize_once(self, raw_html: str) -> str:
        target = new_fragment()
        self._copy_tree(parse_fragment(raw_html), target)
        return serialize_fragment(target)

    def _copy_tree(self, source: ElementTree.Element, target: ElementTree.Element):
        """Copies the allowed part of `source` into `target`.

        Each stack frame holds the children still to visit, the element they
        are copied into, the element the frame created (None when its node
        was unwrapped) and the tail text of that node.
        """
        _append_text(target, source.text)
        open_tags: List[str] = []
        stack = [(iter(source), target, None, None)]
        while stack:
            children, dest, created, tail = stack[-1]
            node = next(children, None)
            if node is None:
                stack.pop()
                if created is not None:
                    self._close_element(created, open_tags)
                    open_tags.pop()
                if stack:
                    _append_text(stack[-1][1], tail)
                continue

            child_dest = self._open_node(node, dest, open_tags)
            if child_dest is None:
                _append_text(dest, node.tail)
                continue
            _append_text(child_dest, node.text)
            if child_dest is dest:
                stack.append((iter(node), dest, None, node.tail))
            else:
                open_tags.append(child_dest.tag)
                stack.append((iter(node), child_dest, child_dest, node.tail))

    def _open_node(self, node: ElementTree.Element, dest: ElementTree.Element,
                   open_tags: List[str]) -> Optional[ElementTree.Element]:
        """Decides where the content of `node` goes.

        Returns None to skip the subtree, `dest` to unwrap the node, or the
        new element it was copied to.
        """
        if not isinstance(node.tag, str):
            # Comments and processing instructions
            return None
        if node.tag.startswith("{"):
            logger.debug(f"⛔ Stripped foreign element {node.tag}")
            return None

        rule = self.policy.rule_for(node.tag)
        if not rule.allowed:
            if rule.on_disallowed == Removal.STRIP_SUBTREE:
                logger.debug(f"⛔ Stripped <{node.tag}> with its content")
                return None
            return dest

        permitted = _TABLE_CONTENT.get(dest.tag)
        if permitted is not None and node.tag not in permitted:
            logger.debug(f"⛔ Stripped <{node.tag}> misplaced inside <{dest.tag}>")
            return None
        if _closed_on_reparse(node.tag, open_tags):
            return dest

        return ElementTree.SubElement(dest, node.tag, self._clean_attributes(node, rule))

    def _close_element(self, element: ElementTree.Element, open_tags: List[str]):
        # Outside cells the parser drops the newline right after <pre>, so a
        # leading one in the content needs a second one in front of it.
        if element.tag == "pre" and element.text and element.text.startswith("\n"):
            if not _in_cell(open_tags):
                element.text = "\n" + element.text

    def _clean_attributes(self, node: ElementTree.Element, rule: ElementRule) -> Dict[str, str]:
        cleaned = {}
        for name, value in node.attrib.items():
            validator = self.policy.validator_for(rule, name)
            if validator is None:
                logger.debug(f"⛔ Dropped attribute {name!r} on <{node.tag}>")
                continue
            value, keep = validator(value)
            if keep:
                cleaned[name] = value
            else:
                logger.debug(f"⛔ Rejected value of {name!r} on <{node.tag}>")

        if node.tag == "a" and self.policy.link_rel_on_blank and cleaned.get("target") == "_blank":
            cleaned["rel"] = _merge_rel(cleaned.get("rel"), self.policy.link_rel_on_blank)
        return cleaned

    def _text_only(self, raw_html: str) -> str:
        """Degraded output: the text the policy would keep, without any markup."""
        try:
            source = parse_fragment(raw_html)
            chunks = [source.text or ""]
            stack = [(iter(source), None)]
            while stack:
                children, tail = stack[-1]
                node = next(children, None)
                if node is None:
                    stack.pop()
                    chunks.append(tail or "")
                    continue
                keep = (isinstance(node.tag, str)
                        and not node.tag.startswith("{")
                        and self.policy.rule_for(node.tag).on_disallowed != Removal.STRIP_SUBTREE)
                if keep:
                    chunks.append(node.text or "")
                    stack.append((iter(node), node.tail))
                else:
                    chunks.append(node.tail or "")
            fragment = new_fragment()
            fragment.text = "".join(chunks)
            return serialize_fragment(fragment)
        except Exception as e:
            logger.critical(f"❌ Text-only fallback failed under policy '{self.policy.name}': {e}")
            return ""


def sanitize(policy: Policy, raw_html) -> str:
    """Sanitizes `raw_html` under `policy`."""
    return SanitizerEngine(policy).sanitize(raw_html)
