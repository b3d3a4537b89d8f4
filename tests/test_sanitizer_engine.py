from concurrent.futures import ThreadPoolExecutor
import random

import pytest

import pagesafe.engines.sanitizer_engine as sanitizer_engine
from pagesafe import PolicyOptions, SanitizerEngine, create_comment_policy, create_html_policy, sanitize

CASES = [
    pytest.param(
        '<pre class="language-go highlight">fmt.Println("ok")</pre>',
        ['<pre class="language-go highlight">'],
        [],
        id="keeps allowed class on supported element",
    ),
    pytest.param(
        '<pre class="evil\\" onclick=\\"alert(1)">x</pre>',
        ["<pre>x</pre>"],
        ["class=", "onclick="],
        id="removes class with invalid characters",
    ),
    pytest.param(
        '<pre data-language="typescript">const a = 1;</pre>',
        ['data-language="typescript"'],
        [],
        id="keeps data-language on pre when valid",
    ),
    pytest.param(
        '<code data-language="javascript">const a = 1;</code>',
        ['data-language="javascript"'],
        [],
        id="keeps data-language on code when valid",
    ),
    pytest.param(
        '<pre data-language="typescript" data-highlight-language="typescript" data-theme="github">let a = 1;</pre>',
        ['data-language="typescript"', 'data-highlight-language="typescript"', 'data-theme="github"'],
        [],
        id="keeps code highlight metadata",
    ),
    pytest.param(
        '<pre data-language="ts<script>">const a = 1;</pre>',
        [],
        ["data-language="],
        id="removes data-language when invalid",
    ),
    pytest.param(
        '<a href="/p/home" target="_blank">home</a>',
        ['target="_blank"'],
        [],
        id="keeps anchor target blank",
    ),
    pytest.param(
        '<a href="/p/home" target="_self">home</a>',
        ['<a href="/p/home">home</a>'],
        ['target="_self"'],
        id="removes disallowed anchor target",
    ),
    pytest.param(
        '<span style="color:#ff0000;font-size:16px">text</span>',
        ['style="color:#ff0000;font-size:16px"'],
        [],
        id="keeps allowed style values",
    ),
    pytest.param(
        '<span style="color: rgb(239, 68, 68); font-size: 16px;">text</span>',
        ['style="color: rgb(239, 68, 68); font-size: 16px;"'],
        [],
        id="keeps editor style values with spaces",
    ),
    pytest.param(
        '<span style="background-image:url(javascript:alert(1))">x</span>',
        ["<span>x</span>"],
        ["style="],
        id="removes dangerous style expression",
    ),
    pytest.param(
        '<img src="/media/uploads/photo.png" alt="photo">',
        ['<img src="/media/uploads/photo.png" alt="photo">'],
        [],
        id="keeps image src with allowed root path",
    ),
    pytest.param(
        '<img src="javascript:alert(1)" alt="photo">',
        ['<img alt="photo">'],
        ["javascript:alert(1)", 'src="javascript:'],
        id="removes image src for javascript scheme",
    ),
    pytest.param(
        "<p>ok</p><script>alert(1)</script>",
        ["<p>ok</p>"],
        ["<script", "alert(1)"],
        id="removes script element",
    ),
    pytest.param(
        '<p onclick="alert(1)">hello</p>',
        ["<p>hello</p>"],
        ["onclick="],
        id="removes inline event handlers",
    ),
    pytest.param(
        '<figure class="diagram"><figcaption class="caption">A</figcaption></figure>',
        ['<figure class="diagram"><figcaption class="caption">A</figcaption></figure>'],
        [],
        id="keeps figure and figcaption classes",
    ),
    pytest.param(
        '<a href="jav&#x09;ascript:alert(1)">x</a>',
        ["<a>x</a>"],
        ["href="],
        id="removes obfuscated javascript href",
    ),
    pytest.param(
        '<a href="mailto:someone@example.com">mail</a>',
        ['<a href="mailto:someone@example.com">mail</a>'],
        [],
        id="keeps mailto links",
    ),
    pytest.param(
        '<img src="/a.png" onerror="alert(1)" onload="alert(2)">',
        ['<img src="/a.png">'],
        ["onerror", "onload"],
        id="removes event handlers on void elements",
    ),
    pytest.param(
        '<p>a<iframe src="https://evil.example.com">payload</iframe>b</p>',
        ["<p>ab</p>"],
        ["iframe", "payload"],
        id="strips iframe with its content",
    ),
    pytest.param(
        "<style>p { color: red }</style><p>x</p>",
        ["<p>x</p>"],
        ["<style", "color: red"],
        id="strips style element with its content",
    ),
    pytest.param(
        "<svg><script>alert(1)</script><text>t</text></svg>ok",
        ["ok"],
        ["svg", "alert(1)", "<text"],
        id="strips svg subtree",
    ),
    pytest.param(
        '<form action="/steal"><p>inside</p></form><p>after</p>',
        ["<p>after</p>"],
        ["form", "inside"],
        id="strips form subtree",
    ),
    pytest.param(
        "<p>Hello <custom>World</custom></p>",
        ["<p>Hello World</p>"],
        ["custom"],
        id="unwraps unknown elements",
    ),
    pytest.param(
        '<section class="x"><p onclick="x">a<script>b</script></p></section>',
        ["<p>a</p>"],
        ["section", "onclick", "script"],
        id="sanitizes children of unwrapped elements",
    ),
    pytest.param(
        "<p>a<!-- hidden -->b</p>",
        ["<p>ab</p>"],
        ["<!--", "hidden"],
        id="drops comments",
    ),
    pytest.param(
        '<p dir="ltr">x</p><p dir="sideways">y</p>',
        ['<p dir="ltr">x</p>', "<p>y</p>"],
        [],
        id="validates dir attribute",
    ),
]


@pytest.mark.parametrize("raw, must_contain, must_not_contain", CASES)
def test_sanitize(policy, raw, must_contain, must_not_contain):
    output = sanitize(policy, raw)

    for expected in must_contain:
        assert expected in output
    for forbidden in must_not_contain:
        assert forbidden not in output


def test_allows_rich_text_elements(engine):
    raw = (
        "<blockquote><strong>bold</strong> and <em>italic</em></blockquote>"
        "<table><thead><tr><th>H</th></tr></thead><tbody><tr><td>D</td></tr></tbody></table>"
    )
    assert engine.sanitize(raw) == raw


def test_preserves_span_color(engine):
    output = engine.sanitize('<p><span style="color: rgb(59, 130, 246);">Blue text</span></p>')
    assert output == '<p><span style="color: rgb(59, 130, 246);">Blue text</span></p>'


def test_keeps_lists_and_table_attributes(engine):
    raw = (
        '<ol start="3"><li value="3">three</li><li>four</li></ol>'
        '<table><tbody><tr><td colspan="2" rowspan="1">wide</td></tr></tbody></table>'
    )
    assert engine.sanitize(raw) == raw


def test_preserves_attribute_order(engine):
    raw = '<a target="_blank" title="Home" href="/p/home">home</a>'
    assert engine.sanitize(raw) == raw


def test_escapes_text_and_attribute_values(engine):
    raw = '<p>1 &lt; 2 &amp;&amp; 3 &gt; 2</p><img src="/a.png" alt="say &quot;hi&quot; &amp; bye">'
    assert engine.sanitize(raw) == raw


def test_escaped_markup_in_text_stays_text(engine):
    raw = "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"
    assert engine.sanitize(raw) == raw


def test_keeps_absolute_urls_verbatim(engine):
    raw = '<a href="https://example.com/?a=1&amp;b=2">x</a>'
    assert engine.sanitize(raw) == raw


def test_keeps_accepted_url_exactly_as_given(engine):
    raw = '<a href=" /p/home">home</a>'
    assert engine.sanitize(raw) == raw


def test_pre_keeps_leading_newline(engine):
    output = engine.sanitize("<pre>\n\nfoo</pre>")
    assert output == "<pre>\n\nfoo</pre>"
    assert engine.sanitize(output) == output


def test_nested_heading_after_unwrap(engine):
    output = engine.sanitize("<h1><custom><h2>x</h2></custom></h1>")
    assert output == "<h1>x</h1>"


def test_drops_foreign_and_unknown_attributes(engine):
    output = engine.sanitize('<p id="x" data-a="1" aria-hidden="true" xml:lang="en">x</p>')
    assert output == '<p data-a="1">x</p>'


def test_comment_policy_is_stricter():
    engine = SanitizerEngine(create_comment_policy())
    raw = (
        '<p class="x" style="color: red">hi <strong>there</strong></p>'
        '<img src="/a.png"><a href="/p/home" data-x="1">home</a>'
    )
    assert engine.sanitize(raw) == '<p>hi <strong>there</strong></p><a href="/p/home">home</a>'


def test_rel_injected_for_blank_targets_when_enabled():
    policy = create_html_policy(PolicyOptions(link_rel_on_blank="noopener noreferrer"))
    output = sanitize(policy, '<a href="/x" target="_blank">x</a><a href="/y">y</a>')
    assert output == (
        '<a href="/x" target="_blank" rel="noopener noreferrer">x</a><a href="/y">y</a>'
    )
    assert sanitize(policy, output) == output


def test_rel_injection_keeps_existing_tokens():
    policy = create_html_policy(PolicyOptions(link_rel_on_blank="noopener noreferrer"))
    output = sanitize(policy, '<a rel="nofollow noopener" target="_blank" href="/x">x</a>')
    assert output == '<a rel="nofollow noopener noreferrer" target="_blank" href="/x">x</a>'


def test_data_images_are_opt_in():
    raw = '<img src="data:image/png;base64,iVBORw0KGgo=" alt="dot">'
    assert sanitize(create_html_policy(), raw) == '<img alt="dot">'
    assert sanitize(create_html_policy(PolicyOptions(allow_data_images=True)), raw) == raw


@pytest.mark.parametrize(
    "raw",
    [
        "<p>unclosed <b>bold",
        "<table><tr><td>x</td></tr></table>",
        "<ul><li>a<li>b</ul>",
        '<a href="/x"><a href="/y">nested</a></a>',
        "<p>a<div>b</div>c</p>",
        "<p><b>x</p>y",
        "<b><p>x</p></b>",
        "<pre>\n\ncode</pre>",
        "<pre><font>\nx</font></pre>",
        "<custom><p>x</p></custom>",
        "<h1><custom><h2>x</h2></custom></h1>",
        '<img src="/a.png" alt="a &amp; b">',
        '<span style="color: rgb(1, 2, 3);">x</span>',
        "<table><caption>c</caption><tbody><tr><td>1</td></tr></tbody></table>",
        "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>",
        "<textarea><p>x</p></textarea>after",
        "<p>a<button>b</button>c</p>",
        "<div><script>alert(1)</script><p onclick='x'>y</p></div>",
        '<p class="ok" class="dup">first wins</p>',
        "<<p>>text</p>",
        "</p>stray",
        "<p>text & more < less</p>",
        "<table><tbody><tr><td><pre>\nfoo</pre></td></tr></tbody></table>",
        "<table><caption><pre>\n\nx</pre></caption></table>",
        "<ul><li>a<table><li>b</table></ul>",
        "</em><td><li><table></code><li>",
        "<h1>a<table><h2>b</h2></table></h1>",
        '<a href="/x">a<table><a href="/y">b</a></table></a>',
    ],
)
def test_sanitize_is_idempotent(engine, raw):
    once = engine.sanitize(raw)
    assert engine.sanitize(once) == once


@pytest.mark.parametrize("raw", [None, "", b""])
def test_empty_input_returns_empty_string(engine, raw):
    assert engine.sanitize(raw) == ""


def test_bytes_input_is_decoded(engine):
    assert engine.sanitize("<p>caf\u00e9</p>".encode("utf-8")) == "<p>caf\u00e9</p>"


def test_falls_back_to_text_only_output(engine, monkeypatch):
    def broken_walk(self, source, target):
        raise RuntimeError("walker exploded")

    monkeypatch.setattr(SanitizerEngine, "_copy_tree", broken_walk)
    output = engine.sanitize('<p onclick="x">hi <b>there</b><script>alert(1)</script> &amp; bye</p>')
    assert output == "hi there &amp; bye"


def test_fallback_without_a_parse_is_empty(engine, monkeypatch):
    def broken_parser(raw_html):
        raise RuntimeError("parser exploded")

    monkeypatch.setattr(sanitizer_engine, "parse_fragment", broken_parser)
    assert engine.sanitize("<p>hi</p><script>alert(1)</script>") == ""


def test_unsettled_output_degrades_to_text(engine, monkeypatch):
    monkeypatch.setattr(sanitizer_engine, "_MAX_SETTLE_PASSES", 0)
    output = engine.sanitize("<p>a <em>b</em></p><style>p { color: red }</style>c")
    assert output == "a bc"
    assert engine.sanitize(output) == output


def test_deep_nesting_never_raises(engine):
    raw = (
        "<span>" * 5000
        + "deep<script>alert(document.cookie)</script><b>ok</b>"
        + "</span>" * 5000
    )
    output = engine.sanitize(raw)
    assert output.startswith("<span><span>")
    assert "deep<b>ok</b></span>" in output
    assert "alert" not in output
    assert "<script" not in output


def test_pre_in_table_cell_keeps_single_newline(engine):
    raw = "<table><tbody><tr><td><pre>\nfoo</pre></td></tr></tbody></table>"
    assert engine.sanitize(raw) == raw


def test_list_item_moved_out_of_table_is_unwrapped(engine):
    output = engine.sanitize("</em><td><li><table></code><li>")
    assert output == "<li><table></table></li>"
    assert engine.sanitize(output) == output


def test_list_item_nested_through_inline_is_unwrapped(engine):
    output = engine.sanitize("<ul><li><span>a<table><li>b</li></table></span></li></ul>")
    assert "<li><li>" not in output
    assert engine.sanitize(output) == output


_SOUP_TAGS = (
    "p", "b", "em", "i", "a", "span", "pre", "code", "blockquote", "ul", "ol", "li",
    "h1", "h2", "table", "caption", "thead", "tbody", "tr", "td", "th", "colgroup", "col",
    "br", "img", "figure", "figcaption",
    "script", "style", "textarea", "select", "option", "form", "template", "svg", "math",
    "iframe", "noscript", "title", "plaintext",
    "custom", "font", "div", "dl", "dd", "nobr",
)
_SOUP_TEXT = ("x", " ", "\n", "a & b", "1 < 2", " ", "\n\nline")
_SOUP_ATTRIBUTES = (
    "", ' class="ok"', ' style="color: red"', ' href="/p/x"', ' href="javascript:alert(1)"',
    ' onclick="alert(1)"', ' data-x="1"', ' colspan="2"',
)


def _tag_soup(rng):
    parts = []
    for _ in range(rng.randint(1, 14)):
        roll = rng.random()
        if roll < 0.45:
            parts.append(f"<{rng.choice(_SOUP_TAGS)}{rng.choice(_SOUP_ATTRIBUTES)}>")
        elif roll < 0.75:
            parts.append(f"</{rng.choice(_SOUP_TAGS)}>")
        elif roll < 0.95:
            parts.append(rng.choice(_SOUP_TEXT))
        else:
            parts.append("<!-- c -->")
    return "".join(parts)


@pytest.mark.parametrize("seed", range(400))
def test_random_tag_soup_is_idempotent(engine, seed):
    raw = _tag_soup(random.Random(seed))
    once = engine.sanitize(raw)
    assert engine.sanitize(once) == once, raw
    assert "<script" not in once and "alert(1)" not in once, raw


@pytest.mark.parametrize("seed", range(100))
def test_random_tag_soup_is_idempotent_under_comment_policy(seed):
    engine = SanitizerEngine(create_comment_policy())
    raw = _tag_soup(random.Random(seed))
    once = engine.sanitize(raw)
    assert engine.sanitize(once) == once, raw


def test_concurrent_use_of_shared_policy(policy):
    raw = '<p style="color: red">a<script>b</script><a href="/x" target="_blank">c</a></p>'
    expected = sanitize(policy, raw)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: sanitize(policy, raw), range(64)))
    assert results == [expected] * 64

