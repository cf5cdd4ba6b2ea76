"""events.parser – HTML → compact annotated text for the extraction model.

The rendering keeps what helps a model find events and drops the rest:

* headings become ``# Title`` / ``## Title`` lines
* paragraphs, sections and other containers become blank-line separated blocks
* list items become ``* item`` lines, table rows become ``cell | cell`` lines
* anchors become ``text [href]`` so link targets survive flattening
* ``<time datetime=...>`` keeps its machine-readable value in parentheses
* elements whose class / id / itemprop mentions *event*, *date*, *time* or
  *location* always start their own block
* scripts, styles, media and the document head are dropped

Text without structural markup is only tidied, so normalising twice gives
the same result as normalising once, even when the text itself mentions a
tag such as ``<b>``.
"""
from __future__ import annotations

import logging
import re
from typing import List, Union

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

logger = logging.getLogger(__name__)

__all__ = ["normalize", "html_to_text", "tidy"]

SKIP_TAGS = {
    "script", "style", "noscript", "template", "svg", "head", "title", "meta", "link",
    "iframe", "canvas", "img", "picture", "video", "audio", "source", "object", "embed",
    "select", "input", "textarea",
}
BLOCK_TAGS = {
    "p", "div", "section", "article", "header", "footer", "main", "aside", "nav",
    "address", "blockquote", "figure", "form", "fieldset", "details", "summary",
    "dl", "pre", "center", "body", "html",
}
LINE_TAGS = {"li", "dt", "dd", "tr", "figcaption", "caption"}
HEADINGS = {f"h{i}": i for i in range(1, 7)}
EVENT_HINTS = ("event", "date", "time", "location")
STRUCTURAL_TAGS = sorted(BLOCK_TAGS | LINE_TAGS | set(HEADINGS) | {"a", "ul", "ol", "table", "br", "hr", "time"})

_SKIPPED_STRINGS = (Comment, Doctype, Declaration, ProcessingInstruction, CData)
_WS = re.compile(r"\s+")
_BLANK_RUN = re.compile(r"\n{3,}")

_NEWLINE = object()
_BLOCK = object()
Token = Union[str, object]


# --------------------------------------------------------------------------- #
def tidy(text: str) -> str:
    """Collapse whitespace inside lines and runs of blank lines."""
    lines = [_WS.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip("\n")


class _Writer:
    """Accumulates inline text plus line / block break markers."""

    def __init__(self) -> None:
        self.tokens: List[Token] = []

    def text(self, s: str) -> None:
        if s:
            self.tokens.append(s)

    def newline(self) -> None:
        self.tokens.append(_NEWLINE)

    def block(self) -> None:
        self.tokens.append(_BLOCK)

    def extend(self, other: "_Writer") -> None:
        self.tokens.extend(other.tokens)

    def pop_trailing_breaks(self) -> List[Token]:
        trailing: List[Token] = []
        while self.tokens and self.tokens[-1] in (_NEWLINE, _BLOCK):
            trailing.insert(0, self.tokens.pop())
        return trailing

    def render(self) -> str:
        lines: List[str] = []
        cur = ""
        pending = 0  # 1 = line break, 2 = blank line
        for tok in self.tokens:
            if tok is _NEWLINE:
                pending = max(pending, 1)
            elif tok is _BLOCK:
                pending = 2
            else:
                # source indentation between tags never opens a line
                if not tok.strip() and (pending or not cur):
                    continue
                if pending:
                    lines.append(cur)
                    if pending == 2:
                        lines.append("")
                    cur = ""
                    pending = 0
                cur = _join_inline(cur, tok)
        lines.append(cur)
        return tidy("\n".join(lines))

    def inline_text(self) -> str:
        return " ".join(line for line in self.render().splitlines() if line)


def _join_inline(cur: str, tok: str) -> str:
    if not cur:
        return tok.lstrip()
    if cur.endswith(" ") and tok.startswith(" "):
        return cur + tok[1:]
    return cur + tok


# --------------------------------------------------------------------------- #
def _is_event_hint(tag: Tag) -> bool:
    names = " ".join(
        [
            " ".join(tag.get("class") or []),
            str(tag.get("id") or ""),
            str(tag.get("itemprop") or ""),
        ]
    ).lower()
    return any(hint in names for hint in EVENT_HINTS)


def _render_children(tag: Tag, out: _Writer, depth: int) -> None:
    for child in tag.children:
        _render(child, out, depth)


def _inline(tag: Tag, depth: int) -> str:
    sub = _Writer()
    _render_children(tag, sub, depth)
    return sub.inline_text()


def _render(node, out: _Writer, depth: int) -> None:
    if isinstance(node, NavigableString):
        if not isinstance(node, _SKIPPED_STRINGS):
            out.text(_WS.sub(" ", str(node)))
        return
    if not isinstance(node, Tag):
        return

    name = node.name
    if name in SKIP_TAGS:
        return
    if name == "br":
        out.newline()
    elif name == "hr":
        out.block()
    elif name in HEADINGS:
        text = _inline(node, depth)
        if text:
            out.block()
            out.text("#" * HEADINGS[name] + " " + text)
            out.block()
    elif name in ("ul", "ol"):
        _render_list(node, out, depth)
    elif name == "table":
        _render_table(node, out, depth)
    elif name == "a":
        _render_anchor(node, out, depth)
    elif name == "time":
        text = _inline(node, depth)
        stamp = str(node.get("datetime") or "").strip()
        out.text(text)
        if stamp and stamp not in text:
            out.text(f" ({stamp})")
    elif name in BLOCK_TAGS or _is_event_hint(node):
        out.block()
        _render_children(node, out, depth)
        out.block()
    elif name in LINE_TAGS:
        out.newline()
        _render_children(node, out, depth)
        out.newline()
    else:
        _render_children(node, out, depth)


def _render_list(node: Tag, out: _Writer, depth: int) -> None:
    # nested lists stay attached to their parent item
    brk = out.newline if depth else out.block
    brk()
    for child in node.children:
        if isinstance(child, Tag) and child.name == "li":
            out.newline()
            out.text("* ")
            _render_children(child, out, depth + 1)
            out.newline()
        else:
            _render(child, out, depth)
    brk()


def _render_table(table: Tag, out: _Writer, depth: int) -> None:
    out.block()
    caption = table.find("caption")
    if caption is not None and caption.find_parent("table") is table:
        text = _inline(caption, depth)
        if text:
            out.text(text)
            out.newline()
    for row in table.find_all("tr"):
        if row.find_parent("table") is not table:
            continue
        cells = [_inline(cell, depth) for cell in row.find_all(["td", "th"], recursive=False)]
        cells = [c for c in cells if c]
        if cells:
            out.newline()
            out.text(" | ".join(cells))
    out.block()


def _render_anchor(node: Tag, out: _Writer, depth: int) -> None:
    href = str(node.get("href") or "").strip()
    sub = _Writer()
    _render_children(node, sub, depth)
    if not href or href.startswith(("#", "javascript:")):
        out.extend(sub)
        return
    text = sub.inline_text()
    if not text:
        return
    trailing = sub.pop_trailing_breaks()
    out.extend(sub)
    if text != href:
        out.text(f" [{href}]")
    out.tokens.extend(trailing)


# --------------------------------------------------------------------------- #
def html_to_text(html: str) -> str:
    """Convert *html*; raises on parser failure (see :func:`normalize`)."""
    soup = BeautifulSoup(html, "html.parser")
    # literal "<b>" left in rendered text is not markup
    if soup.find(STRUCTURAL_TAGS) is None and soup.find(SKIP_TAGS) is None:
        return tidy(html)
    out = _Writer()
    _render_children(soup.body or soup, out, depth=0)
    return out.render()


def normalize(html: str) -> str:
    """Pure, never raises: on any conversion error the input comes back unchanged."""
    if not html:
        return ""
    try:
        return html_to_text(html)
    except Exception as exc:  # noqa: BLE001
        logger.debug("HTML conversion failed, passing input through: %s", exc)
        return html
