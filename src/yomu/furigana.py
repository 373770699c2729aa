from __future__ import annotations

from .html import HTMLElement
from .nodes import ContentNode, RubyNode, TextNode, ruby_or_text

_OPEN_PAREN = "（"
_CLOSE_PAREN = "）"
_SKIP_TAGS = {"rt", "rp", "script", "style", "noscript", "template"}


def is_cjk_char(ch: str) -> bool:
    if not ch:
        return False
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF  # CJK Unified Ideographs
        or 0x3400 <= code <= 0x4DBF  # Extension A
        or 0x20000 <= code <= 0x2A6DF  # Extension B
        or 0x2A700 <= code <= 0x2EBEF  # Extensions C-F
        or 0x30000 <= code <= 0x3134F  # Extension G
        or 0xF900 <= code <= 0xFAFF  # Compatibility Ideographs
        or 0x2F800 <= code <= 0x2FA1F  # Compatibility Supplement
        or ch in "々〆ヵヶ"
    )


def _ruby_base_text(ruby: HTMLElement) -> str:
    """
    Base text of a <ruby>, ignoring <rt>/<rp>. Prefers segmented <rb>.
    """
    parts: list[str] = []
    rb_parts: list[str] = []
    for child in ruby.children():
        if isinstance(child, str):
            parts.append(child)
            continue
        if child.name in ("rt", "rp"):
            continue
        if child.name == "rb":
            rb_parts.append(child.text())
        parts.append(child.text())
    if rb_parts:
        return "".join(rb_parts).strip()
    return "".join(parts).strip()


def _ruby_reading_text(ruby: HTMLElement) -> str:
    readings = [
        child.text()
        for child in ruby.children()
        if not isinstance(child, str) and child.name == "rt"
    ]
    return "".join(readings).strip()


def ruby_nodes(ruby: HTMLElement) -> list[ContentNode]:
    node = ruby_or_text(_ruby_base_text(ruby), _ruby_reading_text(ruby))
    return [node] if node is not None else []


def _merge_text(nodes: list[ContentNode]) -> list[ContentNode]:
    merged: list[ContentNode] = []
    for node in nodes:
        if merged and isinstance(node, TextNode) and isinstance(merged[-1], TextNode):
            merged[-1] = TextNode(merged[-1].content + node.content)
        else:
            merged.append(node)
    return merged


def _closing_paren_index(text: str, start: int) -> int:
    depth = 0
    for idx in range(start, len(text)):
        ch = text[idx]
        if ch == _OPEN_PAREN:
            depth += 1
        elif ch == _CLOSE_PAREN:
            depth -= 1
            if depth == 0:
                return idx
    return -1


def split_inline_furigana(text: str) -> list[ContentNode]:
    """
    Split flattened ``漢字（かんじ）`` text into text and ruby nodes.

    Only the run of ideographs directly before a full-width paren becomes the
    ruby base. Parens without such a run, without a closing paren, or with an
    empty reading stay in the text unchanged.
    """
    if not text:
        return []
    nodes: list[ContentNode] = []
    buffer: list[str] = []
    idx = 0
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch != _OPEN_PAREN:
            buffer.append(ch)
            idx += 1
            continue
        run_start = len(buffer)
        while run_start > 0 and is_cjk_char(buffer[run_start - 1]):
            run_start -= 1
        close = _closing_paren_index(text, idx)
        reading = text[idx + 1 : close].strip() if close != -1 else ""
        if run_start == len(buffer) or close == -1 or not reading:
            buffer.append(ch)
            idx += 1
            continue
        prefix = "".join(buffer[:run_start])
        kanji = "".join(buffer[run_start:])
        if prefix:
            nodes.append(TextNode(prefix))
        nodes.append(RubyNode(kanji=kanji, reading=reading))
        buffer = []
        idx = close + 1
    if buffer:
        nodes.append(TextNode("".join(buffer)))
    return _merge_text(nodes)


def _text_nodes(raw: str, inline: bool) -> list[ContentNode]:
    stripped = raw.strip()
    if not stripped:
        return []
    if inline:
        return split_inline_furigana(stripped)
    return [TextNode(stripped)]


def nodes_from_element(element: HTMLElement, *, inline: bool = False) -> list[ContentNode]:
    """
    Walk *element* depth-first and collect its ruby and text nodes in order.
    """
    if element.name == "ruby":
        return ruby_nodes(element)
    nodes: list[ContentNode] = []
    for child in element.children():
        if isinstance(child, str):
            nodes.extend(_text_nodes(child, inline))
            continue
        if child.name in _SKIP_TAGS:
            continue
        if child.name == "br":
            continue
        nodes.extend(nodes_from_element(child, inline=inline))
    return nodes


__all__ = [
    "is_cjk_char",
    "ruby_nodes",
    "split_inline_furigana",
    "nodes_from_element",
]
