from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable, Mapping, Sequence, Union


class SourceId(str, Enum):
    NHK = "nhk"
    MAINICHI = "mainichi"


@dataclass(frozen=True, slots=True)
class TextNode:
    content: str
    kind: ClassVar[str] = "text"


@dataclass(frozen=True, slots=True)
class RubyNode:
    """Kanji with the reading given by the source's furigana markup."""

    kanji: str
    reading: str
    kind: ClassVar[str] = "ruby"


ContentNode = Union[TextNode, RubyNode]


@dataclass(frozen=True, slots=True)
class Paragraph:
    content: tuple[ContentNode, ...]
    kind: ClassVar[str] = "paragraph"


@dataclass(frozen=True, slots=True)
class ParsedArticle:
    title: tuple[ContentNode, ...]
    labels: tuple[str, ...]
    content: tuple[Paragraph, ...]
    published_date: str | None
    images: tuple[str, ...]
    source: SourceId
    description: str | None = field(default=None, compare=False)


def ruby_or_text(kanji: str | None, reading: str | None) -> ContentNode | None:
    """
    Build a ruby node, degrading to plain text when the reading is missing.

    A fragment without kanji yields nothing at all.
    """
    base = (kanji or "").strip()
    rt = (reading or "").strip()
    if not base:
        return None
    if not rt:
        return TextNode(base)
    return RubyNode(kanji=base, reading=rt)


def flatten_nodes(nodes: Iterable[ContentNode], *, use_readings: bool = False) -> str:
    """
    Concatenate text content and ruby bases into a plain string.

    A text node that repeats the reading of the ruby node right before it is a
    source artifact and is skipped. The nodes themselves are left untouched.
    """
    parts: list[str] = []
    previous: ContentNode | None = None
    for node in nodes:
        if isinstance(node, RubyNode):
            parts.append(node.reading if use_readings else node.kanji)
        elif isinstance(node, TextNode):
            if isinstance(previous, RubyNode) and node.content == previous.reading:
                previous = node
                continue
            parts.append(node.content)
        previous = node
    return "".join(parts)


def flatten_paragraphs(paragraphs: Iterable[Paragraph], *, separator: str = "\n") -> str:
    return separator.join(flatten_nodes(p.content) for p in paragraphs)


def node_to_payload(node: ContentNode) -> dict[str, str]:
    if isinstance(node, RubyNode):
        return {"type": "ruby", "kanji": node.kanji, "reading": node.reading}
    return {"type": "text", "content": node.content}


def node_from_payload(payload: object) -> ContentNode | None:
    if not isinstance(payload, Mapping):
        return None
    kind = payload.get("type") or payload.get("kind")
    if kind == "ruby":
        kanji = payload.get("kanji")
        reading = payload.get("reading")
        return ruby_or_text(
            kanji if isinstance(kanji, str) else None,
            reading if isinstance(reading, str) else None,
        )
    if kind == "text":
        content = payload.get("content")
        if isinstance(content, str) and content:
            return TextNode(content)
    return None


def nodes_to_payload(nodes: Iterable[ContentNode]) -> list[dict[str, str]]:
    return [node_to_payload(node) for node in nodes]


def nodes_from_payload(payload: object) -> tuple[ContentNode, ...]:
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return ()
    nodes = (node_from_payload(item) for item in payload)
    return tuple(node for node in nodes if node is not None)


def paragraphs_to_payload(paragraphs: Iterable[Paragraph]) -> list[dict[str, object]]:
    return [
        {"type": "paragraph", "content": nodes_to_payload(paragraph.content)}
        for paragraph in paragraphs
    ]


def paragraphs_from_payload(payload: object) -> tuple[Paragraph, ...]:
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return ()
    paragraphs: list[Paragraph] = []
    for item in payload:
        if not isinstance(item, Mapping):
            continue
        kind = item.get("type") or item.get("kind")
        if kind != "paragraph":
            continue
        content = nodes_from_payload(item.get("content"))
        if content:
            paragraphs.append(Paragraph(content))
    return tuple(paragraphs)


def article_to_payload(article: ParsedArticle) -> dict[str, object]:
    return {
        "title": nodes_to_payload(article.title),
        "labels": list(article.labels),
        "content": paragraphs_to_payload(article.content),
        "published_date": article.published_date,
        "images": list(article.images),
        "source": article.source.value,
    }


__all__ = [
    "SourceId",
    "TextNode",
    "RubyNode",
    "ContentNode",
    "Paragraph",
    "ParsedArticle",
    "ruby_or_text",
    "flatten_nodes",
    "flatten_paragraphs",
    "node_to_payload",
    "node_from_payload",
    "nodes_to_payload",
    "nodes_from_payload",
    "paragraphs_to_payload",
    "paragraphs_from_payload",
    "article_to_payload",
]
