from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .nodes import (
    ContentNode,
    Paragraph,
    ParsedArticle,
    RubyNode,
    SourceId,
    TextNode,
    flatten_nodes,
)

SENTENCE_TERMINATORS = ("。", "！", "？")


@dataclass(frozen=True, slots=True)
class Sentence:
    nodes: tuple[ContentNode, ...]
    paragraph_index: int

    def text(self) -> str:
        return flatten_nodes(self.nodes)

    def reading_text(self) -> str:
        return flatten_nodes(self.nodes, use_readings=True)

    def __len__(self) -> int:
        return len(self.nodes)


def _ends_sentence(node: ContentNode) -> bool:
    return isinstance(node, TextNode) and node.content.endswith(SENTENCE_TERMINATORS)


def split_sentences(
    paragraphs: Iterable[Paragraph], *, hold_after_ruby: bool = False
) -> list[Sentence]:
    """
    Partition paragraph content into sentences.

    A sentence closes after a text node ending in 。！？ and always at the end
    of its paragraph, so boundaries never cross paragraphs and every node
    lands in exactly one sentence. With ``hold_after_ruby`` a terminal text
    node directly after a ruby node keeps the sentence open.
    """
    sentences: list[Sentence] = []
    for p_index, paragraph in enumerate(paragraphs):
        pending: list[ContentNode] = []
        last_was_ruby = False
        for node in paragraph.content:
            pending.append(node)
            if _ends_sentence(node) and not (hold_after_ruby and last_was_ruby):
                sentences.append(Sentence(tuple(pending), p_index))
                pending = []
            last_was_ruby = isinstance(node, RubyNode)
        if pending:
            sentences.append(Sentence(tuple(pending), p_index))
    return sentences


def article_sentences(
    article: ParsedArticle, *, hold_after_ruby: bool | None = None
) -> list[Sentence]:
    """
    Split an article with its source's boundary rule: NHK Easy pages keep a
    sentence open after ruby unless *hold_after_ruby* says otherwise.
    """
    if hold_after_ruby is None:
        hold_after_ruby = article.source is SourceId.NHK
    return split_sentences(article.content, hold_after_ruby=hold_after_ruby)


def join_sentences(sentences: Iterable[Sentence]) -> list[tuple[ContentNode, ...]]:
    """Rebuild per-paragraph node sequences from a sentence list."""
    grouped: dict[int, list[ContentNode]] = {}
    for sentence in sentences:
        grouped.setdefault(sentence.paragraph_index, []).extend(sentence.nodes)
    return [tuple(grouped[idx]) for idx in sorted(grouped)]


__all__ = [
    "Sentence",
    "SENTENCE_TERMINATORS",
    "split_sentences",
    "article_sentences",
    "join_sentences",
]
