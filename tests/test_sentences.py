from __future__ import annotations

from yomu.nodes import Paragraph, ParsedArticle, RubyNode, SourceId, TextNode
from yomu.sentences import article_sentences, join_sentences, split_sentences


def _paragraphs() -> list[Paragraph]:
    return [
        Paragraph(
            (
                RubyNode("今日", "きょう"),
                TextNode("は"),
                RubyNode("晴", "は"),
                TextNode("れです。"),
                TextNode("明日も"),
                RubyNode("晴", "は"),
                TextNode("れるでしょう！"),
                TextNode("たぶん"),
            )
        ),
        Paragraph((TextNode("二段落目？"),)),
    ]


def test_split_sentences_ends_on_terminal_text() -> None:
    sentences = split_sentences(_paragraphs())
    assert [s.text() for s in sentences] == [
        "今日は晴れです。",
        "明日も晴れるでしょう！",
        "たぶん",
        "二段落目？",
    ]
    assert [s.paragraph_index for s in sentences] == [0, 0, 0, 1]
    assert sentences[0].reading_text() == "きょうははれです。"


def test_sentences_partition_paragraph_content() -> None:
    paragraphs = _paragraphs()
    sentences = split_sentences(paragraphs)
    assert join_sentences(sentences) == [p.content for p in paragraphs]
    assert sum(len(s) for s in sentences) == sum(len(p.content) for p in paragraphs)


def test_sentence_never_crosses_paragraphs() -> None:
    paragraphs = [
        Paragraph((TextNode("終わりのない文"),)),
        Paragraph((TextNode("次の段落。"),)),
    ]
    sentences = split_sentences(paragraphs)
    assert [s.text() for s in sentences] == ["終わりのない文", "次の段落。"]


def test_ruby_node_never_ends_a_sentence() -> None:
    paragraphs = [Paragraph((TextNode("あ。"), RubyNode("終", "お"), TextNode("わり")))]
    sentences = split_sentences(paragraphs)
    assert [s.text() for s in sentences] == ["あ。", "終わり"]


def test_hold_after_ruby_keeps_sentence_open() -> None:
    paragraphs = [
        Paragraph(
            (
                RubyNode("雨", "あめ"),
                TextNode("。"),
                TextNode("風が強い。"),
            )
        )
    ]
    assert len(split_sentences(paragraphs)) == 2
    held = split_sentences(paragraphs, hold_after_ruby=True)
    assert [s.text() for s in held] == ["雨。風が強い。"]


def test_empty_input() -> None:
    assert split_sentences([]) == []


def _article(source: SourceId) -> ParsedArticle:
    return ParsedArticle(
        title=(TextNode("題"),),
        labels=(),
        content=tuple(_paragraphs()),
        published_date=None,
        images=(),
        source=source,
    )


def test_article_sentences_holds_after_ruby_for_nhk_only() -> None:
    nhk = article_sentences(_article(SourceId.NHK))
    assert [s.text() for s in nhk] == [
        "今日は晴れです。明日も晴れるでしょう！たぶん",
        "二段落目？",
    ]
    mainichi = article_sentences(_article(SourceId.MAINICHI))
    assert [s.text() for s in mainichi] == [s.text() for s in split_sentences(_paragraphs())]


def test_article_sentences_explicit_flag_wins() -> None:
    assert len(article_sentences(_article(SourceId.NHK), hold_after_ruby=False)) == 4
    assert len(article_sentences(_article(SourceId.MAINICHI), hold_after_ruby=True)) == 2
