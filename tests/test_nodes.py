from __future__ import annotations

import json

from yomu.nodes import (
    Paragraph,
    ParsedArticle,
    RubyNode,
    SourceId,
    TextNode,
    article_to_payload,
    flatten_nodes,
    flatten_paragraphs,
    node_from_payload,
    nodes_from_payload,
    nodes_to_payload,
    paragraphs_from_payload,
    ruby_or_text,
)


def test_ruby_or_text_degrades_without_reading() -> None:
    assert ruby_or_text("漢字", "かんじ") == RubyNode("漢字", "かんじ")
    assert ruby_or_text("漢字", "  ") == TextNode("漢字")
    assert ruby_or_text("", "かんじ") is None
    assert ruby_or_text(None, None) is None


def test_flatten_nodes_skips_reading_echo() -> None:
    nodes = [RubyNode("東京", "とうきょう"), TextNode("とうきょう"), TextNode("に行きます。")]
    assert flatten_nodes(nodes) == "東京に行きます。"
    # the echo node itself is kept
    assert len(nodes) == 3


def test_flatten_nodes_keeps_unrelated_text_after_ruby() -> None:
    nodes = [RubyNode("雨", "あめ"), TextNode("が"), RubyNode("降", "ふ"), TextNode("る。")]
    assert flatten_nodes(nodes) == "雨が降る。"
    assert flatten_nodes(nodes, use_readings=True) == "あめがふる。"


def test_flatten_nodes_only_skips_directly_following_echo() -> None:
    nodes = [RubyNode("駅", "えき"), TextNode("と"), TextNode("えき")]
    assert flatten_nodes(nodes) == "駅とえき"


def test_flatten_paragraphs_joins_with_newlines() -> None:
    paragraphs = [
        Paragraph((TextNode("一つ目。"),)),
        Paragraph((RubyNode("二", "に"), TextNode("つ目。"))),
    ]
    assert flatten_paragraphs(paragraphs) == "一つ目。\n二つ目。"


def test_payload_uses_type_key_and_accepts_kind() -> None:
    payload = nodes_to_payload([RubyNode("日本", "にほん"), TextNode("です")])
    assert payload == [
        {"type": "ruby", "kanji": "日本", "reading": "にほん"},
        {"type": "text", "content": "です"},
    ]
    assert node_from_payload({"kind": "text", "content": "です"}) == TextNode("です")


def test_payload_readers_drop_malformed_entries() -> None:
    raw = [
        {"type": "ruby", "kanji": "", "reading": "よみ"},
        {"type": "ruby", "kanji": "字", "reading": ""},
        {"type": "image", "src": "x.png"},
        "loose string",
        {"type": "text", "content": "残る"},
    ]
    assert nodes_from_payload(raw) == (TextNode("字"), TextNode("残る"))
    assert nodes_from_payload("not a list") == ()


def test_paragraphs_from_payload_skips_empty_paragraphs() -> None:
    raw = json.loads(
        json.dumps(
            [
                {"type": "paragraph", "content": [{"type": "text", "content": "本文。"}]},
                {"type": "paragraph", "content": []},
                {"type": "heading", "content": [{"type": "text", "content": "見出し"}]},
            ]
        )
    )
    assert paragraphs_from_payload(raw) == (Paragraph((TextNode("本文。"),)),)


def test_article_to_payload_shape() -> None:
    article = ParsedArticle(
        title=(TextNode("題"),),
        labels=("経済",),
        content=(Paragraph((TextNode("本文。"),)),),
        published_date="2024-12-18T02:45:00Z",
        images=("https://example.com/a.jpg",),
        source=SourceId.NHK,
    )
    payload = article_to_payload(article)
    assert payload["source"] == "nhk"
    assert payload["labels"] == ["経済"]
    assert payload["content"] == [
        {"type": "paragraph", "content": [{"type": "text", "content": "本文。"}]}
    ]
    json.dumps(payload, ensure_ascii=False)
