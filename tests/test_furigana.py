from __future__ import annotations

from yomu.furigana import is_cjk_char, nodes_from_element, split_inline_furigana
from yomu.html import parse_html
from yomu.nodes import RubyNode, TextNode


def test_is_cjk_char() -> None:
    assert is_cjk_char("漢")
    assert is_cjk_char("々")
    assert not is_cjk_char("か")
    assert not is_cjk_char("カ")
    assert not is_cjk_char("A")
    assert not is_cjk_char("")


def test_split_inline_furigana_basic() -> None:
    assert split_inline_furigana("東京（とうきょう）で雨（あめ）が降る") == [
        RubyNode("東京", "とうきょう"),
        TextNode("で"),
        RubyNode("雨", "あめ"),
        TextNode("が降る"),
    ]


def test_split_inline_furigana_takes_only_the_kanji_run() -> None:
    assert split_inline_furigana("きのう大雨（おおあめ）") == [
        TextNode("きのう"),
        RubyNode("大雨", "おおあめ"),
    ]


def test_split_inline_furigana_leaves_plain_parentheticals() -> None:
    text = "ニュース（速報）です"
    assert split_inline_furigana(text) == [TextNode(text)]


def test_split_inline_furigana_unclosed_or_empty_reading() -> None:
    assert split_inline_furigana("漢字（かんじ") == [TextNode("漢字（かんじ")]
    assert split_inline_furigana("漢字（）です") == [TextNode("漢字（）です")]
    assert split_inline_furigana("") == []


def test_nodes_from_element_walks_ruby_and_text() -> None:
    doc = parse_html(
        "<p id='x'>きょうは<ruby>天気<rt>てんき</rt></ruby>が"
        "<span><ruby><rb>良</rb><rp>(</rp><rt>よ</rt><rp>)</rp></ruby>いです。</span>"
        "<script>var x = 1;</script></p>"
    )
    element = doc.select_one("#x")
    assert element is not None
    assert nodes_from_element(element) == [
        TextNode("きょうは"),
        RubyNode("天気", "てんき"),
        TextNode("が"),
        RubyNode("良", "よ"),
        TextNode("いです。"),
    ]


def test_nodes_from_element_ruby_without_reading_becomes_text() -> None:
    doc = parse_html("<p id='x'><ruby>字<rt></rt></ruby>だけ</p>")
    element = doc.select_one("#x")
    assert element is not None
    assert nodes_from_element(element) == [TextNode("字"), TextNode("だけ")]


def test_nodes_from_element_inline_mode() -> None:
    doc = parse_html("<p id='x'>毎日（まいにち）<b>勉強（べんきょう）</b>する</p>")
    element = doc.select_one("#x")
    assert element is not None
    assert nodes_from_element(element, inline=True) == [
        RubyNode("毎日", "まいにち"),
        RubyNode("勉強", "べんきょう"),
        TextNode("する"),
    ]
