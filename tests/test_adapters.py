from __future__ import annotations

import warnings

import pytest

from yomu.adapters import (
    AdapterRegistry,
    MainichiMaishoAdapter,
    NHKEasyAdapter,
    default_registry,
    parse_title_labels,
    strip_site_suffix,
)
from yomu.errors import UnsupportedSourceError
from yomu.html import parse_html
from yomu.nodes import Paragraph, RubyNode, SourceId, TextNode

NHK_PAGE = """
<html>
<head>
  <meta property="og:title" content="大雪のニュース | NHK NEWS WEB EASY">
  <meta property="og:image" content="/news/easy/k10014671234000/k10014671234000.jpg">
</head>
<body>
  <h1 class="article-title"><ruby>大雪<rt>おおゆき</rt></ruby>のニュース</h1>
  <p id="js-article-date">2024年12月18日 11時45分</p>
  <div id="js-article-body">
    <p><ruby>北海道<rt>ほっかいどう</rt></ruby>で<ruby>雪<rt>ゆき</rt></ruby>が<ruby>降<rt>ふ</rt></ruby>りました。</p>
    <p> </p>
    <p>気をつけてください。</p>
  </div>
</body>
</html>
"""

MAINICHI_PAGE = """
<html>
<head>
  <meta name="firstcreate" content="2024-12-18 11:45:00">
  <meta name="category" content="社会">
</head>
<body>
  <h1 class="title-page">毎小ニュース：社会　大雨（おおあめ）で川（かわ）があふれる</h1>
  <div id="articledetail-body">
    <p>きのう大雨（おおあめ）が降（ふ）りました。</p>
    <p>川（かわ）に近（ちか）づかないでください。</p>
  </div>
</body>
</html>
"""


def test_nhk_adapter_parses_article() -> None:
    article = NHKEasyAdapter().parse(parse_html(NHK_PAGE))
    assert article.source is SourceId.NHK
    assert article.title == (RubyNode("大雪", "おおゆき"), TextNode("のニュース"))
    assert article.labels == ()
    assert article.published_date == "2024-12-18T02:45:00Z"
    assert article.images == (
        "https://www3.nhk.or.jp/news/easy/k10014671234000/k10014671234000.jpg",
    )
    assert article.content == (
        Paragraph(
            (
                RubyNode("北海道", "ほっかいどう"),
                TextNode("で"),
                RubyNode("雪", "ゆき"),
                TextNode("が"),
                RubyNode("降", "ふ"),
                TextNode("りました。"),
            )
        ),
        Paragraph((TextNode("気をつけてください。"),)),
    )


def test_title_falls_back_to_og_title_without_site_suffix() -> None:
    page = """
    <html><head><meta property="og:title" content="Foo | SiteName"></head>
    <body><div id="js-article-body"><p>本文。</p></div></body></html>
    """
    article = NHKEasyAdapter().parse(parse_html(page))
    assert article.title == (TextNode("Foo"),)


def test_strip_site_suffix() -> None:
    assert strip_site_suffix("Foo | SiteName") == "Foo"
    assert strip_site_suffix("大雨｜毎日小学生新聞") == "大雨"
    assert strip_site_suffix("Foo") == "Foo"


def test_image_fallback_prefers_main_image_then_figure() -> None:
    adapter = NHKEasyAdapter()
    figure_only = parse_html(
        '<div id="js-article-figure"><img src="//www3.nhk.or.jp/news/easy/fig.jpg"></div>'
    )
    assert adapter.extract_images(figure_only) == ["https://www3.nhk.or.jp/news/easy/fig.jpg"]

    both = parse_html(
        '<div class="article-main__img"><img src="main.jpg"></div>'
        '<figure><img src="/figure.jpg"></figure>'
    )
    assert adapter.extract_images(both) == ["https://www3.nhk.or.jp/main.jpg"]

    assert adapter.extract_images(parse_html("<p>no images</p>")) == []


def test_body_falls_back_to_raw_text_then_description() -> None:
    adapter = NHKEasyAdapter()
    raw = parse_html('<div id="js-article-body">一つ目です。\n\n二つ目です。</div>')
    assert adapter.extract_body(raw) == [
        Paragraph((TextNode("一つ目です。"),)),
        Paragraph((TextNode("二つ目です。"),)),
    ]

    described = parse_html('<meta name="description" content="あらすじです。">')
    assert adapter.extract_body(described) == [Paragraph((TextNode("あらすじです。"),))]

    assert adapter.extract_body(parse_html("<p>unrelated</p>")) == []


def test_missing_date_is_absent() -> None:
    article = NHKEasyAdapter().parse(parse_html("<h1 class='article-title'>題</h1>"))
    assert article.published_date is None
    assert article.title == (TextNode("題"),)


def test_mainichi_adapter_parses_inline_furigana() -> None:
    article = MainichiMaishoAdapter().parse(parse_html(MAINICHI_PAGE))
    assert article.source is SourceId.MAINICHI
    assert article.title == (
        RubyNode("大雨", "おおあめ"),
        TextNode("で"),
        RubyNode("川", "かわ"),
        TextNode("があふれる"),
    )
    assert article.labels == ("毎小ニュース", "社会")
    assert article.published_date == "2024-12-18T02:45:00Z"
    assert article.content[0] == Paragraph(
        (
            TextNode("きのう"),
            RubyNode("大雨", "おおあめ"),
            TextNode("が"),
            RubyNode("降", "ふ"),
            TextNode("りました。"),
        )
    )
    assert len(article.content) == 2


def test_mainichi_ruby_markup_is_still_honoured() -> None:
    page = '<div id="articledetail-body"><p><ruby>駅<rt>えき</rt></ruby>の前（まえ）</p></div>'
    article = MainichiMaishoAdapter().parse(parse_html(page))
    assert article.content == (
        Paragraph((RubyNode("駅", "えき"), TextNode("の"), RubyNode("前", "まえ"))),
    )


def test_parse_title_labels() -> None:
    assert parse_title_labels("毎小ニュース：国際 会議が開かれる") == (
        "会議が開かれる",
        ["毎小ニュース", "国際"],
    )
    assert parse_title_labels("毎小ニュース：ニュース") == ("ニュース", ["毎小ニュース"])
    assert parse_title_labels("題名だけ") == ("題名だけ", [])


def test_registry_selects_by_host() -> None:
    registry = default_registry()
    assert isinstance(
        registry.select("https://www3.nhk.or.jp/news/easy/k10014671234000/k10014671234000.html"),
        NHKEasyAdapter,
    )
    assert isinstance(
        registry.select("https://mainichi.jp/maisho/articles/20241218/kei/00m/100/001000c"),
        MainichiMaishoAdapter,
    )


def test_registry_unknown_host_uses_default(caplog) -> None:
    registry = default_registry()
    with caplog.at_level("WARNING", logger="yomu.adapters"):
        adapter = registry.select("https://example.com/article")
    assert adapter is registry.default
    assert isinstance(adapter, NHKEasyAdapter)
    assert "example.com" in caplog.text


def test_strict_registry_rejects_unknown_host() -> None:
    registry = default_registry(strict=True)
    with pytest.raises(UnsupportedSourceError):
        registry.select("https://example.com/article")


def test_registry_requires_adapters() -> None:
    with pytest.raises(ValueError):
        AdapterRegistry([])


def test_parse_html_accepts_xhtml_without_warnings() -> None:
    page = '<?xml version="1.0" encoding="utf-8"?>\n<html><body><p class="lead">本文です。</p></body></html>'
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        document = parse_html(page)
    lead = document.select_one("p.lead")
    assert lead is not None
    assert lead.text() == "本文です。"
