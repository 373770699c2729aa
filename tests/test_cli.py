from __future__ import annotations

import json

import pytest
from rich.console import Console

import yomu.cli as cli
from yomu.listing import NewsListService
from yomu.nodes import RubyNode, TextNode
from yomu.service import ArticleService
from yomu.store import MemoryArticleStore

ARTICLE_URL = "https://www3.nhk.or.jp/news/easy/k10014671234000/k10014671234000.html"

PAGE = """
<html><body>
  <h1 class="article-title"><ruby>大雪<rt>おおゆき</rt></ruby>のニュース</h1>
  <p id="js-article-date">2024年12月18日 11時45分</p>
  <div id="js-article-body">
    <p><ruby>北海道<rt>ほっかいどう</rt></ruby>で雪。道に注意。</p>
  </div>
</body></html>
"""


class DummyResponse:
    encoding = "utf-8"
    apparent_encoding = "utf-8"

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        self.text = PAGE if status_code == 200 else ""


class DummySession:
    def __init__(self, status_code: int = 200) -> None:
        self.headers: dict[str, str] = {}
        self.status_code = status_code

    def get(self, url, *, timeout=None):
        return DummyResponse(self.status_code)

    def close(self) -> None:
        pass


def _patch_service(monkeypatch, status_code: int = 200) -> None:
    def _build(config):
        return ArticleService(
            MemoryArticleStore(), config=config, session=DummySession(status_code)
        )

    monkeypatch.setattr(cli, "_build_service", _build)


def test_fetch_json_prints_article(monkeypatch, capsys) -> None:
    _patch_service(monkeypatch)
    assert cli.main(["fetch", ARTICLE_URL, "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["title"][0] == {"type": "ruby", "kanji": "大雪", "reading": "おおゆき"}
    assert payload["published_date"] == "2024-12-18T02:45:00Z"


def test_fetch_renders_furigana(monkeypatch, capsys) -> None:
    _patch_service(monkeypatch)
    assert cli.main(["fetch", ARTICLE_URL]) == 0
    out = capsys.readouterr().out
    assert "大雪（おおゆき）のニュース" in out
    assert "2024年12月18日 11時45分" in out


def test_fetch_failure_exits_nonzero(monkeypatch, capsys) -> None:
    _patch_service(monkeypatch, status_code=404)
    assert cli.main(["fetch", ARTICLE_URL]) == 1
    assert "Could not load article" in capsys.readouterr().out


def test_sentences_lists_each_sentence(monkeypatch, capsys) -> None:
    _patch_service(monkeypatch)
    assert cli.main(["sentences", ARTICLE_URL]) == 0
    out = capsys.readouterr().out
    assert "北海道で雪。道に注意。" in out
    assert "ほっかいどうで雪。道に注意。" in out


def test_say_writes_wav(monkeypatch, tmp_path, capsys) -> None:
    calls: list[tuple[str, int, float | None]] = []

    class DummyClient:
        def __init__(self, base_url, timeout=None) -> None:
            self.base_url = base_url

        def synthesize_wav(self, text, speaker, *, speed=None):
            calls.append((text, speaker, speed))
            return b"wav-bytes"

        def close(self) -> None:
            pass

    monkeypatch.setattr(cli, "VoiceVoxClient", DummyClient)
    output = tmp_path / "out" / "hello.wav"
    exit_code = cli.main(["say", "こんにちは。", "-o", str(output), "--speaker", "3", "--speed", "3"])
    assert exit_code == 0
    assert output.read_bytes() == b"wav-bytes"
    assert calls == [("こんにちは。", 3, 1.2)]


def test_render_nodes_hides_echoed_reading() -> None:
    nodes = [RubyNode("駅", "えき"), TextNode("えき"), TextNode("です")]
    assert cli.render_nodes(nodes, furigana=False) == "駅です"
    assert cli.render_nodes(nodes) == "駅[dim]（えき）[/dim]です"


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        cli.main(["bogus"])


def test_no_arguments_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "usage: yomu" in capsys.readouterr().out


def test_read_forwards_hold_after_ruby(monkeypatch, capsys) -> None:
    _patch_service(monkeypatch)
    seen: list[bool | None] = []

    def fake_sentences(article, *, hold_after_ruby=None):
        seen.append(hold_after_ruby)
        return []

    monkeypatch.setattr(cli, "article_sentences", fake_sentences)
    assert cli.main(["read", ARTICLE_URL]) == 1
    assert cli.main(["read", ARTICLE_URL, "--hold-after-ruby"]) == 1
    assert cli.main(["read", ARTICLE_URL, "--no-hold-after-ruby"]) == 1
    assert seen == [None, True, False]
    assert "no readable content" in capsys.readouterr().out


class ListResponse:
    def __init__(self, status_code: int, data=None) -> None:
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data


class ListSession:
    def __init__(self, feeds: dict[str, object]) -> None:
        self.headers: dict[str, str] = {}
        self.feeds = feeds
        self.urls: list[str] = []

    def get(self, url, *, timeout=None):
        self.urls.append(url)
        for suffix, data in self.feeds.items():
            if url.endswith(suffix):
                return ListResponse(200, data)
        return ListResponse(404)

    def close(self) -> None:
        pass


NHK_FEED = [
    {
        "2024-12-18": [
            {"news_id": "k1", "title": "大雪", "news_prearranged_time": "2024-12-18 11:45:00"},
            {"news_id": "k2", "title": "地震", "news_prearranged_time": "2024-12-17 08:00:00"},
        ]
    }
]


def _patch_news_list(monkeypatch, feeds: dict[str, object]) -> ListSession:
    session = ListSession(feeds)

    def _build(config):
        return NewsListService(config.list_base_url, config=config, session=session)

    monkeypatch.setattr(cli, "_build_news_list", _build)
    return session


def test_list_json_pages_results(monkeypatch, capsys) -> None:
    session = _patch_news_list(monkeypatch, {"easy/news-list.json": NHK_FEED})
    exit_code = cli.main(
        ["list", "--list-base-url", "http://list.test/", "--limit", "1", "--offset", "1", "--json"]
    )
    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in payload["newsList"]] == ["nhk_k2"]
    assert payload["hasMore"] is False
    assert session.urls[0] == "http://list.test/sources/www3.nhk.or.jp/news/easy/news-list.json"


def test_list_renders_table(monkeypatch, capsys) -> None:
    _patch_news_list(monkeypatch, {"easy/news-list.json": NHK_FEED})
    monkeypatch.setattr(cli, "Console", lambda: Console(width=200))
    assert cli.main(["list", "--list-base-url", "http://list.test", "--source", "nhk"]) == 0
    out = capsys.readouterr().out
    assert "大雪" in out
    assert "page 1/1" in out


def test_list_without_feeds_exits_nonzero(monkeypatch, capsys) -> None:
    _patch_news_list(monkeypatch, {})
    assert cli.main(["list", "--list-base-url", "http://list.test"]) == 1
    assert "No news data available" in capsys.readouterr().out
