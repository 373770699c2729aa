from __future__ import annotations

import argparse
import asyncio
import json
import shlex
import sys
from dataclasses import replace
from importlib import metadata
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .audio import DEFAULT_PLAYER_COMMAND, SubprocessAudioBackend
from .config import PlaybackTiming, ReaderConfig
from .dates import format_japanese_date
from .errors import (
    ArticleFetchError,
    NewsListError,
    UnsupportedSourceError,
    VoiceVoxError,
    VoiceVoxUnavailableError,
)
from .listing import DEFAULT_LIMIT, NewsListService
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .nodes import ContentNode, RubyNode, SourceId, TextNode, flatten_nodes
from .playback import PlaybackEngine, PlaybackPhase, PlaybackState, RepeatMode
from .sentences import article_sentences
from .service import ArticleService
from .store import JsonArticleStore, MemoryArticleStore
from .tts import VoiceVoxClient, VoiceVoxSynthesizer, clamp_speed, synthesize
from .web import create_app

try:
    __version__ = metadata.version("yomu")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+unknown"

_SUBCOMMANDS = ("list", "fetch", "sentences", "say", "read", "serve")


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"yomu {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (adapter fallbacks, VoiceVox requests).",
    )


def _add_engine_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--engine-url",
        help="Base URL for the VoiceVox engine (default: http://127.0.0.1:50021).",
    )
    parser.add_argument(
        "--speaker",
        type=int,
        help="VoiceVox speaker/style ID (default: 14).",
    )
    parser.add_argument(
        "--speed",
        type=float,
        help="Speech speed scale, clamped to 0.6-1.2 (default: 1.0).",
    )


def _add_store_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store-dir",
        help="Directory for cached article JSON (default: in-memory only).",
    )
    parser.add_argument(
        "--strict-sources",
        action="store_true",
        help="Reject URLs whose host has no dedicated adapter.",
    )


def _add_hold_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--hold-after-ruby",
        action=argparse.BooleanOptionalAction,
        default=None,
        help=(
            "Do not end a sentence on punctuation that directly follows a ruby word "
            "(default: on for NHK Easy, off for Mainichi)."
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu",
        description=(
            "Japanese news reader: fetch furigana-annotated articles and read them "
            "aloud sentence by sentence with VoiceVox."
        ),
        epilog="Subcommands: " + ", ".join(_SUBCOMMANDS),
    )
    _add_common_flags(ap)
    return ap


def build_list_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu list",
        description="List recent articles from both sources, newest first.",
    )
    _add_common_flags(ap)
    ap.add_argument(
        "--list-base-url",
        help="Origin serving the sources/.../news-list.json feeds (env: YOMU_LIST_BASE_URL).",
    )
    ap.add_argument(
        "--source",
        choices=[source.value for source in SourceId],
        help="Only list articles from one source.",
    )
    ap.add_argument("--limit", type=int, default=DEFAULT_LIMIT, help="Page size, 1-50 (default: 12).")
    ap.add_argument("--offset", type=int, default=0, help="Entries to skip (default: 0).")
    ap.add_argument("--json", action="store_true", help="Print the raw list JSON.")
    return ap


def build_fetch_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="yomu fetch", description="Fetch and print an article.")
    _add_common_flags(ap)
    _add_store_flags(ap)
    ap.add_argument("url", help="Article URL (NHK Easy or Mainichi Maisho).")
    ap.add_argument("--json", action="store_true", help="Print the raw article JSON.")
    ap.add_argument(
        "--no-furigana",
        action="store_true",
        help="Print kanji without their readings.",
    )
    return ap


def build_sentences_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu sentences",
        description="List an article's sentences as they are spoken.",
    )
    _add_common_flags(ap)
    _add_store_flags(ap)
    ap.add_argument("url", help="Article URL.")
    _add_hold_flag(ap)
    return ap


def build_say_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="yomu say", description="Synthesize text to a WAV file.")
    _add_common_flags(ap)
    _add_engine_flags(ap)
    ap.add_argument("text", help="Japanese text to speak.")
    ap.add_argument("-o", "--output", required=True, help="Output .wav path.")
    return ap


def build_read_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu read",
        description="Read an article aloud in the terminal.",
    )
    _add_common_flags(ap)
    _add_engine_flags(ap)
    _add_store_flags(ap)
    ap.add_argument("url", help="Article URL.")
    ap.add_argument(
        "--repeat",
        choices=[mode.value for mode in RepeatMode],
        default=RepeatMode.NONE.value,
        help="Repeat mode: none (default), all (loop article), one (loop sentence).",
    )
    ap.add_argument(
        "--start",
        type=int,
        default=1,
        help="1-based sentence number to start from (default: 1).",
    )
    ap.add_argument(
        "--readings",
        action="store_true",
        help="Send ruby readings instead of kanji to the engine.",
    )
    _add_hold_flag(ap)
    ap.add_argument(
        "--player",
        default=" ".join(DEFAULT_PLAYER_COMMAND),
        help="Audio player command; the WAV path is appended (default: ffplay).",
    )
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="yomu serve", description="Serve the reader HTTP API.")
    _add_common_flags(ap)
    _add_engine_flags(ap)
    _add_store_flags(ap)
    ap.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    ap.add_argument("--port", type=int, default=2047, help="Port to bind (default: 2047).")
    return ap


def _config_from_args(args: argparse.Namespace) -> ReaderConfig:
    config = ReaderConfig.from_env()
    engine_url = getattr(args, "engine_url", None)
    if engine_url:
        config = replace(config, engine_url=engine_url)
    speaker = getattr(args, "speaker", None)
    if speaker is not None:
        config = replace(config, speaker=speaker)
    speed = getattr(args, "speed", None)
    if speed is not None:
        config = replace(config, speed=clamp_speed(speed, config.min_speed, config.max_speed))
    store_dir = getattr(args, "store_dir", None)
    if store_dir:
        config = replace(config, store_dir=Path(store_dir).expanduser().resolve())
    if getattr(args, "strict_sources", False):
        config = replace(config, strict_sources=True)
    list_base_url = getattr(args, "list_base_url", None)
    if list_base_url:
        config = replace(config, list_base_url=list_base_url.rstrip("/"))
    return config


def _build_service(config: ReaderConfig) -> ArticleService:
    store = JsonArticleStore(config.store_dir) if config.store_dir else MemoryArticleStore()
    return ArticleService(store, config=config)


def _build_news_list(config: ReaderConfig) -> NewsListService:
    return NewsListService(config.list_base_url, config=config)


def render_nodes(nodes: tuple[ContentNode, ...] | list[ContentNode], *, furigana: bool = True) -> str:
    """Rich markup for a node run, readings shown dimmed after their kanji."""
    parts: list[str] = []
    previous: ContentNode | None = None
    for node in nodes:
        if isinstance(node, RubyNode):
            if furigana:
                parts.append(f"{escape(node.kanji)}[dim]（{escape(node.reading)}）[/dim]")
            else:
                parts.append(escape(node.kanji))
        elif isinstance(node, TextNode):
            if not (isinstance(previous, RubyNode) and node.content == previous.reading):
                parts.append(escape(node.content))
        previous = node
    return "".join(parts)


def _run_list(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    news_list = _build_news_list(config)
    try:
        payload = news_list.page(limit=args.limit, offset=args.offset, source=args.source)
    finally:
        news_list.close()
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    table = Table(show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("Source")
    table.add_column("Title")
    table.add_column("URL", style="dim", overflow="fold")
    for item in payload["newsList"]:  # type: ignore[union-attr]
        title = item["title"]
        if item["category"]:
            title = f"[{item['category']}] {title}"
        table.add_row(
            escape(format_japanese_date(item["date"])) if item["date"] else "",
            item["source"],
            escape(title),
            escape(item["url"]),
        )
    console.print(table)
    pagination = payload["pagination"]
    console.print(
        f"[dim]page {pagination['currentPage']}/{pagination['totalPages']}, "  # type: ignore[index]
        f"{payload['total']} articles[/dim]"
    )
    return 0


def _run_fetch(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    service = _build_service(config)
    try:
        if args.json:
            payload = service.get_article(args.url)
            print(json.dumps(payload, ensure_ascii=False, indent=2))
            return 0
        article = service.load_article(args.url)
    finally:
        service.close()

    furigana = not args.no_furigana
    console.print(f"[bold]{render_nodes(article.title, furigana=furigana)}[/bold]")
    meta: list[str] = []
    if article.published_date:
        meta.append(format_japanese_date(article.published_date))
    if article.labels:
        meta.append(" / ".join(article.labels))
    if meta:
        console.print(f"[cyan]{escape('  '.join(meta))}[/cyan]")
    for image in article.images:
        console.print(f"[dim]{escape(image)}[/dim]")
    console.print()
    for paragraph in article.content:
        console.print(render_nodes(paragraph.content, furigana=furigana))
        console.print()
    return 0


def _run_sentences(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    service = _build_service(config)
    try:
        article = service.load_article(args.url)
    finally:
        service.close()
    sentences = article_sentences(article, hold_after_ruby=args.hold_after_ruby)
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("¶", justify="right")
    table.add_column("Sentence")
    table.add_column("Reading", style="dim")
    for index, sentence in enumerate(sentences, start=1):
        table.add_row(
            str(index),
            str(sentence.paragraph_index + 1),
            escape(sentence.text()),
            escape(sentence.reading_text()),
        )
    console.print(f"[bold]{escape(flatten_nodes(article.title))}[/bold]")
    console.print(table)
    return 0


def _run_say(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    client = VoiceVoxClient(config.engine_url, timeout=config.engine_timeout)
    try:
        audio = synthesize(
            client,
            args.text,
            config.speaker,
            config.speed,
            max_chunk_chars=config.max_chunk_chars,
        )
    finally:
        client.close()
    output = Path(args.output).expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(audio)
    console.print(f"Wrote {escape(str(output))} ({len(audio)} bytes)")
    return 0


async def _read_article(
    engine: PlaybackEngine,
    start: int,
    console: Console,
) -> None:
    done = asyncio.Event()
    sentences = engine.sentences
    last_index = -1

    def on_state(state: PlaybackState) -> None:
        nonlocal last_index
        if state.error:
            console.print(f"[red]Playback error:[/red] {escape(state.error)}")
            done.set()
            return
        if state.phase is PlaybackPhase.PLAYING and state.current_index != last_index:
            last_index = state.current_index
            text = escape(sentences[state.current_index].text())
            console.print(f"[bold cyan]{state.current_index + 1:>3}[/bold cyan] {text}")
        elif state.countdown_seconds:
            console.print(f"[dim]repeat in {state.countdown_seconds}s[/dim]")
        elif state.phase is PlaybackPhase.IDLE and state.current_index == -1 and not engine.has_pending:
            done.set()

    unsubscribe = engine.subscribe(on_state)
    try:
        await engine.play(start)
        await done.wait()
    finally:
        unsubscribe()


def _run_read(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    service = _build_service(config)
    try:
        article = service.load_article(args.url)
    finally:
        service.close()
    sentences = article_sentences(article, hold_after_ruby=args.hold_after_ruby)
    if not sentences:
        console.print("[yellow]Article has no readable content.[/yellow]")
        return 1
    start = min(max(args.start, 1), len(sentences)) - 1

    backend = SubprocessAudioBackend(shlex.split(args.player))
    synthesizer = VoiceVoxSynthesizer(
        VoiceVoxClient(config.engine_url, timeout=config.engine_timeout),
        max_chunk_chars=config.max_chunk_chars,
    )
    engine = PlaybackEngine(
        sentences,
        synthesizer,
        backend,
        voice=config.speaker,
        speed=config.speed,
        repeat_mode=RepeatMode(args.repeat),
        timing=PlaybackTiming(),
        use_readings=args.readings,
    )
    console.print(f"[bold]{escape(flatten_nodes(article.title))}[/bold]")
    try:
        asyncio.run(_read_article(engine, start, console))
    except KeyboardInterrupt:
        console.print("\nStopped.")
    finally:
        engine.close()
        synthesizer.close()
        backend.close()
    return 0


def _run_serve(args: argparse.Namespace, console: Console) -> int:
    config = _config_from_args(args)
    app = create_app(config)
    console.print(f"Serving yomu on http://{args.host}:{args.port}/")
    console.print(f"VoiceVox engine: {escape(config.engine_url)}")
    console.print("Press Ctrl+C to stop.\n")
    uvicorn.run(app, host=args.host, port=args.port, log_config=build_uvicorn_log_config())
    return 0


_COMMANDS = {
    "list": (build_list_parser, _run_list),
    "fetch": (build_fetch_parser, _run_fetch),
    "sentences": (build_sentences_parser, _run_sentences),
    "say": (build_say_parser, _run_say),
    "read": (build_read_parser, _run_read),
    "serve": (build_serve_parser, _run_serve),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    console = Console()
    if not argv or argv[0] not in _COMMANDS:
        parser = build_parser()
        if not argv:
            parser.print_help()
            return 0
        parser.parse_args(argv)
        parser.error(f"unknown command: {argv[0]}")

    build, run = _COMMANDS[argv[0]]
    args = build().parse_args(argv[1:])
    set_debug_logging(bool(getattr(args, "debug", False)))
    try:
        return run(args, console)
    except (ArticleFetchError, UnsupportedSourceError) as exc:
        console.print(f"[red]Could not load article:[/red] {escape(str(exc))}")
        return 1
    except (VoiceVoxUnavailableError, VoiceVoxError) as exc:
        console.print(f"[red]VoiceVox error:[/red] {escape(str(exc))}")
        return 1
    except NewsListError as exc:
        console.print(f"[red]Could not load news list:[/red] {escape(str(exc))}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
