from .adapters import AdapterRegistry, MainichiMaishoAdapter, NHKEasyAdapter, default_registry
from .config import PlaybackTiming, ReaderConfig
from .errors import (
    ArticleFetchError,
    NewsListError,
    StoreError,
    UnsupportedSourceError,
    VoiceVoxError,
    VoiceVoxUnavailableError,
    YomuError,
)
from .listing import NewsListService
from .nodes import Paragraph, ParsedArticle, RubyNode, SourceId, TextNode
from .playback import PlaybackEngine, PlaybackState, RepeatMode
from .sentences import Sentence, article_sentences, split_sentences
from .service import ArticleService
from .tts import VoiceVoxClient, synthesize

__all__ = [
    "AdapterRegistry",
    "NHKEasyAdapter",
    "MainichiMaishoAdapter",
    "default_registry",
    "ReaderConfig",
    "PlaybackTiming",
    "YomuError",
    "ArticleFetchError",
    "UnsupportedSourceError",
    "StoreError",
    "NewsListError",
    "VoiceVoxError",
    "VoiceVoxUnavailableError",
    "SourceId",
    "TextNode",
    "RubyNode",
    "Paragraph",
    "ParsedArticle",
    "Sentence",
    "split_sentences",
    "article_sentences",
    "NewsListService",
    "ArticleService",
    "VoiceVoxClient",
    "synthesize",
    "PlaybackEngine",
    "PlaybackState",
    "RepeatMode",
]
