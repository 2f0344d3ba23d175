"""Background translation of foreign-language feed titles."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .cache import TRANSLATION_CACHE_KEY, CacheStore
from .models import FeedItem, Source

try:
    from google import genai
except Exception:  # pragma: no cover - optional dependency
    genai = None

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-flash-latest"

LANGUAGE_NAMES = {
    "en": "English",
    "ja": "Japanese",
}


class Translator(Protocol):
    """Optional translation capability."""

    def can_translate(self, source_language: str, target_language: str) -> bool:
        """Return whether the language pair is supported right now."""

    def translate(self, text: str) -> str:
        """Return ``text`` translated to the target language."""


class GeminiTranslator:
    """Gemini-backed translator; unavailable without the SDK or an API key."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        source_language: str = "en",
        target_language: str = "ja",
    ):
        self.model = model
        self.api_key = (
            api_key or os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
        )
        self.source_language = source_language
        self.target_language = target_language
        self._client = None

    def can_translate(self, source_language: str, target_language: str) -> bool:
        if genai is None:
            logger.info("google-genai is not installed; translation disabled.")
            return False
        if not self.api_key:
            logger.info("No Gemini API key configured; translation disabled.")
            return False
        if source_language not in LANGUAGE_NAMES or target_language not in LANGUAGE_NAMES:
            return False
        self.source_language = source_language
        self.target_language = target_language
        return True

    def translate(self, text: str) -> str:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        prompt = (
            f"Translate the following {LANGUAGE_NAMES[self.source_language]} headline "
            f"into natural {LANGUAGE_NAMES[self.target_language]}. "
            "Reply with the translation only.\n\n"
            f"{text}"
        )
        response = self._client.models.generate_content(model=self.model, contents=prompt)
        translated = (response.text or "").strip()
        if not translated:
            raise RuntimeError("Empty translation returned")
        return translated


class QueueState(str, Enum):
    UNCHECKED = "unchecked"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class TranslationQueue:
    """Serialized, best-effort title translator with a persistent cache.

    Titles are queued by :meth:`observe` and processed one at a time by a
    single drain loop. Concurrent :meth:`drain` calls return immediately while
    a drain is active; titles queued meanwhile are picked up by that loop.
    """

    def __init__(
        self,
        cache: CacheStore,
        translator: Optional[Translator],
        source_language: str = "en",
        target_language: str = "ja",
        sources: Iterable[Source] = (Source.HACKERNEWS,),
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.cache = cache
        self.translator = translator
        self.source_language = source_language
        self.target_language = target_language
        self.sources = frozenset(sources)
        self.executor = executor
        self.state = QueueState.UNCHECKED

        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._pending: List[str] = []
        self._in_flight: Optional[str] = None
        self._draining = False
        self._translations: Dict[str, str] = self._load_translations()

    def _load_translations(self) -> Dict[str, str]:
        def decode(payload) -> Dict[str, str]:
            if not isinstance(payload, dict):
                raise ValueError("translation cache must be an object")
            return {str(key): str(value) for key, value in payload.items()}

        cached = self.cache.load(TRANSLATION_CACHE_KEY, decode=decode)
        if cached:
            logger.info("Loaded %d cached translations", len(cached))
        return cached or {}

    @property
    def translations(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._translations)

    @property
    def pending(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._pending)

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    def translated(self, title: str) -> Optional[str]:
        with self._lock:
            return self._translations.get(title)

    def check_availability(self) -> QueueState:
        """Resolve the capability check once per session."""
        if self.state is not QueueState.UNCHECKED:
            return self.state

        available = False
        if self.translator is not None:
            try:
                available = bool(
                    self.translator.can_translate(self.source_language, self.target_language)
                )
            except Exception as exc:  # noqa: BLE001 - capability probing is best effort
                logger.warning("Translation capability check failed: %s", exc)
        self.state = QueueState.AVAILABLE if available else QueueState.UNAVAILABLE
        logger.info("Translation %s", self.state.value)
        return self.state

    def enqueue(self, titles: Iterable[str]) -> int:
        """Queue untranslated titles; returns how many were added."""
        added = 0
        with self._lock:
            for title in titles:
                if not title:
                    continue
                if (
                    title in self._translations
                    or title in self._pending
                    or title == self._in_flight
                ):
                    continue
                self._pending.append(title)
                added += 1
        if added:
            logger.debug("Queued %d titles for translation", added)
        return added

    def observe(self, items: Iterable[FeedItem]) -> Optional[concurrent.futures.Future]:
        """Queue titles of matching items and start a drain if needed."""
        if self.check_availability() is not QueueState.AVAILABLE:
            return None

        self.enqueue(item.title for item in items if item.source in self.sources)
        if not self.pending or self.draining:
            return None

        if self.executor is not None:
            return self.executor.submit(self.drain)

        future: concurrent.futures.Future = concurrent.futures.Future()
        future.set_result(self.drain())
        return future

    def drain(self) -> int:
        """Translate queued titles one by one; returns the number translated."""
        with self._lock:
            if self._draining or self.state is not QueueState.AVAILABLE:
                return 0
            self._draining = True

        translated = 0
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._in_flight = None
                        self._draining = False
                        break
                    title = self._pending.pop(0)
                    self._in_flight = title

                try:
                    result = self.translator.translate(title)
                except Exception as exc:  # noqa: BLE001 - skip and retry on a later pass
                    logger.warning("Translation failed for %r: %s", title, exc)
                    result = None

                with self._lock:
                    if result:
                        self._translations[title] = result
                        translated += 1
                    self._in_flight = None
        except BaseException:
            with self._lock:
                self._in_flight = None
                self._draining = False
            raise

        if translated:
            self._persist()
        logger.info("Translation drain finished: %d translated", translated)
        return translated

    def _persist(self) -> None:
        with self._persist_lock:
            snapshot = self.translations
            self.cache.save(TRANSLATION_CACHE_KEY, snapshot, self.cache.end_of_day())
