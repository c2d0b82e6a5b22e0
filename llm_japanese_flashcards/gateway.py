"""
Remote content for the flashcard collections.

All explanations, word lists and drawing identification come from an
OpenAI-compatible chat model; the canonical kanji and katakana lists are
downloaded over HTTP. Every failure surfaces as GatewayError so callers can
abort one step without touching the rest of the stored progress.
"""

import json
import os
from typing import Any, Dict, List, Optional

import openai
import requests
from openai import OpenAI

from .structured import (
    ENRICHMENT_PROMPTS,
    RECOGNITION_PROMPT,
    STROKE_RENDER_PROMPT,
    WORDS_FOR_KANJI_PROMPT,
    DEFAULT_KATAKANA,
    KanaItem,
    KanjiItem,
    RecognitionResult,
    VocabularyItem,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"
DEFAULT_TIMEOUT = float(os.environ.get("LLM_JP_TIMEOUT", "30"))
MAX_COMPLETION_TOKENS = 4096

KANJI_LIST_URL = "https://kanjiapi.dev/v1/kanji/grade-1"
KATAKANA_LIST_URL = "https://api.nihongoresources.com/kana/katakana"

TUTOR_SYSTEM_PROMPT = "You are a Japanese language teacher assistant. Return ONLY valid JSON."
RECOGNITION_SYSTEM_PROMPT = (
    "You are a Japanese kanji recognition expert. Analyze drawing descriptions "
    "and identify the most likely kanji character that matches. Return ONLY valid JSON."
)


class GatewayError(RuntimeError):
    """A remote call failed (network, HTTP status or malformed response)."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class GatewayTimeout(GatewayError):
    """A remote call did not complete within the configured timeout."""


class OpenAIModel:
    """Wrapper for an OpenAI-compatible chat API exposing prompt()/text()."""

    def __init__(self, client: Any, model_name: str = "gpt-4o-mini", json_mode: bool = True):
        self.client = client
        self.model_name = model_name
        self.json_mode = json_mode

    def prompt(self, prompt_text: str, system: str = "") -> Any:
        """Send prompt to the chat endpoint and return response."""
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt_text})

        if DEBUG_MODE:
            print(f"🤖 Chat API Call Details:")
            print(f"   Model: {self.model_name}")
            print(f"   System prompt length: {len(system) if system else 0} characters")
            print(f"   User prompt length: {len(prompt_text)} characters")

        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "temperature": 0.5,
            "max_completion_tokens": MAX_COMPLETION_TOKENS,
        }
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content or ""

        if DEBUG_MODE:
            print(f"✅ Chat API Response:")
            print(f"   Response length: {len(content)} characters")

        class Response:
            def __init__(self, content: str) -> None:
                self.content = content
            def text(self) -> str:
                return self.content

        return Response(content)


def build_openai_model(api_key: Optional[str] = None,
                       base_url: Optional[str] = None,
                       model_name: Optional[str] = None,
                       timeout: float = DEFAULT_TIMEOUT) -> OpenAIModel:
    """Create an OpenAIModel with a bounded timeout and no automatic retries."""
    client_kwargs: Dict[str, Any] = {
        "api_key": api_key or os.environ.get("OPENAI_API_KEY"),
        "timeout": timeout,
        "max_retries": 0,
    }
    base_url = base_url or os.environ.get("OPENAI_BASE_URL")
    if base_url:
        client_kwargs["base_url"] = base_url
    client = OpenAI(**client_kwargs)
    return OpenAIModel(client, model_name=model_name or os.environ.get("LLM_JP_MODEL", "gpt-4o-mini"))


def _strip_code_fence(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        lines = raw.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        raw = "\n".join(lines)
    return raw


def _is_timeout(error: Exception) -> bool:
    return isinstance(error, (requests.Timeout, TimeoutError, openai.APITimeoutError))


class ContentGateway:
    """Request/response access to remote content. Holds no collection state."""

    def __init__(self, model: Any, timeout: float = DEFAULT_TIMEOUT, http: Any = requests) -> None:
        self.model = model
        self.timeout = timeout
        self.http = http

    # -- transport --------------------------------------------------------
    def _ask_json(self, operation: str, prompt: str, system: str = TUTOR_SYSTEM_PROMPT) -> Any:
        if self.model is None:
            raise GatewayError(operation, "AI model is not configured")
        try:
            response = self.model.prompt(prompt, system=system)
            raw = response.text()
        except Exception as e:
            if _is_timeout(e):
                raise GatewayTimeout(operation, f"timed out after {self.timeout}s") from e
            raise GatewayError(operation, f"{type(e).__name__}: {e}") from e
        try:
            return json.loads(_strip_code_fence(raw))
        except ValueError as e:
            if DEBUG_MODE:
                print(f"   Raw response for {operation}: {raw[:200]}")
            raise GatewayError(operation, f"malformed JSON response ({e})") from e

    def _get_json(self, operation: str, url: str) -> Any:
        try:
            response = self.http.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except Exception as e:
            if _is_timeout(e):
                raise GatewayTimeout(operation, f"GET {url} timed out after {self.timeout}s") from e
            raise GatewayError(operation, f"GET {url} failed: {e}") from e

    # -- contract ---------------------------------------------------------
    def fetch_item_enrichment(self, glyph_or_word: str, kind: str) -> Dict[str, Any]:
        """Meaning/readings/examples/level for kanji and words, pronunciation/examples for katakana."""
        template = ENRICHMENT_PROMPTS.get(kind)
        if template is None:
            raise ValueError(f"Unknown item kind: {kind}")
        operation = f"fetch_item_enrichment[{kind}:{glyph_or_word}]"
        data = self._ask_json(operation, template.format(glyph=glyph_or_word))
        if not isinstance(data, dict):
            raise GatewayError(operation, f"expected an object, got {type(data).__name__}")
        return data

    def fetch_stroke_render(self, glyph: str) -> List[Any]:
        operation = f"fetch_stroke_render[{glyph}]"
        data = self._ask_json(operation, STROKE_RENDER_PROMPT.format(glyph=glyph))
        if isinstance(data, dict):
            data = data.get("strokes", data.get("paths"))
        if not isinstance(data, list):
            raise GatewayError(operation, "response has no stroke list")
        return data

    def fetch_canonical_list(self, kind: str) -> List[Any]:
        if kind == "kanji":
            payload = self._get_json("fetch_canonical_list[kanji]", KANJI_LIST_URL)
            if not isinstance(payload, list):
                raise GatewayError("fetch_canonical_list[kanji]", "expected a list of kanji")
            # Meanings are filled in lazily when an item is opened.
            return [KanjiItem(glyph=str(glyph), meaning="", level=0) for glyph in payload]
        if kind == "katakana":
            try:
                payload = self._get_json("fetch_canonical_list[katakana]", KATAKANA_LIST_URL)
                return [
                    KanaItem(glyph=str(entry["kana"]), romanization=str(entry.get("romaji", "")), level=0)
                    for entry in payload
                ]
            except (GatewayError, KeyError, TypeError) as e:
                print(f"⚠️ Katakana download failed, using built-in set: {e}")
                return [KanaItem(k.glyph, k.romanization, 0) for k in DEFAULT_KATAKANA]
        raise ValueError(f"No canonical list for kind: {kind}")

    def fetch_words_containing(self, glyph: str) -> List[VocabularyItem]:
        operation = f"fetch_words_containing[{glyph}]"
        data = self._ask_json(operation, WORDS_FOR_KANJI_PROMPT.format(glyph=glyph))
        entries = data.get("words") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise GatewayError(operation, "response has no word list")
        words = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("word"):
                if DEBUG_MODE:
                    print(f"   Skipping malformed word entry for {glyph}: {entry}")
                continue
            words.append(VocabularyItem(
                word=str(entry["word"]),
                reading=str(entry.get("reading") or ""),
                meaning=str(entry.get("meaning") or ""),
                jlpt_level=entry.get("jlpt_level") or None,
            ))
        return words

    def identify_from_description(self, text: str) -> RecognitionResult:
        operation = "identify_from_description"
        data = self._ask_json(operation, RECOGNITION_PROMPT.format(description=text), system=RECOGNITION_SYSTEM_PROMPT)
        if not isinstance(data, dict) or not data.get("kanji"):
            raise GatewayError(operation, "response has no kanji")
        alternates = data.get("alternatives") or data.get("alternates") or []
        if not isinstance(alternates, list):
            alternates = [alternates]
        try:
            confidence = int(round(float(data.get("confidence", 0))))
        except (TypeError, ValueError):
            confidence = 0
        return RecognitionResult(
            best=str(data["kanji"]),
            alternates=[str(a) for a in alternates[:3]],
            confidence=max(0, min(100, confidence)),
        )
