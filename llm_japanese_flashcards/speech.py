import time
from typing import Any, Callable, Dict, List, Optional, Protocol

JAPANESE = "ja-JP"
ENGLISH = "en-US"
TRANSLATION_DELAY = 1.5


class SpeechBackend(Protocol):
    """Device text-to-speech, provided by whatever front end hosts the app."""

    def speak(self, text: str, language: str = JAPANESE) -> None: ...

    def stop(self) -> None: ...

    def is_available(self) -> bool: ...

    def list_voices(self) -> List[Dict[str, Any]]: ...


def speak_with_translation(backend: SpeechBackend,
                           text: str,
                           meaning: Optional[str] = None,
                           delay: float = TRANSLATION_DELAY,
                           sleep: Callable[[float], None] = time.sleep) -> None:
    """Speak the Japanese text, pause, then speak its English meaning."""
    backend.stop()
    backend.speak(text, JAPANESE)
    if meaning:
        sleep(delay)
        backend.speak(meaning, ENGLISH)


def japanese_voices(voices: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        voice for voice in voices
        if isinstance(voice.get("language"), str) and ("ja" in voice["language"] or "JP" in voice["language"])
    ]
