import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple


KANJI_LIST = "kanjiList"
KATAKANA_LIST = "katakanaList"
WORDS_LIST = "wordsList"
USER_SETTINGS = "userSettings"

COLLECTION_KEYS = (KANJI_LIST, KATAKANA_LIST, WORDS_LIST)

# Item kind used when asking the gateway about a collection's items.
COLLECTION_KINDS = {
    KANJI_LIST: "kanji",
    KATAKANA_LIST: "katakana",
    WORDS_LIST: "word",
}

# Items at or above this level are hidden from practice but still counted.
MASTERED_LEVEL = 5


class CorruptCollectionError(ValueError):
    """A stored collection blob could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Collection '{key}' is corrupt: {reason}")
        self.key = key
        self.reason = reason


@dataclass
class KanjiItem:
    glyph: str
    meaning: str = ""
    level: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"kanji": self.glyph, "meaning": self.meaning, "level": self.level}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KanjiItem":
        return cls(
            glyph=str(data["kanji"]),
            meaning=str(data.get("meaning") or ""),
            level=_parse_level(data.get("level", 0)),
        )


@dataclass
class KanaItem:
    glyph: str
    romanization: str = ""
    level: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"character": self.glyph, "romanji": self.romanization, "level": self.level}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KanaItem":
        return cls(
            glyph=str(data["character"]),
            romanization=str(data.get("romanji") or ""),
            level=_parse_level(data.get("level", 0)),
        )


@dataclass
class VocabularyItem:
    word: str
    reading: str = ""
    meaning: str = ""
    source_glyph: Optional[str] = None  # kanji whose first level-up unlocked this word
    level: int = 0
    jlpt_level: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "word": self.word,
            "reading": self.reading,
            "meaning": self.meaning,
            "sourceKanji": self.source_glyph,
            "level": self.level,
        }
        if self.jlpt_level:
            data["jlptLevel"] = self.jlpt_level
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VocabularyItem":
        return cls(
            word=str(data["word"]),
            reading=str(data.get("reading") or ""),
            meaning=str(data.get("meaning") or ""),
            source_glyph=data.get("sourceKanji"),
            level=_parse_level(data.get("level", 0)),
            jlpt_level=data.get("jlptLevel") or data.get("jlpt_level"),
        )


@dataclass
class RecognitionResult:
    best: str
    alternates: List[str] = field(default_factory=list)
    confidence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"kanji": self.best, "alternatives": list(self.alternates), "confidence": self.confidence}


def _parse_level(raw: Any) -> int:
    if isinstance(raw, bool):
        raise TypeError("level must be an integer")
    level = int(raw)
    if level < 0:
        raise ValueError(f"level must be >= 0, got {level}")
    return level


def kanji_key(item: KanjiItem) -> str:
    return item.glyph


def kana_key(item: KanaItem) -> str:
    return item.glyph


def vocabulary_keys(words: List[VocabularyItem]) -> List[Tuple[str, int]]:
    """Composite (word, index) keys; the same word may be unlocked by several kanji."""
    return [(word.word, index) for index, word in enumerate(words)]


ITEM_TYPES: Dict[str, type] = {
    KANJI_LIST: KanjiItem,
    KATAKANA_LIST: KanaItem,
    WORDS_LIST: VocabularyItem,
}

KEY_FUNCTIONS: Dict[str, Callable[[Any], Hashable]] = {
    KANJI_LIST: kanji_key,
    KATAKANA_LIST: kana_key,
}


def parse_collection(key: str, text: str) -> List[Any]:
    """Decode a stored collection blob into item dataclasses."""
    item_type = ITEM_TYPES[key]
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CorruptCollectionError(key, f"invalid JSON ({e})") from e
    if not isinstance(payload, list):
        raise CorruptCollectionError(key, f"expected a list, got {type(payload).__name__}")
    items = []
    for position, entry in enumerate(payload):
        if not isinstance(entry, dict):
            raise CorruptCollectionError(key, f"entry {position} is not an object")
        try:
            items.append(item_type.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptCollectionError(key, f"entry {position} is malformed ({e!r})") from e
    return items


def dump_collection(items: List[Any]) -> str:
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False)


# Built-in sets written on first launch.
DEFAULT_KANJI: List[KanjiItem] = [
    KanjiItem("一", "one"),
    KanjiItem("二", "two"),
    KanjiItem("三", "three"),
    KanjiItem("四", "four"),
    KanjiItem("五", "five"),
    KanjiItem("六", "six"),
]

DEFAULT_KATAKANA: List[KanaItem] = [
    KanaItem("ア", "a"),
    KanaItem("イ", "i"),
    KanaItem("ウ", "u"),
    KanaItem("エ", "e"),
    KanaItem("オ", "o"),
    KanaItem("カ", "ka"),
    KanaItem("キ", "ki"),
    KanaItem("ク", "ku"),
    KanaItem("ケ", "ke"),
    KanaItem("コ", "ko"),
]

DEFAULT_COLLECTIONS: Dict[str, List[Any]] = {
    KANJI_LIST: DEFAULT_KANJI,
    KATAKANA_LIST: DEFAULT_KATAKANA,
    WORDS_LIST: [],
}


KANJI_INFO_PROMPT = """
Provide the following information about the kanji "{glyph}":
1. Meaning
2. Onyomi reading
3. Kunyomi reading
4. Stroke order description
5. Example words using this kanji with their meanings
6. JLPT level

Return ONLY valid JSON in this format:
{{
  "meaning": "...",
  "onyomi": "...",
  "kunyomi": "...",
  "stroke_order": "...",
  "examples": [{{"word": "...", "reading": "...", "meaning": "..."}}],
  "jlpt_level": "N5/N4/N3/N2/N1"
}}
"""

KATAKANA_INFO_PROMPT = """
Provide the following information about the katakana "{glyph}":
1. Pronunciation
2. Example words using this katakana with their meanings

Return ONLY valid JSON in this format:
{{
  "pronunciation": "...",
  "examples": [{{"word": "...", "romaji": "...", "meaning": "..."}}]
}}
"""

WORD_INFO_PROMPT = """
Provide the following information about the Japanese word/phrase "{glyph}":
1. Meaning
2. Reading (Hiragana/Katakana)
3. Usage examples with translations
4. JLPT level (if applicable)

Return ONLY valid JSON in this format:
{{
  "meaning": "...",
  "reading": "...",
  "examples": [{{"japanese": "...", "english": "..."}}],
  "jlpt_level": "N5/N4/N3/N2/N1 or empty if unknown"
}}
"""

STROKE_RENDER_PROMPT = """
Generate SVG path data for animating the stroke order of the kanji "{glyph}".
Use a 109x109 viewBox, one path per stroke, in stroke order.

Return ONLY valid JSON in this format:
{{
  "strokes": [{{"order": 1, "path": "M ..."}}]
}}
"""

WORDS_FOR_KANJI_PROMPT = """
Generate 5 common Japanese words that contain the kanji "{glyph}".
Include the following for each word:
1. Word in Japanese
2. Reading in hiragana
3. English meaning
4. JLPT level (N5-N1)

Return ONLY valid JSON in this format:
{{
  "words": [{{"word": "...", "reading": "...", "meaning": "...", "jlpt_level": "N5"}}]
}}
"""

RECOGNITION_PROMPT = """
Based on this stroke pattern description, identify the most likely Japanese kanji:
{description}

Respond with a JSON object containing:
1. The most likely kanji
2. Up to 3 alternative kanji that might match
3. Confidence level (1-100) for the most likely kanji

Return ONLY valid JSON in this format:
{{
  "kanji": "...",
  "alternatives": ["...", "...", "..."],
  "confidence": 0
}}
"""

ENRICHMENT_PROMPTS: Dict[str, str] = {
    "kanji": KANJI_INFO_PROMPT,
    "katakana": KATAKANA_INFO_PROMPT,
    "word": WORD_INFO_PROMPT,
}
