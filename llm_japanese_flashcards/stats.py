import math
from dataclasses import dataclass
from typing import Any, Dict, Sequence

from .progress import load_collection
from .structured import KANJI_LIST, KATAKANA_LIST, WORDS_LIST


@dataclass
class CollectionStats:
    total: int
    learned: int


@dataclass
class ProgressStats:
    kanji: CollectionStats
    katakana: CollectionStats
    words: CollectionStats
    percentage: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalKanji": self.kanji.total,
            "learnedKanji": self.kanji.learned,
            "totalKatakana": self.katakana.total,
            "learnedKatakana": self.katakana.learned,
            "totalWords": self.words.total,
            "learnedWords": self.words.learned,
            "percentage": self.percentage,
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def collection_stats(items: Sequence[Any]) -> CollectionStats:
    return CollectionStats(total=len(items), learned=sum(1 for item in items if item.level > 0))


def compute_stats(kanji: Sequence[Any], katakana: Sequence[Any], words: Sequence[Any]) -> ProgressStats:
    """Learned/total per collection and the combined completion percentage (0 when empty)."""
    parts = [collection_stats(kanji), collection_stats(katakana), collection_stats(words)]
    total = sum(part.total for part in parts)
    learned = sum(part.learned for part in parts)
    percentage = round_half_up(100 * learned / total) if total else 0
    return ProgressStats(kanji=parts[0], katakana=parts[1], words=parts[2], percentage=percentage)


def get_progress_stats() -> ProgressStats:
    """Recompute statistics from the stored collections."""
    return compute_stats(
        load_collection(KANJI_LIST),
        load_collection(KATAKANA_LIST),
        load_collection(WORDS_LIST),
    )
