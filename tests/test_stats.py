"""Tests for progress statistics."""
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from llm_japanese_flashcards import db, stats
from llm_japanese_flashcards.structured import (
    KANJI_LIST,
    KATAKANA_LIST,
    WORDS_LIST,
    KanaItem,
    KanjiItem,
    VocabularyItem,
    dump_collection,
)


@pytest.fixture(autouse=True)
def temp_db(tmp_path: Any) -> Any:
    path = str(tmp_path / "test_stats.db")
    db.engine = create_engine(f"sqlite:///{path}")
    db.SessionLocal = sessionmaker(bind=db.engine, expire_on_commit=False)
    db.Base.metadata.create_all(bind=db.engine)
    yield db


def levels(factory: Any, learned: int, total: int) -> list:
    return [factory(f"x{i}", level=1 if i < learned else 0) for i in range(total)]


def test_percentage_combines_all_collections() -> None:
    kanji = levels(KanjiItem, 2, 5)
    katakana = levels(KanaItem, 1, 3)
    words = [VocabularyItem(f"w{i}", level=1 if i < 4 else 0) for i in range(10)]

    result = stats.compute_stats(kanji, katakana, words)

    # 7 of 18 learned = 38.9%
    assert result.percentage == 39
    assert result.to_dict() == {
        "totalKanji": 5,
        "learnedKanji": 2,
        "totalKatakana": 3,
        "learnedKatakana": 1,
        "totalWords": 10,
        "learnedWords": 4,
        "percentage": 39,
    }


def test_empty_collections_are_zero_percent() -> None:
    assert stats.compute_stats([], [], []).percentage == 0


def test_everything_learned_is_one_hundred() -> None:
    kanji = levels(KanjiItem, 3, 3)
    assert stats.compute_stats(kanji, [], []).percentage == 100


def test_learned_counts_any_level_above_zero() -> None:
    kanji = [KanjiItem("一", level=7), KanjiItem("二", level=0)]
    assert stats.collection_stats(kanji).learned == 1


@pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.4999, 2), (12.5, 13), (0.0, 0)])
def test_round_half_up(value: float, expected: int) -> None:
    assert stats.round_half_up(value) == expected


def test_stats_from_storage_treat_missing_and_corrupt_as_empty() -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 1)]))
    db.write_blob(KATAKANA_LIST, "not json")

    result = stats.get_progress_stats()

    assert result.kanji.total == 1 and result.kanji.learned == 1
    assert result.katakana.total == 0
    assert result.words.total == 0
    assert result.percentage == 100
