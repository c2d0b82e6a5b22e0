#!/usr/bin/env python3
"""
Script to examine the contents of the flashcard database
to see which collections are stored and how far the learner has got.
"""

import sys
import os

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from llm_japanese_flashcards import db, stats
from llm_japanese_flashcards.structured import (
    KANJI_LIST,
    KATAKANA_LIST,
    WORDS_LIST,
    CorruptCollectionError,
    parse_collection,
)


def check_database_contents() -> None:
    """Examine the stored blobs, flag corrupt ones and print progress."""
    print("🔍 Examining Japanese Flashcards Database Contents")
    print(f"   Database: {db.DB_PATH}")
    print("=" * 60)

    if not db.is_db_initialized():
        print("⚠️ Database is not initialized. Run 'llm jp-init-db' first.")
        return

    keys = db.list_keys()
    print(f"\n🗄️  STORED KEYS ({len(keys)}): {', '.join(keys) or 'none'}")

    for key in (KANJI_LIST, KATAKANA_LIST, WORDS_LIST):
        raw = db.read_blob(key)
        if raw is None:
            print(f"\n📭 {key}: not stored yet (defaults will be seeded on first load)")
            continue
        try:
            items = parse_collection(key, raw)
        except CorruptCollectionError as e:
            print(f"\n❌ {key}: {e.reason}")
            continue

        learned = [item for item in items if item.level > 0]
        print(f"\n📚 {key} ({len(items)} items, {len(learned)} learned):")
        for i, item in enumerate(learned[-10:], 1):  # Show last 10
            label = getattr(item, "word", None) or item.glyph
            print(f"  {i:2d}. {label} | Level: {item.level}")
        if len(learned) > 10:
            print(f"     ... and {len(learned) - 10} more learned items")

    current = stats.get_progress_stats()
    print(f"\n📊 SUMMARY:")
    print(f"     Kanji:    {current.kanji.learned}/{current.kanji.total}")
    print(f"     Katakana: {current.katakana.learned}/{current.katakana.total}")
    print(f"     Words:    {current.words.learned}/{current.words.total}")
    print(f"     Overall:  {current.percentage}%")

    print(f"\n⚙️  SETTINGS: {db.load_settings()}")


if __name__ == "__main__":
    check_database_contents()
