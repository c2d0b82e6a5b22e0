"""
Per-item mastery levels and the kanji -> vocabulary unlock rule.

Collections are stored whole (one JSON blob per collection) and every
mutation is a read-modify-write cycle under the collection's lock, so a
collection is never left partially written. Remote calls happen outside
the locks; the unlock path re-checks its guard before appending.
"""

import concurrent.futures
import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .db import StoreError, collection_lock
from .gateway import ContentGateway, GatewayError
from .state import StudyViewState, select_item, with_details, with_error
from .structured import (
    COLLECTION_KINDS,
    DEFAULT_COLLECTIONS,
    KANJI_LIST,
    KATAKANA_LIST,
    KEY_FUNCTIONS,
    MASTERED_LEVEL,
    WORDS_LIST,
    CorruptCollectionError,
    KanjiItem,
    VocabularyItem,
    dump_collection,
    parse_collection,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

ItemKey = Union[str, Tuple[str, int]]


class ItemNotFoundError(KeyError):
    """No item with the given key exists in the collection."""


@dataclass
class LevelUpResult:
    item: Any
    previous_level: int
    unlocked: List[VocabularyItem] = field(default_factory=list)
    # Set when the level-up was committed but the vocabulary unlock failed.
    unlock_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item.to_dict(),
            "previousLevel": self.previous_level,
            "unlocked": [word.to_dict() for word in self.unlocked],
            "unlockError": self.unlock_error,
        }


@dataclass
class SweepResult:
    unlocked: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"unlocked": dict(self.unlocked), "errors": dict(self.errors)}


def _copy_items(items: Sequence[Any]) -> List[Any]:
    return [dataclasses.replace(item) for item in items]


def _read_collection(key: str) -> Optional[List[Any]]:
    raw = db.read_blob(key)
    if raw is None:
        return None
    return parse_collection(key, raw)


def _write_collection(key: str, items: List[Any]) -> None:
    db.write_blob(key, dump_collection(items))


def _load_for_update(key: str) -> List[Any]:
    """Current items for a read-modify-write cycle; refuses to build on a corrupt blob."""
    try:
        items = _read_collection(key)
    except CorruptCollectionError as e:
        raise StoreError(str(e)) from e
    if items is None:
        return _copy_items(DEFAULT_COLLECTIONS[key])
    return items


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------
def load_or_seed(collection_key: str, default_set: Optional[Sequence[Any]] = None) -> List[Any]:
    """Return the stored collection, seeding it with `default_set` on first use.

    A blob that cannot be read or decoded yields the defaults in memory but is
    left in place; load failures never overwrite stored progress.
    """
    defaults = DEFAULT_COLLECTIONS[collection_key] if default_set is None else default_set
    with collection_lock(collection_key):
        try:
            items = _read_collection(collection_key)
        except CorruptCollectionError as e:
            print(f"⚠️ load_or_seed[{collection_key}]: {e.reason}; using built-in defaults, stored value left untouched")
            return _copy_items(defaults)
        except SQLAlchemyError as e:
            print(f"❌ load_or_seed[{collection_key}]: storage read failed ({e}); using built-in defaults")
            return _copy_items(defaults)

        if items is not None:
            return items

        seeded = _copy_items(defaults)
        try:
            _write_collection(collection_key, seeded)
            print(f"✅ Seeded '{collection_key}' with {len(seeded)} default items")
        except SQLAlchemyError as e:
            print(f"❌ load_or_seed[{collection_key}]: could not persist defaults ({e})")
        return seeded


def load_collection(collection_key: str) -> List[Any]:
    """Read-only view of a collection. Absent or corrupt blobs read as empty."""
    try:
        items = _read_collection(collection_key)
    except CorruptCollectionError as e:
        print(f"⚠️ load_collection[{collection_key}]: {e.reason}; treating as empty")
        return []
    return items or []


def active_items(items: Sequence[Any]) -> List[Any]:
    """Items still in practice rotation (below the mastered level)."""
    return [item for item in items if item.level < MASTERED_LEVEL]


# ----------------------------------------------------------------------
# Refresh
# ----------------------------------------------------------------------
def merge_remote(local: Sequence[Any], remote: Sequence[Any], key_of: Callable[[Any], Hashable]) -> List[Any]:
    """One output item per remote item, keeping the local copy (and its level) when keys match.

    Local-only items are dropped: the remote list replaces the collection.
    """
    local_by_key = {key_of(item): item for item in local}
    return [local_by_key.get(key_of(item), item) for item in remote]


def refresh_collection(collection_key: str, gateway: ContentGateway) -> List[Any]:
    """Download the canonical list for a character collection and merge it into storage."""
    key_of = KEY_FUNCTIONS.get(collection_key)
    if key_of is None:
        raise ValueError(f"Collection '{collection_key}' has no canonical list")

    remote = gateway.fetch_canonical_list(COLLECTION_KINDS[collection_key])

    with collection_lock(collection_key):
        local = _load_for_update(collection_key)
        merged = merge_remote(local, remote, key_of)
        _write_collection(collection_key, merged)

    remote_keys = {key_of(item) for item in remote}
    dropped = sum(1 for item in local if key_of(item) not in remote_keys)
    kept = len(remote_keys & {key_of(item) for item in local})
    print(f"✅ Refreshed '{collection_key}': {len(merged)} items ({len(merged) - kept} new, {kept} kept, {dropped} dropped)")
    return merged


# ----------------------------------------------------------------------
# Level-up and unlocks
# ----------------------------------------------------------------------
def _find_index(collection_key: str, items: Sequence[Any], item_key: ItemKey) -> int:
    if collection_key == WORDS_LIST:
        if not isinstance(item_key, tuple) or len(item_key) != 2:
            raise ItemNotFoundError(f"Vocabulary items are addressed as (word, index), got {item_key!r}")
        word, index = item_key
        if 0 <= index < len(items) and items[index].word == word:
            return index
        raise ItemNotFoundError(f"No word '{word}' at position {index} in '{collection_key}'")

    key_of = KEY_FUNCTIONS[collection_key]
    for index, item in enumerate(items):
        if key_of(item) == item_key:
            return index
    raise ItemNotFoundError(f"No item '{item_key}' in '{collection_key}'")


def _has_words_for(glyph: str, words: Sequence[VocabularyItem]) -> bool:
    return any(word.source_glyph == glyph for word in words)


def mark_learned(collection_key: str, item_key: ItemKey, gateway: Optional[ContentGateway] = None) -> LevelUpResult:
    """Raise an item's level by one and persist it.

    A kanji's first level-up (0 -> 1) also unlocks vocabulary containing it.
    The level-up is committed before the unlock runs; an unlock failure is
    reported on the result and never rolls the level back.
    """
    with collection_lock(collection_key):
        items = _load_for_update(collection_key)
        index = _find_index(collection_key, items, item_key)
        previous = items[index]
        updated = dataclasses.replace(previous, level=previous.level + 1)
        items[index] = updated
        _write_collection(collection_key, items)

    if DEBUG_MODE:
        print(f"📈 {collection_key}[{item_key}] level {previous.level} -> {updated.level}")

    result = LevelUpResult(item=updated, previous_level=previous.level)
    if collection_key != KANJI_LIST or previous.level != 0:
        return result

    if gateway is None:
        result.unlock_error = f"No content gateway configured; words for {updated.glyph} will be unlocked by the next sweep"
        print(f"⚠️ mark_learned[{updated.glyph}]: {result.unlock_error}")
        return result
    try:
        result.unlocked = unlock_vocabulary_for(updated.glyph, gateway)
    except (GatewayError, StoreError, SQLAlchemyError) as e:
        result.unlock_error = str(e)
        print(f"❌ mark_learned[{updated.glyph}]: level saved but word unlock failed: {e}")
    return result


def unlock_vocabulary_for(glyph: str, gateway: ContentGateway) -> List[VocabularyItem]:
    """Fetch and store words containing `glyph`, unless words for it already exist.

    Returns the newly stored words (empty when the unlock had already happened).
    """
    with collection_lock(WORDS_LIST):
        if _has_words_for(glyph, _load_for_update(WORDS_LIST)):
            if DEBUG_MODE:
                print(f"🔎 Words for {glyph} already unlocked, skipping fetch")
            return []

    fetched = gateway.fetch_words_containing(glyph)

    with collection_lock(WORDS_LIST):
        words = _load_for_update(WORDS_LIST)
        # Another unlock may have finished while we were fetching.
        if _has_words_for(glyph, words):
            return []
        unlocked = [dataclasses.replace(word, source_glyph=glyph, level=0) for word in fetched]
        if not unlocked:
            print(f"⚠️ unlock_vocabulary_for[{glyph}]: gateway returned no words")
            return []
        _write_collection(WORDS_LIST, words + unlocked)

    print(f"🔓 Unlocked {len(unlocked)} words containing {glyph}")
    return unlocked


def sweep_unlocks(kanji_collection: Optional[Sequence[KanjiItem]], gateway: ContentGateway,
                  max_workers: int = 5) -> SweepResult:
    """Ensure every learned kanji has its vocabulary, repairing earlier failed unlocks.

    Glyphs are processed independently; a failure is recorded and the sweep continues.
    """
    if kanji_collection is None:
        kanji_collection = load_collection(KANJI_LIST)

    candidates: List[str] = []
    for kanji in kanji_collection:
        if kanji.level > 0 and kanji.glyph not in candidates:
            candidates.append(kanji.glyph)

    result = SweepResult()
    if not candidates:
        return result

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_glyph = {executor.submit(unlock_vocabulary_for, glyph, gateway): glyph for glyph in candidates}
        for future in concurrent.futures.as_completed(future_to_glyph):
            glyph = future_to_glyph[future]
            try:
                result.unlocked[glyph] = len(future.result())
            except Exception as e:
                result.errors[glyph] = str(e)
                print(f"❌ sweep_unlocks[{glyph}]: {e}")

    print(f"✅ Unlock sweep: {len(candidates)} learned kanji, "
          f"{sum(result.unlocked.values())} words unlocked, {len(result.errors)} failures")
    return result


def related_words(glyph: str, words: Sequence[VocabularyItem]) -> List[VocabularyItem]:
    """Words unlocked by `glyph` or containing it."""
    return [word for word in words if word.source_glyph == glyph or glyph in word.word]


# ----------------------------------------------------------------------
# Enrichment
# ----------------------------------------------------------------------
def annotate_kanji_meaning(glyph: str, details: Dict[str, Any]) -> Optional[KanjiItem]:
    """Store the fetched meaning for a kanji whose meaning is still empty."""
    meaning = details.get("meaning")
    if isinstance(meaning, list):
        meaning = ", ".join(str(m) for m in meaning)
    if not isinstance(meaning, str) or not meaning.strip():
        return None

    with collection_lock(KANJI_LIST):
        items = _load_for_update(KANJI_LIST)
        try:
            index = _find_index(KANJI_LIST, items, glyph)
        except ItemNotFoundError:
            return None
        if items[index].meaning:
            return None
        items[index] = dataclasses.replace(items[index], meaning=meaning.strip())
        _write_collection(KANJI_LIST, items)
    return items[index]


def open_item(collection_key: str, item_key: ItemKey, gateway: ContentGateway,
              state: Optional[StudyViewState] = None) -> StudyViewState:
    """Build the detail view for one item: enrichment, stroke paths and related words."""
    items = load_collection(collection_key)
    item = items[_find_index(collection_key, items, item_key)]
    view = select_item(state or StudyViewState(), collection_key, item)

    lookup = item.word if collection_key == WORDS_LIST else item.glyph
    try:
        details = gateway.fetch_item_enrichment(lookup, COLLECTION_KINDS[collection_key])
        strokes = gateway.fetch_stroke_render(item.glyph) if collection_key == KANJI_LIST else []
    except GatewayError as e:
        print(f"❌ open_item[{collection_key}:{lookup}]: {e}")
        return with_error(view, str(e))

    related: List[VocabularyItem] = []
    if collection_key == KANJI_LIST:
        try:
            annotate_kanji_meaning(item.glyph, details)
        except StoreError as e:
            print(f"⚠️ open_item[{item.glyph}]: meaning not stored: {e}")
        if item.level > 0:
            related = related_words(item.glyph, load_collection(WORDS_LIST))
    return with_details(view, details, strokes, related)


# ----------------------------------------------------------------------
# Reset
# ----------------------------------------------------------------------
def reset_all_progress() -> Dict[str, int]:
    """Zero every kanji and katakana level and delete the vocabulary collection.

    Irreversible; callers are expected to confirm with the learner first.
    """
    with collection_lock(KANJI_LIST), collection_lock(KATAKANA_LIST), collection_lock(WORDS_LIST):
        reset: Dict[str, List[Any]] = {}
        for key in (KANJI_LIST, KATAKANA_LIST):
            try:
                items = _read_collection(key)
            except CorruptCollectionError as e:
                raise StoreError(f"reset aborted, nothing changed: {e}") from e
            if items is not None:
                reset[key] = [dataclasses.replace(item, level=0) for item in items]

        words_removed = len(load_collection(WORDS_LIST))
        for key, items in reset.items():
            _write_collection(key, items)
        db.delete_blob(WORDS_LIST)

    print(f"✅ Progress reset: {sum(len(v) for v in reset.values())} characters zeroed, {words_removed} words removed")
    return {
        "kanji": len(reset.get(KANJI_LIST, [])),
        "katakana": len(reset.get(KATAKANA_LIST, [])),
        "wordsRemoved": words_removed,
    }
