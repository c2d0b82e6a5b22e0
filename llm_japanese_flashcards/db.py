from __future__ import annotations
from sqlalchemy import create_engine, String, DateTime, Text
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
from contextlib import contextmanager
import datetime
import json
import os
import threading
from typing import Any, Dict, Iterator, List, Optional

from .structured import USER_SETTINGS

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class Base(DeclarativeBase):
    pass
DB_PATH: str = os.environ.get("LLM_JP_DB", "japanese_flashcards.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class StoreError(RuntimeError):
    """Raised when a stored blob cannot be used for a read-modify-write cycle."""


class ContentBlob(Base):
    """One named blob: a JSON-encoded collection or the settings mapping."""
    __tablename__ = "content_store"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.UTC), onupdate=lambda: datetime.datetime.now(datetime.UTC))


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if the store table exists."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    return "content_store" in set(inspector.get_table_names())


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


# ----------------------------------------------------------------------
# Per-key serialization
# ----------------------------------------------------------------------
_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


@contextmanager
def collection_lock(key: str) -> Iterator[None]:
    """Hold exclusive ownership of a blob key for one read-modify-write cycle."""
    with _locks_guard:
        lock = _locks.setdefault(key, threading.RLock())
    with lock:
        yield


# ----------------------------------------------------------------------
# Blob access
# ----------------------------------------------------------------------
def read_blob(key: str) -> Optional[str]:
    session: Session = get_session()
    try:
        row = session.get(ContentBlob, key)
        return row.value if row is not None else None
    finally:
        session.close()


def write_blob(key: str, value: str) -> None:
    """Replace the whole value stored under `key`."""
    session: Session = get_session()
    try:
        row = session.get(ContentBlob, key)
        if row is None:
            session.add(ContentBlob(key=key, value=value))
        else:
            row.value = value
        session.commit()
        if DEBUG_MODE:
            print(f"💾 Wrote {len(value)} characters to '{key}'")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def delete_blob(key: str) -> bool:
    session: Session = get_session()
    try:
        deleted = session.query(ContentBlob).filter_by(key=key).delete()
        session.commit()
        return deleted > 0
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def list_keys() -> List[str]:
    session: Session = get_session()
    try:
        return [row[0] for row in session.query(ContentBlob.key).order_by(ContentBlob.key).all()]
    finally:
        session.close()


# ----------------------------------------------------------------------
# User settings
# ----------------------------------------------------------------------
DEFAULT_SETTINGS: Dict[str, Any] = {
    "darkMode": False,
    "autoPlayAudio": True,
    "selectedVoiceId": None,
}


def _read_settings_blob() -> Dict[str, Any]:
    """Return the stored settings mapping; raises StoreError when it cannot be decoded."""
    raw = read_blob(USER_SETTINGS)
    if raw is None:
        return {}
    try:
        stored = json.loads(raw)
    except ValueError as e:
        raise StoreError(f"userSettings is corrupt: {e}") from e
    if not isinstance(stored, dict):
        raise StoreError(f"userSettings is corrupt: expected an object, got {type(stored).__name__}")
    return stored


def load_settings() -> Dict[str, Any]:
    """Stored settings layered over the defaults. A corrupt blob reads as the defaults."""
    settings = dict(DEFAULT_SETTINGS)
    try:
        stored = _read_settings_blob()
    except StoreError as e:
        print(f"⚠️ load_settings: {e}; using defaults")
        return settings
    settings.update(stored)
    # Only an explicit false disables auto-play.
    settings["autoPlayAudio"] = settings.get("autoPlayAudio") is not False
    settings["darkMode"] = bool(settings.get("darkMode"))
    return settings


def save_settings(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `updates` into the stored settings blob field by field."""
    with collection_lock(USER_SETTINGS):
        stored = _read_settings_blob()
        stored.update(updates)
        write_blob(USER_SETTINGS, json.dumps(stored, ensure_ascii=False))
    return load_settings()


def save_setting(key: str, value: Any) -> Dict[str, Any]:
    return save_settings({key: value})


def ensure_default_voice(voice_ids: List[str]) -> Optional[str]:
    """Select the first available Japanese voice if the user has not picked one."""
    with collection_lock(USER_SETTINGS):
        current = load_settings().get("selectedVoiceId")
        if current or not voice_ids:
            return current
        save_setting("selectedVoiceId", voice_ids[0])
    print(f"✅ Selected default voice: {voice_ids[0]}")
    return voice_ids[0]


__all__ = [
    "Base", "ContentBlob", "StoreError",
    "init_db", "is_db_initialized", "get_session",
    "collection_lock", "read_blob", "write_blob", "delete_blob", "list_keys",
    "DEFAULT_SETTINGS", "load_settings", "save_settings", "save_setting",
    "ensure_default_voice",
]
