"""Tests for stored user settings and the blob store."""
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from llm_japanese_flashcards import db
from llm_japanese_flashcards.structured import USER_SETTINGS


@pytest.fixture(autouse=True)
def temp_db(tmp_path: Any) -> Any:
    path = str(tmp_path / "test_settings.db")
    db.engine = create_engine(f"sqlite:///{path}")
    db.SessionLocal = sessionmaker(bind=db.engine, expire_on_commit=False)
    db.Base.metadata.create_all(bind=db.engine)
    yield db


def test_defaults_when_nothing_stored() -> None:
    assert db.load_settings() == {"darkMode": False, "autoPlayAudio": True, "selectedVoiceId": None}


def test_save_merges_fields() -> None:
    db.save_settings({"darkMode": True})
    db.save_setting("selectedVoiceId", "com.apple.voice.Kyoko")
    settings = db.load_settings()
    assert settings["darkMode"] is True
    assert settings["selectedVoiceId"] == "com.apple.voice.Kyoko"
    assert settings["autoPlayAudio"] is True


def test_auto_play_only_disabled_by_explicit_false() -> None:
    db.write_blob(USER_SETTINGS, '{"autoPlayAudio": null}')
    assert db.load_settings()["autoPlayAudio"] is True
    db.save_setting("autoPlayAudio", False)
    assert db.load_settings()["autoPlayAudio"] is False


def test_corrupt_settings_read_as_defaults_but_refuse_writes() -> None:
    db.write_blob(USER_SETTINGS, "[]")
    assert db.load_settings()["autoPlayAudio"] is True
    with pytest.raises(db.StoreError):
        db.save_settings({"darkMode": True})
    assert db.read_blob(USER_SETTINGS) == "[]"


def test_ensure_default_voice_picks_first_once() -> None:
    assert db.ensure_default_voice(["ja-1", "ja-2"]) == "ja-1"
    assert db.ensure_default_voice(["ja-2"]) == "ja-1"
    assert db.load_settings()["selectedVoiceId"] == "ja-1"


def test_ensure_default_voice_without_voices() -> None:
    assert db.ensure_default_voice([]) is None


def test_blob_store_round_trip() -> None:
    assert db.read_blob("kanjiList") is None
    db.write_blob("kanjiList", "[]")
    db.write_blob("kanjiList", '[{"kanji": "一"}]')
    assert db.read_blob("kanjiList") == '[{"kanji": "一"}]'
    assert db.list_keys() == ["kanjiList"]
    assert db.delete_blob("kanjiList") is True
    assert db.delete_blob("kanjiList") is False


def test_is_db_initialized() -> None:
    assert db.is_db_initialized()


def test_delete_blob_rolls_back_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    class FakeQuery:
        def filter_by(self, **kwargs: Any) -> "FakeQuery":
            return self

        def delete(self) -> int:
            raise RuntimeError("disk I/O error")

    class FakeSession:
        def query(self, *args: Any) -> FakeQuery:
            return FakeQuery()

        def commit(self) -> None:
            calls.append("commit")

        def rollback(self) -> None:
            calls.append("rollback")

        def close(self) -> None:
            calls.append("close")

    monkeypatch.setattr(db, "get_session", lambda: FakeSession())
    with pytest.raises(RuntimeError):
        db.delete_blob("wordsList")
    assert calls == ["rollback", "close"]
