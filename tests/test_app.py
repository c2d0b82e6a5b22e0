"""
Tests for the Flashcards JSON API
Routes are exercised through the Flask test client with a fake content gateway.
"""

import os
from typing import Any, Dict, List

os.environ["TEST_MODE"] = "1"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from llm_japanese_flashcards import db
from llm_japanese_flashcards.gateway import GatewayError, GatewayTimeout
from llm_japanese_flashcards.structured import (
    KANJI_LIST,
    WORDS_LIST,
    KanjiItem,
    RecognitionResult,
    VocabularyItem,
    dump_collection,
)


class FakeGateway:
    def __init__(self) -> None:
        self.error: Exception = None  # type: ignore[assignment]
        self.word_calls: List[str] = []

    def _check(self) -> None:
        if self.error:
            raise self.error

    def fetch_item_enrichment(self, glyph_or_word: str, kind: str) -> Dict[str, Any]:
        self._check()
        return {"meaning": f"meaning of {glyph_or_word}", "kind": kind}

    def fetch_stroke_render(self, glyph: str) -> List[str]:
        self._check()
        return ["M 10 50 L 90 50"]

    def fetch_canonical_list(self, kind: str) -> List[Any]:
        self._check()
        return [KanjiItem("一"), KanjiItem("右")]

    def fetch_words_containing(self, glyph: str) -> List[VocabularyItem]:
        self._check()
        self.word_calls.append(glyph)
        return [VocabularyItem(f"{glyph}つ", "ひとつ", "one thing")]

    def identify_from_description(self, text: str) -> RecognitionResult:
        self._check()
        return RecognitionResult("二", ["三"], 75)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(tmp_path: Any, gateway: FakeGateway, monkeypatch: pytest.MonkeyPatch) -> Any:
    """Create a Flask test client over a transient database."""
    path = str(tmp_path / "test_app.db")
    db.engine = create_engine(f"sqlite:///{path}")
    db.SessionLocal = sessionmaker(bind=db.engine, expire_on_commit=False)
    db.Base.metadata.create_all(bind=db.engine)

    import app as flask_app
    monkeypatch.setattr(flask_app, "content_gateway", gateway)
    flask_app.app.config["TESTING"] = True
    with flask_app.app.test_client() as c:
        yield c


def test_collection_seeds_defaults(client: Any) -> None:
    resp = client.get("/api/kanji")
    assert resp.status_code == 200
    items = resp.get_json()["items"]
    assert items[0] == {"kanji": "一", "meaning": "one", "level": 0}
    assert db.read_blob(KANJI_LIST) is not None


def test_unknown_collection(client: Any) -> None:
    assert client.get("/api/hiragana").status_code == 404


def test_active_filter_hides_mastered(client: Any) -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 5), KanjiItem("二", "two", 1)]))
    items = client.get("/api/kanji?active=1").get_json()["items"]
    assert [i["kanji"] for i in items] == ["二"]


def test_learn_kanji_unlocks_words(client: Any, gateway: FakeGateway) -> None:
    client.get("/api/kanji")
    resp = client.post("/api/kanji/learn", json={"key": "一"})
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["item"]["level"] == 1
    assert data["previousLevel"] == 0
    assert data["unlocked"][0]["sourceKanji"] == "一"
    assert data["unlockError"] is None

    words = client.get("/api/words").get_json()["items"]
    assert [w["word"] for w in words] == ["一つ"]


def test_learn_reports_unlock_failure_but_keeps_level(client: Any, gateway: FakeGateway) -> None:
    client.get("/api/kanji")
    gateway.error = GatewayError("fetch_words_containing[二]", "down")
    data = client.post("/api/kanji/learn", json={"key": "二"}).get_json()
    assert data["item"]["level"] == 1
    assert "down" in data["unlockError"]


def test_learn_word_needs_index(client: Any) -> None:
    db.write_blob(WORDS_LIST, dump_collection([VocabularyItem("一つ", source_glyph="一")]))
    assert client.post("/api/words/learn", json={"key": "一つ"}).status_code == 400
    resp = client.post("/api/words/learn", json={"key": "一つ", "index": 0})
    assert resp.get_json()["item"]["level"] == 1


def test_learn_unknown_item(client: Any) -> None:
    client.get("/api/katakana")
    resp = client.post("/api/katakana/learn", json={"key": "ン"})
    assert resp.status_code == 404
    assert resp.get_json()["status"] == "error"


def test_refresh(client: Any) -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 2)]))
    items = client.post("/api/kanji/refresh").get_json()["items"]
    assert items == [{"kanji": "一", "meaning": "one", "level": 2}, {"kanji": "右", "meaning": "", "level": 0}]
    assert client.post("/api/words/refresh").status_code == 404


def test_refresh_gateway_timeout(client: Any, gateway: FakeGateway) -> None:
    gateway.error = GatewayTimeout("fetch_canonical_list[kanji]", "timed out after 30s")
    resp = client.post("/api/kanji/refresh")
    assert resp.status_code == 504
    assert resp.get_json()["status"] == "error"


def test_details(client: Any) -> None:
    client.get("/api/kanji")
    view = client.get("/api/kanji/一/details").get_json()["view"]
    assert view["details"]["meaning"] == "meaning of 一"
    assert view["strokes"] == ["M 10 50 L 90 50"]
    assert view["modal_visible"] is True


def test_details_gateway_error(client: Any, gateway: FakeGateway) -> None:
    client.get("/api/katakana")
    gateway.error = GatewayError("fetch_item_enrichment[katakana:ア]", "bad gateway")
    resp = client.get("/api/katakana/ア/details")
    assert resp.status_code == 502
    assert resp.get_json()["view"]["loading"] is False


def test_strokes(client: Any) -> None:
    data = client.get("/api/kanji/日/strokes").get_json()
    assert data["strokes"] == ["M 10 50 L 90 50"]


def test_sweep(client: Any, gateway: FakeGateway) -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 1), KanjiItem("二", "two", 0)]))
    data = client.post("/api/sweep").get_json()
    assert data["unlocked"] == {"一": 1}
    assert data["errors"] == {}
    assert gateway.word_calls == ["一"]


def test_stats(client: Any) -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 1), KanjiItem("二", "two", 0)]))
    data = client.get("/api/stats").get_json()["stats"]
    assert data["learnedKanji"] == 1
    assert data["percentage"] == 50


def test_settings(client: Any) -> None:
    assert client.get("/api/settings").get_json()["settings"]["autoPlayAudio"] is True
    data = client.post("/api/settings", json={"darkMode": True}).get_json()
    assert data["settings"]["darkMode"] is True
    assert client.post("/api/settings", json={"fontSize": 3}).status_code == 400


def test_voices_selects_default(client: Any) -> None:
    voices = [{"identifier": "en", "language": "en-US"}, {"identifier": "kyoko", "language": "ja-JP"}]
    data = client.post("/api/voices", json={"voices": voices}).get_json()
    assert [v["identifier"] for v in data["voices"]] == ["kyoko"]
    assert data["selectedVoiceId"] == "kyoko"


def test_reset_requires_confirmation(client: Any) -> None:
    db.write_blob(KANJI_LIST, dump_collection([KanjiItem("一", "one", 3)]))
    assert client.post("/api/reset", json={}).status_code == 400
    data = client.post("/api/reset", json={"confirm": True}).get_json()
    assert data["kanji"] == 1
    assert client.get("/api/kanji").get_json()["items"][0]["level"] == 0


def test_recognize(client: Any) -> None:
    points = [[x, 0] for x in range(0, 101, 5)]
    data = client.post("/api/recognize", json={"points": points}).get_json()
    assert data["kanji"] == "二"
    assert data["alternatives"] == ["三"]
    assert data["description"].startswith("Drawing with 1 strokes:")


def test_recognize_empty_drawing(client: Any) -> None:
    assert client.post("/api/recognize", json={"points": []}).status_code == 400


@pytest.mark.parametrize("payload", [
    {"points": [1, 2, 3]},
    {"points": [{"x": 1}]},
    {"points": "0,0 10,10"},
    {"strokes": [1, 2]},
    [[0, 0], [10, 0]],
])
def test_recognize_malformed_points(client: Any, payload: Any) -> None:
    resp = client.post("/api/recognize", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"


@pytest.mark.parametrize("payload", [{"voices": ["ja-JP"]}, {"voices": "ja-JP"}, ["ja-JP"]])
def test_voices_malformed(client: Any, payload: Any) -> None:
    assert client.post("/api/voices", json=payload).status_code == 400
    assert db.load_settings()["selectedVoiceId"] is None


def test_voices_ignores_non_string_language(client: Any) -> None:
    voices = [{"identifier": "odd", "language": 7}, {"identifier": "kyoko", "language": "ja-JP"}]
    data = client.post("/api/voices", json={"voices": voices}).get_json()
    assert data["selectedVoiceId"] == "kyoko"


@pytest.mark.parametrize("payload", [
    {"autoPlayAudio": "false"},
    {"darkMode": 1},
    {"selectedVoiceId": 42},
])
def test_settings_reject_wrong_types(client: Any, payload: Dict[str, Any]) -> None:
    assert client.post("/api/settings", json=payload).status_code == 400
    assert db.load_settings() == db.DEFAULT_SETTINGS


def test_settings_accept_false_and_null(client: Any) -> None:
    data = client.post("/api/settings", json={"autoPlayAudio": False, "selectedVoiceId": None}).get_json()
    assert data["settings"]["autoPlayAudio"] is False
