#!/usr/bin/env python3
"""
Japanese Flashcards - Flask JSON API
Kanji, katakana and vocabulary collections with per-item levels.
Explanations, word unlocks and drawing recognition need an OpenAI-compatible API.
"""

import os
import sys
import traceback
import argparse
from typing import Any, Optional, Tuple

from flask import Flask, request, jsonify

# Check for test mode
TEST_MODE = os.environ.get("TEST_MODE", "0") == "1"

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from llm_japanese_flashcards import db, progress, recognition, speech, stats
from llm_japanese_flashcards.gateway import (
    ContentGateway,
    GatewayError,
    GatewayTimeout,
    build_openai_model,
)
from llm_japanese_flashcards.structured import KANJI_LIST, KATAKANA_LIST, WORDS_LIST

# Check for debug mode
DEBUG = os.environ.get("DEBUG", "0") == "1"

COLLECTIONS = {"kanji": KANJI_LIST, "katakana": KATAKANA_LIST, "words": WORDS_LIST}
BOOLEAN_SETTINGS = ("darkMode", "autoPlayAudio")

# Global gateway; replaced by init_ai() once credentials are known
content_gateway = ContentGateway(None)


def init_ai(api_key: Optional[str] = None,
            base_url: Optional[str] = None,
            model_name: Optional[str] = None) -> None:
    """Initialize the OpenAI client behind the content gateway."""
    global content_gateway

    if TEST_MODE:
        return

    if not api_key:
        api_key = os.environ.get("OPENAI_API_KEY")

    if not api_key:
        print("Warning: No API key provided. AI features will be disabled.")
        return

    try:
        model = build_openai_model(api_key=api_key, base_url=base_url, model_name=model_name)
        content_gateway = ContentGateway(model)
        print(f"✅ AI initialized with model: {model.model_name}")
    except Exception as e:
        print(f"❌ Failed to initialize AI: {e}")


app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

# Try to initialize with environment variables by default
if not TEST_MODE:
    init_ai()


@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        try:
            if not db.is_db_initialized():
                db.init_db()
                print("✅ Database initialized on startup")
        except Exception as e:
            print(f"❌ Database startup check failed: {str(e)}")
        setattr(app, "_database_initialized", True)


def error_response(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({'status': 'error', 'message': message}), status


@app.errorhandler(GatewayTimeout)
def handle_gateway_timeout(e: GatewayTimeout) -> Any:
    print(f"❌ Remote call timed out: {e}")
    return error_response(str(e), 504)


@app.errorhandler(GatewayError)
def handle_gateway_error(e: GatewayError) -> Any:
    print(f"❌ Remote call failed: {e}")
    return error_response(str(e), 502)


@app.errorhandler(progress.ItemNotFoundError)
def handle_item_not_found(e: progress.ItemNotFoundError) -> Any:
    return error_response(str(e.args[0]) if e.args else 'Item not found', 404)


@app.errorhandler(db.StoreError)
def handle_store_error(e: db.StoreError) -> Any:
    print(f"❌ Stored data problem: {e}")
    if DEBUG:
        traceback.print_exc()
    return error_response(str(e), 409)


@app.errorhandler(ValueError)
def handle_value_error(e: ValueError) -> Any:
    return error_response(str(e), 400)


def resolve_collection(name: str) -> Optional[str]:
    return COLLECTIONS.get(name)


def request_item_key(collection_key: str, key: str, index: Any) -> Any:
    """Vocabulary items are addressed by (word, position); characters by glyph."""
    if collection_key != WORDS_LIST:
        return key
    if index is None:
        raise ValueError("Vocabulary items need an 'index'")
    try:
        return (key, int(index))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid index: {index!r}")


# ----------------------------------------------------------------------
# Collections
# ----------------------------------------------------------------------

@app.route('/api/<collection>')
def api_collection(collection: str) -> Any:
    """Return a collection, seeding the built-in defaults on first use."""
    collection_key = resolve_collection(collection)
    if collection_key is None:
        return error_response(f"Unknown collection: {collection}", 404)

    items = progress.load_or_seed(collection_key)
    active_only = request.args.get('active', '0') == '1'
    if active_only:
        items = progress.active_items(items)
    return jsonify({'status': 'success', 'items': [item.to_dict() for item in items]})


@app.route('/api/<collection>/refresh', methods=['POST'])
def api_refresh(collection: str) -> Any:
    """Merge the downloaded canonical list into a character collection."""
    collection_key = resolve_collection(collection)
    if collection_key is None or collection_key == WORDS_LIST:
        return error_response(f"Collection '{collection}' cannot be refreshed", 404)

    items = progress.refresh_collection(collection_key, content_gateway)
    return jsonify({'status': 'success', 'items': [item.to_dict() for item in items]})


@app.route('/api/<collection>/learn', methods=['POST'])
def api_learn(collection: str) -> Any:
    """Raise an item's level by one. A kanji's first level-up also unlocks words."""
    collection_key = resolve_collection(collection)
    if collection_key is None:
        return error_response(f"Unknown collection: {collection}", 404)

    data = request.get_json(silent=True) or {}
    if not data.get('key'):
        return error_response("Missing 'key'", 400)
    item_key = request_item_key(collection_key, data['key'], data.get('index'))

    result = progress.mark_learned(collection_key, item_key, content_gateway)
    return jsonify({'status': 'success', **result.to_dict()})


@app.route('/api/<collection>/<key>/details')
def api_details(collection: str, key: str) -> Any:
    """Detail view for one item: explanation, strokes and related words."""
    collection_key = resolve_collection(collection)
    if collection_key is None:
        return error_response(f"Unknown collection: {collection}", 404)

    item_key = request_item_key(collection_key, key, request.args.get('index'))
    view = progress.open_item(collection_key, item_key, content_gateway)
    if view.error:
        return jsonify({'status': 'error', 'message': view.error, 'view': view.to_dict()}), 502
    return jsonify({'status': 'success', 'view': view.to_dict()})


@app.route('/api/kanji/<glyph>/strokes')
def api_strokes(glyph: str) -> Any:
    strokes = content_gateway.fetch_stroke_render(glyph)
    return jsonify({'status': 'success', 'kanji': glyph, 'strokes': strokes})


@app.route('/api/sweep', methods=['POST'])
def api_sweep() -> Any:
    """Unlock vocabulary for learned kanji that have none yet."""
    data = request.get_json(silent=True) or {}
    max_workers = int(data.get('max_workers', 5))
    result = progress.sweep_unlocks(None, content_gateway, max_workers=max_workers)
    return jsonify({'status': 'success', **result.to_dict()})


# ----------------------------------------------------------------------
# Progress, settings and reset
# ----------------------------------------------------------------------

@app.route('/api/stats')
def api_stats() -> Any:
    current = stats.get_progress_stats()
    return jsonify({'status': 'success', 'stats': current.to_dict()})


@app.route('/api/settings', methods=['GET', 'POST'])
def api_settings() -> Any:
    """Read settings, or merge the posted fields into them."""
    if request.method == 'POST':
        updates = request.get_json(silent=True)
        if not isinstance(updates, dict):
            return error_response("Expected a JSON object of settings", 400)
        unknown = sorted(set(updates) - set(db.DEFAULT_SETTINGS))
        if unknown:
            return error_response(f"Unknown settings: {', '.join(unknown)}", 400)
        not_bool = sorted(k for k in BOOLEAN_SETTINGS if k in updates and not isinstance(updates[k], bool))
        if not_bool:
            return error_response(f"Settings must be true or false: {', '.join(not_bool)}", 400)
        voice_id = updates.get('selectedVoiceId')
        if voice_id is not None and not isinstance(voice_id, str):
            return error_response("selectedVoiceId must be a string or null", 400)
        current = db.save_settings(updates)
    else:
        current = db.load_settings()
    return jsonify({'status': 'success', 'settings': current})


@app.route('/api/voices', methods=['POST'])
def api_voices() -> Any:
    """Filter the device's voices to Japanese ones and pick a default if none is selected."""
    data = request.get_json(silent=True) or {}
    voices = data.get('voices', []) if isinstance(data, dict) else None
    if not isinstance(voices, list) or not all(isinstance(v, dict) for v in voices):
        return error_response("Expected {\"voices\": [{\"identifier\": .., \"language\": ..}, ...]}", 400)
    japanese = speech.japanese_voices(voices)
    selected = db.ensure_default_voice([v['identifier'] for v in japanese if v.get('identifier')])
    return jsonify({'status': 'success', 'voices': japanese, 'selectedVoiceId': selected})


@app.route('/api/reset', methods=['POST'])
def api_reset() -> Any:
    """Irreversible: zero every level and delete unlocked words."""
    data = request.get_json(silent=True) or {}
    if data.get('confirm') is not True:
        return error_response("Reset must be confirmed with {\"confirm\": true}", 400)
    summary = progress.reset_all_progress()
    return jsonify({'status': 'success', **summary})


# ----------------------------------------------------------------------
# Drawing recognition
# ----------------------------------------------------------------------

@app.route('/api/recognize', methods=['POST'])
def api_recognize() -> Any:
    """Identify a kanji from drawn points ({"points": [...]}) or strokes ({"strokes": [[...], ...]})."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response("Expected a JSON object with 'points' or 'strokes'", 400)
    points = data.get('points')
    if points is None and data.get('strokes'):
        strokes = data['strokes']
        if not isinstance(strokes, list) or not all(isinstance(s, list) for s in strokes):
            return error_response("'strokes' must be a list of point lists", 400)
        points = recognition.flatten_strokes(strokes)
    if points is not None and not isinstance(points, list):
        return error_response("'points' must be a list", 400)
    if not points:
        return error_response("Please draw a kanji before recognizing.", 400)

    description = recognition.describe_drawing(points)
    if DEBUG:
        print(f"🔎 {description}")
    result = recognition.recognize_drawing(points, content_gateway)
    return jsonify({'status': 'success', 'description': description, **result.to_dict()})


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Japanese Flashcards API')
    parser.add_argument('--host', default='127.0.0.1', help='Host IP to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--openai-key', help='OpenAI API Key')
    parser.add_argument('--base-url', help='OpenAI-compatible API base URL')
    parser.add_argument('--model', help='AI model name (default: LLM_JP_MODEL or gpt-4o-mini)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True

    # Re-initialize AI if arguments are provided
    if args.openai_key or args.base_url or args.model:
        init_ai(api_key=args.openai_key, base_url=args.base_url, model_name=args.model)

    # Initialize database
    try:
        if not db.is_db_initialized():
            db.init_db()
            print("✅ Database initialized")
    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")

    print(f"🚀 Starting server on http://{args.host}:{args.port}")
    app.run(debug=DEBUG, host=args.host, port=args.port)
