import json
from typing import Any, Optional, Tuple

import llm  # type: ignore

from . import db, progress, recognition, stats
from .gateway import ContentGateway, GatewayError, build_openai_model
from .structured import KANJI_LIST, KATAKANA_LIST, WORDS_LIST

hookimpl = llm.hookimpl  # type: ignore

COLLECTION_NAMES = {"kanji": KANJI_LIST, "katakana": KATAKANA_LIST, "words": WORDS_LIST}


def _make_gateway(model: str) -> ContentGateway:
    """OpenAI client by default, otherwise any model registered with llm."""
    if not model or model == "default":
        return ContentGateway(build_openai_model())
    llm_model = None
    try:
        llm_model = llm.get_model(model)
    except llm.UnknownModelError:
        print(f"⚠️ Unknown llm model '{model}', remote content disabled")
    return ContentGateway(llm_model)


def _item_key(collection_key: str, key: str, index: Optional[int]) -> Any:
    if collection_key == WORDS_LIST:
        if index is None:
            raise ValueError("Vocabulary items need --index (their position in the list)")
        return (key, index)
    return key


def _parse_setting(assignment: str) -> Tuple[str, Any]:
    if "=" not in assignment:
        raise ValueError(f"Expected key=value, got '{assignment}'")
    key, raw = assignment.split("=", 1)
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return key.strip(), value


@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click

    model_option = click.option("--model", default="default",
                                help="llm model name; 'default' uses the OpenAI-compatible API from OPENAI_* env vars")

    @cli.command("jp-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the flashcard database and seed the default collections."""
        db.init_db()
        for key in (KANJI_LIST, KATAKANA_LIST, WORDS_LIST):
            progress.load_or_seed(key)
        click.echo("Database initialized.")

    @cli.command("jp-refresh")  # type: ignore[misc]
    @click.argument("collection", type=click.Choice(["kanji", "katakana"]))
    @model_option
    def refresh(collection: str, model: str) -> None:
        """Download the canonical kanji or katakana list and merge it, keeping learned levels."""
        db.init_db()
        try:
            items = progress.refresh_collection(COLLECTION_NAMES[collection], _make_gateway(model))
        except (GatewayError, db.StoreError) as e:
            raise click.ClickException(str(e))
        click.echo(f"✅ {collection}: {len(items)} items")

    @cli.command("jp-learn")  # type: ignore[misc]
    @click.argument("collection", type=click.Choice(sorted(COLLECTION_NAMES)))
    @click.argument("key")
    @click.option("--index", type=int, default=None, help="Position of the word (vocabulary only)")
    @model_option
    def learn(collection: str, key: str, index: Optional[int], model: str) -> None:
        """Mark an item as learned (level +1); a kanji's first level-up unlocks related words."""
        db.init_db()
        collection_key = COLLECTION_NAMES[collection]
        gateway = _make_gateway(model) if collection_key == KANJI_LIST else None
        try:
            result = progress.mark_learned(collection_key, _item_key(collection_key, key, index), gateway)
        except (ValueError, progress.ItemNotFoundError, db.StoreError) as e:
            raise click.ClickException(str(e))

        click.echo(f"📈 {key}: level {result.previous_level} -> {result.item.level}")
        for word in result.unlocked:
            click.echo(f"🔓 {word.word} ({word.reading}) - {word.meaning}")
        if result.unlock_error:
            click.echo(f"⚠️ Word unlock failed, run jp-sweep later: {result.unlock_error}")

    @cli.command("jp-sweep")  # type: ignore[misc]
    @click.option("--workers", default=5, show_default=True, help="Parallel unlocks")
    @model_option
    def sweep(workers: int, model: str) -> None:
        """Unlock vocabulary for every learned kanji that has none yet."""
        db.init_db()
        result = progress.sweep_unlocks(None, _make_gateway(model), max_workers=workers)
        for glyph, count in sorted(result.unlocked.items()):
            if count:
                click.echo(f"🔓 {glyph}: {count} words")
        for glyph, error in sorted(result.errors.items()):
            click.echo(f"❌ {glyph}: {error}")
        if not result.unlocked and not result.errors:
            click.echo("No learned kanji to sweep.")

    @cli.command("jp-stats")  # type: ignore[misc]
    @click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
    def show_stats(as_json: bool) -> None:
        """Show learned/total counts and overall completion."""
        db.init_db()
        current = stats.get_progress_stats()
        if as_json:
            click.echo(json.dumps(current.to_dict()))
            return
        click.echo("📊 Progress")
        click.echo(f"  Kanji:    {current.kanji.learned}/{current.kanji.total}")
        click.echo(f"  Katakana: {current.katakana.learned}/{current.katakana.total}")
        click.echo(f"  Words:    {current.words.learned}/{current.words.total}")
        click.echo(f"  Overall:  {current.percentage}%")

    @cli.command("jp-reset")  # type: ignore[misc]
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
    def reset(yes: bool) -> None:
        """Reset every level to 0 and remove all unlocked words."""
        if not yes:
            click.confirm("This resets all progress and cannot be undone. Continue?", abort=True)
        db.init_db()
        try:
            summary = progress.reset_all_progress()
        except db.StoreError as e:
            raise click.ClickException(str(e))
        click.echo(f"✅ Reset {summary['kanji']} kanji, {summary['katakana']} katakana, "
                   f"removed {summary['wordsRemoved']} words.")

    @cli.command("jp-settings")  # type: ignore[misc]
    @click.option("--set", "assignments", multiple=True, help="key=value (JSON values accepted)")
    def settings(assignments: Tuple[str, ...]) -> None:
        """Show or update user settings."""
        db.init_db()
        if assignments:
            try:
                updates = dict(_parse_setting(a) for a in assignments)
            except ValueError as e:
                raise click.BadParameter(str(e))
            try:
                current = db.save_settings(updates)
            except db.StoreError as e:
                raise click.ClickException(str(e))
        else:
            current = db.load_settings()
        for key, value in current.items():
            click.echo(f"{key}: {json.dumps(value)}")

    @cli.command("jp-recognize")  # type: ignore[misc]
    @click.argument("points_file", type=click.File("r"))
    @click.option("--describe-only", is_flag=True, help="Print the stroke description without calling the model")
    @model_option
    def recognize(points_file: Any, describe_only: bool, model: str) -> None:
        """Identify a kanji from a JSON list of drawn points ([[x, y], ...] or [{"x":..,"y":..}, ...])."""
        points = json.load(points_file)
        if points and isinstance(points[0], list) and points[0] and isinstance(points[0][0], (list, dict)):
            points = recognition.flatten_strokes(points)
        if describe_only:
            try:
                click.echo(recognition.describe_drawing(points))
            except ValueError as e:
                raise click.BadParameter(str(e))
            return
        try:
            result = recognition.recognize_drawing(points, _make_gateway(model))
        except ValueError as e:
            raise click.BadParameter(str(e))
        except GatewayError as e:
            raise click.ClickException(str(e))
        click.echo(f"🔎 {result.best} ({result.confidence}%)")
        if result.alternates:
            click.echo(f"   Alternatives: {', '.join(result.alternates)}")
