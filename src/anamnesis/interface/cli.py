"""anamnesis CLI: deck management, due queues, stats and interactive review."""

import asyncio
import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Coroutine, TypeVar

import typer
from pydantic import ValidationError

from anamnesis.application.config import AppConfig, resolve_config
from anamnesis.application.factory import get_study_service
from anamnesis.application.study_service import StudyService
from anamnesis.domain.errors import AnamnesisError, PersistenceFailure
from anamnesis.domain.models import DeckSettings, Rating
from anamnesis.infrastructure.serialization import card_to_record, deck_to_record

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="anamnesis: spaced-repetition flashcard scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

deck_app = typer.Typer(help="Create, list, merge and delete decks.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")

config_app = typer.Typer(help="Manage anamnesis configuration.")
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context) -> AppConfig:
    try:
        config = resolve_config(ctx.obj.get("overrides"))
    except ValidationError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(1)
    _set_log_level(config.verbose)
    return config


def _service(ctx: typer.Context) -> StudyService:
    return get_study_service(_config(ctx))


def _set_log_level(verbose: int) -> None:
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)
    else:
        logging.getLogger().setLevel(logging.WARNING)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine and turn engine errors into a red message + exit code 1."""
    try:
        return asyncio.run(coro)
    except AnamnesisError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_now(value: str | None) -> datetime:
    if value is None:
        return _utcnow()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Not an ISO-8601 timestamp: {value}", param_hint="--now")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    data_dir: Annotated[
        Path | None, typer.Option(help="Directory holding deck files.")
    ] = None,
    algorithm: Annotated[
        str | None, typer.Option(help="Update algorithm: fsrs, sm2.")
    ] = None,
):
    """Global settings for anamnesis."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "data_dir": data_dir,
        "algorithm": algorithm,
        "verbose": verbose or None,
    }


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to inspect.")],
    now: Annotated[str | None, typer.Option(help="Reference time (ISO-8601). Defaults to now.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show today's study queue: due reviews first, then new cards."""
    service = _service(ctx)
    queue = _run(service.due_cards(deck_id, _parse_now(now)))

    if json_output:
        typer.echo(json.dumps([card_to_record(c).dump() for c in queue], indent=2, ensure_ascii=False))
        return

    if not queue:
        typer.secho("Nothing to review today.", fg="green")
        return

    for position, card in enumerate(queue, start=1):
        learning = card.learning
        typer.echo(
            f"{position:>3}. [{learning.status.value:<8}] {card.id}  "
            f"S={learning.stability:.2f} D={learning.difficulty:.2f}  {card.question[:60]}"
        )


@app.command()
def stats(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to summarize.")],
    save: Annotated[bool, typer.Option("--save", help="Store the recomputed stats.")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Recompute deck statistics from its cards."""
    service = _service(ctx)

    async def run():
        if save:
            return await service.refresh_stats(deck_id)
        deck, cards = await service.load_deck(deck_id)
        return deck.with_stats(service.scheduler.recompute_stats(deck, cards))

    deck = _run(run())
    record = deck_to_record(deck).dump()["stats"]

    if json_output:
        typer.echo(json.dumps(record, indent=2))
        return

    s = deck.stats
    typer.echo(f"{deck.name} ({deck.id})")
    typer.echo(
        f"  Total: {s.total}  New: {s.new}  Learning: {s.learning}  "
        f"Review: {s.review}  Mastered: {s.mastered}"
    )
    typer.echo(
        f"  Mastery: {s.mastery_rate:.0%}  Reviews: {s.total_reviews}  "
        f"Study time: {s.total_study_time_ms / 1000:.0f}s"
    )
    if s.last_study_time:
        typer.echo(f"  Last studied: {s.last_study_time.isoformat()}")


@app.command()
def review(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to study.")],
    limit: Annotated[int | None, typer.Option(help="Stop after this many cards.")] = None,
):
    """[bold green]Study[/bold green] today's queue interactively."""
    service = _service(ctx)

    async def run():
        session = await service.start_session(deck_id, _utcnow())
        if not session.remaining:
            typer.secho("Nothing to review today.", fg="green")
            return session.summary()

        typer.echo(f"{session.remaining} cards to review. Ratings: 0=Again 1=Hard 2=Good 3=Easy, q=quit")
        reviewed = 0
        while session.remaining:
            if limit is not None and reviewed >= limit:
                return await session.abort(_utcnow())

            card = session.present_card()
            started = time.monotonic()
            typer.secho(f"\nQ: {card.question}", bold=True)
            typer.prompt("Press Enter to show the answer", default="", show_default=False)
            typer.echo(f"A: {card.answer}")

            while True:
                answer = typer.prompt("Rating").strip().lower()
                if answer == "q":
                    return await session.abort(_utcnow())
                try:
                    rating = Rating.parse(int(answer))
                    break
                except (ValueError, AnamnesisError):
                    typer.secho("Enter 0, 1, 2, 3 or q.", fg="yellow")

            elapsed_ms = int((time.monotonic() - started) * 1000)
            rated_at = _utcnow()
            while True:
                try:
                    outcome = await session.record_rating(card.id, rating, elapsed_ms, rated_at)
                    break
                except PersistenceFailure as e:
                    if session.remaining:
                        typer.secho(f"Could not save the rating: {e}", fg="red", err=True)
                    else:
                        # Rating stored, deck stats not
                        typer.secho(f"Could not save deck stats: {e}", fg="red", err=True)
                    if not typer.confirm("Retry?", default=True):
                        return await session.abort(_utcnow())
                    if not session.remaining:
                        return await session.complete(rated_at)
            typer.echo(f"Next review in {outcome.interval_days} day(s).")
            reviewed += 1

        return session.summary()

    summary = _run(run())
    state = "Stopped" if summary.aborted else "Done"
    typer.secho(f"\n{state}: reviewed {summary.reviewed}/{summary.queued} cards.", fg="green")


# ---------------------------------------------------------------------------
# Deck subgroup
# ---------------------------------------------------------------------------


@deck_app.command("create")
def deck_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Deck name.")],
    new_per_day: Annotated[int | None, typer.Option(help="New cards per day.")] = None,
    review_per_day: Annotated[int | None, typer.Option(help="Review cards per day.")] = None,
):
    """Create an empty deck and print its id."""
    config = _config(ctx)
    defaults = config.deck_settings()
    try:
        settings = DeckSettings(
            new_cards_per_day=new_per_day or defaults.new_cards_per_day,
            review_cards_per_day=review_per_day or defaults.review_cards_per_day,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

    deck = _run(get_study_service(config).create_deck(name, _utcnow(), settings))
    typer.echo(deck.id)


@deck_app.command("list")
def deck_list(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List all decks."""
    decks = _run(_service(ctx).list_decks())
    if json_output:
        typer.echo(json.dumps([deck_to_record(d).dump() for d in decks], indent=2, ensure_ascii=False))
        return
    if not decks:
        typer.secho("No decks found.", fg="yellow")
        return
    for deck in decks:
        typer.echo(f"{deck.id}  {deck.name}  ({len(deck.card_ids)} cards)")


@deck_app.command("add")
def deck_add(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck receiving the card.")],
    question: Annotated[str, typer.Option(help="Question text.")],
    answer: Annotated[str, typer.Option(help="Answer text.")],
    tag: Annotated[list[str] | None, typer.Option(help="Tag (repeatable).")] = None,
):
    """Add a new card to a deck."""
    card = _run(_service(ctx).add_card(deck_id, question, answer, _utcnow(), tags=tag or []))
    typer.echo(card.id)


@deck_app.command("merge")
def deck_merge(
    ctx: typer.Context,
    deck_ids: Annotated[list[str], typer.Argument(help="Decks to merge.")],
    name: Annotated[str, typer.Option(help="Name of the merged deck.")],
):
    """Merge decks into a new one; the source decks are removed."""
    deck = _run(_service(ctx).merge_decks(deck_ids, name))
    typer.secho(f"Merged into {deck.id} ({len(deck.card_ids)} cards).", fg="green")


@deck_app.command("delete")
def deck_delete(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck to delete.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Delete a deck and its cards."""
    if not force:
        typer.confirm(f"Delete deck {deck_id}?", abort=True)
    _run(_service(ctx).delete_deck(deck_id))
    typer.secho(f"Deleted {deck_id}.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
