"""
Aggregate Ledger CLI

Command-line interface for the ledger: issue commands, inspect read
models, pull the event feed and drive publishing.

Usage:
    ledger init --db ledger.db
    ledger wish make --user alice --address alice@example.com --content "A bike"
    ledger idea propose --title "Bike lanes" --author alice
    ledger idea rate --id <idea_id> --rating 5
    ledger events --since 0 --limit 50
    ledger publish
    ledger projections rebuild
    ledger stats
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from aggregate_ledger.kernel.errors import LedgerError
from aggregate_ledger.kernel.logging import configure_logging
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.ledger import Ledger

# Configure logging to stderr (keeps stdout clean for JSON output)
configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="ledger",
    help="Aggregate Ledger - event-sourced aggregates with consistent boundaries",
    add_completion=False,
)

# Sub-apps
wish_app = typer.Typer(help="Wish commands (User aggregate)")
idea_app = typer.Typer(help="Idea commands")
forum_app = typer.Typer(help="Forum commands")
post_app = typer.Typer(help="Post commands")
projections_app = typer.Typer(help="Read model maintenance")

app.add_typer(wish_app, name="wish")
app.add_typer(idea_app, name="idea")
app.add_typer(forum_app, name="forum")
app.add_typer(post_app, name="post")
app.add_typer(projections_app, name="projections")

DEFAULT_DB = Path(".ledger.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def get_ledger(db_path: Optional[Path] = None) -> Ledger:
    """Open an existing ledger database (policy overrides from LEDGER_* env vars)"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'ledger init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return Ledger(db, policy=LedgerPolicy.from_env())


@contextmanager
def domain_errors() -> Iterator[None]:
    """Report rejected commands as a one-line error and exit code 1"""
    try:
        yield
    except (LedgerError, ValidationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


# Initialization


@app.command()
def init(
    db: Annotated[Path, typer.Option(help="Database path")] = DEFAULT_DB,
) -> None:
    """Initialize a new ledger database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    Ledger(db)
    typer.echo(f"✓ Initialized ledger database: {db}")


# Wishes


@wish_app.command("make")
def wish_make(
    user: Annotated[str, typer.Option("--user", help="User id")],
    address: Annotated[str, typer.Option("--address", help="E-mail address to send the wish to")],
    content: Annotated[str, typer.Option("--content", help="What is wished for")],
    wish_id: Annotated[Optional[str], typer.Option("--id", help="Wish id")] = None,
    db: DbOption = None,
) -> None:
    """Make a wish (creates the user on first use)"""
    ledger = get_ledger(db)
    with domain_errors():
        wish = ledger.make_wish(user, address, content, wish_id=wish_id)
    typer.echo(f"✓ Wish made: {wish.wish_id}")
    typer.echo(f"  User: {wish.user_id}")
    typer.echo(f"  To: {wish.address}")


@wish_app.command("grant")
def wish_grant(
    user: Annotated[str, typer.Option("--user", help="User id")],
    wish_id: Annotated[str, typer.Option("--id", help="Wish id")],
    db: DbOption = None,
) -> None:
    """Grant an outstanding wish"""
    ledger = get_ledger(db)
    with domain_errors():
        wish = ledger.grant_wish(user, wish_id)
    typer.echo(f"✓ Wish granted: {wish.wish_id}")


@wish_app.command("remove")
def wish_remove(
    user: Annotated[str, typer.Option("--user", help="User id")],
    wish_id: Annotated[str, typer.Option("--id", help="Wish id")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why")] = None,
    db: DbOption = None,
) -> None:
    """Remove a wish"""
    ledger = get_ledger(db)
    with domain_errors():
        view = ledger.remove_wish(user, wish_id, reason=reason)
    typer.echo(f"✓ Wish removed: {wish_id}")
    typer.echo(f"  Remaining wishes: {len(view.wishes)}")


@wish_app.command("list")
def wish_list(
    user: Annotated[str, typer.Option("--user", help="User id")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List a user's wishes (from the WishBoard read model)"""
    ledger = get_ledger(db)
    entries = ledger.wishes_of(user)

    if json_output:
        typer.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        typer.echo(f"No wishes for {user}")
        return

    typer.echo(f"Wishes of {user} ({len(entries)}):")
    for entry in entries:
        typer.echo(f"  {entry.wish_id}: [{entry.status}] {entry.content} -> {entry.address}")


# Ideas


@idea_app.command("propose")
def idea_propose(
    title: Annotated[str, typer.Option("--title", help="Idea title")],
    author: Annotated[str, typer.Option("--author", help="Who proposes it")],
    idea_id: Annotated[Optional[str], typer.Option("--id", help="Idea id")] = None,
    db: DbOption = None,
) -> None:
    """Propose a new idea"""
    ledger = get_ledger(db)
    with domain_errors():
        idea = ledger.propose_idea(title, author, idea_id=idea_id)
    typer.echo(f"✓ Idea proposed: {idea.idea_id}")
    typer.echo(f"  Title: {idea.title}")


@idea_app.command("rate")
def idea_rate(
    idea_id: Annotated[str, typer.Option("--id", help="Idea id")],
    rating: Annotated[int, typer.Option("--rating", help="Rating (1-5 by default)")],
    db: DbOption = None,
) -> None:
    """Rate an idea"""
    ledger = get_ledger(db)
    with domain_errors():
        idea = ledger.rate_idea(idea_id, rating)
    typer.echo(f"✓ Rated {idea.idea_id}: average {idea.average_rating:.2f} ({idea.rating_count} ratings)")


@idea_app.command("ranking")
def idea_ranking(
    limit: Annotated[Optional[int], typer.Option("--limit", help="Show top N")] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show ideas by average rating"""
    ledger = get_ledger(db)
    scores = ledger.idea_ranking(limit)

    if json_output:
        typer.echo(json.dumps([s.model_dump(mode="json") for s in scores], indent=2))
        return

    if not scores:
        typer.echo("No ideas yet")
        return

    typer.echo("Idea Ranking:")
    for rank, score in enumerate(scores, start=1):
        typer.echo(
            f"  {rank}. {score.title} ({score.idea_id}) "
            f"avg {score.average_rating:.2f} from {score.rating_count}"
        )


# Forum


@forum_app.command("open")
def forum_open(
    title: Annotated[str, typer.Option("--title", help="Forum title")],
    moderator: Annotated[str, typer.Option("--moderator", help="Moderator id")],
    forum_id: Annotated[Optional[str], typer.Option("--id", help="Forum id")] = None,
    db: DbOption = None,
) -> None:
    """Open a forum"""
    ledger = get_ledger(db)
    with domain_errors():
        forum = ledger.open_forum(title, moderator, forum_id=forum_id)
    typer.echo(f"✓ Forum opened: {forum.forum_id}")


@forum_app.command("close")
def forum_close(
    forum_id: Annotated[str, typer.Option("--id", help="Forum id")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why")] = None,
    db: DbOption = None,
) -> None:
    """Close a forum to new posts"""
    ledger = get_ledger(db)
    with domain_errors():
        forum = ledger.close_forum(forum_id, reason=reason)
    typer.echo(f"✓ Forum closed: {forum.forum_id}")


@forum_app.command("timeline")
def forum_timeline(
    forum_id: Annotated[str, typer.Option("--id", help="Forum id")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the published posts of a forum"""
    ledger = get_ledger(db)
    entries = ledger.forum_timeline(forum_id)

    if json_output:
        typer.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    typer.echo(f"Timeline of {forum_id} ({len(entries)} posts):")
    for entry in entries:
        typer.echo(f"  {entry.published_at:%Y-%m-%d %H:%M} {entry.author}: {entry.body}")


@post_app.command("draft")
def post_draft(
    forum_id: Annotated[str, typer.Option("--forum", help="Forum id")],
    author: Annotated[str, typer.Option("--author", help="Author id")],
    body: Annotated[str, typer.Option("--body", help="Post text")],
    post_id: Annotated[Optional[str], typer.Option("--id", help="Post id")] = None,
    db: DbOption = None,
) -> None:
    """Draft a post in a forum"""
    ledger = get_ledger(db)
    with domain_errors():
        post = ledger.draft_post(forum_id, author, body, post_id=post_id)
    typer.echo(f"✓ Post drafted: {post.post_id}")


@post_app.command("publish")
def post_publish(
    post_id: Annotated[str, typer.Option("--id", help="Post id")],
    db: DbOption = None,
) -> None:
    """Publish a drafted post"""
    ledger = get_ledger(db)
    with domain_errors():
        post = ledger.publish_post(post_id)
    typer.echo(f"✓ Post published: {post.post_id}")


# Event feed and publishing


@app.command()
def events(
    since: Annotated[int, typer.Option("--since", help="Exclusive global position")] = 0,
    limit: Annotated[int, typer.Option("--limit", help="Maximum events")] = 100,
    db: DbOption = None,
) -> None:
    """Print committed events after a position as JSON envelopes"""
    ledger = get_ledger(db)
    try:
        envelopes = ledger.events_since(since, limit=limit)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(json.dumps(envelopes, indent=2))


@app.command()
def publish(
    channel: Annotated[Optional[str], typer.Option("--channel", help="Only this channel")] = None,
    db: DbOption = None,
) -> None:
    """Deliver pending events to registered channels"""
    ledger = get_ledger(db)
    with domain_errors():
        results = ledger.publish_pending(channel)

    failed = False
    for result in results:
        if result.succeeded:
            typer.echo(
                f"✓ {result.channel_id}: {result.delivered} delivered, "
                f"cursor at {result.last_position}"
            )
        else:
            failed = True
            typer.echo(
                f"✗ {result.channel_id}: stopped at {result.failed_position} ({result.error})",
                err=True,
            )
    if failed:
        raise typer.Exit(1)


@projections_app.command("rebuild")
def projections_rebuild(db: DbOption = None) -> None:
    """Discard read models and replay the full event log"""
    ledger = get_ledger(db)
    with domain_errors():
        applied = ledger.rebuild_projections()
    typer.echo(f"✓ Projections rebuilt from {applied} events")


@app.command()
def stats(
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show store size, channel cursors and projection position"""
    ledger = get_ledger(db)
    data = ledger.stats()

    if json_output:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    typer.echo("Ledger Statistics:")
    typer.echo(f"  Events: {data['events']}")
    typer.echo(f"  Streams: {data['streams']}")
    typer.echo(f"  Last position: {data['last_position']}")
    typer.echo(f"  Projection position: {data['projection_position']}")
    typer.echo("\nChannels:")
    for channel_id, channel in data["channels"].items():
        typer.echo(f"  {channel_id}: cursor {channel['cursor']} (lag {channel['lag']})")


if __name__ == "__main__":
    app()
