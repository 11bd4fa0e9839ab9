"""Command-line interface for AniKodik."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from anikodik import __version__
from anikodik.api import APIError
from anikodik.config import get_config
from anikodik.errors import get_friendly_message
from anikodik.models import Anime, ListParams
from anikodik.storage import PersistenceError

if TYPE_CHECKING:
    from anikodik.cache import DetailCache
    from anikodik.library import UserLibrary
    from anikodik.service import AnimeService

T = TypeVar("T")

# Load environment variables from .env file
load_dotenv()

console = Console()
err_console = Console(stderr=True)

DEFAULT_USER = "local"


def _configure_logging(verbose: bool) -> None:
    """Route log records through rich; DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO/DEBUG; keep it quiet unless asked
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="anikodik")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--stats", is_flag=True, help="Print API call and cache statistics")
@click.pass_context
def main(ctx: click.Context, verbose: bool, stats: bool) -> None:
    """AniKodik - browse the Kodik anime catalog and rebuild franchise watch orders."""
    from anikodik.statistics import FetchStatistics

    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if stats:
        tracker = FetchStatistics()
        tracker.start()

        def print_stats() -> None:
            tracker.stop()
            tracker.print_summary(console)
            FetchStatistics.reset_current()

        ctx.call_on_close(print_stats)


# --- wiring ---


def _make_cache(no_cache: bool = False) -> DetailCache:
    from anikodik.cache import DetailCache
    from anikodik.storage import JsonFileStore

    cfg = get_config()
    store = None if no_cache else JsonFileStore()
    return DetailCache(store, ttl_hours=cfg.options.cache_ttl_hours)


def _make_service(no_cache: bool = False) -> AnimeService:
    from anikodik.kodik import KodikClient
    from anikodik.service import AnimeService

    cfg = get_config()
    client = KodikClient(
        api_key=cfg.kodik.api_key or "",
        base_url=cfg.kodik.base_url,
        timeout=cfg.kodik.timeout,
        max_attempts=cfg.options.max_attempts,
        retry_delay=cfg.options.retry_delay,
    )
    ctx = click.get_current_context(silent=True)
    if ctx is not None:
        ctx.call_on_close(client.close)
    return AnimeService(
        client,
        cache=_make_cache(no_cache),
        watch_order_limit=cfg.options.watch_order_limit,
        watch_order_query_limit=cfg.options.watch_order_query_limit,
    )


def _make_library(with_service: bool = False) -> UserLibrary:
    from anikodik.library import UserLibrary
    from anikodik.storage import JsonFileStore

    cfg = get_config()
    service = _make_service() if with_service else None
    return UserLibrary(JsonFileStore(), service=service, history_limit=cfg.options.history_limit)


def _run(action: Callable[[], T]) -> T:
    """Run a command body, turning catalog and store errors into exit codes."""
    try:
        return action()
    except (APIError, PersistenceError) as e:
        err_console.print(f"[red]Error:[/red] {get_friendly_message(e)}")
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)


# --- output ---


def _anime_table(items: list[Anime], show_season: bool = False) -> Table:
    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    if show_season:
        table.add_column("Season", style="dim", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Year", style="dim", justify="right")
    table.add_column("Eps", style="dim", justify="right")
    table.add_column("Rating", justify="right")

    for anime in items:
        row = [
            anime.id,
            anime.display_title,
            anime.year or "-",
            str(anime.episode_count) if anime.episode_count else "-",
            f"{anime.rating:.1f}" if anime.rating else "-",
        ]
        if show_season:
            row.insert(0, str(anime.season_number) if anime.season_number else "?")
        table.add_row(*row)
    return table


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, ensure_ascii=False))


def _output_list(items: list[Anime], format: str, show_season: bool = False) -> None:
    if format == "json":
        payload = []
        for anime in items:
            entry = anime.model_dump(mode="json", exclude={"seasons"})
            if show_season:
                entry["season_number"] = anime.season_number
            payload.append(entry)
        _print_json(payload)
        return

    if not items:
        console.print("[dim]Nothing found.[/dim]")
        return
    console.print(_anime_table(items, show_season=show_season))


FORMAT_OPTION = click.option(
    "--format",
    "-f",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
USER_OPTION = click.option("--user", "-u", default=DEFAULT_USER, show_default=True, help="User id")


# --- catalog commands ---


@main.command(name="list")
@click.option("--search", "-s", default="", help="Title search (single page)")
@click.option("--genre", "-g", default="", help="Filter by genre")
@click.option("--status", default="", help="Filter by status (released, ongoing, anons)")
@click.option("--sort", default="", help="Sort as <field>_<direction>, e.g. rating_desc")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Page size")
@click.option("--pages", type=click.IntRange(min=1), default=1, show_default=True,
              help="Number of pages to load")
@FORMAT_OPTION
def list_cmd(
    search: str,
    genre: str,
    status: str,
    sort: str,
    limit: int | None,
    pages: int,
    format: str,
) -> None:
    """List catalog entries, merging pages without duplicates."""
    from anikodik.catalog import CatalogListing

    cfg = get_config()
    params = ListParams(
        search=search,
        genre=genre,
        status=status,
        sort=sort,
        limit=limit or cfg.options.items_per_page,
    )

    def body() -> CatalogListing:
        listing = CatalogListing(_make_service().fetch_page, params)
        listing.load_first()
        while listing.page < pages and listing.load_more():
            pass
        listing.close()
        return listing

    listing = _run(body)
    _output_list(listing.items, format)
    if format == "text" and listing.items and not listing.has_more:
        console.print("[dim]End of results.[/dim]")


@main.command()
@click.argument("anime_id")
@click.option("--no-cache", is_flag=True, help="Bypass the detail cache")
@FORMAT_OPTION
def show(anime_id: str, no_cache: bool, format: str) -> None:
    """Show one anime with its seasons and episodes."""
    anime = _run(lambda: _make_service(no_cache=no_cache).fetch_by_id(anime_id))

    if format == "json":
        _print_json(anime.model_dump(mode="json"))
        return

    console.print(f"[bold blue]{anime.display_title}[/bold blue]")
    if anime.title_orig and anime.title_orig != anime.title:
        console.print(f"[dim]{anime.title_orig}[/dim]")
    console.print()
    console.print(f"[dim]ID:[/dim] {anime.id}")
    console.print(f"[dim]Type:[/dim] {anime.type}  [dim]Status:[/dim] {anime.status}")
    if anime.year:
        console.print(f"[dim]Year:[/dim] {anime.year}")
    console.print(f"[dim]Genres:[/dim] {', '.join(anime.genres)}")
    if anime.rating:
        console.print(f"[dim]Rating:[/dim] {anime.rating:.1f}")
    if anime.studios:
        console.print(f"[dim]Studios:[/dim] {anime.studios}")
    if anime.description:
        console.print()
        console.print(anime.description)

    if anime.seasons:
        console.print()
        table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
        table.add_column("Season", justify="right")
        table.add_column("Title")
        table.add_column("Episodes", justify="right")
        for season in anime.seasons:
            table.add_row(str(season.number), season.title, str(len(season.episodes)))
        console.print(table)


@main.command()
@click.argument("anime_id")
@click.option("--season", "-s", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--episode", "-e", type=click.IntRange(min=1), default=1, show_default=True)
@FORMAT_OPTION
def video(anime_id: str, season: int, episode: int, format: str) -> None:
    """Resolve the player URL for an episode."""
    result = _run(lambda: _make_service().fetch_video(anime_id, season, episode))

    if format == "json":
        _print_json(result.model_dump(mode="json", exclude={"seasons"}))
        return

    console.print(
        f"Season {result.current_season}/{result.total_seasons}, "
        f"episode {result.current_episode}/{result.total_episodes}"
    )
    console.print(result.url)


@main.command(name="watch-order")
@click.argument("title")
@FORMAT_OPTION
def watch_order(title: str, format: str) -> None:
    """Rebuild the watch order of the franchise a title belongs to."""
    entries = _run(lambda: _make_service().fetch_watch_order(title))
    if format == "text" and not entries:
        console.print(f"[dim]No related entries found for {title!r}.[/dim]")
        return
    _output_list(entries, format, show_season=True)


@main.command()
@click.argument("anime_id")
@FORMAT_OPTION
def recommend(anime_id: str, format: str) -> None:
    """Show entries similar to an anime."""
    _output_list(_run(lambda: _make_service().recommendations(anime_id)), format)


@main.command()
@click.argument("name", type=click.Choice(["trending", "latest", "genre"]))
@click.option("--genre", "-g", default="", help="Genre for the genre shelf")
@FORMAT_OPTION
def shelf(name: str, genre: str, format: str) -> None:
    """Show a short fixed listing: trending, latest or one genre."""
    if name == "genre" and not genre:
        raise click.UsageError("The genre shelf needs --genre.")

    def body() -> list[Anime]:
        service = _make_service()
        if name == "trending":
            return service.trending()
        if name == "latest":
            return service.latest()
        return service.by_genre(genre)

    _output_list(_run(body), format)


# --- library commands ---


@main.group()
def collection() -> None:
    """Manage your anime collection."""
    pass


@collection.command(name="add")
@click.argument("anime_id")
@USER_OPTION
def collection_add(anime_id: str, user: str) -> None:
    """Add an anime to the collection."""
    if _make_library().add_to_collection(user, anime_id):
        console.print(f"[green]Added[/green] {anime_id}")
    else:
        err_console.print(f"[red]Could not add[/red] {anime_id} (ids start with serial- or movie-)")
        sys.exit(1)


@collection.command(name="remove")
@click.argument("anime_id")
@USER_OPTION
def collection_remove(anime_id: str, user: str) -> None:
    """Remove an anime from the collection."""
    if _make_library().remove_from_collection(user, anime_id):
        console.print(f"[green]Removed[/green] {anime_id}")
    else:
        err_console.print("[yellow]Collection is empty.[/yellow]")
        sys.exit(1)


@collection.command(name="list")
@USER_OPTION
@click.option("--ids", is_flag=True, help="Only print ids (no catalog requests)")
@FORMAT_OPTION
def collection_list(user: str, ids: bool, format: str) -> None:
    """List the collection."""
    if ids:
        anime_ids = _make_library().collection_ids(user)
        if format == "json":
            _print_json(anime_ids)
        else:
            for anime_id in anime_ids:
                console.print(anime_id)
        return
    _output_list(_run(lambda: _make_library(with_service=True).get_collection(user)), format)


@main.group()
def history() -> None:
    """Manage your watch history."""
    pass


@history.command(name="add")
@click.argument("anime_id")
@click.option("--season", "-s", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--episode", "-e", type=click.IntRange(min=1), default=1, show_default=True)
@USER_OPTION
def history_add(anime_id: str, season: int, episode: int, user: str) -> None:
    """Record a watched episode."""
    if _make_library().add_to_history(user, anime_id, season, episode):
        console.print(f"[green]Recorded[/green] {anime_id} S{season}E{episode}")
    else:
        err_console.print(f"[red]Could not record[/red] {anime_id}")
        sys.exit(1)


@history.command(name="list")
@USER_OPTION
@FORMAT_OPTION
def history_list(user: str, format: str) -> None:
    """List watch history, newest first."""
    entries = _make_library().history_entries(user)
    if format == "json":
        _print_json([entry.model_dump() for entry in entries])
        return
    if not entries:
        console.print("[dim]History is empty.[/dim]")
        return

    from datetime import datetime

    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("ID", style="cyan")
    table.add_column("Season", justify="right")
    table.add_column("Episode", justify="right")
    table.add_column("Watched", style="dim")
    for entry in entries:
        watched = datetime.fromtimestamp(entry.timestamp / 1000).strftime("%Y-%m-%d %H:%M")
        table.add_row(entry.id, str(entry.season), str(entry.episode), watched)
    console.print(table)


@main.group()
def comment() -> None:
    """Read and write comments."""
    pass


@comment.command(name="list")
@click.argument("anime_id")
@FORMAT_OPTION
def comment_list(anime_id: str, format: str) -> None:
    """Show the comments on an anime."""
    comments = _make_library().get_comments(anime_id)
    if format == "json":
        _print_json([c.model_dump(mode="json") for c in comments])
        return
    if not comments:
        console.print("[dim]No comments yet.[/dim]")
        return
    for c in comments:
        console.print(f"[bold]{c.username}[/bold] [dim]{c.created_at} ({c.id}, {c.likes} likes)[/dim]")
        console.print(f"  {c.content}")
        for reply in c.replies:
            console.print(f"    [bold]{reply.username}[/bold] [dim]{reply.created_at}[/dim]")
            console.print(f"      {reply.content}")


@comment.command(name="add")
@click.argument("anime_id")
@click.argument("content")
@click.option("--reply-to", default=None, help="Id of the comment to reply to")
@click.option("--name", default=None, help="Display name (defaults to the user id)")
@USER_OPTION
def comment_add(anime_id: str, content: str, reply_to: str | None, name: str | None, user: str) -> None:
    """Add a comment, or a reply with --reply-to."""
    from anikodik.library import CommentNotFoundError

    library = _make_library()
    username = name or user
    try:
        if reply_to:
            created = library.add_reply(anime_id, reply_to, user, username, content)
        else:
            created = library.add_comment(anime_id, user, username, content)
    except CommentNotFoundError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if created is None:
        err_console.print("[red]Could not save the comment.[/red]")
        sys.exit(1)
    console.print(f"[green]Posted[/green] {created.id}")


@comment.command(name="like")
@click.argument("anime_id")
@click.argument("comment_id")
@USER_OPTION
def comment_like(anime_id: str, comment_id: str, user: str) -> None:
    """Like a comment or reply."""
    library = _make_library()
    if library.has_liked_comment(comment_id, user):
        console.print("[dim]Already liked.[/dim]")
        return
    if not library.like_comment(anime_id, comment_id, user):
        err_console.print(f"[red]Comment not found:[/red] {comment_id}")
        sys.exit(1)
    console.print(f"[green]Liked[/green] {comment_id}")


@main.command()
@click.argument("anime_id")
@click.argument("value", type=click.IntRange(1, 5), required=False)
@USER_OPTION
def rate(anime_id: str, value: int | None, user: str) -> None:
    """Rate an anime from 1 to 5, or show its ratings when VALUE is omitted."""
    library = _make_library()
    if value is not None:
        if library.rate_anime(user, anime_id, value) is None:
            err_console.print("[red]Could not save the rating.[/red]")
            sys.exit(1)
        console.print(f"[green]Rated[/green] {anime_id}: {value}")

    summary = library.get_ratings(anime_id)
    if summary.count == 0:
        console.print("[dim]No ratings yet.[/dim]")
    else:
        console.print(f"[bold]Average:[/bold] {summary.average:.1f} ({summary.count} ratings)")


# --- maintenance commands ---


@main.group()
def cache() -> None:
    """Manage the anime detail cache."""
    pass


@cache.command(name="clear")
@click.option("--expired", is_flag=True, help="Only remove stale entries")
@click.confirmation_option(prompt="Are you sure you want to clear the cache?")
def cache_clear(expired: bool) -> None:
    """Clear cached anime details."""
    detail_cache = _make_cache()
    count = _run(detail_cache.cleanup_expired if expired else detail_cache.clear)

    if count == 0:
        console.print("[dim]Nothing to remove.[/dim]")
    else:
        console.print(f"[green]Removed {count} cached entries.[/green]")


@cache.command(name="stats")
def cache_stats() -> None:
    """Show cache statistics."""
    from anikodik.storage import get_store_file_path

    stats = _run(_make_cache().stats)

    console.print("[bold]Cache Statistics[/bold]")
    console.print()

    if stats.total_entries == 0:
        console.print("[dim]Cache is empty.[/dim]")
    else:
        console.print(f"[bold]Total entries:[/bold] {stats.total_entries}")
        console.print(f"  Fresh:   {stats.fresh_entries}")
        console.print(f"  Expired: {stats.expired_entries}")
        if stats.oldest_entry:
            console.print(f"[bold]Oldest entry:[/bold] {stats.oldest_entry.strftime('%Y-%m-%d %H:%M')}")
        if stats.newest_entry:
            console.print(f"[bold]Newest entry:[/bold] {stats.newest_entry.strftime('%Y-%m-%d %H:%M')}")
        if stats.expired_entries:
            console.print("[dim]Run 'cache clear --expired' to remove stale entries.[/dim]")

    console.print()
    console.print(f"Store location: {get_store_file_path()}")


@main.group()
def config() -> None:
    """Manage AniKodik configuration."""
    pass


@config.command(name="show")
def config_show() -> None:
    """Show current configuration."""
    from anikodik.config import get_config_path

    cfg = get_config()
    config_file = get_config_path()

    console.print("[bold]Current Configuration[/bold]")
    console.print()
    console.print(f"[dim]Config file:[/dim] {config_file or '(none - using defaults)'}")
    console.print()

    console.print("[bold]Kodik:[/bold]")
    console.print(f"  URL: {cfg.kodik.base_url}")
    console.print(f"  Token: {'(set)' if cfg.kodik.api_key else '(missing - set KODIK_API_KEY)'}")
    console.print(f"  Timeout: {cfg.kodik.timeout}s")
    console.print()

    console.print("[bold]Options:[/bold]")
    for key, value in cfg.options.model_dump().items():
        console.print(f"  {key}: {value}")
    console.print()

    console.print("[bold]Storage:[/bold]")
    console.print(f"  Path: {cfg.storage.path or '(next to config file)'}")


@config.command(name="path")
def config_path() -> None:
    """Show configuration file paths."""
    from anikodik.config import find_config_file, get_config_paths

    console.print("[bold]Configuration paths (in priority order):[/bold]")
    config_file = find_config_file()

    for path in get_config_paths():
        if path.exists():
            if path == config_file:
                console.print(f"  [green]{path}[/green] (active)")
            else:
                console.print(f"  {path} (exists)")
        else:
            console.print(f"  [dim]{path}[/dim]")


@config.command(name="init")
@click.option("--force", is_flag=True, help="Overwrite existing config file")
@click.option("--api-key", default="", help="Kodik API token to write into the file")
def config_init(force: bool, api_key: str) -> None:
    """Create a default configuration file in the current directory."""
    from pathlib import Path

    from anikodik.config import save_default_config

    target = Path.cwd() / "anikodik.ini"

    if target.exists() and not force:
        console.print(f"[yellow]Config file already exists:[/yellow] {target}")
        console.print("Use --force to overwrite.")
        sys.exit(1)

    save_default_config(target, api_key=api_key)
    console.print(f"[green]Created config file:[/green] {target}")
    console.print("Edit this file to customize your settings.")


if __name__ == "__main__":
    main()
