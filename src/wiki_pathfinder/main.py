import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from wiki_pathfinder.config import Credentials, PathfinderConfig
from wiki_pathfinder.crawler import FrontierCoordinator
from wiki_pathfinder.events import EventBus, SearchEvent, SearchEventType
from wiki_pathfinder.exceptions import (
    ConfigError,
    FetchFailure,
    InvalidInputError,
    ServiceUnavailableError,
)
from wiki_pathfinder.logging_config import setup_logging
from wiki_pathfinder.models import SearchOutcome, SearchResult
from wiki_pathfinder.wikipedia import WikipediaLinkFetcher

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2

MENU_PROMPT = """
Find the shortest path between two Wikipedia articles.

Choose your operation:
1: Start a new crawl
0: Exit
Your choice"""

app = typer.Typer(help="Find the shortest chain of links between two Wikipedia articles.")
console = Console()
logger = logging.getLogger(__name__)


def build_config(
    api_url: Optional[str] = None,
    secrets: Optional[Path] = None,
    max_depth: Optional[int] = None,
    workers: Optional[int] = None,
    queue_size: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> PathfinderConfig:
    """
    Environment configuration with command line overrides applied on top.

    Raises:
        ConfigError: if any resulting setting is invalid.
    """
    config = PathfinderConfig.from_env(
        api_url=api_url,
        secrets_file=str(secrets) if secrets is not None else None,
        max_depth=max_depth,
        workers=workers,
        queue_size=queue_size,
        max_attempts=max_attempts,
    )
    if api_url is None:
        console.print(f"No API address given, using '{config.api_url}'")
    return config


def load_config_or_exit(**options) -> PathfinderConfig:
    try:
        return build_config(**options)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/] {escape(e.message)}")
        raise typer.Exit(code=EXIT_FAILURE)


@asynccontextmanager
async def connect(config: PathfinderConfig) -> AsyncIterator[WikipediaLinkFetcher]:
    """
    Read credentials, open the API session and log in.
    Everything here raises ConfigError before any search starts.
    """
    credentials = Credentials.from_file(config.secrets_file)

    console.print("Opening API connection and logging in...")
    async with WikipediaLinkFetcher.from_config(config) as fetcher:
        await fetcher.check_connection()
        await fetcher.login(credentials)
        console.print(f"Logged in as '{credentials.username}'")
        yield fetcher


async def resolve_title(fetcher: WikipediaLinkFetcher, title: str, interactive: bool) -> Optional[str]:
    """
    Check that `title` names an existing article.

    An exact match is returned as is. Otherwise the closest search hits are
    offered, either as a numbered prompt (interactive) or as a hint.
    """
    suggestions = await fetcher.search_titles(title)
    if not suggestions:
        console.print(f"Input '{title}' didn't match any articles.")
        return None
    if title in suggestions:
        return title

    console.print(f"\nDidn't find an article matching exact string '{title}', did you mean one of these articles:")
    for number, suggestion in enumerate(suggestions, start=1):
        console.print(f"{number}: {suggestion}")
    if not interactive:
        return None

    console.print("0: None of the above.")
    while True:
        choice = typer.prompt("Please input a number representing your intent", type=int)
        if choice == 0:
            console.print("Didn't find requested article.")
            return None
        if 1 <= choice <= len(suggestions):
            return suggestions[choice - 1]
        console.print(f"Please give a whole number between 0 and {len(suggestions)}")


async def run_search(fetcher: WikipediaLinkFetcher, config: PathfinderConfig, start: str, target: str) -> SearchResult:
    """Run one search with a live progress line."""
    event_bus = EventBus()
    coordinator = FrontierCoordinator(fetcher, config, event_bus)

    with console.status("Crawling...") as status:
        async def on_progress(event: SearchEvent):
            status.update(f"Crawling, analyzed {event.data['visited_count']} articles...")

        event_bus.subscribe(SearchEventType.RESULT_APPLIED, on_progress)
        return await coordinator.find_path(start, target)


def print_result(result: SearchResult, max_depth: int) -> None:
    if result.outcome == SearchOutcome.FOUND:
        console.print(f"\nPath found ({result.path_length} links, {result.computation_time_ms / 1000:.2f}s):")
        console.print(" -> ".join(result.path), markup=False)
    elif result.outcome == SearchOutcome.DEPTH_EXCEEDED:
        console.print(f"\nNo path within {max_depth} links from '{result.start_page}' to '{result.target_page}'.")
    elif result.outcome == SearchOutcome.NOT_FOUND:
        console.print(
            f"\nNo path: every article reachable from '{result.start_page}' was explored "
            f"({result.visited_count} articles) without reaching '{result.target_page}'."
        )
    else:
        console.print("\nSearch aborted.")


async def find_async(config: PathfinderConfig, start: str, target: str, validate: bool) -> int:
    logger.debug(f"Search configuration: {config.model_dump(exclude={'secrets_file'})}")
    try:
        async with connect(config) as fetcher:
            if validate:
                console.print("\nValidating given articles' existence...")
                start = await resolve_title(fetcher, start, interactive=False)
                target = await resolve_title(fetcher, target, interactive=False) if start else None
                if not start or not target:
                    return EXIT_INVALID_INPUT

            result = await run_search(fetcher, config, start, target)
            print_result(result, config.max_depth)
            return EXIT_OK

    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/] {escape(e.message)}")
        return EXIT_FAILURE
    except FetchFailure as e:
        console.print(f"[bold red]Could not validate titles:[/] {escape(e.message)}")
        return EXIT_FAILURE
    except ServiceUnavailableError as e:
        console.print(f"[bold red]Search failed:[/] {escape(e.message)}")
        return EXIT_FAILURE
    except InvalidInputError as e:
        console.print(f"[bold red]Invalid input:[/] {escape(e.message)}")
        return EXIT_INVALID_INPUT


async def interactive_async(config: PathfinderConfig) -> int:
    try:
        async with connect(config) as fetcher:
            while True:
                choice = typer.prompt(MENU_PROMPT, type=str).strip()
                if choice == "0":
                    console.print("Exiting program...")
                    return EXIT_OK
                if choice != "1":
                    console.print("Please type a number between 0 and 1!")
                    continue
                await crawl_once(fetcher, config)

    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/] {escape(e.message)}")
        return EXIT_FAILURE


async def crawl_once(fetcher: WikipediaLinkFetcher, config: PathfinderConfig) -> None:
    """One round of the interactive menu: ask for titles, validate them, search."""
    start = typer.prompt("Give the name of the starting article").strip()
    target = typer.prompt("Give the name of the finishing article").strip()

    console.print("\nValidating given articles' existence...\n")
    try:
        titles: List[str] = []
        for title in (start, target):
            resolved = await resolve_title(fetcher, title, interactive=True)
            if resolved is None:
                console.print("Cancelling operation...")
                return
            titles.append(resolved)
        start, target = titles

        if start == target:
            console.print("Please input two different articles.")
            return

        result = await run_search(fetcher, config, start, target)
        print_result(result, config.max_depth)

    except (FetchFailure, ServiceUnavailableError, InvalidInputError) as e:
        console.print(f"[bold red]Search failed:[/] {escape(e.message)}")


@app.command()
def find(
    start: str = typer.Argument(..., help="Title of the article to start from."),
    target: str = typer.Argument(..., help="Title of the article to reach."),
    api_url: Optional[str] = typer.Argument(None, help="MediaWiki API address. Defaults to English Wikipedia."),
    secrets: Optional[Path] = typer.Option(None, "--secrets", help="Two-line file with bot username and password."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", "-d", help="Maximum number of links in the path."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Number of concurrent fetch workers."),
    queue_size: Optional[int] = typer.Option(None, "--queue-size", help="Capacity of the fetch job queue."),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Fetch attempts per article."),
    validate: bool = typer.Option(True, "--validate/--no-validate", help="Check titles with a search first."),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
):
    """
    Find the shortest path between two articles.
    """
    setup_logging(level=log_level)
    config = load_config_or_exit(
        api_url=api_url,
        secrets=secrets,
        max_depth=max_depth,
        workers=workers,
        queue_size=queue_size,
        max_attempts=max_attempts,
    )
    try:
        exit_code = asyncio.run(find_async(config, start, target, validate))
    except KeyboardInterrupt:
        console.print("\nSearch aborted.")
        exit_code = 130
    raise typer.Exit(code=exit_code)


@app.command()
def interactive(
    api_url: Optional[str] = typer.Argument(None, help="MediaWiki API address. Defaults to English Wikipedia."),
    secrets: Optional[Path] = typer.Option(None, "--secrets", help="Two-line file with bot username and password."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", "-d", help="Maximum number of links in the path."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Number of concurrent fetch workers."),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
):
    """
    Prompt for article pairs until told to stop.
    """
    setup_logging(level=log_level)
    config = load_config_or_exit(api_url=api_url, secrets=secrets, max_depth=max_depth, workers=workers)
    try:
        exit_code = asyncio.run(interactive_async(config))
    except KeyboardInterrupt:
        console.print("\nExiting program...")
        exit_code = EXIT_OK
    raise typer.Exit(code=exit_code)


if __name__ == "__main__":
    app()
