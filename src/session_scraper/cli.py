from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from playwright.async_api import Error as PlaywrightError
from rich.console import Console

from .browser import ConnectionManager
from .config import Settings, load_settings
from .errors import ExitCode, InvalidInputError, ScraperError, format_error
from .log import console as err_console, setup_logging
from .models import Record
from .scrapers import generic, instagram, linkedin, reddit, twitter


app = typer.Typer(add_completion=False, help="Session Scraper - drive your logged-in browser and extract structured data")
console = Console()

twitter_app = typer.Typer(help="X/Twitter profiles, timelines, posts, search and lists")
linkedin_app = typer.Typer(help="LinkedIn profiles, posts and search")
reddit_app = typer.Typer(help="Reddit users, subreddits and posts")
instagram_app = typer.Typer(help="Instagram profiles, posts and stories")
app.add_typer(twitter_app, name="twitter")
app.add_typer(linkedin_app, name="linkedin")
app.add_typer(reddit_app, name="reddit")
app.add_typer(instagram_app, name="instagram")


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def _print_json(value: Any) -> None:
    console.print_json(json.dumps(_to_jsonable(value), ensure_ascii=False))


def _fail(exc: BaseException) -> None:
    payload = format_error(exc)
    err_console.print_json(json.dumps(payload, ensure_ascii=False))
    raise typer.Exit(payload["code"])


def _execute(
    env_file: Optional[str],
    command: Callable[[Any, Settings], Awaitable[Any]],
    *,
    needs_page: bool = True,
) -> Any:
    """Connect, run `command(target, settings)` against the current tab (or the manager), disconnect."""
    settings = load_settings(env_file)
    setup_logging(settings.log_level)

    async def main() -> Any:
        async with ConnectionManager(settings) as manager:
            target = await manager.get_page() if needs_page else manager
            return await command(target, settings)

    try:
        return asyncio.run(main())
    except (ScraperError, PlaywrightError) as e:
        _fail(e)
    except KeyboardInterrupt:
        raise typer.Exit(int(ExitCode.GENERAL_ERROR))


def _site_command(scrape: Callable[..., Awaitable[Any]], *args: Any) -> Callable[[Any, Settings], Awaitable[Any]]:
    """Bind a site scraper's arguments; its navigation timeout comes from settings."""
    return lambda page, settings: scrape(page, *args, navigation_timeout_ms=settings.navigation_timeout_ms)


# --------------------------------------------------------------------------- #
# Browser
# --------------------------------------------------------------------------- #


@app.command()
def pages(env_file: Optional[str] = typer.Option(None, help="Path to .env")):
    """List the tabs the extension controls."""
    _print_json(_execute(env_file, lambda m, s: m.list_pages(), needs_page=False))


@app.command()
def switch(
    index: int = typer.Argument(..., help="Tab index from `pages`"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    """Bring a tab to the front."""

    async def run(manager: ConnectionManager, settings: Settings) -> Any:
        await manager.switch_page(index)
        return await manager.get_page_info()

    _print_json(_execute(env_file, run, needs_page=False))


@app.command()
def navigate(
    url: str = typer.Argument(..., help="URL to open in the current tab"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    """Open a URL in the current tab."""
    _print_json(_execute(env_file, lambda page, s: generic.navigate(page, url, timeout_ms=s.navigation_timeout_ms)))


@app.command()
def info(env_file: Optional[str] = typer.Option(None, help="Path to .env")):
    """URL and title of the current tab."""
    _print_json(_execute(env_file, lambda page, s: generic.get_page_info(page)))


@app.command()
def screenshot(
    full_page: bool = typer.Option(False, "--full-page", help="Capture the whole scrollable page"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write PNG here instead of printing base64"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    data = _execute(env_file, lambda page, s: generic.take_screenshot(page, full_page=full_page))
    if output is not None:
        output.write_bytes(data)
        _print_json({"success": True, "file": str(output), "full_page": full_page})
    else:
        _print_json({"data": base64.b64encode(data).decode("ascii"), "full_page": full_page})


@app.command()
def scrape(
    selector: Optional[str] = typer.Option(None, "--selector", "-s", help="CSS selector to scope extraction"),
    fmt: str = typer.Option("json", "--format", "-f", help="json|text"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    """Text, links and images of the current page."""
    fmt = (fmt or "json").strip().lower()
    if fmt not in ("json", "text"):
        _fail(InvalidInputError(f"Unknown format: {fmt} (expected json or text)"))
    content = _execute(env_file, lambda page, s: generic.scrape_page(page, selector))
    if fmt == "text":
        typer.echo(content.text)
    else:
        _print_json(content)


@app.command()
def script(
    code: str = typer.Argument(..., help="JavaScript function body; `return` a JSON-serializable value"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    """Evaluate JavaScript in the current tab."""
    _print_json(_execute(env_file, lambda page, s: generic.execute_script(page, code)))


# --------------------------------------------------------------------------- #
# Twitter
# --------------------------------------------------------------------------- #


@twitter_app.command("profile")
def twitter_profile(
    username: str = typer.Argument(..., help="Handle, with or without @"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(twitter.scrape_twitter_profile, username)))


@twitter_app.command("timeline")
def twitter_timeline(
    username: Optional[str] = typer.Option(None, "--user", "-u", help="User timeline (default: home feed)"),
    count: int = typer.Option(20, help=f"Tweets to collect (max {twitter.MAX_TWEETS})"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(twitter.scrape_twitter_timeline, username, count)))


@twitter_app.command("post")
def twitter_post(
    url: str = typer.Argument(..., help="Tweet URL or status id"),
    max_replies: int = typer.Option(twitter.MAX_REPLIES, help="Replies to collect"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(twitter.scrape_twitter_post, url, max_replies)))


@twitter_app.command("search")
def twitter_search(
    query: str = typer.Argument(..., help="Search query; operators like from: and since: pass through"),
    count: int = typer.Option(20, help=f"Tweets to collect (max {twitter.MAX_TWEETS})"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(twitter.scrape_twitter_search, query, count)))


@twitter_app.command("list")
def twitter_list(
    list_id: str = typer.Argument(..., help="List id or URL"),
    count: int = typer.Option(20, help=f"Tweets to collect (max {twitter.MAX_TWEETS})"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(twitter.scrape_twitter_list, list_id, count)))


# --------------------------------------------------------------------------- #
# LinkedIn
# --------------------------------------------------------------------------- #


@linkedin_app.command("profile")
def linkedin_profile(
    url: str = typer.Argument(..., help="https://www.linkedin.com/in/<slug>/"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(linkedin.scrape_linkedin_profile, url)))


@linkedin_app.command("posts")
def linkedin_posts(
    url: str = typer.Argument(..., help="Profile URL"),
    count: int = typer.Option(10, help="Posts to collect (max 50)"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(linkedin.scrape_linkedin_posts, url, count)))


@linkedin_app.command("search")
def linkedin_search(
    query: str = typer.Argument(..., help="Search keywords"),
    kind: str = typer.Option("people", "--type", "-t", help="people|companies|posts"),
    count: int = typer.Option(10, help="Results to collect"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(linkedin.scrape_linkedin_search, query, kind, count)))


# --------------------------------------------------------------------------- #
# Reddit
# --------------------------------------------------------------------------- #


@reddit_app.command("user")
def reddit_user(
    username: str = typer.Argument(..., help="Username, with or without u/"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(reddit.scrape_reddit_user, username)))


@reddit_app.command("subreddit")
def reddit_subreddit(
    subreddit: str = typer.Argument(..., help="Subreddit, with or without r/"),
    count: int = typer.Option(25, help=f"Posts to collect (max {reddit.MAX_POSTS})"),
    sort: str = typer.Option("hot", help="hot|new|top"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(reddit.scrape_reddit_subreddit, subreddit, count, sort)))


@reddit_app.command("post")
def reddit_post(
    url: str = typer.Argument(..., help="https://www.reddit.com/r/<sub>/comments/<id>/..."),
    max_comments: int = typer.Option(20, help="Comments to collect"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(reddit.scrape_reddit_post, url, max_comments)))


# --------------------------------------------------------------------------- #
# Instagram
# --------------------------------------------------------------------------- #


@instagram_app.command("profile")
def instagram_profile(
    username: str = typer.Argument(..., help="Username, with or without @"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(instagram.scrape_instagram_profile, username)))


@instagram_app.command("posts")
def instagram_posts(
    username: str = typer.Argument(..., help="Username, with or without @"),
    count: int = typer.Option(12, help=f"Posts to collect (max {instagram.MAX_POSTS})"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(instagram.scrape_instagram_posts, username, count)))


@instagram_app.command("stories")
def instagram_stories(
    username: str = typer.Argument(..., help="Username, with or without @"),
    env_file: Optional[str] = typer.Option(None, help="Path to .env"),
):
    _print_json(_execute(env_file, _site_command(instagram.scrape_instagram_stories, username)))
