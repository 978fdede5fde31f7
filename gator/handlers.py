"""Handlers for the command-line commands, and the state they share."""

from __future__ import annotations

import functools
import re
import sqlite3
import time
import uuid
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .commands import Command, CommandError
from .config import Config
from .database import NoRowsError, Queries, UniqueViolationError, User
from .rss import FeedFetchError, RSSFeed, fetch_feed, parse_duration, parse_published_date

DEFAULT_BROWSE_LIMIT = "2"

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)


@dataclass
class State:
    """What every handler works with: the configuration and the database."""

    cfg: Config
    db: Queries
    fetch: Callable[[str], RSSFeed] = fetch_feed
    sleep: Callable[[float], Any] = time.sleep


UserHandler = Callable[[State, Command, User], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    text = value.strftime("%Y-%m-%d %H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    if value.tzinfo is None:
        return text
    offset = value.strftime("%z")
    name = value.tzname() or offset
    if value.utcoffset() == timedelta(0):
        name = "UTC"
    elif name.startswith("UTC"):
        name = offset
    return f"{text} {offset} {name}"


def _fraction(value: int, digits: int) -> str:
    text = f"{value:0{digits}d}".rstrip("0")
    return f".{text}" if text else ""


def _format_duration(value: timedelta) -> str:
    nanoseconds = ((value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds) * 1000
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    amount = abs(nanoseconds)
    if amount < 1_000:
        return f"{sign}{amount}ns"
    if amount < 1_000_000:
        return f"{sign}{amount // 1_000}{_fraction(amount % 1_000, 3)}\u00b5s"
    if amount < 1_000_000_000:
        return f"{sign}{amount // 1_000_000}{_fraction(amount % 1_000_000, 6)}ms"
    second = 1_000_000_000
    hours, amount = divmod(amount, 3600 * second)
    minutes, amount = divmod(amount, 60 * second)
    seconds = f"{amount // second}{_fraction(amount % second, 9)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


def logged_in(handler: UserHandler) -> Callable[[State, Command], Any]:
    """Wrap a handler so that it receives the current user from the database."""

    @functools.wraps(handler)
    def wrapper(state: State, cmd: Command) -> Any:
        name = state.cfg.current_user_name
        try:
            user = state.db.get_user_by_name(name)
        except (NoRowsError, sqlite3.Error) as exc:
            raise CommandError(f"Error getting user by name {name}: {exc}") from exc
        return handler(state, cmd, user)

    return wrapper


def handle_login(state: State, cmd: Command) -> None:
    """Make an existing user the current one."""
    if len(cmd.args) != 1:
        raise CommandError(f"usage: {cmd.name} <name>")
    name = cmd.args[0]
    try:
        state.db.get_user_by_name(name)
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError("error users does not exists") from exc
    try:
        state.cfg.set_user(name)
    except OSError as exc:
        raise CommandError(f"error setting user: {exc}") from exc
    print(f"User set to {name}")


def handle_register(state: State, cmd: Command) -> None:
    """Create a user and make it the current one."""
    if len(cmd.args) != 1:
        raise CommandError(f"usage: {cmd.name} <name>")
    name = cmd.args[0]
    try:
        existing = state.db.get_user_by_name(name)
    except NoRowsError:
        existing = None
    except sqlite3.Error as exc:
        raise CommandError(f"error checking user: {exc}") from exc
    if existing is not None and existing.name != "":
        raise CommandError(f"user {name} already exists")
    now = _now()
    try:
        user = state.db.create_user(uuid.uuid4(), name, now, now)
    except sqlite3.Error as exc:
        raise CommandError(f"error creating user: {exc}") from exc
    try:
        state.cfg.set_user(user.name)
    except OSError as exc:
        raise CommandError(f"error setting user: {exc}") from exc
    print(f"User registerd with name {user.name}")


def handle_reset(state: State, cmd: Command) -> None:
    """Delete every user, and with them everything they own."""
    try:
        state.db.delete_all_users()
    except sqlite3.Error as exc:
        raise CommandError(f"Error resetting db: {exc}") from exc
    print("Db reset", end="")


def handle_users(state: State, cmd: Command) -> None:
    """List all users, marking the current one."""
    try:
        users = state.db.get_all_users()
    except sqlite3.Error as exc:
        raise CommandError(f"Error getting users: {exc}") from exc
    for user in users:
        current = "(current)" if user.name == state.cfg.current_user_name else ""
        print(f"* {user.name} {current}")


def scrape_feeds(state: State) -> None:
    """Fetch the feed due next and store its items as posts."""
    try:
        feed = state.db.get_next_feed_to_fetch()
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError(f"Error getting next feed to fetch: {exc}") from exc
    now = _now()
    try:
        state.db.mark_feed_fetched(feed.id, now, now)
    except sqlite3.Error as exc:
        raise CommandError(f"Error marking feed fetched: {exc}") from exc
    try:
        rss = state.fetch(feed.url)
    except FeedFetchError as exc:
        raise CommandError(f"Error getting feed by URL {feed.url}: {exc}") from exc
    for item in rss.items:
        print(f"Feed item: {{{item.title} {item.link} {item.description} {item.pub_date}}}")
        now = _now()
        try:
            state.db.create_post(
                uuid.uuid4(),
                feed.id,
                item.title,
                item.link,
                item.description,
                parse_published_date(item.pub_date),
                now,
                now,
            )
        except UniqueViolationError:
            print(f"Post with URL {item.link} already exists, skipping...")
        except sqlite3.Error as exc:
            raise CommandError(f"Error creating post: {exc}") from exc


def handle_agg(state: State, cmd: Command) -> None:
    """Scrape feeds forever, one every interval."""
    if len(cmd.args) != 1:
        raise CommandError(f"usage: {cmd.name} <time_between_reqs>")
    try:
        interval = parse_duration(cmd.args[0])
    except ValueError as exc:
        raise CommandError(f"error parsing duration: {exc}") from exc
    if interval <= timedelta(0):
        raise CommandError("non-positive interval for ticker")
    print(f"Collecting feeds every {_format_duration(interval)}")
    seconds = interval.total_seconds()
    while True:
        state.sleep(seconds)
        print("Scraping feeds...")
        with suppress(CommandError):
            scrape_feeds(state)


def handle_feeds(state: State, cmd: Command) -> None:
    """List every feed with the user who added it."""
    try:
        feeds = state.db.get_all_feeds()
    except sqlite3.Error as exc:
        raise CommandError(f"Error getting feeds: {exc}") from exc
    for feed in feeds:
        print(f"{feed.name} {feed.url} {feed.user_name or ''}")


def handle_add_feed(state: State, cmd: Command, user: User) -> None:
    """Add a feed for the user and follow it."""
    if len(cmd.args) != 2:
        raise CommandError(f"usage: {cmd.name} <name>, <url>")
    name, url = cmd.args
    now = _now()
    try:
        feed = state.db.create_feed(uuid.uuid4(), name, url, user.id, now, now)
    except sqlite3.Error as exc:
        raise CommandError(f"Error creating feed: {exc}") from exc
    now = _now()
    try:
        state.db.create_feed_follow(uuid.uuid4(), user.id, feed.id, now, now)
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError(f"Error creating feed follow: {exc}") from exc
    print(
        f"Feed created: {feed.id}, {feed.user_id}, {feed.name}, {feed.url}, "
        f"{_format_time(feed.created_at)}, {_format_time(feed.updated_at)}"
    )


def handle_follow(state: State, cmd: Command, user: User) -> None:
    """Follow an existing feed by its URL."""
    if len(cmd.args) != 1:
        raise CommandError(f"usage: {cmd.name} <url>")
    url = cmd.args[0]
    try:
        feed = state.db.get_feed_by_url(url)
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError(f"Error getting feed by URL {url}: {exc}") from exc
    now = _now()
    try:
        state.db.create_feed_follow(uuid.uuid4(), user.id, feed.id, now, now)
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError(f"Error creating feed follow: {exc}") from exc
    print(f"Created feed follow for user {user.name} and feed {feed.name}")


def handle_following(state: State, cmd: Command, user: User) -> None:
    """List the feeds the user follows."""
    try:
        follows = state.db.get_feed_follows_for_user(user.id)
    except sqlite3.Error as exc:
        raise CommandError(f"Error getting feeds: {exc}") from exc
    print("Following: " if follows else "You are not following any feeds.")
    for follow in follows:
        print(follow.feed_name or "")


def handle_unfollow(state: State, cmd: Command, user: User) -> None:
    """Stop following a feed given by its URL."""
    if len(cmd.args) != 1:
        raise CommandError(f"usage: {cmd.name} <url>")
    url = cmd.args[0]
    try:
        feed = state.db.get_feed_by_url(url)
    except (NoRowsError, sqlite3.Error) as exc:
        raise CommandError(f"Error getting feed by URL {url}: {exc}") from exc
    try:
        state.db.delete_feed_follow(user.id, feed.id)
    except sqlite3.Error as exc:
        raise CommandError(
            f"Error deleting feed follow for user {user.name} and feed {feed.name}: {exc}"
        ) from exc


def handle_browse(state: State, cmd: Command, user: User) -> None:
    """Show the newest posts of the user's feeds."""
    limit_text = cmd.args[0] if cmd.args else DEFAULT_BROWSE_LIMIT
    if not _INTEGER.fullmatch(limit_text):
        raise CommandError(f"invalid limit: {limit_text}, must be a number")
    limit = int(limit_text)
    try:
        posts = state.db.get_feed_posts_for_user(user.id, limit)
    except (ValueError, sqlite3.Error) as exc:
        raise CommandError(f"error getting posts: {exc}") from exc
    for post in posts:
        print(
            f"Title: {post.title}, URL: {post.url}, "
            f"Published At: {_format_time(post.published_at)}"
        )