import sqlite3
import uuid
from datetime import datetime, timezone

import pytest

from gator import config
from gator.commands import Command, CommandError
from gator.config import Config
from gator.database import Queries
from gator.handlers import (
    State,
    handle_add_feed,
    handle_agg,
    handle_browse,
    handle_feeds,
    handle_follow,
    handle_following,
    handle_login,
    handle_register,
    handle_reset,
    handle_unfollow,
    handle_users,
    logged_in,
    scrape_feeds,
)
from gator.rss import FeedFetchError, parse_feed

FEED_XML = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
<title>Example</title><link>https://example.com/</link><description>d</description>
<item><title>First</title><link>https://example.com/1</link>
<description>one</description><pubDate>Mon, 02 Jan 2006 15:04:05 GMT</pubDate></item>
<item><title>Second</title><link>https://example.com/2</link>
<description>two</description><pubDate>Tue, 03 Jan 2006 15:04:05 GMT</pubDate></item>
</channel></rss>"""


class _Stop(Exception):
    pass


def _fetch(url):
    return parse_feed(FEED_XML)


@pytest.fixture
def state(tmp_path):
    db = Queries(sqlite3.connect(":memory:"))
    db.create_schema()
    cfg = Config(db_url="", path=tmp_path / "config.json")
    return State(cfg=cfg, db=db, fetch=_fetch)


def _register(state, name):
    handle_register(state, Command("register", (name,)))


def _user(state):
    return state.db.get_user_by_name(state.cfg.current_user_name)


def test_register_creates_user_and_sets_current(state, capsys):
    _register(state, "alice")
    assert state.db.get_user_by_name("alice").name == "alice"
    assert config.read(state.cfg.path).current_user_name == "alice"
    assert "User registerd with name alice" in capsys.readouterr().out


def test_register_twice_fails(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="user alice already exists") as excinfo:
        _register(state, "alice")
    assert "user alice already exists" in str(excinfo.value)
    assert [u.name for u in state.db.get_all_users()] == ["alice"]


def test_register_needs_one_argument(state):
    with pytest.raises(CommandError, match="usage: register <name>"):
        handle_register(state, Command("register", ()))


def test_login_unknown_user(state):
    with pytest.raises(CommandError, match="error users does not exists"):
        handle_login(state, Command("login", ("nobody",)))


def test_login_switches_user(state, capsys):
    _register(state, "alice")
    _register(state, "bob")
    handle_login(state, Command("login", ("alice",)))
    assert state.cfg.current_user_name == "alice"
    assert config.read(state.cfg.path).current_user_name == "alice"
    assert "User set to alice" in capsys.readouterr().out


def test_reset_deletes_users(state, capsys):
    _register(state, "alice")
    handle_reset(state, Command("reset"))
    assert state.db.get_all_users() == []
    assert capsys.readouterr().out.endswith("Db reset")


def test_users_marks_current(state, capsys):
    _register(state, "alice")
    _register(state, "bob")
    capsys.readouterr()
    handle_users(state, Command("users"))
    assert capsys.readouterr().out.splitlines() == ["* alice ", "* bob (current)"]


def test_logged_in_without_user_fails(state):
    wrapped = logged_in(handle_add_feed)
    with pytest.raises(CommandError, match="Error getting user by name"):
        wrapped(state, Command("addfeed", ("n", "https://example.com/rss")))


def test_add_feed_follows_it(state, capsys):
    _register(state, "alice")
    logged_in(handle_add_feed)(state, Command("addfeed", ("News", "https://example.com/rss")))
    follows = state.db.get_feed_follows_for_user(_user(state).id)
    assert [f.feed_name for f in follows] == ["News"]
    assert "Feed created:" in capsys.readouterr().out


def test_add_feed_needs_two_arguments(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="usage: addfeed <name>, <url>"):
        handle_add_feed(state, Command("addfeed", ("only",)), _user(state))


def test_feeds_lists_owner(state, capsys):
    _register(state, "alice")
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), _user(state))
    capsys.readouterr()
    handle_feeds(state, Command("feeds"))
    assert capsys.readouterr().out.splitlines() == ["News https://example.com/rss alice"]


def test_follow_and_unfollow(state, capsys):
    _register(state, "alice")
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), _user(state))
    _register(state, "bob")
    bob = _user(state)
    handle_follow(state, Command("follow", ("https://example.com/rss",)), bob)
    assert "Created feed follow for user bob and feed News" in capsys.readouterr().out
    handle_following(state, Command("following"), bob)
    assert capsys.readouterr().out.splitlines() == ["Following: ", "News"]
    handle_unfollow(state, Command("unfollow", ("https://example.com/rss",)), bob)
    assert state.db.get_feed_follows_for_user(bob.id) == []


def test_following_nothing(state, capsys):
    _register(state, "alice")
    capsys.readouterr()
    handle_following(state, Command("following"), _user(state))
    assert capsys.readouterr().out.strip() == "You are not following any feeds."


def test_follow_unknown_url(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="Error getting feed by URL https://example.com/x"):
        handle_follow(state, Command("follow", ("https://example.com/x",)), _user(state))


def test_unfollow_needs_url(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="usage: unfollow <url>"):
        handle_unfollow(state, Command("unfollow", ()), _user(state))


def test_browse_invalid_limit(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="invalid limit: abc, must be a number"):
        handle_browse(state, Command("browse", ("abc",)), _user(state))


def test_browse_negative_limit(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="error getting posts"):
        handle_browse(state, Command("browse", ("-1",)), _user(state))


def test_browse_default_limit_newest_first(state, capsys):
    _register(state, "alice")
    user = _user(state)
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), user)
    feed = state.db.get_feed_by_url("https://example.com/rss")
    now = datetime.now(timezone.utc)
    for day in (1, 2, 3):
        state.db.create_post(
            uuid.uuid4(), feed.id, f"post{day}", f"https://example.com/p{day}", "",
            datetime(2024, 1, day, tzinfo=timezone.utc), now, now,
        )
    capsys.readouterr()
    handle_browse(state, Command("browse"), user)
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("Title: post3, URL: https://example.com/p3")
    assert lines[1].startswith("Title: post2,")


def test_scrape_feeds_stores_posts_and_skips_duplicates(state, capsys):
    _register(state, "alice")
    user = _user(state)
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), user)
    scrape_feeds(state)
    posts = state.db.get_feed_posts_for_user(user.id, 10)
    assert [p.title for p in posts] == ["Second", "First"]
    assert posts[1].published_at == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
    assert state.db.get_next_feed_to_fetch().last_fetched_at is not None
    capsys.readouterr()
    scrape_feeds(state)
    assert "Post with URL https://example.com/1 already exists, skipping..." in capsys.readouterr().out
    assert len(state.db.get_feed_posts_for_user(user.id, 10)) == 2


def test_scrape_feeds_without_feeds(state):
    with pytest.raises(CommandError, match="Error getting next feed to fetch"):
        scrape_feeds(state)


def test_scrape_feeds_fetch_failure(state):
    def failing(url):
        raise FeedFetchError("boom")

    state.fetch = failing
    _register(state, "alice")
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), _user(state))
    with pytest.raises(CommandError, match="Error getting feed by URL https://example.com/rss: boom"):
        scrape_feeds(state)


def test_agg_usage(state):
    with pytest.raises(CommandError, match="usage: agg <time_between_reqs>"):
        handle_agg(state, Command("agg", ()))


def test_agg_bad_duration(state):
    with pytest.raises(CommandError, match="error parsing duration"):
        handle_agg(state, Command("agg", ("soon",)))


def test_agg_rejects_zero_interval(state):
    with pytest.raises(CommandError):
        handle_agg(state, Command("agg", ("0s",)))


@pytest.mark.parametrize("text,shown", [("1m", "1m0s"), ("500ms", "500ms")])
def test_agg_loops_and_scrapes(state, capsys, text, shown):
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) > 1:
            raise _Stop

    state.sleep = sleep
    _register(state, "alice")
    user = _user(state)
    handle_add_feed(state, Command("addfeed", ("News", "https://example.com/rss")), user)
    capsys.readouterr()
    with pytest.raises(_Stop):
        handle_agg(state, Command("agg", (text,)))
    out = capsys.readouterr().out
    assert out.startswith(f"Collecting feeds every {shown}\n")
    assert out.count("Scraping feeds...") == 1
    assert len(sleeps) == 2 and sleeps[0] == sleeps[1]
    assert len(state.db.get_feed_posts_for_user(user.id, 10)) == 2