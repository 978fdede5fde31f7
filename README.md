# gator

`gator` is a small command-line RSS aggregator. It keeps a list of users,
the feeds they add, which feeds each user follows, and the posts collected
from those feeds, all in a SQLite database. A long-running `agg` command
fetches one feed per interval and stores its items as posts; `browse` shows
the newest posts for the logged-in user.

## Installation

```
pip install .
```

This installs the `gator` command. There are no dependencies beyond the
Python standard library.

## Configuration

`gator` reads its settings from `.gatorconfig.json` in your home directory.
The file must exist before the first run:

```json
{"db_url": "gator.db", "current_user_name": ""}
```

- `db_url` — the SQLite database: a plain file path, or a URL of the form
  `sqlite:///path/to/file.db`. `sqlite://` on its own (or
  `sqlite:///:memory:`) gives an in-memory database that is lost when the
  command ends. The tables are created on first use.
- `current_user_name` — the logged-in user. `register` and `login` rewrite
  the file with the new name.

## Usage

```
gator <command> [args...]
```

| Command | Arguments | What it does |
|---|---|---|
| `register` | `<name>` | Create a user and log in as them; fails if the name is taken |
| `login` | `<name>` | Switch to an existing user |
| `users` | | List all users, marking the current one with `(current)` |
| `reset` | | Delete all users, and with them their feeds, follows and posts |
| `addfeed` | `<name> <url>` | Add a feed and follow it (logged in) |
| `feeds` | | List every feed with the name of the user who added it |
| `follow` | `<url>` | Follow a feed that has already been added (logged in) |
| `following` | | List the feeds you follow (logged in) |
| `unfollow` | `<url>` | Stop following a feed (logged in) |
| `agg` | `<interval>` | Fetch feeds repeatedly, e.g. `30s`, `1m`, `1h30m`, `1.5h` |
| `browse` | `[limit]` | Show the newest posts of the feeds you added; the limit defaults to 2 (logged in) |

Errors are printed to standard error and the command exits with status 1.

A typical session:

```
gator register alice
gator addfeed "Example News" https://example.com/rss.xml
gator agg 1m        # leave running, Ctrl-C to stop
gator browse 5
```

`agg` waits one interval, then picks the feed that has gone longest without
being fetched (feeds never fetched come first), marks it fetched, downloads
it and saves each item as a post. Items whose URL is already stored are
skipped; a failed fetch is passed over and the loop carries on. The interval
must be positive. Publication dates in RFC 1123, RFC 1123 with a numeric
offset, or RFC 822 form are understood (zone abbreviations are read as UTC);
any other date is reported and stored as the current time.

## Using it as a library

- `gator.database` — `connect(url)` opens a SQLite connection; `Queries`
  wraps it with `create_schema`, `transaction`, and methods such as
  `create_user`, `create_feed`, `create_feed_follow`, `create_post`,
  `get_feed_posts_for_user` and `get_next_feed_to_fetch`. Lookups that find
  nothing raise `NoRowsError`; duplicate values raise `UniqueViolationError`.
- `gator.rss` — `fetch_feed(url, timeout)` and `parse_feed(data)` return an
  `RSSFeed` holding `RSSItem`s, raising `FeedFetchError` on failure;
  `parse_published_date(text)` and `parse_duration(text)` are also there.
- `gator.config` — `Config`, `read(path)`, `write(config, path)`,
  `config_path()` and `Config.set_user(name)`.
- `gator.commands` — `Command`, `CommandRegistry`, `CommandError` and
  `CommandNotFoundError`.
- `gator.handlers` — `State`, the `handle_*` functions behind each command,
  `scrape_feeds(state)` and the `logged_in` wrapper.
- `gator.cli` — `build_registry()` returns the registry the command line
  uses, and `main(argv)` runs a command and returns the exit status.

## What it does not do

Storage is SQLite only: a `db_url` for any other kind of database, such as
a `postgres://` URL, is refused. There is no command to create the
configuration file, and no tool for migrating an existing database's
schema; the tables are simply created if they are missing. Feeds must be
RSS; Atom documents are not understood.

## Running the tests

```
pip install ".[test]"
pytest
```