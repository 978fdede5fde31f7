"""Fetching and parsing RSS feeds, and the time formats they use."""

from __future__ import annotations

import html
import http.client
import re
import urllib.error
import urllib.request
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Optional, Union

USER_AGENT = "gator"


class FeedFetchError(Exception):
    """A feed could not be downloaded or understood."""


@dataclass
class RSSItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSFeed:
    title: str = ""
    link: str = ""
    description: str = ""
    items: list[RSSItem] = field(default_factory=list)


_ITEM_FIELDS = {
    "title": "title",
    "link": "link",
    "description": "description",
    "pubDate": "pub_date",
}
_CHANNEL_FIELDS = {"title", "link", "description"}


def _local(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _direct_text(elem: ET.Element) -> str:
    """Character data of the element itself, without that of nested elements."""
    return (elem.text or "") + "".join(child.tail or "" for child in elem)


def _item(elem: ET.Element) -> RSSItem:
    values = {}
    for child in elem:
        name = _ITEM_FIELDS.get(_local(child.tag))
        if name is not None:
            values[name] = _direct_text(child)
    return RSSItem(**values)


def parse_feed(data: Union[bytes, str]) -> RSSFeed:
    """Parse an RSS document, unescaping HTML entities in item titles and descriptions."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise FeedFetchError(f"error unmarshalling feed: {exc}") from exc
    feed = RSSFeed()
    for channel in root:
        if _local(channel.tag) != "channel":
            continue
        for child in channel:
            name = _local(child.tag)
            if name in _CHANNEL_FIELDS:
                setattr(feed, name, _direct_text(child))
            elif name == "item":
                feed.items.append(_item(child))
    for item in feed.items:
        item.description = html.unescape(item.description)
        item.title = html.unescape(item.title)
    return feed


def fetch_feed(url: str, timeout: Optional[float] = None) -> RSSFeed:
    """Download the feed at ``url`` and parse it."""
    try:
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    except ValueError as exc:
        raise FeedFetchError(f"error creating request: {exc}") from exc
    try:
        response = urllib.request.urlopen(request, timeout=timeout)
    except urllib.error.HTTPError as exc:
        exc.close()
        raise FeedFetchError(
            f"error fetching feed: recieved status code {exc.code}"
        ) from exc
    except (OSError, http.client.HTTPException, ValueError) as exc:
        raise FeedFetchError(f"error fetching feed: {exc}") from exc
    with response:
        if response.status != 200:
            raise FeedFetchError(
                f"error fetching feed: recieved status code {response.status}"
            )
        try:
            data = response.read()
        except (OSError, http.client.HTTPException) as exc:
            raise FeedFetchError(f"error reading response body: {exc}") from exc
    return parse_feed(data)


_DAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_MONTHS = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_TIME = r"(?P<hour>\d{1,2}):(?P<minute>\d{2})"
_RFC1123 = re.compile(
    r"(?P<weekday>[A-Za-z]{3}), (?P<day>\d{2}) (?P<month>[A-Za-z]{3}) "
    r"(?P<year>\d{4}) " + _TIME + r":(?P<second>\d{2}) (?P<zone>[A-Za-z]{3,5})",
    re.ASCII,
)
_RFC1123Z = re.compile(
    r"(?P<weekday>[A-Za-z]{3}), (?P<day>\d{2}) (?P<month>[A-Za-z]{3}) "
    r"(?P<year>\d{4}) " + _TIME + r":(?P<second>\d{2}) (?P<offset>[+-]\d{4})",
    re.ASCII,
)
_RFC822 = re.compile(
    r"(?P<day>\d{2}) (?P<month>[A-Za-z]{3}) (?P<year>\d{2}) "
    + _TIME
    + r" (?P<zone>[A-Za-z]{3,5})",
    re.ASCII,
)


def _valid_zone(zone: str) -> bool:
    if zone in ("ChST", "MeST"):
        return True
    if not zone.isupper() or not zone.isalpha():
        return False
    if len(zone) == 3:
        return True
    if len(zone) == 4:
        return zone.endswith("T") or zone == "WITA"
    return zone.endswith("T")


def _from_match(match: re.Match) -> Optional[datetime]:
    parts = match.groupdict()
    weekday = parts.get("weekday")
    if weekday is not None and weekday.lower() not in _DAYS:
        return None
    month = _MONTHS.get(parts["month"].lower())
    if month is None:
        return None
    year = int(parts["year"])
    if len(parts["year"]) == 2:
        year += 1900 if year >= 69 else 2000
    offset = parts.get("offset")
    if offset is not None:
        sign = -1 if offset[0] == "-" else 1
        delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[3:5]))
        try:
            tz = timezone(sign * delta)
        except ValueError:
            return None
    else:
        if not _valid_zone(parts["zone"]):
            return None
        # Abbreviations carry no offset of their own; they are read as UTC.
        tz = timezone.utc
    try:
        return datetime(
            year,
            month,
            int(parts["day"]),
            int(parts["hour"]),
            int(parts["minute"]),
            int(parts["second"] or 0) if parts.get("second") else 0,
            tzinfo=tz,
        )
    except ValueError:
        return None


def parse_published_date(text: str) -> datetime:
    """Parse an RSS date in RFC 1123, RFC 1123 numeric-zone or RFC 822 form.

    When none fits, a notice is printed and the current time is returned.
    """
    for pattern in (_RFC1123, _RFC1123Z, _RFC822):
        match = pattern.fullmatch(text)
        if match is None:
            continue
        parsed = _from_match(match)
        if parsed is not None:
            return parsed
    print(f"Failed to parse date: {text}")
    return datetime.now(timezone.utc)


_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_NUMBER = re.compile(r"(\d*)(?:\.(\d*))?", re.ASCII)
_UNIT = re.compile(r"[^0-9.]+")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1m30s"``, ``"1.5h"`` or ``"300ms"``."""
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f'time: invalid duration "{text}"')
    total = Fraction(0)
    while rest:
        number = _NUMBER.match(rest)
        whole, fraction = number.group(1), number.group(2)
        if not whole and not fraction:
            raise ValueError(f'time: invalid duration "{text}"')
        rest = rest[number.end():]
        unit_match = _UNIT.match(rest)
        if unit_match is None:
            raise ValueError(f'time: missing unit in duration "{text}"')
        unit = unit_match.group()
        rest = rest[unit_match.end():]
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        value = Fraction(int(whole or "0"))
        if fraction:
            value += Fraction(int(fraction), 10 ** len(fraction))
        total += value * scale
    nanoseconds = int(total)
    if nanoseconds > (2**63 if negative else 2**63 - 1):
        raise ValueError(f'time: invalid duration "{text}"')
    result = timedelta(microseconds=nanoseconds // 1000)
    return -result if negative else result