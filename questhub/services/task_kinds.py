"""
Task variants.

Each quest task is parsed from its stored ``(task_type, link)`` pair into one
of the dataclasses below, carrying only what its verification needs. A link
that cannot be parsed raises ``MalformedTaskError``; the verifier reports that
as ``verified=False`` with ``malformed=True`` so the creator can fix the task.
"""
import json
import re
from dataclasses import dataclass
from typing import Tuple, Union
from urllib.parse import urlparse

TWEET_ID_RE = re.compile(r"status/(\d+)")
ASSET_UNIT_RE = re.compile(r"^[0-9a-fA-F]{56}([0-9a-fA-F]{2}){0,32}$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,15}$")
_SNOWFLAKE_RE = re.compile(r"^\d{5,25}$")


class MalformedTaskError(ValueError):
    pass


@dataclass(frozen=True)
class FollowTwitter:
    target_usernames: Tuple[str, ...]


@dataclass(frozen=True)
class RetweetTweet:
    tweet_id: str


@dataclass(frozen=True)
class LikeTweet:
    tweet_id: str


@dataclass(frozen=True)
class JoinDiscord:
    guild_id: str
    role_id: str


@dataclass(frozen=True)
class VisitWebsite:
    url: str


@dataclass(frozen=True)
class OwnNFT:
    unit: str


@dataclass(frozen=True)
class AttendEvent:
    unit: str


TaskKind = Union[FollowTwitter, RetweetTweet, LikeTweet, JoinDiscord, VisitWebsite, OwnNFT, AttendEvent]


def normalize_username(raw: str) -> str:
    """Accepts ``@name``, ``name`` or a profile URL on x.com / twitter.com."""
    value = raw.strip()
    if "://" in value or value.startswith(("x.com/", "twitter.com/", "www.")):
        parsed = urlparse(value if "://" in value else f"https://{value}")
        value = parsed.path.strip("/").split("/")[0] if parsed.path.strip("/") else ""
    return value.lstrip("@").strip().lower()


def _parse_follow_targets(link: str) -> Tuple[str, ...]:
    link = link.strip()
    if link.startswith("{"):
        # legacy format: {"username": "numeric id", ...}
        try:
            mapping = json.loads(link)
        except ValueError:
            raise MalformedTaskError("Invalid task link format. Expected JSON { username: id }.")
        if not isinstance(mapping, dict):
            raise MalformedTaskError("Invalid task link format. Expected JSON { username: id }.")
        raw_names = list(mapping.keys())
    else:
        raw_names = re.split(r"[,\s]+", link)

    usernames = []
    for raw in raw_names:
        if not raw.strip():
            continue
        name = normalize_username(raw)
        if not _USERNAME_RE.match(name):
            raise MalformedTaskError(f"Invalid Twitter username in task link: {raw!r}")
        if name not in usernames:
            usernames.append(name)
    if not usernames:
        raise MalformedTaskError("Task link does not name any Twitter account to follow.")
    return tuple(usernames)


def _parse_tweet_id(link: str) -> str:
    m = TWEET_ID_RE.search(link)
    if not m:
        raise MalformedTaskError("Invalid tweet URL.")
    return m.group(1)


def _parse_guild_role(link: str) -> Tuple[str, str]:
    guild_id, sep, role_id = link.strip().partition(":")
    if not sep or not _SNOWFLAKE_RE.match(guild_id) or not _SNOWFLAKE_RE.match(role_id):
        raise MalformedTaskError("Invalid Discord task link. Expected 'guildId:roleId'.")
    return guild_id, role_id


def _parse_url(link: str) -> str:
    parsed = urlparse(link.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise MalformedTaskError("Invalid website URL.")
    return link.strip()


def _parse_unit(link: str) -> str:
    unit = link.strip().lower()
    if not ASSET_UNIT_RE.match(unit):
        raise MalformedTaskError("Invalid asset unit. Expected policy id hex followed by asset name hex.")
    return unit


def parse_task(task_type: str, link: str) -> TaskKind:
    if task_type == "FollowTwitter":
        return FollowTwitter(_parse_follow_targets(link))
    if task_type == "RetweetTweet":
        return RetweetTweet(_parse_tweet_id(link))
    if task_type == "LikeTweet":
        return LikeTweet(_parse_tweet_id(link))
    if task_type == "JoinDiscord":
        return JoinDiscord(*_parse_guild_role(link))
    if task_type == "VisitWebsite":
        return VisitWebsite(_parse_url(link))
    if task_type == "OwnNFT":
        return OwnNFT(_parse_unit(link))
    if task_type == "AttendEvent":
        return AttendEvent(_parse_unit(link))
    raise MalformedTaskError(f"Unsupported task type: {task_type}")
