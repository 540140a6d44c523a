"""
Command handlers for the gator CLI.

Each command is a member of ``Command`` and is resolved to its handler
by ``dispatch``. Handlers return result objects; rendering them is the
caller's job.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from gator.config import Session
from gator.errors import AlreadyFollowingError, NotFoundError, PreconditionError
from gator.fetcher import FeedFetcher
from gator.models import Feed, FeedFollowDetails, FeedWithOwner, FollowedFeed, User
from gator.rss_parser import ParsedFeedDocument, parse_feed
from gator.storage import Storage

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """CLI verbs."""

    REGISTER = "register"
    LOGIN = "login"
    RESET = "reset"
    USERS = "users"
    AGG = "agg"
    ADDFEED = "addfeed"
    FEEDS = "feeds"
    FOLLOW = "follow"
    FOLLOWING = "following"
    UNFOLLOW = "unfollow"


@dataclass
class CommandContext:
    """Collaborators a command runs against."""

    session: Session
    storage: Storage
    fetcher: FeedFetcher


@dataclass(frozen=True)
class UserList:
    users: list[User]
    current_user_name: str | None


@dataclass(frozen=True)
class ResetResult:
    deleted_users: int


@dataclass(frozen=True)
class AddFeedResult:
    feed: Feed
    user: User
    follow: FeedFollowDetails


@dataclass(frozen=True)
class FollowResult:
    """
    Outcome of ``follow``.

    ``follow`` is None when the user was already following the feed.
    """

    user_name: str
    feed_name: str
    feed_url: str
    follow: FeedFollowDetails | None = None

    @property
    def already_following(self) -> bool:
        return self.follow is None


@dataclass(frozen=True)
class FollowingList:
    user_name: str
    feeds: list[FollowedFeed]


@dataclass(frozen=True)
class UnfollowResult:
    user_name: str
    feed_url: str
    removed: bool


async def _current_user(ctx: CommandContext) -> User:
    """Resolve the logged-in user."""
    name = ctx.session.current_user_name
    if not name:
        raise PreconditionError("No user is logged in. Run 'gator login <name>' first.")
    return await ctx.storage.require_user(name)


def _require_text(value: str, what: str) -> str:
    if not value or not value.strip():
        raise PreconditionError(f"{what} must be a non-empty string")
    return value


async def _feed_by_url(ctx: CommandContext, url: str) -> Feed:
    feed = await ctx.storage.get_feed_by_url(url)
    if feed is None:
        raise NotFoundError("feed", url)
    return feed


async def register(ctx: CommandContext, name: str) -> User:
    """Create a user and log in as them."""
    user = await ctx.storage.create_user(_require_text(name, "Username"))
    ctx.session.login(user.name)
    logger.info("Registered user '%s'", user.name)
    return user


async def login(ctx: CommandContext, name: str) -> User:
    """Log in as an existing user."""
    user = await ctx.storage.require_user(name)
    ctx.session.login(user.name)
    logger.info("Logged in as '%s'", user.name)
    return user


async def reset(ctx: CommandContext) -> ResetResult:
    """Delete all users, and with them every feed and follow."""
    deleted = await ctx.storage.delete_all_users()
    return ResetResult(deleted_users=deleted)


async def list_users(ctx: CommandContext) -> UserList:
    users = await ctx.storage.list_users()
    return UserList(users=users, current_user_name=ctx.session.current_user_name)


async def aggregate(ctx: CommandContext, url: str) -> ParsedFeedDocument:
    """Fetch and parse the feed at ``url`` once."""
    raw_text = await ctx.fetcher.fetch(url)
    return parse_feed(raw_text, source=url)


async def add_feed(ctx: CommandContext, name: str, url: str) -> AddFeedResult:
    """
    Add a feed owned by the current user and follow it.

    The feed and the follow are written in one transaction, so a failed
    follow leaves no feed behind.

    Raises
    ------
    PreconditionError
        If no user is logged in.
    NotFoundError
        If the logged-in user does not exist.
    UniqueViolation
        If a feed with this URL already exists, or the follow unexpectedly
        already exists.
    """
    _require_text(name, "Feed name")
    _require_text(url, "Feed URL")
    user = await _current_user(ctx)

    async with ctx.storage.transaction() as storage:
        feed = await storage.create_feed(name, url, user.id)
        follow = await storage.create_feed_follow(user.id, feed.id)

    logger.info("User '%s' added feed %s", user.name, feed.url)
    return AddFeedResult(feed=feed, user=user, follow=follow)


async def list_feeds(ctx: CommandContext) -> list[FeedWithOwner]:
    return await ctx.storage.list_feeds_with_owners()


async def follow(ctx: CommandContext, url: str) -> FollowResult:
    """
    Follow an existing feed as the current user.

    Following a feed twice is not an error; the result reports it.
    """
    user = await _current_user(ctx)
    feed = await _feed_by_url(ctx, url)

    try:
        details = await ctx.storage.create_feed_follow(user.id, feed.id)
    except AlreadyFollowingError:
        logger.info("User '%s' already follows %s", user.name, feed.url)
        return FollowResult(user_name=user.name, feed_name=feed.name, feed_url=feed.url)

    return FollowResult(
        user_name=user.name,
        feed_name=feed.name,
        feed_url=feed.url,
        follow=details,
    )


async def following(ctx: CommandContext) -> FollowingList:
    user = await _current_user(ctx)
    feeds = await ctx.storage.list_follows_for_user(user.id)
    return FollowingList(user_name=user.name, feeds=feeds)


async def unfollow(ctx: CommandContext, url: str) -> UnfollowResult:
    user = await _current_user(ctx)
    feed = await _feed_by_url(ctx, url)
    removed = await ctx.storage.delete_feed_follow(user.id, feed.id)
    return UnfollowResult(user_name=user.name, feed_url=feed.url, removed=removed)


async def dispatch(ctx: CommandContext, command: Command, args: list[str]):
    """
    Run ``command`` with positional ``args``.

    Raises
    ------
    ValueError
        If the number of arguments does not match the command.
    """
    match command, args:
        case Command.REGISTER, [name]:
            return await register(ctx, name)
        case Command.LOGIN, [name]:
            return await login(ctx, name)
        case Command.RESET, []:
            return await reset(ctx)
        case Command.USERS, []:
            return await list_users(ctx)
        case Command.AGG, [url]:
            return await aggregate(ctx, url)
        case Command.ADDFEED, [name, url]:
            return await add_feed(ctx, name, url)
        case Command.FEEDS, []:
            return await list_feeds(ctx)
        case Command.FOLLOW, [url]:
            return await follow(ctx, url)
        case Command.FOLLOWING, []:
            return await following(ctx)
        case Command.UNFOLLOW, [url]:
            return await unfollow(ctx, url)
    raise ValueError(f"Wrong number of arguments for '{command.value}': {len(args)}")
