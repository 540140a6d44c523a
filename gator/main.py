"""
Main entry point for gator.

Parses the command line, runs one command against the configured
storage and prints the result.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import coloredlogs
import yaml
from pydantic import ValidationError

from gator.commands import (
    AddFeedResult,
    Command,
    CommandContext,
    FollowingList,
    FollowResult,
    ResetResult,
    UnfollowResult,
    UserList,
    dispatch,
)
from gator.config import Session
from gator.errors import GatorError
from gator.fetcher import FeedFetcher
from gator.models import FeedWithOwner, User
from gator.rss_parser import ParsedFeedDocument
from gator.storage import Storage

logger = logging.getLogger(__name__)

# Positional arguments of each command, in order
COMMAND_ARGUMENTS: dict[Command, tuple[str, ...]] = {
    Command.REGISTER: ("name",),
    Command.LOGIN: ("name",),
    Command.RESET: (),
    Command.USERS: (),
    Command.AGG: ("url",),
    Command.ADDFEED: ("name", "url"),
    Command.FEEDS: (),
    Command.FOLLOW: ("url",),
    Command.FOLLOWING: (),
    Command.UNFOLLOW: ("url",),
}

COMMAND_HELP = {
    Command.REGISTER: "Register a user and log in as them",
    Command.LOGIN: "Log in as an existing user",
    Command.RESET: "Delete all users, feeds and follows",
    Command.USERS: "List registered users",
    Command.AGG: "Fetch a feed once and print its items",
    Command.ADDFEED: "Add a feed and follow it",
    Command.FEEDS: "List all feeds",
    Command.FOLLOW: "Follow an existing feed",
    Command.FOLLOWING: "List feeds followed by the current user",
    Command.UNFOLLOW: "Stop following a feed",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gator",
        description="Command-line RSS aggregator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to configuration file (default: $GATOR_CONFIG or ~/.gatorconfig.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, metavar="command")
    for command, arguments in COMMAND_ARGUMENTS.items():
        subparser = subparsers.add_parser(command.value, help=COMMAND_HELP[command])
        for argument in arguments:
            subparser.add_argument(argument)

    return parser


def render(result: Any) -> None:
    """Print a command result to stdout."""
    if isinstance(result, User):
        print(f"User '{result.name}' (id {result.id}) is now the current user.")
    elif isinstance(result, UserList):
        for user in result.users:
            marker = " (current)" if user.name == result.current_user_name else ""
            print(f"* {user.name}{marker}")
    elif isinstance(result, ResetResult):
        print(f"Reset complete: {result.deleted_users} user(s) deleted.")
    elif isinstance(result, ParsedFeedDocument):
        print(f"{result.channel_title} <{result.channel_link}>")
        if result.channel_description:
            print(f"  {result.channel_description}")
        for item in result.items:
            print(f"- {item.title} ({item.published_date})")
            print(f"  {item.link}")
    elif isinstance(result, AddFeedResult):
        print(f"Feed added: {result.feed.name} <{result.feed.url}>")
        print(f"  id: {result.feed.id}")
        print(f"  owner: {result.user.name}")
        print(f"  created: {result.feed.created_at}")
    elif isinstance(result, FollowResult):
        if result.already_following:
            print(f"{result.user_name} is already following {result.feed_name}.")
        else:
            print(f"{result.user_name} is now following {result.feed_name}.")
    elif isinstance(result, FollowingList):
        if not result.feeds:
            print(f"{result.user_name} is not following any feeds.")
        for feed in result.feeds:
            print(f"* {feed.feed_name} <{feed.feed_url}>")
    elif isinstance(result, UnfollowResult):
        if result.removed:
            print(f"{result.user_name} unfollowed {result.feed_url}.")
        else:
            print(f"{result.user_name} was not following {result.feed_url}.")
    elif isinstance(result, list):
        if not result:
            print("No feeds found.")
        for feed in result:
            if isinstance(feed, FeedWithOwner):
                owner = feed.owner_name or "unknown"
                print(f"* {feed.feed_name} <{feed.feed_url}> added by {owner}")


async def run(session: Session, command: Command, args: list[str]) -> Any:
    """
    Run one command with storage and fetcher opened for its duration.

    Parameters
    ----------
    session : Session
        Loaded session state.
    command : Command
        Command to run.
    args : list[str]
        Positional arguments of the command.

    Returns
    -------
    Any
        The command's result object.
    """
    fetch_config = session.config.fetch
    async with Storage(session.config.storage.resolved_path) as storage, FeedFetcher(
        timeout=fetch_config.request_timeout,
        user_agent=fetch_config.user_agent,
        proxy_url=fetch_config.proxy,
    ) as fetcher:
        ctx = CommandContext(session=session, storage=storage, fetcher=fetcher)
        return await dispatch(ctx, command, args)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)

    try:
        session = Session.load(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError, ValidationError, yaml.YAMLError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    command = Command(args.command)
    params = [getattr(args, name) for name in COMMAND_ARGUMENTS[command]]

    try:
        result = asyncio.run(run(session, command, params))
    except GatorError as e:
        logger.error("%s failed [%s]: %s", command.value, e.phase, e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)

    render(result)


if __name__ == "__main__":
    main()
