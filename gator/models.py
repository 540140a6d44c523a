"""
Persisted entities and the read models returned by storage queries.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """A registered user; ``name`` is the natural key."""

    id: str
    name: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class Feed:
    """A feed added by a user; ``url`` is unique across all feeds."""

    id: str
    name: str
    url: str
    user_id: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class FeedFollow:
    """A (user, feed) follow relationship."""

    id: str
    user_id: str
    feed_id: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class FeedFollowDetails:
    """A follow row joined with its user name and feed name/url."""

    id: str
    created_at: str
    updated_at: str
    user_id: str
    user_name: str
    feed_id: str
    feed_name: str
    feed_url: str


@dataclass(frozen=True)
class FeedWithOwner:
    """A feed listing row; ``owner_name`` is None if the owner row is gone."""

    feed_name: str
    feed_url: str
    owner_name: str | None


@dataclass(frozen=True)
class FollowedFeed:
    feed_name: str
    feed_url: str
