"""Mapping functions to convert Reddit API payloads to our data models."""

import logging
from typing import Any, Dict, List, Optional

from bot_detector.models import ActivityItem, Profile

logger = logging.getLogger(__name__)

DELETED_AUTHORS = frozenset({"[deleted]", "[removed]"})


def _author(data: Dict[str, Any]) -> Optional[str]:
    author = data.get("author")
    if not author or author in DELETED_AUTHORS:
        return None
    return author


def post_to_activity(data: Dict[str, Any]) -> ActivityItem:
    """
    Convert the ``data`` object of a Reddit link listing child to an ActivityItem.

    Args:
        data: The child's ``data`` dictionary

    Returns:
        ActivityItem of kind ``post``
    """
    return ActivityItem(
        platform_id=data["id"],
        kind="post",
        author_username=_author(data),
        community=data.get("subreddit"),
        score=data.get("score") or 0,
        created_utc=data.get("created_utc"),
        title=data.get("title"),
        content=data.get("selftext"),
        upvote_ratio=data.get("upvote_ratio"),
        num_comments=data.get("num_comments") or 0,
        is_self=bool(data.get("is_self")),
        domain=data.get("domain"),
        url=data.get("url"),
    )


def comment_to_activity(data: Dict[str, Any]) -> ActivityItem:
    """Convert the ``data`` object of a Reddit comment listing child to an ActivityItem."""
    link_id = data.get("link_id") or ""
    return ActivityItem(
        platform_id=data["id"],
        kind="comment",
        author_username=_author(data),
        community=data.get("subreddit"),
        score=data.get("score") or 0,
        created_utc=data.get("created_utc"),
        content=data.get("body"),
        post_id=link_id[3:] if link_id.startswith("t3_") else link_id or None,
        parent_id=data.get("parent_id"),
        is_submitter=bool(data.get("is_submitter")),
    )


def listing_to_activity(listing: Dict[str, Any]) -> List[ActivityItem]:
    """
    Convert a Reddit listing response to ActivityItems.

    Children whose kind is neither a link (``t3``) nor a comment (``t1``), or
    that cannot be mapped, are skipped with a warning.
    """
    items = []
    for child in listing.get("data", {}).get("children", []):
        kind = child.get("kind")
        data = child.get("data") or {}
        try:
            if kind == "t3":
                items.append(post_to_activity(data))
            elif kind == "t1":
                items.append(comment_to_activity(data))
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert listing child {data.get('id', 'UNKNOWN_ID')}: {str(e)}")
    return items


def user_to_profile(data: Dict[str, Any]) -> Profile:
    """
    Convert the ``data`` object of ``/user/{name}/about`` to a Profile.

    Reddit reports premium status as ``is_gold``.
    """
    return Profile(
        username=data["name"],
        created_utc=data.get("created_utc") or 0.0,
        comment_karma=data.get("comment_karma") or 0,
        link_karma=data.get("link_karma") or 0,
        is_verified=bool(data.get("verified", data.get("is_verified", False))),
        has_verified_email=bool(data.get("has_verified_email")),
        is_premium=bool(data.get("is_gold")),
    )
