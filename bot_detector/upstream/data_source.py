"""Defines the protocol every upstream data source implements."""

from typing import List, Optional, Protocol

from bot_detector.models import ActivityItem, Profile


class UpstreamDataSource(Protocol):
    """
    A rate-limited source of community activity and author profiles.

    The extraction stage depends only on this interface, so any transport
    (Reddit's OAuth API, a recorded fixture, another platform) can be swapped in.
    """

    async def authenticate(self) -> str:
        """
        Obtain an access credential.

        Raises:
            ConfigurationError: If credentials are not configured.
        """
        ...

    async def list_activity(self, community: str, limit: int) -> List[ActivityItem]:
        """Return one page of the community's current activity feed, at most ``limit`` items per feed."""
        ...

    async def get_profile(self, username: str) -> Optional[Profile]:
        """Return the author's profile, or None if the author does not exist."""
        ...
