"""Reddit API client using application-only OAuth."""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from bot_detector.collector.rate_limiter import RateLimiter
from bot_detector.config import Config
from bot_detector.exceptions import ConfigurationError, UpstreamFetchError
from bot_detector.models import ActivityItem, Profile
from bot_detector.upstream.mapping import listing_to_activity, user_to_profile

logger = logging.getLogger(__name__)


class RedditClient:
    """
    Reddit implementation of :class:`~bot_detector.upstream.data_source.UpstreamDataSource`.

    Request pacing is the caller's job; the client only feeds the rate limit
    headers it receives back into the shared limiter. HTTP failures are raised
    as ``aiohttp.ClientResponseError`` so callers can decide what is retryable.
    """

    def __init__(
        self,
        config: Config,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            config: Application configuration with Reddit credentials
            rate_limiter: Limiter to update from response headers
            session: Optional pre-built HTTP session (one is created lazily otherwise)
        """
        self.config = config
        self.rate_limiter = rate_limiter
        self._session = session
        self._owns_session = session is None
        self._access_token: Optional[str] = None

    async def __aenter__(self) -> "RedditClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._session

    async def authenticate(self) -> str:
        """
        Obtain an application-only OAuth token.

        Returns:
            The access token

        Raises:
            ConfigurationError: If client id or secret are missing
            UpstreamFetchError: If the token endpoint rejects the credentials
        """
        if not self.config.client_id or not self.config.client_secret:
            raise ConfigurationError("Reddit API credentials not configured")

        session = self._get_session()
        async with session.post(
            self.config.auth_url,
            auth=aiohttp.BasicAuth(self.config.client_id, self.config.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"User-Agent": self.config.user_agent},
        ) as response:
            if response.status in (401, 403):
                raise UpstreamFetchError(
                    f"Reddit rejected the API credentials ({response.status})",
                    status=response.status,
                )
            response.raise_for_status()
            payload = await response.json()

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise UpstreamFetchError("Reddit token response did not contain an access token")

        self._access_token = token
        logger.info("Successfully obtained Reddit OAuth token")
        return token

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self._access_token:
            raise UpstreamFetchError("Reddit client is not authenticated")

        session = self._get_session()
        async with session.get(
            f"{self.config.api_base_url}{path}",
            params=params,
            headers={
                "Authorization": f"Bearer {self._access_token}",
                "User-Agent": self.config.user_agent,
            },
        ) as response:
            if self.rate_limiter:
                self.rate_limiter.update_from_headers(response.headers)
            response.raise_for_status()
            return await response.json()

    async def list_activity(self, community: str, limit: int) -> List[ActivityItem]:
        """
        Fetch one page of a subreddit's hot posts, plus its newest comments if configured.

        Args:
            community: Subreddit name without the ``r/`` prefix
            limit: Maximum number of items returned across both feeds

        Returns:
            Posts (and comments) in feed order
        """
        listing = await self._get_json(f"/r/{community}/hot", params={"limit": limit})
        items = listing_to_activity(listing)[:limit]
        logger.info(f"Extracted {len(items)} posts from r/{community}")

        # Comments fill whatever room the posts leave on the page
        remaining = limit - len(items)
        if self.config.include_comments and remaining > 0:
            comment_listing = await self._get_json(f"/r/{community}/comments", params={"limit": remaining})
            comments = listing_to_activity(comment_listing)[:remaining]
            logger.info(f"Extracted {len(comments)} comments from r/{community}")
            items.extend(comments)

        return items

    async def get_profile(self, username: str) -> Optional[Profile]:
        """
        Fetch an author's profile.

        Returns:
            The profile, or None if Reddit reports the user as missing (404)
        """
        try:
            payload = await self._get_json(f"/user/{username}/about")
        except aiohttp.ClientResponseError as e:
            if e.status == 404:
                return None
            raise

        data = payload.get("data") if isinstance(payload, dict) else None
        # Suspended accounts come back without profile fields
        if not data or "name" not in data or data.get("is_suspended"):
            return None
        return user_to_profile(data)

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            logger.info("Closing Reddit client")
            await self._session.close()
        self._session = None
