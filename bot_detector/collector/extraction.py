"""Extraction stage: pulls a community's activity and its authors' profiles into the store."""

import asyncio
import logging
import math
from collections import Counter
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

from bot_detector.collector.error_handler import with_exponential_backoff
from bot_detector.collector.rate_limiter import RateLimiter
from bot_detector.config import Config
from bot_detector.exceptions import (
    BotDetectionError,
    PerAuthorFetchError,
    UpstreamFetchError,
    ValidationError,
)
from bot_detector.models import (
    AccountORM,
    ActivityItem,
    CommentORM,
    ExtractionResult,
    PostORM,
    Profile,
)
from bot_detector.storage import Store
from bot_detector.upstream.data_source import UpstreamDataSource

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

POST_UPDATE_COLUMNS = ("score", "upvote_ratio", "num_comments", "title", "content")
COMMENT_UPDATE_COLUMNS = ("score", "body")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def account_age_days(created_utc: float, now: datetime) -> int:
    """Whole days between account creation and ``now``."""
    return int(math.floor((now.timestamp() - created_utc) / SECONDS_PER_DAY))


def unique_authors(items: List[ActivityItem]) -> List[str]:
    """Distinct author usernames in first-seen order, skipping deleted authors."""
    seen: Dict[str, None] = {}
    for item in items:
        if item.author_username:
            seen.setdefault(item.author_username, None)
    return list(seen)


def _error_type(error: BaseException) -> str:
    if isinstance(error, ClientResponseError):
        return "5xx" if 500 <= error.status < 600 else str(error.status)
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    return "connection"


class ExtractionStage:
    """
    Populates account and activity storage for one community.

    Authentication and the page fetch are fatal on failure; a failing author
    profile is logged and skipped.
    """

    def __init__(
        self,
        data_source: UpstreamDataSource,
        store: Store,
        rate_limiter: RateLimiter,
        config: Config,
        prometheus_exporter=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the extraction stage.

        Args:
            data_source: Upstream source of activity and profiles
            store: Store that receives posts, comments and accounts
            rate_limiter: Gate shared by every upstream call of the stage
            config: Application configuration
            prometheus_exporter: Optional metrics exporter
            clock: Returns the current UTC time; used for account ages
        """
        self.data_source = data_source
        self.store = store
        self.rate_limiter = rate_limiter
        self.config = config
        self.prometheus_exporter = prometheus_exporter
        self.clock = clock or _utcnow

        no_retry = with_exponential_backoff(
            max_retries=0,
            rate_limiter=rate_limiter,
            max_rate_limit_waits=config.rate_limit.max_rate_limit_waits,
        )
        self._authenticate = no_retry(self._gated(self.data_source.authenticate))
        self._list_activity = no_retry(self._gated(self.data_source.list_activity))
        self._get_profile = with_exponential_backoff(
            max_retries=config.retry.profile_max_retries,
            initial_backoff=config.retry.initial_backoff,
            max_backoff=config.retry.max_backoff,
            backoff_factor=config.retry.backoff_factor,
            rate_limiter=rate_limiter,
            max_rate_limit_waits=config.rate_limit.max_rate_limit_waits,
        )(self._gated(self.data_source.get_profile))

    def _gated(self, call: Callable[..., Any]) -> Callable[..., Any]:
        """Wrap an upstream call so every attempt waits for a rate limiter slot and is timed."""
        async def gated(*args: Any, **kwargs: Any) -> Any:
            await self.rate_limiter.pre_request()
            timer = self.prometheus_exporter.time_request() if self.prometheus_exporter else None
            try:
                with timer if timer else nullcontext():
                    return await call(*args, **kwargs)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_api_error(_error_type(e))
                raise
        return gated

    async def run(self, community: str, limit: Optional[int] = None) -> ExtractionResult:
        """
        Extract one page of ``community`` and the profiles of its authors.

        Args:
            community: Community (subreddit) to extract
            limit: Maximum number of feed items; defaults to ``activity_limit``

        Returns:
            Counts of stored activity items and author profiles

        Raises:
            ConfigurationError: If upstream credentials are missing
            UpstreamFetchError: If authentication or the page fetch fails
            PersistenceError: If a store write fails
        """
        if not community:
            raise ValidationError("A community is required for extraction")
        limit = self.config.activity_limit if limit is None else limit
        if limit <= 0:
            raise ValidationError(f"Extraction limit must be positive, got {limit}")

        logger.info(f"Starting extraction for r/{community} (limit={limit})")

        await self._call_fatal("authentication", self._authenticate)
        items = await self._call_fatal("activity page fetch", self._list_activity, community, limit)

        posts = [item for item in items if item.kind == "post"]
        comments = [item for item in items if item.kind == "comment"]
        await self._upsert(PostORM, [self._post_record(p, community) for p in posts],
                           "reddit_id", POST_UPDATE_COLUMNS)
        await self._upsert(CommentORM, [self._comment_record(c, community) for c in comments],
                           "reddit_id", COMMENT_UPDATE_COLUMNS)

        if self.prometheus_exporter:
            self.prometheus_exporter.record_activity_extracted(community, len(items))

        authors = unique_authors(items)
        logger.info(f"Found {len(items)} activity items from {len(authors)} unique authors in r/{community}")

        profiles = await self._fetch_profiles(authors)
        skipped = len(authors) - len(profiles)

        activity_by_author: Dict[str, Counter] = {}
        for item in items:
            if item.author_username:
                activity_by_author.setdefault(item.author_username, Counter())[item.community or community] += 1

        now = self.clock()
        account_records = [
            self._account_record(profile, now, dict(activity_by_author.get(profile.username, {})))
            for profile in profiles
        ]
        await self._upsert(AccountORM, account_records, "username")

        if self.prometheus_exporter:
            self.prometheus_exporter.record_authors_extracted(community, len(profiles))

        logger.info(
            f"Extraction for r/{community} finished: {len(items)} activity items, "
            f"{len(profiles)} authors, {skipped} skipped"
        )
        return ExtractionResult(
            activity_count=len(items),
            author_count=len(profiles),
            skipped_authors=skipped,
        )

    async def _upsert(self, *args: Any) -> int:
        """Run a blocking store upsert off the event loop."""
        return await asyncio.to_thread(self.store.upsert, *args)

    async def _call_fatal(self, step: str, call: Callable[..., Any], *args: Any) -> Any:
        try:
            return await call(*args)
        except BotDetectionError:
            raise
        except ClientResponseError as e:
            logger.error(f"Upstream {step} failed with status {e.status}: {e.message}")
            raise UpstreamFetchError(f"Upstream {step} failed: {e.status} {e.message}", status=e.status) from e
        except Exception as e:
            logger.error(f"Upstream {step} failed: {str(e)}", exc_info=True)
            raise UpstreamFetchError(f"Upstream {step} failed: {str(e)}") from e

    async def _fetch_profiles(self, authors: List[str]) -> List[Profile]:
        semaphore = asyncio.Semaphore(self.config.rate_limit.max_concurrent_fetches)

        async def fetch(username: str) -> Optional[Profile]:
            async with semaphore:
                try:
                    profile = await self._get_profile(username)
                except Exception as e:
                    error = PerAuthorFetchError(username, str(e) or type(e).__name__)
                    logger.warning(f"{error}. Skipping author.")
                    if self.prometheus_exporter:
                        self.prometheus_exporter.record_author_fetch_failure()
                    return None
                if profile is None:
                    logger.info(f"Profile for {username} not found, skipping")
                return profile

        results = await asyncio.gather(*(fetch(username) for username in authors))
        return [profile for profile in results if profile is not None]

    @staticmethod
    def _post_record(item: ActivityItem, community: str) -> Dict[str, Any]:
        return {
            "reddit_id": item.platform_id,
            "author_username": item.author_username,
            "title": item.title,
            "content": item.content,
            "subreddit": item.community or community,
            "score": item.score,
            "upvote_ratio": item.upvote_ratio,
            "num_comments": item.num_comments,
            "created_utc": int(item.created_utc) if item.created_utc is not None else None,
            "is_self": item.is_self,
            "domain": item.domain,
            "url": item.url,
        }

    @staticmethod
    def _comment_record(item: ActivityItem, community: str) -> Dict[str, Any]:
        return {
            "reddit_id": item.platform_id,
            "post_id": item.post_id,
            "author_username": item.author_username,
            "body": item.content,
            "score": item.score,
            "created_utc": int(item.created_utc) if item.created_utc is not None else None,
            "is_submitter": item.is_submitter,
            "parent_id": item.parent_id,
            "subreddit": item.community or community,
        }

    @staticmethod
    def _account_record(profile: Profile, now: datetime, activity: Dict[str, int]) -> Dict[str, Any]:
        return {
            "username": profile.username,
            "account_created_at": datetime.fromtimestamp(profile.created_utc, tz=timezone.utc),
            "comment_karma": profile.comment_karma,
            "link_karma": profile.link_karma,
            "is_verified": profile.is_verified,
            "has_verified_email": profile.has_verified_email,
            "is_premium": profile.is_premium,
            "account_age_days": account_age_days(profile.created_utc, now),
            "subreddit_activity": activity,
        }
