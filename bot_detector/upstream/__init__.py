from .data_source import UpstreamDataSource
from .reddit_client import RedditClient

__all__ = ["RedditClient", "UpstreamDataSource"]
