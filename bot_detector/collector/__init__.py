from .error_handler import with_exponential_backoff
from .extraction import ExtractionStage
from .rate_limiter import RateLimiter

__all__ = ["ExtractionStage", "RateLimiter", "with_exponential_backoff"]
