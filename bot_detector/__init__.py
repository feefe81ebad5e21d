"""Reddit bot detection pipeline.

Extracts community activity from Reddit, profiles every author observed and
scores each profile with an explainable bot probability.
"""

__version__ = "0.1.0"
