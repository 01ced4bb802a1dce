"""Social-content search adapters."""

from cafe_api.adapters.social.base import AbstractSocialSearchClient
from cafe_api.adapters.social.reddit_client import RedditSearchClient, parse_listing

__all__ = [
    "AbstractSocialSearchClient",
    "RedditSearchClient",
    "parse_listing",
]
