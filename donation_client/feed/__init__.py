"""
Paginated Feed Controller
"""

from .controller import PaginatedFeedController, FeedConfig, FeedLoadResult, PageFetcher

__all__ = ['PaginatedFeedController', 'FeedConfig', 'FeedLoadResult', 'PageFetcher']
