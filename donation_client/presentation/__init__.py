"""
Presentation Layer

ViewModels consumed by view components.
"""

from .viewmodels import (
    ViewState, user_message, ErrorBannerViewModel, DetailViewModel,
    VoteButtonsViewModel, CommentViewModel, FeedViewModel,
    DonationProgressViewModel,
)

__all__ = [
    'ViewState', 'user_message', 'ErrorBannerViewModel', 'DetailViewModel',
    'VoteButtonsViewModel', 'CommentViewModel', 'FeedViewModel',
    'DonationProgressViewModel',
]
