"""
ViewModel Contract Tests

Verifies that view components receive exactly what to render:
distinct not-found state, user-facing messages, vote buttons.
"""

import pytest

from donation_client.contracts import (
    Comment, DataSource, DonationEvent, FetchOutcome, Forbidden, Lookup,
    NetworkFailure, NotFound, PaginationCursor, ServerError, Unauthenticated,
    ValidationFailed, VoteChoice, VoteState,
)
from donation_client.interaction import VotePhase
from donation_client.presentation import (
    CommentViewModel, DetailViewModel, DonationProgressViewModel,
    ErrorBannerViewModel, FeedViewModel, ViewState, VoteButtonsViewModel,
    user_message,
)


def event(current=100.0, goal=500.0):
    return DonationEvent(
        id=1, title="Winter coats", type="request", status="active",
        goal_amount=goal, current_amount=current,
    )


# =============================================================================
# MESSAGES
# =============================================================================

class TestUserMessages:

    def test_forbidden_reason_is_shown_verbatim(self):
        error = Forbidden("Only verified users can donate.", 403)

        assert user_message(error) == "Only verified users can donate."

    def test_first_field_error_is_shown(self):
        error = ValidationFailed("invalid", 422, {"amount": ("Must be at least 1.",)})

        assert user_message(error) == "Must be at least 1."

    def test_server_error_uses_generic_text(self):
        assert "try again" in user_message(ServerError("Traceback ...", 500))

    def test_banner_flags(self):
        login = ErrorBannerViewModel.from_error(Unauthenticated("no token"))
        retry = ErrorBannerViewModel.from_error(NetworkFailure("offline"))

        assert login.requires_login and not login.can_retry
        assert retry.can_retry and not retry.requires_login
        assert retry.code == "NETWORK_FAILURE"


# =============================================================================
# DETAIL PAGES
# =============================================================================

class TestDetailViewModel:

    def test_states_are_distinct(self):
        found = DetailViewModel.from_lookup(Lookup.of(1, event()))
        missing = DetailViewModel.from_lookup(Lookup.not_found(1))
        loading = DetailViewModel.loading()
        failed = DetailViewModel.from_error(ServerError("boom", 500))

        assert [found.state, missing.state, loading.state, failed.state] == [
            ViewState.READY, ViewState.NOT_FOUND, ViewState.LOADING, ViewState.ERROR,
        ]
        assert found.entity.id == 1
        assert failed.error is not None

    def test_not_found_error_is_not_an_error_banner(self):
        view = DetailViewModel.from_error(NotFound("gone", 404))

        assert view.state == ViewState.NOT_FOUND
        assert view.error is None


# =============================================================================
# COMMUNITY
# =============================================================================

class TestVoteButtons:

    @pytest.mark.parametrize("choice,up_active,down_active", [
        (VoteChoice.NONE, False, False),
        (VoteChoice.UPVOTE, True, False),
        (VoteChoice.DOWNVOTE, False, True),
    ])
    def test_active_direction(self, choice, up_active, down_active):
        view = VoteButtonsViewModel.build(7, VoteState(3, 1, choice), VotePhase.NONE)

        assert (view.upvote_active, view.downvote_active) == (up_active, down_active)
        assert view.score == 2

    def test_pending_phase_is_flagged(self):
        view = VoteButtonsViewModel.build(
            7, VoteState(3, 0, VoteChoice.UPVOTE), VotePhase.PENDING
        )

        assert view.is_pending


def test_placeholder_comment_renders_pending():
    view = CommentViewModel.from_comment(Comment.placeholder(-1, 7, "hello"))

    assert view.is_pending
    assert view.comment_id == -1


class TestFeedViewModel:

    def test_live_outcome_with_more_pages(self):
        outcome = FetchOutcome(
            source=DataSource.LIVE, items=(event(),),
            cursor=PaginationCursor(current_page=1, last_page=2),
        )

        view = FeedViewModel.from_outcome(outcome)

        assert view.has_more
        assert not view.is_fallback
        assert view.warnings == ()

    def test_fallback_outcome_warns(self):
        outcome = FetchOutcome(
            source=DataSource.FALLBACK, items=(event(),),
            error=NetworkFailure("offline"),
        )

        view = FeedViewModel.from_outcome(outcome)

        assert view.is_fallback
        assert not view.has_more
        assert view.warnings[0].startswith("Showing saved data.")


# =============================================================================
# DONATIONS
# =============================================================================

class TestDonationProgress:

    def test_percent_of_goal(self):
        view = DonationProgressViewModel.from_event(event(current=150.0))

        assert view.percent == 30
        assert not view.is_complete

    def test_complete_when_goal_reached(self):
        view = DonationProgressViewModel.from_event(event(current=600.0))

        assert view.percent == 100
        assert view.is_complete
