"""
Optimistic Interaction Tests

Votes and comments against a scripted remote whose responses the
test releases one at a time.

AXIOMS UNDER TEST:
==================
- The optimistic state is visible before the server answers
- Server tallies replace local tallies on success
- Failure restores the exact pre-action state
- At most one vote request per post is in flight
"""

import asyncio

import pytest

from donation_client.contracts import (
    Comment, NetworkFailure, NotFound, ServerError, VoteChoice, VoteCounts,
    VotePending, VoteState, VoteSuperseded,
)
from donation_client.interaction import (
    InteractionConfig, OptimisticInteractionLayer, VotePhase, VotePolicy,
)
from donation_client.observability import AuditLog, AuditEventType
from donation_client.store import EntityStore

from .fixtures import ScriptedCommunityClient, make_post, settle


def build_layer(post, policy=VotePolicy.REJECT, audit=None):
    posts = EntityStore("community_posts", audit)
    posts.upsert(post)
    client = ScriptedCommunityClient()
    layer = OptimisticInteractionLayer(
        client, posts, InteractionConfig(vote_policy=policy), audit
    )
    return layer, client, posts


# =============================================================================
# CONFIRMATION AND ROLLBACK
# =============================================================================

class TestVoteReconciliation:
    """Optimistic delta first, then the server's word."""

    def test_upvote_is_optimistic_then_confirmed(self):
        """Post 7 at (2, 0, none): upvote shows (3, 0) at once, server confirms (3, 0)."""
        async def scenario():
            layer, client, _ = build_layer(make_post(7, upvotes=2))
            task = asyncio.ensure_future(layer.upvote(7))
            await settle()
            seen = (layer.vote_state(7), layer.phase(7))
            client.vote_calls[0].succeed(VoteCounts(upvotes=3, downvotes=0))
            result = await task
            return seen, result, layer.vote_state(7), layer.phase(7)

        (optimistic, pending_phase), result, final, final_phase = asyncio.run(scenario())

        assert optimistic == VoteState(3, 0, VoteChoice.UPVOTE)
        assert pending_phase == VotePhase.PENDING
        assert result == VoteState(3, 0, VoteChoice.UPVOTE)
        assert final == VoteState(3, 0, VoteChoice.UPVOTE)
        assert final_phase == VotePhase.UPVOTED

    def test_failed_switch_rolls_back_to_previous_vote(self):
        """Upvoted post 7 at (3, 0): downvote shows (2, 1), failure restores (3, 0, upvote)."""
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 3, 0, VoteChoice.UPVOTE))
            task = asyncio.ensure_future(layer.downvote(7))
            await settle()
            seen = layer.vote_state(7)
            client.vote_calls[0].fail(ServerError("boom", 500))
            with pytest.raises(ServerError):
                await task
            return seen, layer.vote_state(7), layer.phase(7)

        optimistic, final, phase = asyncio.run(scenario())

        assert optimistic == VoteState(2, 1, VoteChoice.DOWNVOTE)
        assert final == VoteState(3, 0, VoteChoice.UPVOTE)
        assert phase == VotePhase.UPVOTED

    @pytest.mark.parametrize("start,target", [
        (VoteChoice.NONE, VoteChoice.UPVOTE),
        (VoteChoice.NONE, VoteChoice.DOWNVOTE),
        (VoteChoice.UPVOTE, VoteChoice.NONE),
        (VoteChoice.UPVOTE, VoteChoice.DOWNVOTE),
        (VoteChoice.DOWNVOTE, VoteChoice.NONE),
        (VoteChoice.DOWNVOTE, VoteChoice.UPVOTE),
    ])
    def test_any_rejected_transition_restores_exact_state(self, start, target):
        up = 5 if start == VoteChoice.UPVOTE else 4
        down = 2 if start == VoteChoice.DOWNVOTE else 1
        before = VoteState(up, down, start)

        async def scenario():
            layer, client, _ = build_layer(make_post(9, up, down, start))
            task = asyncio.ensure_future(layer.vote(9, target))
            await settle()
            client.vote_calls[0].fail(NetworkFailure("offline"))
            with pytest.raises(NetworkFailure):
                await task
            return layer.vote_state(9), layer.is_pending(9)

        after, pending = asyncio.run(scenario())

        assert after == before
        assert pending is False

    def test_server_counts_win_over_local_arithmetic(self):
        """Another user voted meanwhile: the server's (10, 4) is taken verbatim."""
        async def scenario():
            layer, client, _ = build_layer(make_post(3, 2, 1))
            task = asyncio.ensure_future(layer.upvote(3))
            await settle()
            client.vote_calls[0].succeed(VoteCounts(upvotes=10, downvotes=4))
            await task
            return layer.vote_state(3)

        assert asyncio.run(scenario()) == VoteState(10, 4, VoteChoice.UPVOTE)

    def test_vote_matching_confirmed_choice_sends_nothing(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 3, 0, VoteChoice.UPVOTE))
            result = await layer.upvote(7)
            return result, len(client.vote_calls)

        result, calls = asyncio.run(scenario())

        assert result == VoteState(3, 0, VoteChoice.UPVOTE)
        assert calls == 0

    def test_toggle_on_active_direction_unvotes(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 3, 0, VoteChoice.UPVOTE))
            task = asyncio.ensure_future(layer.toggle(7, VoteChoice.UPVOTE))
            await settle()
            sent = client.vote_calls[0].argument
            seen = layer.vote_state(7)
            client.vote_calls[0].succeed(VoteCounts(2, 0))
            return sent, seen, await task

        sent, optimistic, result = asyncio.run(scenario())

        assert sent == VoteChoice.NONE
        assert optimistic == VoteState(2, 0, VoteChoice.NONE)
        assert result == VoteState(2, 0, VoteChoice.NONE)

    def test_voting_on_unloaded_post_raises_not_found(self):
        async def scenario():
            layer, _, _ = build_layer(make_post(1))
            await layer.upvote(404)

        with pytest.raises(NotFound):
            asyncio.run(scenario())


# =============================================================================
# SINGLE FLIGHT
# =============================================================================

class TestSingleFlight:
    """Only one request per post; policy decides what a different intent does."""

    def test_repeated_intent_joins_in_flight_request(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0))
            first = asyncio.ensure_future(layer.upvote(7))
            second = asyncio.ensure_future(layer.upvote(7))
            await settle()
            calls = len(client.vote_calls)
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            return calls, await first, await second

        calls, first, second = asyncio.run(scenario())

        assert calls == 1
        assert first == second == VoteState(3, 0, VoteChoice.UPVOTE)

    def test_reject_policy_refuses_different_intent(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0), VotePolicy.REJECT)
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            with pytest.raises(VotePending):
                await layer.downvote(7)
            seen = layer.vote_state(7)
            calls = len(client.vote_calls)
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            return seen, calls, await first

        seen, calls, result = asyncio.run(scenario())

        assert seen == VoteState(3, 0, VoteChoice.UPVOTE)
        assert calls == 1
        assert result == VoteState(3, 0, VoteChoice.UPVOTE)

    def test_supersede_policy_waits_for_older_request_then_sends(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0), VotePolicy.SUPERSEDE)
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            second = asyncio.ensure_future(layer.downvote(7))
            await settle()
            seen = layer.vote_state(7)
            calls_while_pending = len(client.vote_calls)
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            with pytest.raises(VoteSuperseded):
                await first
            await settle()
            held = layer.vote_state(7)
            client.vote_calls[1].succeed(VoteCounts(2, 1))
            return seen, calls_while_pending, held, await second, client.vote_calls[1].argument

        seen, calls_while_pending, held, result, sent = asyncio.run(scenario())

        # rebuilt from the confirmed (2, 0, none), not from the optimistic (3, 0)
        assert seen == VoteState(2, 1, VoteChoice.DOWNVOTE)
        assert calls_while_pending == 1
        # the older confirmation lands under an older sequence and is fenced off
        assert held == VoteState(2, 1, VoteChoice.DOWNVOTE)
        assert sent == VoteChoice.DOWNVOTE
        assert result == VoteState(2, 1, VoteChoice.DOWNVOTE)

    def test_superseded_request_that_landed_is_undone(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0), VotePolicy.SUPERSEDE)
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            second = asyncio.ensure_future(layer.unvote(7))
            await settle()
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            with pytest.raises(VoteSuperseded):
                await first
            await settle()
            sent = client.vote_calls[1].argument
            client.vote_calls[1].succeed(VoteCounts(2, 0))
            return sent, await second

        sent, result = asyncio.run(scenario())

        assert sent == VoteChoice.NONE
        assert result == VoteState(2, 0, VoteChoice.NONE)

    def test_superseded_request_that_failed_needs_no_undo(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0), VotePolicy.SUPERSEDE)
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            second = asyncio.ensure_future(layer.unvote(7))
            await settle()
            client.vote_calls[0].fail(NetworkFailure("offline"))
            with pytest.raises(VoteSuperseded):
                await first
            result = await second
            return result, len(client.vote_calls), layer.is_pending(7)

        result, calls, pending = asyncio.run(scenario())

        assert result == VoteState(2, 0, VoteChoice.NONE)
        assert calls == 1
        assert pending is False

    def test_unsent_superseded_vote_is_dropped(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7, 2, 0), VotePolicy.SUPERSEDE)
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            second = asyncio.ensure_future(layer.downvote(7))
            await settle()
            third = asyncio.ensure_future(layer.unvote(7))
            await settle()
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            for superseded in (first, second):
                with pytest.raises(VoteSuperseded):
                    await superseded
            await settle()
            sent = [call.argument for call in client.vote_calls]
            client.vote_calls[1].succeed(VoteCounts(2, 0))
            return sent, await third

        sent, result = asyncio.run(scenario())

        assert sent == [VoteChoice.UPVOTE, VoteChoice.NONE]
        assert result == VoteState(2, 0, VoteChoice.NONE)

    def test_reset_cancels_in_flight_votes(self):
        async def scenario():
            layer, _, _ = build_layer(make_post(7, 2, 0))
            first = asyncio.ensure_future(layer.upvote(7))
            await settle()
            layer.reset()
            with pytest.raises(VoteSuperseded):
                await first
            return layer.is_pending(7)

        assert asyncio.run(scenario()) is False


# =============================================================================
# ORDERING (last request wins)
# =============================================================================

class TestResponseOrdering:
    """Store writes are fenced by the sequence taken when each request was issued."""

    def test_older_refresh_cannot_overwrite_optimistic_vote(self):
        async def scenario():
            layer, client, posts = build_layer(make_post(7, 2, 0))
            refresh_sequence = posts.next_sequence()
            task = asyncio.ensure_future(layer.upvote(7))
            await settle()
            accepted = posts.upsert(make_post(7, 2, 0), refresh_sequence)
            seen = layer.vote_state(7)
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            await task
            return accepted, seen

        accepted, seen = asyncio.run(scenario())

        assert accepted is False
        assert seen == VoteState(3, 0, VoteChoice.UPVOTE)

    def test_newer_refresh_wins_over_late_vote_confirmation(self):
        async def scenario():
            audit = AuditLog()
            layer, client, posts = build_layer(make_post(7, 2, 0), audit=audit)
            task = asyncio.ensure_future(layer.upvote(7))
            await settle()
            posts.upsert(make_post(7, 8, 1, VoteChoice.UPVOTE), posts.next_sequence())
            client.vote_calls[0].succeed(VoteCounts(3, 0))
            await task
            stale = [e for e in audit.entries(AuditEventType.STORE) if e.outcome == "stale"]
            return layer.vote_state(7), layer.phase(7), stale

        final, phase, stale = asyncio.run(scenario())

        assert final == VoteState(8, 1, VoteChoice.UPVOTE)
        assert phase == VotePhase.UPVOTED
        assert len(stale) == 1


# =============================================================================
# COMMENTS
# =============================================================================

class TestOptimisticComments:
    """Placeholder first, server comment swapped in, removed on failure."""

    def test_placeholder_is_replaced_by_server_comment(self):
        async def scenario():
            layer, client, posts = build_layer(make_post(7, comments_count=2))
            task = asyncio.ensure_future(layer.add_comment(7, "Great cause", user_id=1))
            await settle()
            placeholder = layer.comments(7)
            client.comment_calls[0].succeed(
                Comment(id=42, content="Great cause", post_id=7, user_id=1,
                        created_at="2026-01-01 10:00:00")
            )
            comment = await task
            return placeholder, comment, layer.comments(7), posts.get_by_id(7).comments_count

        placeholder, comment, after, count = asyncio.run(scenario())

        assert len(placeholder) == 1
        assert placeholder[0].pending and placeholder[0].id < 0
        assert after == (comment,)
        assert not after[0].pending and after[0].id == 42
        assert count == 3

    def test_failed_comment_is_removed(self):
        async def scenario():
            layer, client, posts = build_layer(make_post(7, comments_count=2))
            task = asyncio.ensure_future(layer.add_comment(7, "Hello"))
            await settle()
            client.comment_calls[0].fail(ServerError("nope", 500))
            with pytest.raises(ServerError):
                await task
            return layer.comments(7), posts.get_by_id(7).comments_count

        comments, count = asyncio.run(scenario())

        assert comments == ()
        assert count == 2

    def test_placeholders_keep_their_position_order(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7))
            first = asyncio.ensure_future(layer.add_comment(7, "first"))
            second = asyncio.ensure_future(layer.add_comment(7, "second"))
            await settle()
            client.comment_calls[1].succeed(Comment(id=11, content="second", post_id=7))
            await second
            client.comment_calls[0].succeed(Comment(id=12, content="first", post_id=7))
            await first
            return [c.content for c in layer.comments(7)]

        assert asyncio.run(scenario()) == ["first", "second"]

    def test_blank_comment_is_refused_locally(self):
        async def scenario():
            layer, client, _ = build_layer(make_post(7))
            with pytest.raises(ValueError):
                await layer.add_comment(7, "   ")
            return len(client.comment_calls)

        assert asyncio.run(scenario()) == 0
