"""
End-to-End Tests

The full DonationPlatformClient against the in-process mock API
(FastAPI app mounted through httpx.ASGITransport). No network.
"""

import asyncio

import httpx
import pytest

from donation_client import ClientConfig, DonationPlatformClient
from donation_client.contracts import (
    Forbidden, ServerError, Unauthenticated, ValidationFailed, VoteChoice, VoteState,
    VoteSuperseded,
)
from donation_client.feed import FeedConfig
from donation_client.interaction import InteractionConfig, VotePolicy
from donation_client.presentation import DetailViewModel, ViewState
from donation_client.remote import TransportConfig
from donation_client.store import FORBIDDEN_DONATION_MESSAGE
from mock_api import MockDatabase, create_app

from .fixtures import BASE_URL


def build_client(db, interaction=None):
    config = ClientConfig(
        transport=TransportConfig(base_url=BASE_URL),
        feed=FeedConfig(per_page=10),
        interaction=interaction,
    )
    return DonationPlatformClient(config, http_transport=httpx.ASGITransport(app=create_app(db)))


def run_with_client(scenario, db=None, interaction=None):
    """Run `scenario(client, db)` inside one event loop and close the client."""
    db = db or MockDatabase(auto_approve=True)

    async def main():
        async with build_client(db, interaction) as client:
            return await scenario(client, db)

    return asyncio.run(main())


async def login_alice(client):
    return await client.login("alice@example.com", "secret")


# =============================================================================
# SESSION
# =============================================================================

class TestSession:

    def test_login_sets_verified_user(self):
        async def scenario(client, db):
            user = await login_alice(client)
            return user, client.session.is_authenticated

        user, authenticated = run_with_client(scenario)

        assert user.username == "alice"
        assert user.verified
        assert authenticated

    def test_bad_credentials_are_unauthenticated(self):
        async def scenario(client, db):
            with pytest.raises(Unauthenticated):
                await client.login("alice@example.com", "wrong")
            return client.session.is_authenticated

        assert run_with_client(scenario) is False

    def test_logout_clears_every_cache(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            await client.donation_feed.load_first_page()
            loaded = (len(client.posts), len(client.events))
            await client.logout()
            return loaded, client

        (posts, events), client = run_with_client(scenario)

        assert posts == 10 and events == 4
        assert len(client.posts) == 0
        assert len(client.events) == 0
        assert client.community_feed.cursor is None
        assert not client.session.is_authenticated


# =============================================================================
# FEEDS
# =============================================================================

class TestFeeds:

    def test_community_feed_pages_to_exhaustion(self):
        async def scenario(client, db):
            await login_alice(client)
            results = [await client.community_feed.load_next_page()]
            while not results[-1].exhausted:
                results.append(await client.community_feed.load_next_page())
            extra = await client.community_feed.load_next_page()
            return [p.id for p in client.community_feed.items], results, extra

        ids, results, extra = run_with_client(scenario)

        assert ids == list(range(25, 0, -1))
        assert [len(r.added) for r in results] == [10, 10, 5]
        assert extra.exhausted and extra.added == ()

    def test_new_post_is_injected_at_head(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            post = await client.create_post("Coat drive this weekend", event_id=1, tags=["coats"])
            return post, [p.id for p in client.community_feed.items]

        post, ids = run_with_client(scenario)

        assert post.id == 26
        assert post.tags == ("coats",)
        assert ids[:2] == [26, 25]
        assert len(ids) == 11

    def test_donation_feed_filters_by_type(self):
        async def scenario(client, db):
            client.donation_feed.set_filters(type="offer")
            await client.donation_feed.load_first_page()
            return [e.type for e in client.donation_feed.items]

        assert run_with_client(scenario) == ["offer"]


# =============================================================================
# VOTES AND COMMENTS
# =============================================================================

class TestInteractions:

    def test_upvote_then_toggle_off(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            voted = await client.interactions.upvote(25)
            server_after_vote = db.vote_counts(25)
            cleared = await client.interactions.toggle(25, VoteChoice.UPVOTE)
            return voted, server_after_vote, cleared, db.vote_counts(25)

        voted, server_voted, cleared, server_cleared = run_with_client(scenario)

        assert voted == VoteState(1, 0, VoteChoice.UPVOTE)
        assert server_voted == (1, 0)
        assert cleared == VoteState(0, 0, VoteChoice.NONE)
        assert server_cleared == (0, 0)

    def test_switch_vote_moves_one_tally(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            await client.interactions.upvote(24)
            return await client.interactions.downvote(24)

        assert run_with_client(scenario) == VoteState(0, 1, VoteChoice.DOWNVOTE)

    def test_superseding_an_unvote_matches_the_server(self):
        """Upvoted post; unvote starts, upvote follows at once: client and server agree."""
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            await client.interactions.upvote(25)
            undo = asyncio.ensure_future(client.interactions.unvote(25))
            await asyncio.sleep(0)
            result = await client.interactions.upvote(25)
            with pytest.raises(VoteSuperseded):
                await undo
            server_choice = await client.community_api.my_vote(25)
            return result, client.interactions.vote_state(25), server_choice, db.vote_counts(25)

        result, shown, server_choice, server_counts = run_with_client(
            scenario, interaction=InteractionConfig(vote_policy=VotePolicy.SUPERSEDE)
        )

        assert result == shown == VoteState(1, 0, VoteChoice.UPVOTE)
        assert server_choice == VoteChoice.UPVOTE
        assert server_counts == (1, 0)

    def test_server_failure_rolls_vote_back(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            db.injected_failures[("POST", "/api/community-posts/24/vote")] = 500
            with pytest.raises(ServerError):
                await client.interactions.upvote(24)
            return client.interactions.vote_state(24), db.vote_counts(24)

        state, server = run_with_client(scenario)

        assert state == VoteState(0, 0, VoteChoice.NONE)
        assert server == (0, 0)

    def test_vote_survives_feed_reload(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            await client.interactions.downvote(23)
            await client.community_feed.load_first_page()
            return client.posts.get_by_id(23).votes

        assert run_with_client(scenario) == VoteState(0, 1, VoteChoice.DOWNVOTE)

    def test_comment_round_trip(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.community_feed.load_first_page()
            comment = await client.interactions.add_comment(25, "Count me in", user_id=1)
            reloaded = await client.interactions.load_comments(25)
            return comment, reloaded, client.posts.get_by_id(25).comments_count

        comment, reloaded, count = run_with_client(scenario)

        assert comment.id == 1 and not comment.pending
        assert [c.content for c in reloaded] == ["Count me in"]
        assert count == 1


# =============================================================================
# DONATIONS
# =============================================================================

class TestDonations:

    def test_contribution_reflects_server_amount(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.donation_feed.load_first_page()
            transaction = await client.contribute(1, 50)
            return transaction, client.events.get_by_id(1)

        transaction, event = run_with_client(scenario)

        assert transaction.status == "approved"
        assert event.current_amount == 150.0

    def test_pending_contribution_leaves_amount_unchanged(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.donation_feed.load_first_page()
            await client.contribute(1, 50)
            return client.events.get_by_id(1).current_amount

        assert run_with_client(scenario, MockDatabase(auto_approve=False)) == 100.0

    def test_unverified_user_is_told_why(self):
        async def scenario(client, db):
            await client.login("bob@example.com", "secret")
            with pytest.raises(Forbidden) as local:
                await client.contribute(1, 10)
            with pytest.raises(Forbidden) as remote:
                await client.donation_events.create_transaction(1, 10)
            return local.value.message, remote.value.message, len(db.transactions)

        local, remote, transactions = run_with_client(scenario)

        assert local == FORBIDDEN_DONATION_MESSAGE
        assert remote == FORBIDDEN_DONATION_MESSAGE
        assert transactions == 0

    def test_owner_is_notified(self):
        async def scenario(client, db):
            await login_alice(client)
            await client.contribute(1, 25)
            await client.logout()
            await client.login("admin@example.com", "secret")
            await client.notifications.refresh()
            return client.notifications.unread(), await client.notifications.unread_count()

        unread, count = run_with_client(scenario)

        assert count == 1
        assert [n.type_name for n in unread] == ["donation_contribution"]

    def test_missing_event_is_not_found_view(self):
        async def scenario(client, db):
            lookup = await client.donations.load(999)
            return DetailViewModel.from_lookup(lookup)

        view = run_with_client(scenario)

        assert view.state == ViewState.NOT_FOUND


# =============================================================================
# ANNOUNCEMENTS, PROFILE, LOCATIONS
# =============================================================================

class TestAdministration:

    def test_announcement_feed_is_newest_first(self):
        async def scenario(client, db):
            await client.announcement_feed.load_first_page()
            return [a.id for a in client.announcement_feed.items]

        assert run_with_client(scenario) == [2, 1]

    def test_admin_publishes_to_head_of_feed(self):
        async def scenario(client, db):
            await client.login("admin@example.com", "secret")
            await client.announcement_feed.load_first_page()
            announcement = await client.publish_announcement(
                "Food drive", "Bring canned goods", priority="high"
            )
            return announcement, [a.id for a in client.announcement_feed.items]

        announcement, ids = run_with_client(scenario)

        assert announcement.id == 3
        assert announcement.priority == "high"
        assert ids == [3, 2, 1]

    def test_only_admins_publish(self):
        async def scenario(client, db):
            await client.login("bob@example.com", "secret")
            with pytest.raises(Forbidden):
                await client.publish_announcement("Hi", "Not allowed")
            return len(db.announcements)

        assert run_with_client(scenario) == 2

    def test_profile_update_changes_session_user(self):
        async def scenario(client, db):
            await login_alice(client)
            updated = await client.users_api.update_profile(
                first_name="Alice", last_name="Haddad", location_id=4
            )
            return updated, client.session.user, db.users[1].location_id

        updated, session_user, stored_location = run_with_client(scenario)

        assert session_user == updated
        assert updated.display_name == "Alice Haddad"
        assert updated.location_id == 4
        assert stored_location == 4

    def test_profile_rejects_unknown_location(self):
        async def scenario(client, db):
            await login_alice(client)
            with pytest.raises(ValidationFailed) as failure:
                await client.users_api.update_profile(location_id=99)
            return failure.value

        error = run_with_client(scenario)

        assert "location_id" in error.field_errors

    def test_locations_refresh_fills_store(self):
        async def scenario(client, db):
            await client.locations.refresh()
            return [location.label for location in client.location_store.get_all()]

        labels = run_with_client(scenario)

        assert len(labels) == 5
        assert labels[0] == "Achrafieh, Beirut"
