"""
Donation Client CLI

Examples:
  python -m donation_client login alice@example.com secret
  python -m donation_client feed --pages 2
  python -m donation_client vote 7 upvote
  python -m donation_client donations --type request
  python -m donation_client donate 5 50
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .contracts.base import ClientError
from .contracts.votes import VoteChoice
from .engine import ClientConfig, DonationPlatformClient
from .observability import configure_logging
from .presentation import DonationProgressViewModel, FeedViewModel, user_message


def _print_post(post):
    votes = post.votes
    marker = {"upvote": "^", "downvote": "v"}.get(votes.user_vote.value, " ")
    print(f"  [{post.id:>4}] {marker} {votes.total:+d} "
          f"({votes.upvotes}/{votes.downvotes})  {post.content[:60]}")


def _print_event(event):
    progress = DonationProgressViewModel.from_event(event)
    print(f"  [{event.id:>4}] {event.type:<8} {event.status:<10} "
          f"{progress.percent:>3}%  {event.title}")


async def _run(args: argparse.Namespace, client: DonationPlatformClient) -> int:
    client.start()

    if args.command == "login":
        user = await client.login(args.email, args.password)
        print(f"Logged in as {user.username} (verified: {user.verified})")
    elif args.command == "logout":
        await client.logout()
        print("Logged out")
    elif args.command == "feed":
        feed = client.community_feed
        if args.search:
            feed.set_filters(search=args.search)
        result = await feed.load_first_page()
        for _ in range(args.pages - 1):
            if result.exhausted:
                break
            result = await feed.load_next_page()
        for post in feed.items:
            _print_post(post)
        state = "end of feed" if feed.is_exhausted else "more available"
        print(f"{len(feed.items)} posts ({state})")
    elif args.command == "vote":
        await client.community_feed.load_first_page()
        if args.post_id not in client.posts:
            lookup = await client.community_api.get(args.post_id)
            if not lookup.found:
                print(f"Post {args.post_id} not found")
                return 1
            client.posts.upsert(lookup.entity)
        state = await client.interactions.toggle(args.post_id, VoteChoice(args.direction))
        print(f"Post {args.post_id}: {state.upvotes} up / {state.downvotes} down "
              f"(your vote: {state.user_vote.value})")
    elif args.command == "donations":
        if args.type == "request":
            outcome = await client.donations.refresh_requests()
        elif args.type == "offer":
            outcome = await client.donations.refresh_offers()
        else:
            outcome = await client.donations.refresh()
        view = FeedViewModel.from_outcome(outcome)
        for warning in view.warnings:
            print(f"WARNING: {warning}")
        for event in view.items:
            _print_event(event)
    elif args.command == "donate":
        transaction = await client.contribute(args.event_id, args.amount)
        event = client.events.get_by_id(args.event_id)
        print(f"Transaction {transaction.id} ({transaction.status})")
        if event is not None:
            _print_event(event)
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="donation_client",
        description="Donation platform client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        '--base-url',
        default=None,
        help='API base URL (default: $DONATION_API_BASE_URL or localhost)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every request and store write'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    login = sub.add_parser('login', help='Log in and persist the credential')
    login.add_argument('email')
    login.add_argument('password')

    sub.add_parser('logout', help='Log out and clear the persisted credential')

    feed = sub.add_parser('feed', help='Show the community feed')
    feed.add_argument('--pages', '-p', type=int, default=1, help='Pages to load')
    feed.add_argument('--search', '-s', default=None, help='Search text')

    vote = sub.add_parser('vote', help='Toggle a vote on a post')
    vote.add_argument('post_id', type=int)
    vote.add_argument('direction', choices=['upvote', 'downvote'])

    donations = sub.add_parser('donations', help='List donation events')
    donations.add_argument('--type', '-t', choices=['request', 'offer'], default=None)

    donate = sub.add_parser('donate', help='Contribute to a donation event')
    donate.add_argument('event_id', type=int)
    donate.add_argument('amount', type=float)

    args = parser.parse_args()
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    config = ClientConfig.from_env()
    if args.base_url:
        config.transport.base_url = args.base_url
    if config.credentials_path is None:
        config.credentials_path = Path.home() / ".donation_client" / "auth.json"

    async def run() -> int:
        async with DonationPlatformClient(config) as client:
            return await _run(args, client)

    try:
        code = asyncio.run(run())
    except ClientError as e:
        print(f"Error: {user_message(e)}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
