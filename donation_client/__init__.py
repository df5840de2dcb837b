"""
Donation Platform Client

Client-side data synchronisation for the donation platform API:
typed remote clients, local entity stores, optimistic votes and
comments, and paginated feeds.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Entities, vote state, pagination envelopes, error taxonomy
   - Parsing is all-or-nothing: MalformedResponse, never a partial entity

2. SESSION (session/)
   - Credential + user, hydrated from and persisted to a credential store
   - Injected into the transport; logout runs teardown hooks

3. REMOTE RESOURCE CLIENT (remote/)
   - One typed async client per resource family over httpx
   - MUST NOT: cache, retry, or raise for 404 on get()

4. LOCAL ENTITY STORE (store/)
   - Insertion-ordered, id-keyed caches with sequence-guarded writes
   - Repositories apply the live/fallback policy

5. OPTIMISTIC INTERACTION LAYER (interaction/)
   - Vote state machine and optimistic comments with rollback
   - At most one in-flight vote per post

6. PAGINATED FEED CONTROLLER (feed/)
   - "Load more" with de-duplication and single-flight loads

7. OBSERVABILITY (observability/)
   - Append-only AuditLog mirrored to stdlib logging

8. PRESENTATION (presentation/)
   - ViewModels: loading / ready / not found / error, user messages
"""

from .engine import ClientConfig, DonationPlatformClient

__version__ = "0.1.0"

__all__ = ['ClientConfig', 'DonationPlatformClient', '__version__']
