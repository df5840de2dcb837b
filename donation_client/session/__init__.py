"""
Session State

Process-wide authentication state, injected into the remote client.

LIFECYCLE:
==========
1. hydrate()  - load a persisted credential (if any)
2. login()    - set credential + user, persist
3. logout()   - clear credential + user, persist, run teardown hooks

The remote client reads `token` at CALL time, never at construction,
so login/logout take effect on the very next request.
"""

from __future__ import annotations
from pathlib import Path
from typing import Callable, List, Optional
from abc import ABC, abstractmethod
import json
import logging

from ..contracts.entities import UserProfile


logger = logging.getLogger(__name__)

STORAGE_KEY = "auth-storage"


# =============================================================================
# CREDENTIAL STORES
# =============================================================================

class CredentialStore(ABC):
    """Where the session is persisted between processes."""

    @abstractmethod
    def load(self) -> Optional[dict]:
        pass

    @abstractmethod
    def save(self, state: Optional[dict]):
        pass


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: Optional[dict] = None):
        self._state = dict(initial) if initial else None

    def load(self) -> Optional[dict]:
        return dict(self._state) if self._state else None

    def save(self, state: Optional[dict]):
        self._state = dict(state) if state else None


class FileCredentialStore(CredentialStore):
    """
    JSON file store: {"auth-storage": {"state": {"token": ..., "user": {...}}}}

    A corrupt or unreadable file hydrates as "logged out".
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    def load(self) -> Optional[dict]:
        if not self._path.exists():
            return None
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", self._path, e)
            return None
        state = document.get(STORAGE_KEY, {}).get("state") if isinstance(document, dict) else None
        return state if isinstance(state, dict) else None

    def save(self, state: Optional[dict]):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if state is None:
            if self._path.exists():
                self._path.unlink()
            return
        with open(self._path, 'w', encoding='utf-8') as f:
            json.dump({STORAGE_KEY: {"state": state}}, f, indent=2)


# =============================================================================
# SESSION STATE
# =============================================================================

class SessionState:
    """
    Current credential and user.

    Teardown hooks registered with on_logout() run after the state is
    cleared; stores use them to drop per-user cached data.
    """

    def __init__(self, store: Optional[CredentialStore] = None):
        self._store = store or MemoryCredentialStore()
        self._token: Optional[str] = None
        self._user: Optional[UserProfile] = None
        self._teardown_hooks: List[Callable[[], None]] = []

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def hydrate(self) -> bool:
        """Load persisted credential. Returns True if a session was restored."""
        state = self._store.load()
        if not state or not state.get("token"):
            self._token, self._user = None, None
            return False
        self._token = str(state["token"])
        user = state.get("user")
        self._user = UserProfile.from_payload(user) if user else None
        logger.info("Session restored for user %s", self._user.id if self._user else "?")
        return True

    def login(self, token: str, user: Optional[UserProfile] = None):
        if not token:
            raise ValueError("token must be a non-empty string")
        self._token = token
        self._user = user
        self._persist()

    def update_user(self, user: UserProfile):
        self._user = user
        self._persist()

    def logout(self):
        self._token, self._user = None, None
        self._store.save(None)
        for hook in list(self._teardown_hooks):
            hook()

    def on_logout(self, hook: Callable[[], None]) -> Callable[[], None]:
        """Register a teardown hook. Returns a function that unregisters it."""
        self._teardown_hooks.append(hook)

        def unregister():
            if hook in self._teardown_hooks:
                self._teardown_hooks.remove(hook)
        return unregister

    def _persist(self):
        self._store.save({
            "token": self._token,
            "user": self._user.to_payload() if self._user else None,
            "isAuthenticated": self.is_authenticated,
        })


__all__ = [
    'CredentialStore', 'MemoryCredentialStore', 'FileCredentialStore',
    'SessionState', 'STORAGE_KEY',
]
