# roomcast/services/identity_registry.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional
import logging

from roomcast.core.errors import UserNotFound
from roomcast.models.models import AuthenticatePayload, User

logger = logging.getLogger(__name__)

# ============================================================================
# IDENTITY REGISTRY
# ============================================================================

class IdentityRegistry:
    """
    Binds live connections to user profiles.

    Data Structures:
        users: Maps user_id -> User
               Example: {"u1": User(id="u1", username="alice", connection_id="c-9")}

        bindings: Maps connection_id -> user_id (at most one per connection)
                  Example: {"c-9": "u1"}

    A user outlives its connection: after a transport loss the user keeps its
    entry (with ``connection_id=None``) until the disconnect reaper purges it or
    the same user id authenticates again from a new connection.
    """

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.bindings: Dict[str, str] = {}

    def authenticate(self, connection_id: str, profile: AuthenticatePayload) -> tuple[User, Optional[str]]:
        """
        Bind ``connection_id`` to the given profile.

        Re-authenticating the same connection overwrites the prior binding.
        Authenticating a known user id from a new connection moves the user
        over to it (reconnect).

        Returns:
            (user, displaced_user_id) where displaced_user_id is the id of a
            different user that this connection was bound to before, if any.
        """
        displaced: Optional[str] = None
        previous_user_id = self.bindings.get(connection_id)
        if previous_user_id is not None and previous_user_id != profile.id:
            previous = self.users.get(previous_user_id)
            if previous is not None and previous.connection_id == connection_id:
                previous.connection_id = None
                displaced = previous_user_id

        user = self.users.get(profile.id)
        if user is None:
            user = User(
                id=profile.id,
                username=profile.username,
                avatar=profile.avatar,
                connection_id=connection_id,
                joined_at=datetime.now(timezone.utc),
            )
            self.users[user.id] = user
        else:
            if user.connection_id and user.connection_id != connection_id:
                # Older socket of the same user loses its binding
                self.bindings.pop(user.connection_id, None)
            user.username = profile.username
            user.avatar = profile.avatar
            user.connection_id = connection_id

        self.bindings[connection_id] = user.id
        logger.info("✓ Connection %s bound to %s (%s)", connection_id, user.username, user.id)
        return user, displaced

    def lookup(self, connection_id: str) -> Optional[User]:
        user_id = self.bindings.get(connection_id)
        if user_id is None:
            return None
        return self.users.get(user_id)

    def require(self, connection_id: str) -> User:
        user = self.lookup(connection_id)
        if user is None:
            raise UserNotFound()
        return user

    def unbind(self, connection_id: str) -> Optional[User]:
        """
        Drop the binding of a connection. The user stays registered and keeps
        its room memberships; only its live connection is cleared.
        """
        user_id = self.bindings.pop(connection_id, None)
        if user_id is None:
            return None
        user = self.users.get(user_id)
        if user is not None and user.connection_id == connection_id:
            user.connection_id = None
        return user

    def get(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def connection_for(self, user_id: str) -> Optional[str]:
        user = self.users.get(user_id)
        return user.connection_id if user else None

    def remove(self, user_id: str) -> Optional[User]:
        """Delete the identity and every binding that still points at it."""
        user = self.users.pop(user_id, None)
        for connection_id in [c for c, u in self.bindings.items() if u == user_id]:
            del self.bindings[connection_id]
        return user

    def __len__(self) -> int:
        return len(self.users)
