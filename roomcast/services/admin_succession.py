# roomcast/services/admin_succession.py
"""
Admin succession policy.

When a room's creator leaves and other members remain, one of them becomes the
new creator. The default policy picks the member that has been in the room the
longest (earliest join order). RoomStore accepts any callable with the same
signature, so a deployment can swap the policy without touching the store.
"""

from __future__ import annotations

from typing import Callable, Sequence

SuccessionPolicy = Callable[[Sequence[str]], str]


def select_successor(remaining_member_ids: Sequence[str]) -> str:
    """
    Pick the new creator among remaining members.

    Args:
        remaining_member_ids: member ids in join order, departing creator excluded

    Raises:
        ValueError: if nobody is left to take over
    """
    if not remaining_member_ids:
        raise ValueError("No remaining members to promote")
    return remaining_member_ids[0]
