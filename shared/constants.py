"""
Chat constants shared by the realtime core and the user/profile collaborators.

Changing the room set or the role set requires redeploying every consumer.
"""
from enum import Enum
from typing import Optional


# Fixed rooms, in the order offered to clients via `room_options`.
CHAT_ROOMS: tuple[str, ...] = ("room-1", "room-2", "room-3")


class UserRole(str, Enum):
    """Role a user holds inside a room; each room seats one of each."""

    INFLUENCER = "influencer"
    BRAND = "brand"

    @classmethod
    def parse(cls, value: object) -> Optional["UserRole"]:
        """Normalize (trim, lower-case) and map to a role, or None when invalid."""
        raw = f"{value or ''}".strip().lower()
        try:
            return cls(raw)
        except ValueError:
            return None


DEFAULT_ROLE = UserRole.INFLUENCER

USER_ROLES: tuple[str, ...] = tuple(r.value for r in UserRole)

SYSTEM_SENDER = "System"


def is_chat_room(room_id: object) -> bool:
    return isinstance(room_id, str) and room_id in CHAT_ROOMS


__all__ = [
    "CHAT_ROOMS",
    "UserRole",
    "DEFAULT_ROLE",
    "USER_ROLES",
    "SYSTEM_SENDER",
    "is_chat_room",
]
