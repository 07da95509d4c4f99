"""
Repository layer for Guardian.

All SQL lives here and ONLY here. No database access outside this module.
"""

from guardian.repos.child_repo import ChildRepo
from guardian.repos.message_repo import MessageRepo
from guardian.repos.room_repo import RoomRepo
from guardian.repos.user_repo import UserRepo

__all__ = [
    "UserRepo",
    "ChildRepo",
    "RoomRepo",
    "MessageRepo",
]
