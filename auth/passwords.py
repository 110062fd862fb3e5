"""
auth/passwords.py -- bcrypt password hashing and constant-time login checks.

bcrypt is used directly rather than through passlib; passlib's wrap-bug probe
trips bcrypt 4.x's 72-byte limit. The API layer caps passwords at 72
characters so nothing is silently truncated.

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Compared against when the username is unknown, so a miss costs the same
# bcrypt work as a wrong password and response time does not reveal which.
_DUMMY_HASH: str = hash_password("expirywatch_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Return the User on a correct username/password pair, otherwise None."""
    user = store.get_by_username(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
