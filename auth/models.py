"""
auth/models.py -- Owner account dataclass.

An owner is the account under which domains, certificates and notification
settings are grouped. Pure data container; hashing lives in auth/passwords.py.

Layer rule: no imports from api/, core/ or tracker/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    username: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
