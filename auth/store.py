"""
auth/store.py -- Owner accounts.

Owners are the unit every sweep iterates over: list_user_ids() is the outer
loop of AuditService.sweep_all(). Repository + Data Mapper, same shape as
tracker/store.py; the users table may live in the same database.

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings
from core.db import make_engine

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


class UserStore:
    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> int:
        """Insert an owner and return its id.

        A taken username raises sqlalchemy.exc.IntegrityError from the unique
        index; the register route turns that into a 400.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    created_at=user.created_at or datetime.now(timezone.utc).isoformat(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def _fetch_one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        return self._fetch_one(_users.c.username == username)

    def get_by_id(self, user_id: int) -> User | None:
        return self._fetch_one(_users.c.id == user_id)

    def list_user_ids(self) -> list[int]:
        """Every owner id, ascending."""
        with self.engine.connect() as conn:
            return list(conn.execute(select(_users.c.id).order_by(_users.c.id)).scalars())

    def close(self) -> None:
        self.engine.dispose()


def _row_to_user(row) -> User:
    return User(id=row.id, username=row.username, hashed_password=row.hashed_password, created_at=row.created_at)
