"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as org/store.py).
UserStore and RefreshTokenStore are the repositories; _row_to_user and
_row_to_refresh_token are the mappers. Route and service code never touches
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Refresh tokens are stored as SHA-256 digests only. A stolen database dump
  does not yield usable tokens.

  Revocation is physical deletion. A deleted row can never become valid again,
  and the validity check needs no "revoked" flag to consult.

The schema lives in core/db.py; both stores share the Engine built there.

Layer rule: no imports from api/ or org/.
"""

from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import RefreshToken, User
from core.db import designations, load_json, new_id, now_iso, refresh_tokens, to_iso, units, users

# Columns a caller may change through UserStore.update_user(). Anything else
# (id, email, password_hash, created_*) has a dedicated method or is immutable.
_UPDATABLE_FIELDS = {
    "first_name",
    "last_name",
    "role",
    "unit_id",
    "designation_id",
    "is_active",
    "metadata",
}


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        user_id = store.create_user(User(email="a@b.dev", ..., password_hash=hash_password("secret")))
        user = store.get_active_by_email("a@b.dev")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key regardless of is_active."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_active_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where((users.c.id == user_id) & (users.c.is_active == 1))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_active_by_email(self, email: str) -> User | None:
        """Login lookup. Inactive (soft-deleted) accounts are invisible here."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where((users.c.email == email) & (users.c.is_active == 1))).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.email == email)).fetchone()
        return row is not None

    def get_profile(self, user_id: str) -> User | None:
        """Return the user joined with its unit name and designation title."""
        with self.engine.connect() as conn:
            row = conn.execute(_profile_select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        role: str = "",
        unit_id: str = "",
        is_active: bool | None = None,
    ) -> tuple[list[User], int]:
        """Return one page of users (newest first) and the total match count.

        search is a case-insensitive substring match on email, first and last
        name.
        """
        conditions = []
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(users.c.email).like(pattern),
                    func.lower(users.c.first_name).like(pattern),
                    func.lower(users.c.last_name).like(pattern),
                )
            )
        if role:
            conditions.append(users.c.role == role)
        if unit_id:
            conditions.append(users.c.unit_id == unit_id)
        if is_active is not None:
            conditions.append(users.c.is_active == (1 if is_active else 0))
        where = and_(*conditions) if conditions else None

        count_query = select(func.count()).select_from(users)
        page_query = _profile_select().order_by(users.c.created_at.desc()).limit(limit).offset((page - 1) * limit)
        if where is not None:
            count_query = count_query.where(where)
            page_query = page_query.where(where)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return [_row_to_user(r) for r in rows], total

    def count_in_unit(self, unit_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users).where(users.c.unit_id == unit_id)).scalar()
        return result or 0

    def count_in_designation(self, designation_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(users).where(users.c.designation_id == designation_id)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Routes check email_exists() first for a friendly error and still catch
        IntegrityError for the race between the check and the insert.
        """
        user_id = new_id()
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    email=user.email,
                    password_hash=user.password_hash,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=user.role,
                    unit_id=user.unit_id,
                    designation_id=user.designation_id,
                    is_active=1 if user.is_active else 0,
                    force_password_change=1 if user.force_password_change else 0,
                    metadata=json.dumps(user.metadata or {}),
                    preferences=json.dumps(user.preferences or {}),
                    created_at=stamp,
                    updated_at=stamp,
                    created_by=user.created_by,
                    updated_by=user.created_by,
                )
            )
            conn.commit()
        return user_id

    def update_user(self, user_id: str, updated_by: str | None, **fields) -> bool:
        """Update mutable profile fields on an existing user.

        Accepted fields: see _UPDATABLE_FIELDS. is_active is passed as bool and
        metadata as dict; both are converted for storage here. Unknown keys
        raise ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "metadata" in fields:
            fields["metadata"] = json.dumps(fields["metadata"] or {})
        with self.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(updated_at=now_iso(), updated_by=updated_by, **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def set_password(self, user_id: str, password_hash: str, *, force_change: bool, updated_by: str) -> bool:
        """Replace the password hash and set or clear the force-change flag.

        Used by self-service change (force_change=False) and admin reset
        (force_change=True). Revoking the user's refresh tokens is the
        caller's job -- see SessionService.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(
                    password_hash=password_hash,
                    force_password_change=1 if force_change else 0,
                    updated_at=now_iso(),
                    updated_by=updated_by,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def deactivate(self, user_id: str, updated_by: str) -> bool:
        """Soft delete: the row stays for audit joins, login stops working."""
        return self.update_user(user_id, updated_by, is_active=False)

    def get_preferences(self, user_id: str) -> dict | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.preferences).where(users.c.id == user_id)).fetchone()
        if row is None:
            return None
        return load_json(row.preferences)

    def set_preferences(self, user_id: str, preferences: dict) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(preferences=json.dumps(preferences), updated_at=now_iso(), updated_by=user_id)
            )
            conn.commit()
        return result.rowcount > 0


class RefreshTokenStore:
    """Repository for persisted refresh-token digests.

    One row per issued refresh token. Multiple rows per user are normal
    (one per signed-in device).
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def store(self, user_id: str, token_digest: str, expires_at: datetime) -> str:
        """Insert a new row and return its ID. Never updates an existing row."""
        row_id = new_id()
        with self.engine.connect() as conn:
            conn.execute(
                refresh_tokens.insert().values(
                    id=row_id,
                    user_id=user_id,
                    token_hash=token_digest,
                    expires_at=to_iso(expires_at),
                    created_at=now_iso(),
                )
            )
            conn.commit()
        return row_id

    def is_valid(self, token_digest: str, user_id: str) -> bool:
        """True iff a row with this digest belongs to user_id and has not expired."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(refresh_tokens.c.id).where(
                    (refresh_tokens.c.token_hash == token_digest)
                    & (refresh_tokens.c.user_id == user_id)
                    & (refresh_tokens.c.expires_at > now_iso())
                )
            ).fetchone()
        return row is not None

    def get(self, token_digest: str) -> RefreshToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(refresh_tokens.select().where(refresh_tokens.c.token_hash == token_digest)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def revoke(self, token_digest: str) -> int:
        """Delete the row for one token. Returns rows deleted; 0 is not an error."""
        with self.engine.connect() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.token_hash == token_digest))
            conn.commit()
        return result.rowcount

    def revoke_all_for_user(self, user_id: str) -> int:
        """Delete every row of a user -- signs them out on every device."""
        with self.engine.connect() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: str) -> int:
        """Number of unexpired sessions for a user."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(refresh_tokens)
                .where((refresh_tokens.c.user_id == user_id) & (refresh_tokens.c.expires_at > now_iso()))
            ).scalar()
        return result or 0

    def purge_expired(self) -> int:
        """Delete rows past their expiry. Housekeeping only -- is_valid() already ignores them."""
        with self.engine.connect() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.expires_at <= now_iso()))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Query builders and row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _profile_select():
    return select(
        users,
        units.c.name.label("unit_name"),
        designations.c.title.label("designation_title"),
    ).select_from(
        users.outerjoin(units, users.c.unit_id == units.c.id).outerjoin(
            designations, users.c.designation_id == designations.c.id
        )
    )


def _row_to_user(row) -> User:
    # unit_name / designation_title only exist on rows from _profile_select().
    mapping = row._mapping
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        unit_id=row.unit_id,
        designation_id=row.designation_id,
        is_active=bool(row.is_active),
        force_password_change=bool(row.force_password_change),
        metadata=load_json(row.metadata),
        preferences=load_json(row.preferences),
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
        updated_by=row.updated_by,
        unit_name=mapping.get("unit_name"),
        designation_title=mapping.get("designation_title"),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )