"""
org/store.py -- SQLAlchemy Core persistence for units and designations.

Pattern: Repository + Data Mapper. UnitStore and DesignationStore are the
repositories; _row_to_unit and _row_to_designation are the mappers.

Codes are unique across active and inactive rows alike (the column carries a
UNIQUE constraint). code_exists() lets routes return a friendly 400 before the
insert; IntegrityError still covers the race.

Delete is soft (is_active = 0). The guards that block deleting a unit with
children or assigned users live in the routes, which combine
UnitStore.count_children() with UserStore.count_in_unit().

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: imports from core/ only.
"""

import json
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Engine

from core.db import designations, load_json, new_id, now_iso, units
from org.models import Designation, Unit

_UNIT_FIELDS = {"name", "code", "description", "parent_unit_id", "is_active", "metadata"}
_DESIGNATION_FIELDS = {"title", "code", "description", "level", "is_active", "metadata"}

_parent = units.alias("parent")


def _paginate(page: int, limit: int) -> tuple[int, int]:
    return limit, (page - 1) * limit


def _prepare(fields: dict) -> dict:
    """Convert bool / dict values to their column representation."""
    if "is_active" in fields:
        fields["is_active"] = 1 if fields["is_active"] else 0
    if "metadata" in fields:
        fields["metadata"] = json.dumps(fields["metadata"] or {})
    return fields


class UnitStore:
    """Repository for organizational units."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, unit_id: str) -> Optional[Unit]:
        with self.engine.connect() as conn:
            row = conn.execute(_unit_select().where(units.c.id == unit_id)).fetchone()
        return _row_to_unit(row) if row is not None else None

    def code_exists(self, code: str, exclude_id: Optional[str] = None) -> bool:
        query = select(units.c.id).where(units.c.code == code)
        if exclude_id:
            query = query.where(units.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def list_units(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        parent_unit_id: str = "",
        is_active: Optional[bool] = None,
    ) -> tuple[list[Unit], int]:
        """Return one page of units (newest first) and the total match count."""
        conditions = []
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(units.c.name).like(pattern),
                    func.lower(units.c.code).like(pattern),
                    func.lower(units.c.description).like(pattern),
                )
            )
        if parent_unit_id:
            conditions.append(units.c.parent_unit_id == parent_unit_id)
        if is_active is not None:
            conditions.append(units.c.is_active == (1 if is_active else 0))

        count_query = select(func.count()).select_from(units)
        limit_, offset = _paginate(page, limit)
        page_query = _unit_select().order_by(units.c.created_at.desc()).limit(limit_).offset(offset)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            page_query = page_query.where(and_(*conditions))

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return [_row_to_unit(r) for r in rows], total

    def count_children(self, unit_id: str) -> int:
        """Child units directly under unit_id, active or not."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(units)
                .where(units.c.parent_unit_id == unit_id)
            ).scalar()
        return result or 0

    def create(self, unit: Unit) -> str:
        unit_id = new_id()
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                units.insert().values(
                    id=unit_id,
                    name=unit.name,
                    code=unit.code,
                    description=unit.description,
                    parent_unit_id=unit.parent_unit_id,
                    is_active=1 if unit.is_active else 0,
                    metadata=json.dumps(unit.metadata or {}),
                    created_at=stamp,
                    updated_at=stamp,
                    created_by=unit.created_by,
                    updated_by=unit.created_by,
                )
            )
            conn.commit()
        return unit_id

    def update(self, unit_id: str, updated_by: Optional[str], **fields) -> bool:
        unknown = set(fields) - _UNIT_FIELDS
        if unknown:
            raise ValueError(f"Unknown unit fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                units.update()
                .where(units.c.id == unit_id)
                .values(updated_at=now_iso(), updated_by=updated_by, **_prepare(fields))
            )
            conn.commit()
        return result.rowcount > 0

    def deactivate(self, unit_id: str, updated_by: str) -> bool:
        return self.update(unit_id, updated_by, is_active=False)


class DesignationStore:
    """Repository for designations."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, designation_id: str) -> Optional[Designation]:
        with self.engine.connect() as conn:
            row = conn.execute(designations.select().where(designations.c.id == designation_id)).fetchone()
        return _row_to_designation(row) if row is not None else None

    def code_exists(self, code: str, exclude_id: Optional[str] = None) -> bool:
        query = select(designations.c.id).where(designations.c.code == code)
        if exclude_id:
            query = query.where(designations.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def list_designations(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        level: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[Designation], int]:
        """Return one page ordered by level (unlevelled last), newest first within a level."""
        conditions = []
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(designations.c.title).like(pattern),
                    func.lower(designations.c.code).like(pattern),
                    func.lower(designations.c.description).like(pattern),
                )
            )
        if level is not None:
            conditions.append(designations.c.level == level)
        if is_active is not None:
            conditions.append(designations.c.is_active == (1 if is_active else 0))

        count_query = select(func.count()).select_from(designations)
        limit_, offset = _paginate(page, limit)
        page_query = (
            designations.select()
            .order_by(designations.c.level.is_(None), designations.c.level, designations.c.created_at.desc())
            .limit(limit_)
            .offset(offset)
        )
        if conditions:
            count_query = count_query.where(and_(*conditions))
            page_query = page_query.where(and_(*conditions))

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return [_row_to_designation(r) for r in rows], total

    def create(self, designation: Designation) -> str:
        designation_id = new_id()
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                designations.insert().values(
                    id=designation_id,
                    title=designation.title,
                    code=designation.code,
                    description=designation.description,
                    level=designation.level,
                    is_active=1 if designation.is_active else 0,
                    metadata=json.dumps(designation.metadata or {}),
                    created_at=stamp,
                    updated_at=stamp,
                    created_by=designation.created_by,
                    updated_by=designation.created_by,
                )
            )
            conn.commit()
        return designation_id

    def update(self, designation_id: str, updated_by: Optional[str], **fields) -> bool:
        unknown = set(fields) - _DESIGNATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown designation fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                designations.update()
                .where(designations.c.id == designation_id)
                .values(updated_at=now_iso(), updated_by=updated_by, **_prepare(fields))
            )
            conn.commit()
        return result.rowcount > 0

    def deactivate(self, designation_id: str, updated_by: str) -> bool:
        return self.update(designation_id, updated_by, is_active=False)


# ---------------------------------------------------------------------------
# Query builders and row mappers
# ---------------------------------------------------------------------------


def _unit_select():
    return select(units, _parent.c.name.label("parent_unit_name")).select_from(
        units.outerjoin(_parent, units.c.parent_unit_id == _parent.c.id)
    )


def _row_to_unit(row) -> Unit:
    return Unit(
        id=row.id,
        name=row.name,
        code=row.code,
        description=row.description,
        parent_unit_id=row.parent_unit_id,
        is_active=bool(row.is_active),
        metadata=load_json(row.metadata),
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
        updated_by=row.updated_by,
        parent_unit_name=row._mapping.get("parent_unit_name"),
    )


def _row_to_designation(row) -> Designation:
    return Designation(
        id=row.id,
        title=row.title,
        code=row.code,
        description=row.description,
        level=row.level,
        is_active=bool(row.is_active),
        metadata=load_json(row.metadata),
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
        updated_by=row.updated_by,
    )
