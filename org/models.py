"""
org/models.py -- Domain dataclasses for the organizational structure.

Units form a tree through parent_unit_id. Designations are a flat list of
job titles ordered by level (lower level = more senior). Users point at one
of each (auth/models.User.unit_id / designation_id).

Pure data containers; every rule (code uniqueness, delete guards) lives in
org/store.py and the routes.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Unit:
    """An organizational unit (department, branch, team).

    parent_unit_name is a read-only join column filled by UnitStore.get()
    and UnitStore.list_units().
    """

    name: str
    code: str  # unique across all units, active or not
    id: Optional[str] = None
    description: Optional[str] = None
    parent_unit_id: Optional[str] = None
    is_active: bool = True
    metadata: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    parent_unit_name: Optional[str] = None


@dataclass
class Designation:
    """A job title users can hold."""

    title: str
    code: str  # unique across all designations
    id: Optional[str] = None
    description: Optional[str] = None
    level: Optional[int] = None
    is_active: bool = True
    metadata: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
