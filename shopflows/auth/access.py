"""
Department-scoped access checks.

- platform_admin: everything, across all organizations
- shop_admin: everything inside their organization
- supervisor: their department (or every department if none is assigned)
- shop_user: their own work, plus jobs in their department

These checks drive what the UI offers. The data layer enforces the same
rules on its own; nothing here is a security boundary.
"""
from __future__ import annotations

from dataclasses import dataclass

from shopflows.auth.context import Session
from shopflows.auth.permissions import (
    SHOP_ADMIN,
    SHOP_USER,
    is_admin_role,
    is_platform_admin_role,
    is_supervisor_role,
)


@dataclass(frozen=True)
class Actor:
    id: str | None
    org_id: str | None
    role: str
    department_id: str | None = None

    @classmethod
    def from_session(cls, session: Session, department_id: str | None = None) -> "Actor":
        return cls(
            id=session.user_id,
            org_id=session.org_id,
            role=session.role,
            department_id=department_id,
        )


@dataclass(frozen=True)
class Job:
    id: str
    org_id: str
    department_id: str | None = None


@dataclass(frozen=True)
class LaborEntry:
    id: str
    org_id: str
    worker_id: str
    job_id: str


@dataclass(frozen=True)
class Department:
    id: str
    org_id: str
    is_active: bool = True


@dataclass(frozen=True)
class Stage:
    id: str
    org_id: str
    department_id: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class UserRecord:
    id: str
    org_id: str
    role: str
    department_id: str | None = None


def _is_shop_admin(actor: Actor) -> bool:
    return actor.role == SHOP_ADMIN


def _same_org(actor: Actor, org_id: str) -> bool:
    return actor.org_id == org_id


def can_access_department(actor: Actor, department_id: str | None) -> bool:
    """Unassigned actors and unassigned targets are open to everyone."""
    if is_admin_role(actor.role):
        return True
    if not actor.department_id or not department_id:
        return True
    return actor.department_id == department_id


def _org_scoped(actor: Actor, org_id: str) -> bool | None:
    """Shared prefix of most checks: True/False when decided, None to continue."""
    if is_platform_admin_role(actor.role):
        return True
    if not _same_org(actor, org_id):
        return False
    if _is_shop_admin(actor):
        return True
    return None


# Jobs

def can_view_job(actor: Actor, job: Job) -> bool:
    decided = _org_scoped(actor, job.org_id)
    if decided is not None:
        return decided
    return can_access_department(actor, job.department_id)


def can_edit_job(actor: Actor, job: Job) -> bool:
    return can_view_job(actor, job)


def can_delete_job(actor: Actor, job: Job) -> bool:
    if not is_admin_role(actor.role):
        return False
    return is_platform_admin_role(actor.role) or _same_org(actor, job.org_id)


def can_assign_job(actor: Actor, job: Job) -> bool:
    if actor.role == SHOP_USER:
        return False
    return can_view_job(actor, job)


# Labor

def can_view_labor_entry(actor: Actor, entry: LaborEntry, job_department_id: str | None = None) -> bool:
    decided = _org_scoped(actor, entry.org_id)
    if decided is not None:
        return decided
    if entry.worker_id == actor.id:
        return True
    if is_supervisor_role(actor.role):
        return can_access_department(actor, job_department_id)
    return False


def can_edit_labor_entry(actor: Actor, entry: LaborEntry, job_department_id: str | None = None) -> bool:
    return can_view_labor_entry(actor, entry, job_department_id)


def can_start_timer(actor: Actor, job: Job) -> bool:
    return can_view_job(actor, job)


def can_stop_timer(actor: Actor, entry: LaborEntry, job_department_id: str | None = None) -> bool:
    if entry.worker_id == actor.id:
        return True
    return can_edit_labor_entry(actor, entry, job_department_id)


# Inventory

def can_view_inventory(actor: Actor) -> bool:
    return bool(actor.id and actor.org_id)


def can_manage_inventory(actor: Actor) -> bool:
    if actor.role == SHOP_USER:
        return False
    return bool(actor.id and actor.org_id)


def can_add_material(actor: Actor, job: Job) -> bool:
    return can_view_job(actor, job)


# Departments

def can_manage_departments(actor: Actor) -> bool:
    return is_admin_role(actor.role)


def can_view_department(actor: Actor, department: Department) -> bool:
    decided = _org_scoped(actor, department.org_id)
    if decided is not None:
        return decided
    return can_access_department(actor, department.id)


def can_assign_user_to_department(actor: Actor) -> bool:
    return is_admin_role(actor.role)


# Users

def can_manage_users(actor: Actor) -> bool:
    return is_admin_role(actor.role)


def can_view_user(actor: Actor, target: UserRecord) -> bool:
    if actor.id is not None and actor.id == target.id:
        return True
    decided = _org_scoped(actor, target.org_id)
    if decided is not None:
        return decided
    if is_supervisor_role(actor.role):
        return can_access_department(actor, target.department_id)
    return False


def can_edit_user(actor: Actor, target: UserRecord) -> bool:
    return can_view_user(actor, target)


# Stages

def can_manage_stages(actor: Actor) -> bool:
    return is_admin_role(actor.role)


def can_view_stage(actor: Actor, stage: Stage) -> bool:
    decided = _org_scoped(actor, stage.org_id)
    if decided is not None:
        return decided
    if not stage.is_active:
        return False
    return can_access_department(actor, stage.department_id)


# Reports

def can_view_reports(actor: Actor) -> bool:
    return bool(actor.id and actor.org_id)


def can_view_org_reports(actor: Actor) -> bool:
    return is_admin_role(actor.role)


def can_view_department_reports(actor: Actor, department_id: str) -> bool:
    if actor.role == SHOP_USER:
        return False
    return can_access_department(actor, department_id)


def department_filter(actor: Actor) -> str | None:
    """Department to filter listings by, or None when the actor sees all."""
    if is_admin_role(actor.role):
        return None
    return actor.department_id or None


def has_supervisor_privileges(actor: Actor) -> bool:
    return is_admin_role(actor.role) or is_supervisor_role(actor.role)
