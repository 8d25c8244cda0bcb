from pydantic import BaseModel


class AccessSummary(BaseModel):
    role: str
    department_id: str | None = None
    department_filter: str | None = None
    has_supervisor_privileges: bool
    can_manage_departments: bool
    can_assign_user_to_department: bool
    can_manage_users: bool
    can_manage_stages: bool
    can_view_reports: bool
    can_view_org_reports: bool


class JobAccessRequest(BaseModel):
    id: str
    org_id: str | None = None  # defaults to the session's org
    department_id: str | None = None


class JobAccess(BaseModel):
    job_id: str
    can_view: bool
    can_edit: bool
    can_delete: bool
    can_assign: bool
    can_start_timer: bool
    can_add_material: bool


class LaborEntryAccessRequest(BaseModel):
    id: str
    worker_id: str
    job_id: str
    org_id: str | None = None
    job_department_id: str | None = None


class LaborEntryAccess(BaseModel):
    entry_id: str
    can_view: bool
    can_edit: bool
    can_stop_timer: bool


class InventoryAccess(BaseModel):
    can_view: bool
    can_manage: bool
