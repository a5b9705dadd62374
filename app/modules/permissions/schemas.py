from pydantic import BaseModel
from typing import Optional, List


class Grant(BaseModel):
    email: Optional[str] = None
    owner: Optional[str] = None
    mac_address: Optional[str] = None
    experiment: Optional[str] = None
    role: Optional[str] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    created_at: Optional[str] = None
    table_id: Optional[str] = None

    class Config:
        from_attributes = True
        extra = "ignore"


class ResolvedPermission(BaseModel):
    email: Optional[str] = None
    owner: Optional[str] = None
    experiment_name: Optional[str] = None
    mac_address: Optional[str] = None
    role: Optional[str] = None
    valid_until: Optional[str] = None
    project_id: str
    dataset_name: str
    table_id: str
    access_level: str
    is_admin: bool


class PermissionsRequest(BaseModel):
    email: Optional[str] = None


class PermissionsResponse(BaseModel):
    success: bool = True
    permissions: List[ResolvedPermission]
