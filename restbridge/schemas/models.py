"""Stable record types returned by the gateway, independent of backend JSON shapes."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RepositoryInfo(BaseModel):
    name: str
    id: Optional[str] = None
    server_version: Optional[str] = None
    endpoint: str

    model_config = {"frozen": True}


class SessionInfo(BaseModel):
    session_id: str
    connected: bool = True
    repository: str
    user: str
    endpoint: str
    session_start: datetime
    last_activity: datetime
    server_version: Optional[str] = None


class ObjectRecord(BaseModel):
    object_id: str = ""
    type: str = ""
    name: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict)
    # Both permission fields are populated together or not at all.
    permission_level: Optional[int] = None
    permission_label: Optional[str] = None
    extended_permissions: Optional[List[str]] = None


class AttributeDescriptor(BaseModel):
    name: str
    data_type: Optional[str] = None
    length: int = 0
    repeating: bool = False
    required: bool = False
    default_value: Optional[str] = None
    inherited: bool = False


class TypeDescriptor(BaseModel):
    name: str
    super_type: str = ""
    system_type: bool = False
    category: str = ""
    attributes: List[AttributeDescriptor] = Field(default_factory=list)

    def repeating_attribute_names(self) -> frozenset:
        return frozenset(a.name for a in self.attributes if a.repeating)


class ColumnDescriptor(BaseModel):
    name: str
    type: str = "STRING"
    length: int = 0
    repeating: bool = False


class QueryResult(BaseModel):
    columns: List[ColumnDescriptor] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    has_more: bool = False
    execution_time_ms: int = 0


class UserRecord(BaseModel):
    object_id: str = ""
    user_name: str = ""
    user_os_name: str = ""
    user_address: str = ""
    user_state: str = ""
    default_folder: str = ""
    user_group_name: str = ""
    super_user: bool = False


class GroupRecord(BaseModel):
    object_id: str = ""
    group_name: str = ""
    description: str = ""
    group_class: str = ""
    group_admin: str = ""
    is_private: bool = False
    users_names: List[str] = Field(default_factory=list)
    groups_names: List[str] = Field(default_factory=list)
