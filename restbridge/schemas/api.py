from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from restbridge.schemas.models import RepositoryInfo


class ConnectRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, description="Base URL of the Documentum REST Services endpoint")
    repository: str = Field(..., min_length=1, description="Repository (docbase) name")
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ConnectResponse(BaseModel):
    session_id: str
    repository_info: RepositoryInfo


class DisconnectRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class DqlRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1)
    max_rows: int = Field(0, ge=0, description="Maximum number of rows to return (0 = all)")


class DqlAvailabilityResponse(BaseModel):
    available: bool
    message: str


class CreateObjectRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    object_type: str = Field(..., min_length=1)
    object_name: Optional[str] = None
    folder_path: Optional[str] = Field(None, description="Folder path or 16-hex-digit folder id")
    attributes: Dict[str, Any] = Field(default_factory=dict)


class UpdateObjectRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    attributes: Dict[str, Any] = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
