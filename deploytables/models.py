"""
Pydantic v2 data models for deploytables.
"""
import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TABLE_NAME = "emberdeploy"
DEFAULT_FILE_NAME = "index.html"
DEFAULT_MANIFEST_SIZE = 10


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)

class DeployProfile(FrozenModel):
    name: str = Field(..., pattern=r"^[a-zA-Z0-9_-]+$")
    project: str
    dist_dir: str
    storage_account: Optional[str] = None
    secret_ref: str  # Reference name in keyring
    table_name: str = DEFAULT_TABLE_NAME
    file_name: str = DEFAULT_FILE_NAME
    manifest_size: int = Field(DEFAULT_MANIFEST_SIZE, ge=1)
    created_at: datetime

    @field_validator("project")
    @classmethod
    def validate_project(cls, v: str) -> str:
        if not v or ":" in v:
            raise ValueError("Project name must be non-empty and must not contain ':'")
        return v

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        # Azure table names: alphanumeric, 3-63 chars, not starting with a digit
        if not re.match(r"^[A-Za-z][A-Za-z0-9]{2,62}$", v):
            raise ValueError("Table name must be 3-63 alphanumeric characters starting with a letter")
        return v

class DeployConfig(FrozenModel):
    """Resolved settings handed to the lifecycle coordinator."""
    connection_string: Optional[str] = None
    storage_account: Optional[str] = None
    storage_access_key: Optional[str] = None
    table_name: str = DEFAULT_TABLE_NAME
    file_name: str = DEFAULT_FILE_NAME
    manifest_size: int = DEFAULT_MANIFEST_SIZE
    timeout: float = 30.0

    def missing_credentials(self) -> List[str]:
        """Names of the credential fields still needed, empty when usable."""
        if self.connection_string:
            return []
        return [
            name for name in ("storage_account", "storage_access_key")
            if not getattr(self, name)
        ]

class RevisionRecord(FrozenModel):
    partition_key: str
    row_key: str
    content: str
    timestamp: Optional[datetime] = None  # Server-assigned

class RowKeyFilter(FrozenModel):
    op: Literal["eq", "ne"]
    value: str

class RevisionListEntry(FrozenModel):
    revision: str
    timestamp: int  # Epoch millis
    active: bool

class RevisionData(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    revision_key: Optional[str] = None
    uploaded_revision_key: Optional[str] = None
    previous_revision_key: Optional[str] = None
    activated_revision_key: Optional[str] = None

class DeployContext(BaseModel):
    """Per-run state shared by the lifecycle phases, enriched in place."""
    model_config = ConfigDict(validate_assignment=True)

    project_name: str
    dist_dir: str
    revision: Optional[str] = None  # Command option override
    revision_data: RevisionData = Field(default_factory=RevisionData)
    revisions: List[RevisionListEntry] = Field(default_factory=list)

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        if not v or ":" in v:
            raise ValueError("Project name must be non-empty and must not contain ':'")
        return v

class DoctorCheck(FrozenModel):
    name: str
    status: Literal["pass", "warn", "fail"]
    detail: str
