"""Data models for the application."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class PoolState(str, Enum):
    """Application pool runtime state as reported by IIS."""
    STARTED = "Started"
    STARTING = "Starting"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    UNKNOWN = "Unknown"


class PoolAction(str, Enum):
    """Lifecycle action applied to an application pool."""
    RECYCLE = "recycle"
    STOP = "stop"


class PoolTarget(BaseModel):
    """Canonical description of one pool to act on.

    Built fresh for every record processed and discarded once the action
    has run. Empty host or pool names are allowed through; the lifecycle
    call reports them.
    """
    computer_name: str = Field("", alias="ComputerName", description="Host the pool lives on")
    name: str = Field("", alias="Name", description="Application pool name")
    sites: List[str] = Field(
        default_factory=list,
        alias="Sites",
        description="Sites served by the pool; informational only",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "ComputerName": "WEB01",
                "Name": "DefaultAppPool",
                "Sites": ["DEFAULT WEB SITE"],
            }
        },
    )

    def describe(self) -> str:
        """Return the text shown when asking for confirmation."""

        sites = ", ".join(self.sites) if self.sites else "no sites"
        return f"{self.computer_name}: {self.name} ({sites})"


class PoolStatus(BaseModel):
    """Pool state record returned by PassThru queries.

    Unknown properties returned by the host are kept as extras.
    """
    name: str = Field("", alias="Name")
    state: PoolState = Field(PoolState.UNKNOWN, alias="State")
    computer_name: Optional[str] = Field(None, alias="ComputerName")
    managed_runtime_version: Optional[str] = Field(None, alias="ManagedRuntimeVersion")
    managed_pipeline_mode: Optional[str] = Field(None, alias="ManagedPipelineMode")
    start_mode: Optional[str] = Field(None, alias="StartMode")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("state", mode="before")
    @classmethod
    def _normalize_state(cls, value: Any) -> PoolState:
        if isinstance(value, PoolState):
            return value
        text = str(value or "").strip().lower()
        for state in PoolState:
            if state.value.lower() == text:
                return state
        return PoolState.UNKNOWN


class PoolActionFailure(BaseModel):
    """An action failure reported as output data rather than raised."""
    computer_name: str = Field("", alias="ComputerName")
    name: str = Field("", alias="Name")
    action: PoolAction = Field(..., alias="Action")
    error: str = Field(..., alias="Error")
    error_id: Optional[str] = Field(None, alias="ErrorId")

    model_config = ConfigDict(populate_by_name=True)


class WinRMCredential(BaseModel):
    """Username and password attached to remote calls."""
    username: str
    password: SecretStr


class SessionContext(BaseModel):
    """Per-call context threaded through the pool commands."""
    credential: Optional[WinRMCredential] = None


class PoolActionRequest(BaseModel):
    """Body accepted by the pool action endpoints.

    Either ``records`` (output of an earlier stage) or the explicit
    parameters describe the pools to act on. ``approved`` is the
    non-interactive confirmation; without it no action runs.
    """
    records: List[Dict[str, Any]] = Field(default_factory=list)
    computer_name: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    sites: Optional[List[str]] = None
    pass_thru: bool = False
    approved: bool = False
    what_if: bool = False
    username: Optional[str] = None
    password: Optional[SecretStr] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "computer_name": ["web01"],
                "name": "DefaultAppPool",
                "pass_thru": True,
                "approved": True,
            }
        }
    )


class PoolRecordError(BaseModel):
    """Transport or execution failure for one record."""
    computer_name: str
    name: str
    error: str
    error_type: str


class PoolActionResponse(BaseModel):
    """Outcome of a pool action request."""
    action: PoolAction
    outputs: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[PoolRecordError] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
