"""
Pydantic schemas for the Facility Occupancy & Evacuation service.

These schemas define the data structures passed between the ledger,
the occupancy reconciler, the evacuation processor and the API layer.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Placeholders used when a ledger or directory row lacks data
NO_NAME = "No name"
NO_COMPANY = "Not specified"
DENIED_NAME = "DENIED"

# A ledger timestamp cell is a datetime when written by this service, but
# imported sheets may hold free text such as "08:00".
CellTimestamp = Union[datetime, str]


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes converted to naive local time, the form ledger cells use."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class EventType(str, Enum):
    """Kind of access event a ledger row represents."""
    ENTRY = "ENTRY"
    EXIT = "EXIT"
    ENTRY_EXIT = "ENTRY_EXIT"


class EvacuationMode(str, Enum):
    """Evacuation modes."""
    REAL = "REAL"
    SIMULATED = "SIMULATED"


class AuditEventKind(str, Enum):
    """Audit record kinds."""
    REAL_EVACUATION = "REAL_EVACUATION"
    SIMULATED_EVACUATION = "SIMULATED_EVACUATION"
    LOG_ERROR = "LOG_ERROR"


class AccessDirection(str, Enum):
    """Direction of an access registration."""
    ENTRY = "entry"
    EXIT = "exit"


class AccessStatus(str, Enum):
    """Outcome of checking a person against the personnel directory."""
    GRANTED = "Access granted"
    DENIED = "Access denied"


# ===== Ledger Models =====

class AccessEvent(BaseModel):
    """One ledger row, parsed."""
    identity_raw: str
    identity_normalized: str
    name: str = ""
    company: str = ""
    event_type: Optional[EventType] = None
    entry_timestamp: Optional[CellTimestamp] = None
    exit_timestamp: Optional[CellTimestamp] = None
    duration_label: Optional[str] = None
    row_order: int = Field(..., ge=1, description="Row index in the ledger table (header is 0)")
    without_prior_entry: bool = False

    @property
    def is_open(self) -> bool:
        """Entry recorded and no exit yet."""
        return self.entry_timestamp is not None and self.exit_timestamp is None


class PersonRecord(BaseModel):
    """Personnel directory entry."""
    identity: str
    name: str = NO_NAME
    company: str = NO_COMPANY


class OccupancyRecord(BaseModel):
    """A person currently believed to be inside."""
    identity: str
    name: str
    company: str
    entry_timestamp: CellTimestamp
    row_order: int


class MutationResult(BaseModel):
    """Result of a ledger mutation attempt."""
    applied: bool
    blocked_by_simulation: bool = False
    row_order: Optional[int] = None
    duration_label: Optional[str] = None
    without_prior_entry: bool = False
    already_open: bool = False
    message: str = ""


# ===== Evacuation Models =====

class EvacuationRequest(BaseModel):
    """Request to evacuate (or drill-evacuate) a set of identities."""
    targets: List[str] = Field(default_factory=list)
    mode: EvacuationMode = EvacuationMode.REAL
    operator: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    notes: Optional[str] = None

    @field_validator('timestamp')
    @classmethod
    def local_timestamp(cls, v):
        return to_local_naive(v)


class ResolvedPerson(BaseModel):
    """A person whose open session was found for an evacuation request."""
    model_config = ConfigDict(frozen=True)

    identity: str
    name: str
    company: str
    entry_timestamp: CellTimestamp
    exit_timestamp: Optional[datetime] = None
    projected_exit_timestamp: Optional[datetime] = None
    duration_label: Optional[str] = None
    row_order: int


class EvacuationOutcome(BaseModel):
    """Result of processing one evacuation request. Never mutated after return."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    mode: EvacuationMode
    resolved: List[ResolvedPerson] = Field(default_factory=list)
    success: bool
    message: str
    total_evacuated: int = 0
    remaining: List[OccupancyRecord] = Field(default_factory=list)
    elapsed_ms: int = 0
    timestamp: datetime


class AuditEntry(BaseModel):
    """Immutable audit record of one evacuation attempt."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    timestamp: datetime
    event_kind: AuditEventKind
    operator: str
    affected_count: int = Field(ge=0)
    detail: str
    notes: str = ""
    status: str = "COMPLETED"

    def to_row(self, observations: str = "") -> list:
        """Row layout of the audit tables."""
        return [
            self.session_id,
            self.timestamp,
            self.event_kind.value,
            self.operator,
            self.affected_count,
            self.detail,
            self.status,
            observations,
            self.notes,
        ]


# ===== Occupancy payload (consumed by the UI layer) =====

class OccupantView(BaseModel):
    """Person inside, in the payload shape the UI expects."""
    model_config = ConfigDict(populate_by_name=True)

    identity: str = Field(..., alias="cedula")
    name: str = Field(..., alias="nombre")
    company: str = Field(..., alias="empresa")
    entry_time: str = Field(..., alias="horaEntrada")


class OccupancySnapshot(BaseModel):
    """Occupancy payload: {success, message, totalDentro, personasDentro, timestamp}."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = ""
    total_inside: int = Field(default=0, alias="totalDentro")
    people_inside: List[OccupantView] = Field(default_factory=list, alias="personasDentro")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    def to_payload(self) -> dict:
        """JSON-serializable dict keyed by the UI field names."""
        return self.model_dump(by_alias=True, mode="json")


class DailySummary(BaseModel):
    """Entry/exit counts for one day plus current occupancy."""
    day: str
    entries: int = 0
    exits: int = 0
    inside: int = 0


# ===== Access registration =====

class AccessRegistrationRequest(BaseModel):
    """Request to register a single entry or exit."""
    identity: str
    direction: AccessDirection
    timestamp: Optional[datetime] = None

    @field_validator('direction', mode='before')
    @classmethod
    def lower_direction(cls, v):
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator('timestamp')
    @classmethod
    def local_timestamp(cls, v):
        return to_local_naive(v)


class AccessRegistrationResult(BaseModel):
    """Result of registering an entry or exit."""
    identity: str
    name: str
    company: str
    direction: AccessDirection
    status: AccessStatus
    message: str
    duration_label: Optional[str] = None
    without_prior_entry: bool = False
    already_inside: bool = False
    blocked_by_simulation: bool = False
    similar_identities: List[str] = Field(default_factory=list)


# ===== Personnel administration =====

class AdminUser(BaseModel):
    """Entry of the administrator roster."""
    model_config = ConfigDict(frozen=True)

    identity: str
    name: str = "User"
    role: str = "Administrator"
    email: str = ""
    status: str = "Active"


class AdminValidationRequest(BaseModel):
    identity: str


class PersonnelCreateRequest(BaseModel):
    """New personnel directory entry."""
    identity: str
    name: str
    company: Optional[str] = None


class PersonnelUpdateRequest(BaseModel):
    """Changes to a personnel entry; omitted fields keep their stored value."""
    identity: Optional[str] = None
    name: Optional[str] = None
    company: Optional[str] = None


class PersonnelChangeResult(BaseModel):
    success: bool = True
    message: str
    record: PersonRecord
