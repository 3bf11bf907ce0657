import uuid
import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def new_entry_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class LogHeader(BaseModel):
    engineer: str = ""
    responsible: str = ""
    weather: str = ""
    work_hours: Optional[str] = None
    temp_min: Optional[str] = None
    temp_max: Optional[str] = None
    observations: Optional[str] = None


class HeaderUpdate(BaseModel):
    """Partial header edit; only the fields sent are applied."""
    engineer: Optional[str] = None
    responsible: Optional[str] = None
    weather: Optional[str] = None
    work_hours: Optional[str] = None
    temp_min: Optional[str] = None
    temp_max: Optional[str] = None
    observations: Optional[str] = None


class TaskEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_entry_id("task"))
    text: str
    location: Optional[str] = None


class BlockedTaskEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_entry_id("imp-task"))
    text: str
    reason: Optional[str] = None


class CrewMember(BaseModel):
    id: str = Field(default_factory=lambda: new_entry_id("worker"))
    role: str
    count: int = Field(default=0, ge=0)


class ImageAttachment(BaseModel):
    id: str = Field(default_factory=lambda: new_entry_id("img"))
    file_path: str


class LogRecord(BaseModel):
    project_id: int
    date: dt.date
    header: LogHeader = Field(default_factory=LogHeader)
    tasks: List[TaskEntry] = Field(default_factory=list)
    blocked_tasks: List[BlockedTaskEntry] = Field(default_factory=list)
    crew: List[CrewMember] = Field(default_factory=list)
    images: List[ImageAttachment] = Field(default_factory=list)

    # Attached when saving
    elapsed_days: Optional[int] = None
    snapshot: dict = Field(default_factory=dict)


class Suggestion(BaseModel):
    id: str
    image_id: str
    suggestion: str


class SaveStatus(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


class SessionPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


class SessionState(BaseModel):
    """What a client sees of a daily log session."""
    project_id: Optional[int] = None
    date: Optional[dt.date] = None
    phase: SessionPhase = SessionPhase.IDLE
    status: SaveStatus = SaveStatus.IDLE
    dirty: bool = False
    autofilled: bool = False
    record: Optional[LogRecord] = None
    task_history: List[str] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    error: Optional[str] = None


# Request bodies

class TaskIn(BaseModel):
    text: str = Field(min_length=1)
    location: Optional[str] = None


class TaskPatch(BaseModel):
    text: Optional[str] = None
    location: Optional[str] = None


class BlockedTaskIn(BaseModel):
    text: str = Field(min_length=1)
    reason: Optional[str] = None


class BlockedTaskPatch(BaseModel):
    text: Optional[str] = None
    reason: Optional[str] = None


class CrewIn(BaseModel):
    role: str = Field(min_length=1)
    count: int = Field(default=0, ge=0)


class CrewPatch(BaseModel):
    role: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=0)


class SuggestionAccept(BaseModel):
    text: Optional[str] = None


class LocationRequest(BaseModel):
    text: str = Field(min_length=1)


class ProjectContext(BaseModel):
    """The project fields a log session needs, detached from the ORM."""
    id: int
    name: str
    technical_manager: Optional[str] = None
    start_date: Optional[dt.date] = None
    constructor_name: Optional[str] = None


class ActingUser(BaseModel):
    id: Optional[int] = None
    name: str
