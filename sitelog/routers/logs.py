import logging
import shutil
import uuid
from datetime import date
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from sitelog.core.config import settings
from sitelog.db.models.user import User
from sitelog.routers import deps
from sitelog.schemas.log import (
    ActingUser, BlockedTaskIn, BlockedTaskPatch, CrewIn, CrewPatch, HeaderUpdate,
    LocationRequest, ProjectContext, SessionState, SuggestionAccept, TaskIn, TaskPatch
)
from sitelog.services.session import DailyLogSession, SessionRegistry
from sitelog.utils.activity import log_activity
from sitelog.utils.dates import parse_log_date

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/logs",
    tags=["logs"],
    dependencies=[Depends(deps.get_current_user)]
)

ALLOWED_PHOTO_TYPES = {"jpg", "jpeg", "png", "webp", "heic"}

def get_session(
    project: ProjectContext = Depends(deps.get_project),
    log_date: date = Depends(deps.get_log_date),
    user: User = Depends(deps.get_current_user),
    registry: SessionRegistry = Depends(deps.get_registry)
) -> DailyLogSession:
    """The caller's live session, which must currently show ``log_date``."""
    session = registry.get(user.id, project.id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Log is not open")
    session.ensure_current(project.id, log_date)
    return session

@router.get("/{project_id}/calendar")
async def logged_dates(
    start: str,
    end: str,
    project: ProjectContext = Depends(deps.get_project),
    registry: SessionRegistry = Depends(deps.get_registry)
):
    try:
        start_date, end_date = parse_log_date(start), parse_log_date(end)
    except ValueError:
        raise HTTPException(status_code=422, detail="Dates must be YYYY-MM-DD")
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end must not be before start")

    dates = await registry.store.fetch_logged_dates(project.id, start_date, end_date)
    return {"project_id": project.id, "dates": [d.isoformat() for d in dates]}

@router.get("/{project_id}/{log_date}", response_model=SessionState)
async def open_log(
    project: ProjectContext = Depends(deps.get_project),
    log_date: date = Depends(deps.get_log_date),
    acting_user: ActingUser = Depends(deps.get_acting_user),
    registry: SessionRegistry = Depends(deps.get_registry)
):
    session = registry.get_or_create(acting_user.id, project.id)
    if session.key == (project.id, log_date) and session.record is not None:
        # Same date already open: do not reload over unsaved edits
        return session.state()
    return await session.open(project, log_date, acting_user)

@router.get("/{project_id}/{log_date}/status", response_model=SessionState)
async def log_status(session: DailyLogSession = Depends(get_session)):
    return session.state()

@router.post("/{project_id}/{log_date}/flush", response_model=SessionState)
async def flush_log(session: DailyLogSession = Depends(get_session)):
    return await session.flush()

# Header

@router.patch("/{project_id}/{log_date}/header")
async def update_header(changes: HeaderUpdate, session: DailyLogSession = Depends(get_session)):
    header = session.update_header(changes)
    return {"header": header, "status": session.status}

# Completed tasks

@router.post("/{project_id}/{log_date}/tasks", status_code=status.HTTP_201_CREATED)
async def add_task(body: TaskIn, session: DailyLogSession = Depends(get_session)):
    task = session.add_task(body.text, body.location)
    return {"task": task, "status": session.status}

@router.patch("/{project_id}/{log_date}/tasks/{task_id}")
async def update_task(task_id: str, body: TaskPatch, session: DailyLogSession = Depends(get_session)):
    task = session.update_task(task_id, text=body.text, location=body.location)
    return {"task": task, "status": session.status}

@router.delete("/{project_id}/{log_date}/tasks/{task_id}")
async def remove_task(task_id: str, session: DailyLogSession = Depends(get_session)):
    session.remove_task(task_id)
    return {"status": session.status}

# Blocked tasks

@router.post("/{project_id}/{log_date}/blocked-tasks", status_code=status.HTTP_201_CREATED)
async def add_blocked_task(body: BlockedTaskIn, session: DailyLogSession = Depends(get_session)):
    task = session.add_blocked_task(body.text, body.reason)
    return {"task": task, "status": session.status}

@router.patch("/{project_id}/{log_date}/blocked-tasks/{task_id}")
async def update_blocked_task(
    task_id: str, body: BlockedTaskPatch, session: DailyLogSession = Depends(get_session)
):
    task = session.update_blocked_task(task_id, text=body.text, reason=body.reason)
    return {"task": task, "status": session.status}

@router.delete("/{project_id}/{log_date}/blocked-tasks/{task_id}")
async def remove_blocked_task(task_id: str, session: DailyLogSession = Depends(get_session)):
    session.remove_blocked_task(task_id)
    return {"status": session.status}

# Crew

@router.post("/{project_id}/{log_date}/crew", status_code=status.HTTP_201_CREATED)
async def add_crew(body: CrewIn, session: DailyLogSession = Depends(get_session)):
    member = session.add_crew(body.role, body.count)
    return {"crew": member, "status": session.status}

@router.patch("/{project_id}/{log_date}/crew/{crew_id}")
async def update_crew(crew_id: str, body: CrewPatch, session: DailyLogSession = Depends(get_session)):
    member = session.update_crew(crew_id, role=body.role, count=body.count)
    return {"crew": member, "status": session.status}

@router.delete("/{project_id}/{log_date}/crew/{crew_id}")
async def remove_crew(crew_id: str, session: DailyLogSession = Depends(get_session)):
    session.remove_crew(crew_id)
    return {"status": session.status}

# Photos

@router.post("/{project_id}/{log_date}/photos", status_code=status.HTTP_201_CREATED)
async def upload_photos(
    photos: List[UploadFile] = File(...),
    session: DailyLogSession = Depends(get_session),
    db: Session = Depends(deps.get_db),
    user: User = Depends(deps.get_current_user)
):
    # Reject the whole request before anything is written or attached
    accepted = []
    for photo in photos:
        if not photo.filename:
            continue
        ext = photo.filename.rsplit(".", 1)[-1].lower()
        if ext not in ALLOWED_PHOTO_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported photo type: {ext}")
        accepted.append((photo, ext))

    upload_dir = Path(settings.UPLOAD_DIR)
    year_month = session.date.strftime("%Y/%m")
    target_dir = upload_dir / year_month
    target_dir.mkdir(parents=True, exist_ok=True)

    added = []
    for photo, ext in accepted:
        unique_name = f"{uuid.uuid4()}.{ext}"
        with open(target_dir / unique_name, "wb") as buffer:
            shutil.copyfileobj(photo.file, buffer)

        added.append(session.add_image(f"{year_month}/{unique_name}"))

    logger.info(f"Stored {len(added)} photo(s) for {session.project.id}/{session.date}")
    if added:
        log_activity(
            db, user.id, "UPLOAD", "PHOTO",
            details=f"{session.project.id}/{session.date.isoformat()}: {len(added)} photo(s)"
        )
    return {"images": added, "status": session.status}

@router.delete("/{project_id}/{log_date}/photos/{image_id}")
async def remove_photo(image_id: str, session: DailyLogSession = Depends(get_session)):
    session.remove_image(image_id)
    return {"status": session.status}

# AI suggestions

@router.post("/{project_id}/{log_date}/suggestions")
async def request_suggestions(session: DailyLogSession = Depends(get_session)):
    suggestions = await session.request_suggestions()
    return {"suggestions": suggestions}

@router.post("/{project_id}/{log_date}/suggestions/{suggestion_id}/accept", status_code=status.HTTP_201_CREATED)
async def accept_suggestion(
    suggestion_id: str, body: SuggestionAccept, session: DailyLogSession = Depends(get_session)
):
    task = session.accept_suggestion(suggestion_id, body.text)
    return {"task": task, "status": session.status}

@router.delete("/{project_id}/{log_date}/suggestions/{suggestion_id}")
async def discard_suggestion(suggestion_id: str, session: DailyLogSession = Depends(get_session)):
    session.discard_suggestion(suggestion_id)
    return {"suggestions": session.suggestions}

@router.post("/{project_id}/{log_date}/location-suggestion")
async def suggest_location(body: LocationRequest, session: DailyLogSession = Depends(get_session)):
    return {"location": await session.suggest_location(body.text)}
