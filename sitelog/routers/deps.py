from datetime import date
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from sitelog.db.session import SessionLocal
from sitelog.core.config import settings
from sitelog.db.models.project import Project
from sitelog.db.models.user import User
from sitelog.schemas.log import ActingUser, ProjectContext
from sitelog.services.session import SessionRegistry
from sitelog.utils.dates import parse_log_date

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions

def _read_token(request: Request) -> Optional[str]:
    token = request.cookies.get("access_token") or request.headers.get("Authorization")
    if not token:
        return None
    # Remove "Bearer " prefix if present
    if token.startswith("Bearer "):
        token = token.split(" ", 1)[1]
    return token

async def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = _read_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_error
    except JWTError:
        raise credentials_error

    user = db.query(User).filter(User.username == username).first()
    if user is None or not user.is_active:
        raise credentials_error

    return user

def get_acting_user(user: User = Depends(get_current_user)) -> ActingUser:
    return ActingUser(id=user.id, name=user.display_name)

def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
) -> ProjectContext:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    # Auth check: Admin or Assigned User
    if user.role != "admin" and user.id not in [u.id for u in project.users]:
        raise HTTPException(status_code=403, detail="Not authorized")

    return ProjectContext(
        id=project.id,
        name=project.name,
        technical_manager=project.technical_manager,
        start_date=project.start_date,
        constructor_name=project.constructor.name if project.constructor else None,
    )

def get_log_date(log_date: str) -> date:
    try:
        return parse_log_date(log_date)
    except ValueError:
        raise HTTPException(status_code=422, detail="Date must be YYYY-MM-DD")
