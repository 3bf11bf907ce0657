from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from sitelog.core.config import settings
from sitelog.core.exceptions import (
    EntryNotFound, LogLoadError, SessionNotReady, StaleSessionError
)
from sitelog.core.logger import setup_logger
from sitelog.db.base import Base
from sitelog.db.session import engine, SessionLocal
from sitelog.routers import logs
from sitelog.services.image_analysis import ImageAnalyzer
from sitelog.services.log_store import SqlLogStore
from sitelog.services.session import SessionRegistry

logger = setup_logger()

app = FastAPI(title=settings.PROJECT_NAME)

app.state.sessions = SessionRegistry(SqlLogStore(SessionLocal), ImageAnalyzer())

# Uploaded photos, stored as <year>/<month>/<uuid>.<ext>
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

app.include_router(logs.router)

@app.exception_handler(EntryNotFound)
async def entry_not_found_handler(request: Request, exc: EntryNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(StaleSessionError)
async def stale_session_handler(request: Request, exc: StaleSessionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.exception_handler(SessionNotReady)
async def session_not_ready_handler(request: Request, exc: SessionNotReady):
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.exception_handler(LogLoadError)
async def log_load_error_handler(request: Request, exc: LogLoadError):
    return JSONResponse(status_code=503, content={"detail": "Daily log could not be loaded"})

# Create tables on startup (Simple approach)
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.PROJECT_NAME} started")

@app.on_event("shutdown")
async def on_shutdown():
    # Write out pending autosaves before the loop goes away
    await app.state.sessions.close_all()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
