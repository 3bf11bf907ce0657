"""Daily log session: load/autofill resolution, debounced autosave, status.

One session edits one ``(project, date)`` log at a time. Edits only touch
in-memory state; a single debounce timer turns a burst of edits into one
write. Every asynchronous result is checked against the session generation
before it is applied, so a load or save that finishes after a date switch
cannot leak into the new date.
"""

import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from sitelog.core.config import settings
from sitelog.core.exceptions import (
    EntryNotFound, LogLoadError, LogStoreError, SessionNotReady, StaleSessionError
)
from sitelog.schemas.log import (
    ActingUser, BlockedTaskEntry, CrewMember, HeaderUpdate, ImageAttachment, LogHeader,
    LogRecord, ProjectContext, SaveStatus, SessionPhase, SessionState, Suggestion, TaskEntry
)
from sitelog.services.image_analysis import ImageAnalyzer
from sitelog.services.log_store import LogStore
from sitelog.utils.dates import elapsed_days

logger = logging.getLogger(__name__)


class DailyLogSession:
    def __init__(
        self,
        store: LogStore,
        analyzer: Optional[ImageAnalyzer] = None,
        autosave_delay: Optional[float] = None,
        saved_display_delay: Optional[float] = None,
        history_limit: Optional[int] = None,
        platform_name: Optional[str] = None,
    ):
        self.store = store
        self.analyzer = analyzer
        self.autosave_delay = settings.AUTOSAVE_DELAY_SECONDS if autosave_delay is None else autosave_delay
        self.saved_display_delay = (
            settings.SAVED_DISPLAY_DELAY_SECONDS if saved_display_delay is None else saved_display_delay
        )
        self.history_limit = history_limit or settings.HISTORY_MAX_RECORDS
        self.platform_name = platform_name or settings.PLATFORM_NAME

        self.project: Optional[ProjectContext] = None
        self.user: Optional[ActingUser] = None
        self.date: Optional[date] = None
        self.record: Optional[LogRecord] = None
        self.phase = SessionPhase.IDLE
        self.status = SaveStatus.IDLE
        self.dirty = False
        self.autofilled = False
        self.task_history: List[str] = []
        self.suggestions: List[Suggestion] = []
        self.error: Optional[str] = None

        # Bumped by every open(); async results from older generations are dropped
        self._generation = 0
        # Bumped by every edit; tells a finished save whether newer edits exist
        self._edit_seq = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._saves: Set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()

    # Identity

    @property
    def key(self) -> Optional[Tuple[int, date]]:
        if self.project is None or self.date is None:
            return None
        return (self.project.id, self.date)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def ensure_current(self, project_id: int, log_date: date):
        """Reject requests addressed to a date this session is not showing."""
        if self.key != (project_id, log_date):
            raise StaleSessionError(
                f"session shows {self.key}, request was for {(project_id, log_date)}"
            )

    def state(self) -> SessionState:
        return SessionState(
            project_id=self.project.id if self.project else None,
            date=self.date,
            phase=self.phase,
            status=self.status,
            dirty=self.dirty,
            autofilled=self.autofilled,
            record=self.record.model_copy(deep=True) if self.record else None,
            task_history=list(self.task_history),
            suggestions=list(self.suggestions),
            error=self.error,
        )

    # Loading

    async def open(self, project: ProjectContext, log_date: date, user: ActingUser) -> SessionState:
        """Load the log for ``(project, log_date)``, autofilling from the last day if needed.

        Opening another date on a live session is a date switch: the pending
        autosave timer and the dirty flag of the previous date are dropped.
        """
        self._cancel_timer()
        self._generation += 1
        generation = self._generation

        self.project = project
        self.user = user
        self.date = log_date
        self.record = None
        self.phase = SessionPhase.LOADING
        self.status = SaveStatus.IDLE
        self.dirty = False
        self.autofilled = False
        self.task_history = []
        self.suggestions = []
        self.error = None

        try:
            record, autofilled = await self._resolve_record(project, log_date, user)
        except LogLoadError as e:
            if self._is_current(generation):
                logger.exception(f"Daily log fetch failed for {project.id}/{log_date}")
                self.phase = SessionPhase.FAILED
                self.error = str(e)
            raise

        if not self._is_current(generation):
            logger.debug(f"Discarding stale load of {project.id}/{log_date}")
            return self.state()

        try:
            history = await self.store.fetch_recent_task_texts(project.id, self.history_limit)
        except LogLoadError:
            # Autocomplete only; the log itself loaded fine
            logger.exception(f"Task history fetch failed for project {project.id}")
            history = []

        if not self._is_current(generation):
            logger.debug(f"Discarding stale history of {project.id}/{log_date}")
            return self.state()

        self.record = record
        self.autofilled = autofilled
        self.task_history = history
        self.phase = SessionPhase.READY
        return self.state()

    async def _resolve_record(
        self, project: ProjectContext, log_date: date, user: ActingUser
    ) -> Tuple[LogRecord, bool]:
        existing = await self.store.fetch_log(project.id, log_date)
        if existing is not None:
            logger.debug(f"Loaded existing log {project.id}/{log_date}")
            return existing, False

        prior = await self.store.find_prior_log(project.id, log_date)
        if prior is not None:
            logger.info(f"Autofilling {project.id}/{log_date} from {prior.date}")
            header = prior.header.model_copy(update={"responsible": user.name})
            return LogRecord(
                project_id=project.id,
                date=log_date,
                header=header,
                tasks=[t.model_copy() for t in prior.tasks],
                blocked_tasks=[t.model_copy() for t in prior.blocked_tasks],
                crew=[c.model_copy() for c in prior.crew],
                images=[],
            ), True

        logger.info(f"No prior record for project {project.id}, starting fresh on {log_date}")
        return LogRecord(
            project_id=project.id,
            date=log_date,
            header=LogHeader(
                engineer=project.technical_manager or "",
                responsible=user.name,
                weather=settings.DEFAULT_WEATHER,
                work_hours=settings.DEFAULT_WORK_HOURS,
                temp_min=settings.DEFAULT_TEMP_MIN,
                temp_max=settings.DEFAULT_TEMP_MAX,
            ),
        ), False

    # Edits

    def _require_record(self) -> LogRecord:
        if self.record is None:
            raise SessionNotReady(f"no log loaded (phase={self.phase.value})")
        return self.record

    def _touch(self):
        self.dirty = True
        self._edit_seq += 1
        self.status = SaveStatus.EDITING
        self.phase = SessionPhase.READY
        self.error = None
        self._schedule_save()

    def update_header(self, changes: HeaderUpdate) -> LogHeader:
        record = self._require_record()
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        record.header = record.header.model_copy(update=fields)
        self._touch()
        return record.header

    def add_task(self, text: str, location: Optional[str] = None) -> TaskEntry:
        record = self._require_record()
        task = TaskEntry(text=text, location=location)
        record.tasks.append(task)
        self._touch()
        return task

    def update_task(self, task_id: str, text: Optional[str] = None, location: Optional[str] = None) -> TaskEntry:
        task = _find(self._require_record().tasks, task_id, "task")
        if text is not None:
            task.text = text
        if location is not None:
            task.location = location
        self._touch()
        return task

    def remove_task(self, task_id: str):
        record = self._require_record()
        record.tasks.remove(_find(record.tasks, task_id, "task"))
        self._touch()

    def add_blocked_task(self, text: str, reason: Optional[str] = None) -> BlockedTaskEntry:
        record = self._require_record()
        task = BlockedTaskEntry(text=text, reason=reason)
        record.blocked_tasks.append(task)
        self._touch()
        return task

    def update_blocked_task(
        self, task_id: str, text: Optional[str] = None, reason: Optional[str] = None
    ) -> BlockedTaskEntry:
        task = _find(self._require_record().blocked_tasks, task_id, "blocked task")
        if text is not None:
            task.text = text
        if reason is not None:
            task.reason = reason
        self._touch()
        return task

    def remove_blocked_task(self, task_id: str):
        record = self._require_record()
        record.blocked_tasks.remove(_find(record.blocked_tasks, task_id, "blocked task"))
        self._touch()

    def add_crew(self, role: str, count: int = 0) -> CrewMember:
        record = self._require_record()
        member = CrewMember(role=role, count=count)
        record.crew.append(member)
        self._touch()
        return member

    def update_crew(self, crew_id: str, role: Optional[str] = None, count: Optional[int] = None) -> CrewMember:
        member = _find(self._require_record().crew, crew_id, "crew entry")
        if count is not None and count < 0:
            raise ValueError("crew count cannot be negative")
        if role is not None:
            member.role = role
        if count is not None:
            member.count = count
        self._touch()
        return member

    def remove_crew(self, crew_id: str):
        record = self._require_record()
        record.crew.remove(_find(record.crew, crew_id, "crew entry"))
        self._touch()

    def add_image(self, file_path: str) -> ImageAttachment:
        record = self._require_record()
        image = ImageAttachment(file_path=file_path)
        record.images.append(image)
        self._touch()
        return image

    def remove_image(self, image_id: str) -> ImageAttachment:
        record = self._require_record()
        image = _find(record.images, image_id, "image")
        record.images.remove(image)
        self._touch()
        return image

    # Suggestions

    async def request_suggestions(self) -> List[Suggestion]:
        """Ask the analyzer about the current photos. Nothing is merged here."""
        record = self._require_record()
        if self.analyzer is None or not record.images:
            self.suggestions = []
            return []

        generation = self._generation
        results = await self.analyzer.analyze_images(list(record.images), list(self.task_history))
        if not self._is_current(generation):
            logger.debug("Discarding suggestions for a date no longer open")
            return []

        self.suggestions = results
        return list(results)

    def accept_suggestion(self, suggestion_id: str, text: Optional[str] = None) -> TaskEntry:
        suggestion = _find(self.suggestions, suggestion_id, "suggestion")
        self.suggestions.remove(suggestion)
        return self.add_task(text if text else suggestion.suggestion)

    def discard_suggestion(self, suggestion_id: str):
        self.suggestions.remove(_find(self.suggestions, suggestion_id, "suggestion"))

    async def suggest_location(self, task_text: str) -> str:
        if self.analyzer is None or self.project is None:
            return ""
        try:
            history = await self.store.fetch_recent_tasks(self.project.id, self.history_limit)
        except LogLoadError:
            logger.exception(f"Task history fetch failed for project {self.project.id}")
            return ""
        return await self.analyzer.suggest_location(task_text, history)

    # Autosave

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_save(self):
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.autosave_delay, self._fire, self._generation)

    def _snapshot(self) -> dict:
        snapshot = {"platform_name": self.platform_name}
        if self.project and self.project.constructor_name:
            snapshot["constructor_name"] = self.project.constructor_name
        return snapshot

    def _fire(self, generation: int) -> Optional[asyncio.Task]:
        self._timer = None
        if not self._is_current(generation) or self.record is None:
            return None

        # The write carries the state as of now, not as of the edit that armed the timer
        record = self.record.model_copy(deep=True)
        record.elapsed_days = elapsed_days(self.project.start_date, self.date)
        record.snapshot = self._snapshot()

        self.status = SaveStatus.SAVING
        self.phase = SessionPhase.SAVING
        task = asyncio.create_task(self._save(generation, self._edit_seq, record))
        self._saves.add(task)
        task.add_done_callback(self._saves.discard)
        return task

    async def _save(self, generation: int, edit_seq: int, record: LogRecord):
        user_id = self.user.id if self.user else None

        # One write at a time per session
        async with self._save_lock:
            try:
                await self.store.save_log(record.project_id, record.date, record, user_id=user_id)
            except LogStoreError as e:
                logger.error(f"Autosave of {record.project_id}/{record.date} failed: {e}")
                if self._is_current(generation) and self._edit_seq == edit_seq:
                    self.status = SaveStatus.FAILED
                    self.phase = SessionPhase.FAILED
                    self.error = str(e)
                return

        logger.debug(f"Saved log {record.project_id}/{record.date}")
        if self.saved_display_delay:
            await asyncio.sleep(self.saved_display_delay)

        if not self._is_current(generation):
            return
        # The autofilled log now exists in the store, whatever was edited since
        self.autofilled = False
        # A newer edit keeps the session in "editing" until its own save lands
        if self._edit_seq == edit_seq:
            self.dirty = False
            self.status = SaveStatus.SAVED
            self.phase = SessionPhase.SAVED

    async def flush(self) -> SessionState:
        """Fire a pending autosave now and wait for every write in flight."""
        if self._timer is not None:
            self._timer.cancel()
            self._fire(self._generation)
        if self._saves:
            await asyncio.gather(*list(self._saves))
        return self.state()

    async def close(self):
        await self.flush()
        self._cancel_timer()


def _find(entries, entry_id: str, kind: str):
    for entry in entries:
        if entry.id == entry_id:
            return entry
    raise EntryNotFound(kind, entry_id)


class SessionRegistry:
    """One live session per (acting user, project)."""

    def __init__(self, store: LogStore, analyzer: Optional[ImageAnalyzer] = None, **session_options):
        self.store = store
        self.analyzer = analyzer
        self.session_options = session_options
        self._sessions: Dict[Tuple[Optional[int], int], DailyLogSession] = {}

    def get(self, user_id: Optional[int], project_id: int) -> Optional[DailyLogSession]:
        return self._sessions.get((user_id, project_id))

    def get_or_create(self, user_id: Optional[int], project_id: int) -> DailyLogSession:
        session = self._sessions.get((user_id, project_id))
        if session is None:
            session = DailyLogSession(self.store, self.analyzer, **self.session_options)
            self._sessions[(user_id, project_id)] = session
        return session

    async def close_all(self):
        for session in list(self._sessions.values()):
            await session.close()
        self._sessions.clear()
