import asyncio
from datetime import date
from typing import Dict, List, Optional, Tuple

from sitelog.core.exceptions import LogLoadError, LogSaveError
from sitelog.schemas.log import LogRecord, Suggestion
from sitelog.services.log_store import dedupe_tasks


class FakeLogStore:
    """In-memory LogStore that records every call.

    ``gates`` maps an operation name to an asyncio.Event the call waits on,
    which lets a test hold a fetch or save "in flight".
    """

    def __init__(self, records: Optional[List[LogRecord]] = None):
        self.records: Dict[Tuple[int, date], LogRecord] = {}
        for record in records or []:
            self.records[(record.project_id, record.date)] = record
        self.saves: List[LogRecord] = []
        self.fail_saves = False
        self.fail_loads = False
        self.fail_history = False
        self.gates: Dict[str, asyncio.Event] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def _gate(self, name: str):
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()

    async def fetch_log(self, project_id, log_date):
        await self._gate(f"fetch:{log_date.isoformat()}")
        if self.fail_loads:
            raise LogLoadError("store unreachable")
        record = self.records.get((project_id, log_date))
        return record.model_copy(deep=True) if record else None

    async def find_prior_log(self, project_id, before_date):
        if self.fail_loads:
            raise LogLoadError("store unreachable")
        earlier = [r for (pid, d), r in self.records.items() if pid == project_id and d < before_date]
        if not earlier:
            return None
        return max(earlier, key=lambda r: r.date).model_copy(deep=True)

    async def save_log(self, project_id, log_date, record, user_id=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self._gate("save")
            if self.fail_saves:
                raise LogSaveError("write rejected")
            self.saves.append(record.model_copy(deep=True))
            self.records[(project_id, log_date)] = record.model_copy(deep=True)
        finally:
            self.in_flight -= 1

    async def fetch_recent_tasks(self, project_id, max_records=20):
        records = sorted(
            (r for (pid, _), r in self.records.items() if pid == project_id),
            key=lambda r: r.date, reverse=True
        )[:max_records]
        return dedupe_tasks([t for r in records for t in r.tasks])

    async def fetch_recent_task_texts(self, project_id, max_records=20):
        if self.fail_history:
            raise LogLoadError("history unavailable")
        return [t.text for t in await self.fetch_recent_tasks(project_id, max_records)]

    async def fetch_logged_dates(self, project_id, start, end):
        return sorted(d for (pid, d) in self.records if pid == project_id and start <= d <= end)


class FakeAnalyzer:
    def __init__(self, suggestions: Optional[List[Suggestion]] = None, location: str = ""):
        self.suggestions = suggestions or []
        self.location = location
        self.calls = []
        # Set to an asyncio.Event to hold analyze_images until it fires
        self.gate: Optional[asyncio.Event] = None

    async def analyze_images(self, images, history):
        self.calls.append(("analyze", [i.id for i in images], list(history)))
        if self.gate is not None:
            await self.gate.wait()
        return list(self.suggestions)

    async def suggest_location(self, task_text, task_history):
        self.calls.append(("location", task_text, [t.text for t in task_history]))
        return self.location
