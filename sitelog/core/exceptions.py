class LogStoreError(Exception):
    """Base error for the daily log persistence layer."""


class LogLoadError(LogStoreError):
    """The log (or its prior/history lookups) could not be fetched."""


class LogSaveError(LogStoreError):
    """A log write did not complete."""


class SessionError(Exception):
    pass


class EntryNotFound(SessionError):
    def __init__(self, kind: str, entry_id: str):
        super().__init__(f"{kind} '{entry_id}' not found")
        self.kind = kind
        self.entry_id = entry_id


class StaleSessionError(SessionError):
    """The request targets a date the session is no longer showing."""


class SessionNotReady(SessionError):
    """The session has no loaded record (still loading or load failed)."""
