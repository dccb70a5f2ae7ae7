"""
Session Store
=============
Durable index of conversation sessions, kept in a single JSON file:

    [
      {"id": "...", "mode": "chat", "createdAt": "...", "lastAccessedAt": "..."},
      ...
    ]

Only the session handle and timestamps live here; the conversation itself is
owned by the agent runtime's checkpointer.

Behaviour:
  - save() is an upsert keyed by id. An existing record is replaced in place
    (its position in the file is kept); a new one is appended.
  - load() treats a missing or unreadable file as "no sessions yet".
  - The directory and file are created on the first write, not on import.
  - Each read-modify-write holds a lock and lands via an atomic replace, so
    concurrent sessions sharing one store do not lose updates.
"""
import json
import logging
import os
import tempfile
import threading

from pydantic import TypeAdapter, ValidationError

from .models import Session, utcnow

logger = logging.getLogger(__name__)

_SESSIONS = TypeAdapter(list[Session])


class SessionStore:
    def __init__(self, path: str):
        self._path = path
        self._lock = threading.RLock()

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> list[Session]:
        try:
            with open(self._path, "rb") as fh:
                raw = fh.read()
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("[sessions] Could not read %s: %s", self._path, exc)
            return []

        try:
            return _SESSIONS.validate_json(raw)
        except ValidationError as exc:
            logger.warning("[sessions] Ignoring corrupt session file %s: %s", self._path, exc)
            return []

    def get(self, session_id: str) -> Session | None:
        return next((s for s in self.load() if s.id == session_id), None)

    def save(self, session: Session) -> None:
        with self._lock:
            sessions = self.load()
            for i, existing in enumerate(sessions):
                if existing.id == session.id:
                    sessions[i] = session
                    break
            else:
                sessions.append(session)
            self._write(sessions)
        logger.info("[sessions] Saved session %s (%s)", session.id, session.mode.value)

    def touch(self, session_id: str) -> Session | None:
        """Bump lastAccessedAt. Returns the updated record, or None if unknown."""
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return None
            updated = session.model_copy(update={"last_accessed_at": utcnow()})
            self.save(updated)
            return updated

    def _write(self, sessions: list[Session]) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)

        payload = [s.model_dump(mode="json", by_alias=True) for s in sessions]
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".sessions-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
