import threading

from solgate.services.sessions.base import SessionRecord, SessionStore


class InMemorySessionStore(SessionStore):
    """Process-lifetime store. All mutations happen under one lock."""

    def __init__(self):
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(session_id)

    def put(self, record: SessionRecord) -> None:
        with self._lock:
            if record.session_id in self._records:
                raise ValueError(f"Session already exists: {record.session_id[:8]}")
            if any(r.custodial_address == record.custodial_address for r in self._records.values()):
                raise ValueError("Custodial address already assigned to another session")
            self._records[record.session_id] = record

    def list_all(self) -> list[SessionRecord]:
        with self._lock:
            return list(self._records.values())

    def update_if_unchanged(self, record: SessionRecord, expected_version: int) -> bool:
        with self._lock:
            current = self._records.get(record.session_id)
            if current is None or current.version != expected_version:
                return False
            self._records[record.session_id] = record.evolve(version=expected_version + 1)
            return True

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None
