"""Per-session source tracking and the upload cap."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .config import config
from .errors import UploadLimitError
from .models import SourceRecord

logger = config.get_logger(__name__)


@dataclass
class _SessionState:
    sources: list[SourceRecord] = field(default_factory=list)
    pending: int = 0


class UploadSlot:
    """A reserved upload slot; ``commit`` turns it into an active source."""

    def __init__(self, tracker: "UploadTracker", session_id: str | None) -> None:
        self._tracker = tracker
        self.session_id = session_id
        self.committed = False

    def commit(self, record: SourceRecord) -> None:
        self._tracker._commit(self, record)  # noqa: SLF001
        self.committed = True


class UploadTracker:
    """Tracks active sources per session and enforces the source cap.

    Reservations count against the cap while an ingestion is in flight so
    concurrent uploads for one session cannot overshoot it.
    """

    def __init__(self, max_sources: int | None = None) -> None:
        self.max_sources = (
            max_sources if max_sources is not None else config.MAX_SOURCES_PER_SESSION
        )
        self._sessions: dict[str, _SessionState] = {}
        self._lock = threading.Lock()

    @contextmanager
    def reserve(self, session_id: str | None) -> Iterator[UploadSlot]:
        """Reserve a slot for one ingestion.

        Yields:
            The slot; call ``commit`` on success. An uncommitted slot is
            released on exit.

        Raises:
            UploadLimitError: If the session has no free slot.
        """
        slot = UploadSlot(self, session_id)
        if session_id is not None:
            with self._lock:
                state = self._sessions.get(session_id) or _SessionState()
                if len(state.sources) + state.pending >= self.max_sources:
                    msg = (
                        f"Upload limit reached: a session may hold at most "
                        f"{self.max_sources} sources. Remove a source first."
                    )
                    raise UploadLimitError(msg)
                state.pending += 1
                self._sessions[session_id] = state

        try:
            yield slot
        finally:
            if session_id is not None and not slot.committed:
                with self._lock:
                    self._sessions[session_id].pending -= 1
                    self._discard_if_idle(session_id)

    def _discard_if_idle(self, session_id: str) -> None:
        # caller holds the lock
        state = self._sessions.get(session_id)
        if state is not None and not state.sources and not state.pending:
            del self._sessions[session_id]

    def _commit(self, slot: UploadSlot, record: SourceRecord) -> None:
        if slot.session_id is None or slot.committed:
            return
        with self._lock:
            state = self._sessions[slot.session_id]
            state.pending -= 1
            state.sources.append(record)
        logger.info(
            "Session %s now has %d source(s)", slot.session_id, len(state.sources)
        )

    def release(self, session_id: str, collection_id: str) -> bool:
        """Forget a source, freeing its slot.

        Returns:
            True if the source was tracked for the session.
        """
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return False
            before = len(state.sources)
            state.sources = [
                record for record in state.sources if record.collection_id != collection_id
            ]
            self._discard_if_idle(session_id)
            return len(state.sources) < before

    def sources(self, session_id: str) -> list[SourceRecord]:
        with self._lock:
            state = self._sessions.get(session_id)
            return list(state.sources) if state else []

    def collection_ids(self, session_id: str) -> list[str]:
        return [record.collection_id for record in self.sources(session_id)]

    def count(self, session_id: str) -> int:
        return len(self.sources(session_id))

    def remaining(self, session_id: str) -> int:
        return max(0, self.max_sources - self.count(session_id))

    @property
    def active_sessions(self) -> int:
        """Number of sessions holding sources or in-flight reservations."""
        with self._lock:
            return len(self._sessions)
