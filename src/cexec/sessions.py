"""In-memory session store.

The store maps opaque session ids to :class:`Session` records and owns
the workspace directory behind each of them.  It is process-local and is
only ever touched from the event loop, so it needs no locking of its
own; serialising operations *within* a session is the job of
:class:`cexec.service.SessionManager`.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import UnknownSession
from .workspace import WorkspaceManager

logger = logging.getLogger("cexec.sessions")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


def generate_session_id() -> str:
    """Millisecond timestamp in base 36 plus a random suffix.

    Collision resistant, not unguessable: ids are not a security boundary.
    """
    return f"{_base36(int(time.time() * 1000))}-{uuid.uuid4().hex[:12]}"


@dataclass
class Session:
    id: str
    workspace_dir: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    built_binary_path: Optional[Path] = None
    last_compiled_at: Optional[datetime] = None
    last_used_at: float = 0.0

    @property
    def compiled(self) -> bool:
        return self.built_binary_path is not None


class SessionStore:
    """Process-wide registry of sessions and their workspaces."""

    def __init__(
        self,
        workspaces: WorkspaceManager,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        self.workspaces = workspaces
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create_session(self) -> str:
        session_id = self._id_factory()
        while session_id in self._sessions:
            session_id = self._id_factory()
        workspace_dir = self.workspaces.create(session_id)
        self._sessions[session_id] = Session(
            id=session_id, workspace_dir=workspace_dir, last_used_at=self._clock()
        )
        logger.info("Created session %s in %s", session_id, workspace_dir)
        return session_id

    def lookup(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownSession() from None

    def touch(self, session_id: str) -> None:
        self.lookup(session_id).last_used_at = self._clock()

    def record_artifact(self, session_id: str, binary_path: Path) -> None:
        session = self.lookup(session_id)
        binary_path = Path(binary_path)
        if not binary_path.is_file() or binary_path.parent.resolve() != session.workspace_dir.resolve():
            raise ValueError(f"{binary_path} is not a file inside {session.workspace_dir}")
        session.built_binary_path = binary_path
        session.last_compiled_at = datetime.now(timezone.utc)

    def clear_artifact(self, session_id: str, delete: bool = True) -> None:
        """Forget the compiled binary, deleting it from the workspace unless ``delete`` is false."""
        session = self.lookup(session_id)
        if delete and session.built_binary_path is not None:
            self.workspaces.remove_file(session_id, session.built_binary_path.name)
        session.built_binary_path = None

    def idle_sessions(self, max_idle_seconds: float) -> List[str]:
        cutoff = self._clock() - max_idle_seconds
        return [sid for sid, s in self._sessions.items() if s.last_used_at < cutoff]

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        try:
            self.workspaces.destroy(session_id)
        except OSError as exc:
            logger.warning("Failed to delete workspace for session %s: %s", session_id, exc)

    def close(self) -> None:
        """Delete every workspace.  Failures are logged, never raised."""
        for session_id in list(self._sessions):
            self.remove(session_id)
        logger.info("Session store closed")
