"""Workspace directories for sessions.

Each session owns one directory under a shared scratch root.  The
directory holds the current source file and the binary compiled from it,
and is the working directory of every process run for the session.
Workspaces are ephemeral: nothing in them survives a server restart.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import StorageError


class WorkspaceManager:
    """Create and destroy per-session directories under ``base_dir``."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def workspace_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    def create(self, session_id: str) -> Path:
        session_dir = self.workspace_dir(session_id)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            session_dir.mkdir()
        except OSError as exc:
            raise StorageError(f"Unable to create workspace {session_dir}: {exc}") from exc
        return session_dir

    def remove_file(self, session_id: str, relative_path: str) -> None:
        path = self.workspace_dir(session_id) / relative_path
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError(f"Unable to remove {path}: {exc}") from exc

    def destroy(self, session_id: str) -> None:
        """Recursively delete a session's workspace.  Raises ``OSError`` on failure."""
        session_dir = self.workspace_dir(session_id)
        if session_dir.exists():
            shutil.rmtree(session_dir)
