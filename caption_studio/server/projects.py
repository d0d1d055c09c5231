"""In-memory project registry with processing status and TTL cleanup.

WHY: The HTTP API hosts caption projects for a client session. Each
project lives across many requests (edit, commit, undo, export), and
generation/translation run in the background for tens of seconds. The
API returns immediately and the client polls the project's status.

HOW: Four components work together:
  ProjectStatus — enum of processing states
  RemotePlayer  — parks seek/pause requests for the client's player
  ProjectEntry  — dataclass holding one CaptionProject, its status and
                  a PlaybackSync over the project's draft
  ProjectRegistry — lock-protected dict with create/get/list/delete,
                    status updates and TTL cleanup of idle projects

RULES:
- All registry mutations are protected by threading.Lock
- Capacity is re-checked under the lock at insert time (RegistryFull)
- Only one background operation per project (status gate)
- TTL is measured from the last update; busy projects never expire
- Deleting a project closes it, so late background results are dropped
- Project IDs are UUID4 hex strings generated at creation time
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from caption_studio.core.model import CaptionEvent, ProjectSettings, Session
from caption_studio.core.project import CaptionProject
from caption_studio.core.sync import PlaybackSync
from caption_studio.storage import LocalProjectStore

logger = logging.getLogger(__name__)

# Idle projects are dropped after this many seconds without an update
DEFAULT_TTL_SECONDS = 3600


class ProjectStatus(str, enum.Enum):
    """Processing state of a project.

    RULES:
    - idle: nothing generated yet
    - uploading / analyzing: generation in progress (decode, AI call)
    - translating: translation in progress
    - ready: captions available for editing
    - error: the last operation failed; captions are as before it
    """

    IDLE = "idle"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    TRANSLATING = "translating"
    READY = "ready"
    ERROR = "error"


BUSY_STATUSES = frozenset({
    ProjectStatus.UPLOADING,
    ProjectStatus.ANALYZING,
    ProjectStatus.TRANSLATING,
})


class RegistryFull(Exception):
    """Raised when the registry already hosts max_projects projects."""


class RemotePlayer:
    """Player controls for a client that owns the real media element.

    The sync cannot drive a browser's player directly, so seek and pause
    requests are parked here and handed to the client with the playback
    state. The client clears them by reporting that the seek finished.
    """

    def __init__(self) -> None:
        self.pending_seek: Optional[float] = None
        self.pause_requested = False

    def seek(self, time_s: float) -> None:
        self.pending_seek = time_s

    def pause(self) -> None:
        self.pause_requested = True

    def clear(self) -> None:
        self.pending_seek = None
        self.pause_requested = False


@dataclass
class ProjectEntry:
    """One hosted project, its processing state and its playback sync.

    active_revision counts active-caption changes reported by the sync,
    so a polling client can tell when to redraw the caption overlay.
    """

    id: str
    project: CaptionProject
    status: ProjectStatus
    created_at: float
    updated_at: float
    error: Optional[str] = None
    message: Optional[str] = None
    player: RemotePlayer = field(default_factory=RemotePlayer)
    playback: PlaybackSync = field(init=False)
    active_revision: int = 0

    def __post_init__(self) -> None:
        self.playback = PlaybackSync(
            self.project.draft, self.player, on_active_change=self._on_active_change
        )

    def _on_active_change(self, event: Optional[CaptionEvent]) -> None:
        self.active_revision += 1

    @property
    def busy(self) -> bool:
        return self.status in BUSY_STATUSES


class ProjectRegistry:
    """Thread-safe in-memory registry of caption projects.

    Args:
        ttl_seconds: Idle time after which a project is dropped.
        max_projects: Upper bound on hosted projects.
        store: Autosave target for projects created with a user id.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_projects: int = 100,
        store: Optional[LocalProjectStore] = None,
    ) -> None:
        self._entries: Dict[str, ProjectEntry] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_projects = max_projects
        self.store = store

    def create(
        self,
        media_name: Optional[str] = None,
        settings: Optional[ProjectSettings] = None,
        user_id: Optional[str] = None,
    ) -> ProjectEntry:
        """Create a project, reopening the user's saved one when a user id is given.

        Capacity is checked before the (possibly slow) store read and again
        when the entry is inserted, since concurrent creates can fill the
        registry in between.

        Raises:
            RegistryFull: The registry is full.
            ValueError: The user's saved project exists but is unreadable.
        """
        with self._lock:
            self._check_capacity()

        if user_id and self.store is not None:
            project = CaptionProject.open(Session(user_id), self.store, settings=settings)
            if media_name:
                project.media_name = media_name
        else:
            project = CaptionProject(settings=settings, media_name=media_name)

        now = time.time()
        entry = ProjectEntry(
            id=uuid.uuid4().hex,
            project=project,
            status=ProjectStatus.READY if len(project.events) else ProjectStatus.IDLE,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._lock:
                self._check_capacity()
                self._entries[entry.id] = entry
        except RegistryFull:
            project.close()
            raise

        logger.info("Created project %s (%s)", entry.id, project.media_name)
        return entry

    def _check_capacity(self) -> None:
        # Caller holds self._lock
        if len(self._entries) >= self.max_projects:
            raise RegistryFull(
                "Maximum number of open projects ({}) reached".format(self.max_projects)
            )

    def get(self, project_id: str) -> Optional[ProjectEntry]:
        """Return the entry, or None for unknown ids."""
        with self._lock:
            return self._entries.get(project_id)

    def list_projects(self) -> List[ProjectEntry]:
        """All entries, oldest first."""
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.created_at)

    def touch(self, project_id: str) -> None:
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is not None:
                entry.updated_at = time.time()

    def set_status(
        self,
        project_id: str,
        status: ProjectStatus,
        error: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Optional[ProjectEntry]:
        """Update the processing state. Returns None if the project is gone.

        error is cleared unless the new status is ERROR.
        """
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is None:
                return None
            entry.status = status
            entry.error = error if status == ProjectStatus.ERROR else None
            entry.message = message
            entry.updated_at = time.time()
            return entry

    def begin(self, project_id: str, status: ProjectStatus) -> bool:
        """Atomically move an idle/ready/error project into a busy status.

        Returns False if another operation is already running.
        """
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is None or entry.busy:
                return False
            entry.status = status
            entry.error = None
            entry.message = None
            entry.updated_at = time.time()
            return True

    def delete(self, project_id: str) -> bool:
        """Remove and close a project. Returns False if it did not exist."""
        with self._lock:
            entry = self._entries.pop(project_id, None)
        if entry is None:
            return False
        entry.project.close()
        logger.info("Deleted project %s", project_id)
        return True

    def cleanup_expired(self) -> int:
        """Drop projects idle for longer than the TTL; returns how many."""
        now = time.time()
        expired: List[ProjectEntry] = []
        with self._lock:
            for project_id, entry in list(self._entries.items()):
                if entry.busy:
                    continue
                if now - entry.updated_at > self._ttl_seconds:
                    expired.append(self._entries.pop(project_id))

        for entry in expired:
            entry.project.close()
            logger.info("Expired project %s (idle %.0fs)", entry.id, now - entry.updated_at)
        return len(expired)
