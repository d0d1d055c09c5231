"""Local project store: one JSON file per user.

WHY: A project survives a restart of the CLI or server, but nothing
more is needed than "the last saved project of this user". A directory
of JSON files keyed by user id is enough and needs no database.

HOW: save() writes the record to a temporary file in the same directory
and renames it over the target with os.replace(), so a crash mid-write
never leaves a half-written project behind. load() returns None when
the user has no saved project.

RULES:
- One file per user: {directory}/{safe_user_id}.json
- User ids are reduced to [A-Za-z0-9_-] for the file name
- Writes are atomic (temp file + os.replace)
- A corrupt file raises ValueError on load; it is never silently dropped
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

from caption_studio.config import PROJECT_STORE_DIR
from caption_studio.core.model import ProjectRecord, Session

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class LocalProjectStore:
    """Key-value store of ProjectRecords on the local filesystem.

    Args:
        directory: Where project files live. Created on first save.
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self._directory = Path(directory) if directory is not None else PROJECT_STORE_DIR

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, session: Session) -> Path:
        safe = _UNSAFE_CHARS.sub("_", session.user_id) or "_"
        return self._directory / f"{safe}.json"

    def save(self, session: Session, record: ProjectRecord) -> Path:
        """Atomically write the record for this session's user."""
        self._directory.mkdir(parents=True, exist_ok=True)
        target = self.path_for(session)

        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{target.stem}-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved project for %s (%d events) to %s",
                     session.user_id, len(record.events), target)
        return target

    def load(self, session: Session) -> ProjectRecord | None:
        """Return the saved record for this session's user, or None."""
        path = self.path_for(session)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return ProjectRecord.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Saved project {path} is unreadable: {exc}") from exc

    def delete(self, session: Session) -> bool:
        """Remove the saved record; returns False if there was none."""
        path = self.path_for(session)
        if not path.exists():
            return False
        path.unlink()
        return True
