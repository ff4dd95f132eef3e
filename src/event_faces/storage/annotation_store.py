"""File-backed store for the per-event annotation record (metadata.json).

Every operation is a whole-record cycle: read the JSON file, mutate in memory,
write a temporary file next to it and rename it over the original. Readers
therefore see either the previous or the next complete record, never a torn one.

Each event has its own re-entrant lock. It serializes store operations within
this process only; a detection ``replace`` that lands after a concurrent manual
``append_face`` still wins (last writer wins at the file level).
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from event_faces.config import STORAGE_DIR
from event_faces.errors import MetadataCorrupt
from event_faces.models import AnnotationRecord, FaceRecord, ImageInfo
from event_faces.storage.paths import EventPaths

logger = logging.getLogger(__name__)

# mkstemp creates files 0600; stored artifacts stay world-readable
ARTIFACT_MODE = 0o644


class AnnotationStore:
    """Owns metadata.json for every event under one storage directory."""

    def __init__(self, storage_dir: Path | None = None) -> None:
        self.storage_dir = Path(storage_dir or STORAGE_DIR)
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def paths(self, event_id: int) -> EventPaths:
        return EventPaths(self.storage_dir, event_id)

    def lock(self, event_id: int) -> threading.RLock:
        """Return the exclusive in-process lock for an event."""
        with self._locks_guard:
            lock = self._locks.get(event_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[event_id] = lock
            return lock

    def discard_lock(self, event_id: int) -> None:
        """Forget an event's lock once its storage area is gone."""
        with self._locks_guard:
            self._locks.pop(event_id, None)

    def exists(self, event_id: int) -> bool:
        return self.paths(event_id).metadata.is_file()

    def read(self, event_id: int) -> AnnotationRecord | None:
        """Load the record, raising MetadataCorrupt if the file cannot be parsed.

        Returns None when no record has been written yet.
        """
        path = self.paths(event_id).metadata
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise MetadataCorrupt(f"Metadata for event {event_id} is not UTF-8: {exc}") from exc
        try:
            return AnnotationRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise MetadataCorrupt(f"Unparseable metadata for event {event_id}: {exc}") from exc

    def load(self, event_id: int) -> AnnotationRecord | None:
        """Load the record for read paths; a corrupt file is logged and treated as missing."""
        try:
            return self.read(event_id)
        except MetadataCorrupt:
            logger.warning("Ignoring corrupt metadata for event %s", event_id, exc_info=True)
            return None

    def replace(self, event_id: int, record: AnnotationRecord) -> None:
        """Atomically overwrite the record (used after a fresh detection run)."""
        with self.lock(event_id):
            self._write(event_id, record)
        logger.info("Stored %d faces for event %s", len(record.faces), event_id)

    def append_face(
        self,
        event_id: int,
        image_info: ImageInfo,
        face: FaceRecord,
    ) -> AnnotationRecord:
        """Append a face, seeding a new record with image_info if none exists.

        An existing record keeps its own image_info. A corrupt record is left
        untouched and MetadataCorrupt is raised.
        """
        with self.lock(event_id):
            record = self.read(event_id)
            if record is None:
                record = AnnotationRecord(image_info=image_info, faces=[])
            record.faces.append(face)
            self._write(event_id, record)
        return record

    def remove_face_by_filename(self, event_id: int, filename: str) -> bool:
        """Drop every face entry with this filename.

        Returns True if an entry was removed. Missing record or filename is a no-op.
        """
        with self.lock(event_id):
            record = self.read(event_id)
            if record is None:
                return False
            kept = [face for face in record.faces if face.filename != filename]
            if len(kept) == len(record.faces):
                return False
            record.faces = kept
            self._write(event_id, record)
        return True

    def _write(self, event_id: int, record: AnnotationRecord) -> None:
        path = self.paths(event_id).metadata
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".metadata.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, ensure_ascii=False, indent=4)
            os.chmod(tmp_name, ARTIFACT_MODE)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
