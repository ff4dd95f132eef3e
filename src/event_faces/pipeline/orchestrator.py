"""Processing orchestrator: upload -> detect -> crop -> persist -> commit.

Status is never stored. It is derived on every query from which artifacts
exist in the event's storage area:

- metadata.json present           -> completed (with faces_count)
- only original.jpg present       -> processing
- neither                         -> not_found

A detection job that fails leaves no record behind, so the event stays in
``processing`` until the next successful upload.
"""

import logging
import os
import shutil
import tempfile
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Protocol

from event_faces.config import WORKER_COUNT
from event_faces.detection.detector import FaceDetector, decode_image, encode_jpeg
from event_faces.detection.geometry import clamp_box, crop_rect
from event_faces.errors import (
    ArtifactNotFound,
    EmptyFaceBox,
    EventClosed,
    EventNotFound,
    MetadataCorrupt,
)
from event_faces.models import (
    STATUS_COMPLETED,
    STATUS_NOT_FOUND,
    STATUS_PROCESSING,
    AnnotationRecord,
    FaceRecord,
    ImageInfo,
    QQAvatarInfo,
)
from event_faces.pipeline.avatars import (
    avatar_candidates,
    fetch_qq_avatar,
    read_qq_sidecar,
    save_avatar,
    upload_extension,
)
from event_faces.pipeline.qq_client import QQClient, lookup_nickname
from event_faces.storage.activity_log import MODULE_EVENT, MODULE_IMAGE, ActivityLog
from event_faces.storage.annotation_store import ARTIFACT_MODE, AnnotationStore
from event_faces.storage.paths import EventPaths, list_face_files, read_original, validate_filename

logger = logging.getLogger(__name__)


class EventRegistry(Protocol):
    """Read-only view of the relational event table."""

    def exists(self, event_id: int) -> bool: ...

    def is_open(self, event_id: int) -> bool: ...


def manual_face_id() -> str:
    """Default id for a manually added face, derived from the current time in ms."""
    return f"manual_{int(time.time() * 1000)}"


def _write_atomic(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_name, ARTIFACT_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _remove_quietly(path: Path) -> None:
    """Best-effort unlink: a missing file is fine, other errors are only logged."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Failed to remove %s", path, exc_info=True)


class FaceAnnotationService:
    """Coordinates detection, face artifacts and the annotation store per event.

    Upload-triggered detection and QQ avatar downloads run on a bounded
    thread pool; the returned futures let callers (and tests) wait for them.
    """

    def __init__(
        self,
        storage_dir: Path | None = None,
        detector: FaceDetector | None = None,
        activity_log: ActivityLog | None = None,
        qq_client: QQClient | None = None,
        registry: EventRegistry | None = None,
        workers: int = WORKER_COUNT,
    ) -> None:
        self.store = AnnotationStore(storage_dir)
        self.detector = detector or FaceDetector()
        self.activity_log = activity_log
        self.qq_client = qq_client or QQClient()
        self.registry = registry
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="event-faces")

    def __enter__(self) -> "FaceAnnotationService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def paths(self, event_id: int) -> EventPaths:
        return self.store.paths(event_id)

    def _record(self, level: str, module: str, action: str, event_id: int, **kwargs) -> None:
        if self.activity_log is not None:
            self.activity_log.record(level, module, action, event_id=event_id, **kwargs)

    def _require_event(self, event_id: int, must_be_open: bool = False) -> None:
        if self.registry is None:
            return
        if not self.registry.exists(event_id):
            raise EventNotFound(f"Event {event_id} not found")
        if must_be_open and not self.registry.is_open(event_id):
            raise EventClosed(f"Event {event_id} is closed")

    # -- detection -------------------------------------------------------

    def on_photo_uploaded(
        self,
        event_id: int,
        image_bytes: bytes,
        upload_filename: str | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> Future:
        """Persist the original photo and start detection in the background.

        Returns immediately with a future resolving to the stored record,
        or None if the job failed.
        """
        self._require_event(event_id)
        if upload_filename is not None:
            upload_extension(upload_filename)

        paths = self.paths(event_id)
        paths.ensure_dirs()
        _write_atomic(paths.original, image_bytes)
        logger.info("Stored original for event %s (%d bytes)", event_id, len(image_bytes))
        self._record(
            "INFO",
            MODULE_EVENT,
            "upload_event_picture",
            event_id,
            user_id=user_id,
            ip_address=ip_address,
            details={"filename": upload_filename},
        )
        return self._executor.submit(self._detection_job, event_id, paths.original)

    def _detection_job(self, event_id: int, image_path: Path) -> AnnotationRecord | None:
        try:
            record = self.process_event_image(event_id, image_path)
        except Exception as exc:
            logger.exception("Face detection failed for event %s", event_id)
            self._record(
                "ERROR",
                MODULE_IMAGE,
                "face_detection_failed",
                event_id,
                details={"error": str(exc), "type": type(exc).__name__},
            )
            return None
        self._record(
            "INFO",
            MODULE_IMAGE,
            "face_detection_completed",
            event_id,
            details={"faces_count": len(record.faces)},
        )
        return record

    def process_event_image(self, event_id: int, image_path: Path | None = None) -> AnnotationRecord:
        """Run detection synchronously and commit a fresh annotation record.

        Raises on any failure; nothing is written to metadata.json in that case.
        """
        paths = self.paths(event_id)
        source = Path(image_path) if image_path is not None else paths.original
        logger.info("Processing event %s from %s", event_id, source)
        try:
            data = source.read_bytes()
        except FileNotFoundError as exc:
            raise ArtifactNotFound(f"Image not found: {source}") from exc

        record = self.detector.detect(data)
        logger.info("Detected %d faces for event %s", len(record.faces), event_id)

        img = decode_image(data)
        with self.store.lock(event_id):
            paths.ensure_dirs()
            for face in record.faces:
                crop = crop_rect(img, face.coordinates)
                _write_atomic(paths.face(face.filename), encode_jpeg(crop))
            if source.resolve() != paths.original.resolve():
                _write_atomic(paths.original, data)
            self.store.replace(event_id, record)
        return record

    # -- derived status and read-only views --------------------------------

    def get_status(self, event_id: int) -> dict:
        """Derive processing status from artifact presence."""
        record = self.store.load(event_id)
        if record is not None:
            count = len(record.faces)
            return {
                "status": STATUS_COMPLETED,
                "faces_count": count,
                "message": f"Processing completed, {count} faces detected",
            }
        if self.paths(event_id).original.is_file():
            return {"status": STATUS_PROCESSING, "message": "Processing in progress"}
        return {"status": STATUS_NOT_FOUND, "message": "No image uploaded"}

    def get_metadata(self, event_id: int) -> dict:
        record = self.store.load(event_id)
        if record is None:
            raise ArtifactNotFound("Metadata not found")
        return record.to_dict()

    def get_picture_info(self, event_id: int) -> dict:
        record = self.store.load(event_id)
        if record is None:
            raise ArtifactNotFound("Metadata not found")
        return {"pic_info": record.image_info.to_dict(), "event_id": event_id}

    def list_faces(self, event_id: int) -> dict:
        return {"faces": list_face_files(self.paths(event_id)), "event_id": event_id}

    # -- manual edits -----------------------------------------------------

    def add_manual_face(
        self,
        event_id: int,
        x1: int,
        y1: int,
        x2: int,
        y2: int,
        face_id: str | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> FaceRecord:
        """Crop a caller-chosen box from the original and append it as a manual face."""
        face_id = face_id or manual_face_id()
        filename = validate_filename(f"{face_id}.jpg")
        paths = self.paths(event_id)

        img = decode_image(read_original(paths))
        img_w, img_h = img.size
        box = clamp_box(x1, y1, x2, y2, (img_w, img_h))
        if box.width <= 0 or box.height <= 0:
            raise EmptyFaceBox(f"Face box {box.as_tuple()} is empty after clamping")

        face = FaceRecord(
            filename=filename,
            coordinates=box,
            confidence=1.0,
            manual=True,
            face_id=face_id,
        )
        with self.store.lock(event_id):
            paths.ensure_dirs()
            _write_atomic(paths.face(filename), encode_jpeg(crop_rect(img, box)))
            try:
                self.store.append_face(event_id, ImageInfo(width=img_w, height=img_h), face)
            except (MetadataCorrupt, OSError):
                logger.warning("Failed to update metadata for event %s", event_id, exc_info=True)

        self._record(
            "INFO",
            MODULE_IMAGE,
            "add_manual_face",
            event_id,
            user_id=user_id,
            ip_address=ip_address,
            details={"face_id": face_id, "coordinates": box.to_dict()},
        )
        return face

    def delete_face(
        self,
        event_id: int,
        filename: str,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        """Remove a face artifact, its avatars, its QQ sidecar and its record entry.

        Every removal is attempted. Only a failure to delete the face image
        itself is raised, after the rest of the cleanup has run.
        """
        validate_filename(filename)
        paths = self.paths(event_id)
        primary_error: OSError | None = None

        with self.store.lock(event_id):
            try:
                paths.face(filename).unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error("Failed to delete face image %s for event %s", filename, event_id)
                primary_error = exc

            for candidate in avatar_candidates(paths, filename):
                _remove_quietly(candidate)

            try:
                self.store.remove_face_by_filename(event_id, filename)
            except (MetadataCorrupt, OSError):
                logger.warning("Failed to update metadata for event %s", event_id, exc_info=True)

        self._record(
            "WARNING",
            MODULE_EVENT,
            "delete_face",
            event_id,
            user_id=user_id,
            ip_address=ip_address,
            details={"deleted_face": filename},
        )
        if primary_error is not None:
            raise primary_error

    def remove_event(self, event_id: int) -> None:
        """Delete the event's whole storage area, annotation record included."""
        with self.store.lock(event_id):
            shutil.rmtree(self.paths(event_id).event_dir, ignore_errors=True)
        self.store.discard_lock(event_id)
        logger.info("Removed storage for event %s", event_id)

    # -- avatars ----------------------------------------------------------

    def upload_avatar(
        self,
        event_id: int,
        face: str,
        upload_filename: str,
        data: bytes,
        user_id: str | None = None,
    ) -> str:
        """Store a participant's own avatar image for a face."""
        self._require_event(event_id, must_be_open=True)
        filename = save_avatar(self.paths(event_id), face, upload_filename, data)
        self._record(
            "INFO",
            MODULE_IMAGE,
            "upload_avatar",
            event_id,
            user_id=user_id,
            details={"face": face, "filename": filename},
        )
        return filename

    def request_qq_avatar(
        self,
        event_id: int,
        face: str,
        qq_number: str,
        ip_address: str | None = None,
    ) -> Future:
        """Download a QQ avatar for a face in the background."""
        self._require_event(event_id, must_be_open=True)
        validate_filename(face)
        self._record(
            "INFO",
            MODULE_IMAGE,
            "upload_qq_avatar",
            event_id,
            ip_address=ip_address,
            details={"face": face, "qq_number": qq_number},
        )
        return self._executor.submit(self._qq_avatar_job, event_id, face, qq_number)

    def _qq_avatar_job(self, event_id: int, face: str, qq_number: str) -> QQAvatarInfo | None:
        try:
            return fetch_qq_avatar(self.paths(event_id), face, qq_number, self.qq_client)
        except Exception as exc:
            logger.exception("Failed to download QQ avatar for %s (event %s)", face, event_id)
            self._record(
                "ERROR",
                MODULE_IMAGE,
                "qq_avatar_failed",
                event_id,
                details={"face": face, "qq_number": qq_number, "error": str(exc)},
            )
            return None

    def qq_nickname(self, qq_number: str) -> dict:
        return lookup_nickname(self.qq_client, qq_number)

    def face_qq_info(self, event_id: int, filename: str) -> dict:
        return read_qq_sidecar(self.paths(event_id), filename)
