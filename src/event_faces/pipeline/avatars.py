"""Avatar artifacts attached to detected faces."""

import json
import logging
from pathlib import Path, PurePath

from event_faces.config import ALLOWED_IMAGE_EXTENSIONS
from event_faces.errors import InvalidFilename, MetadataCorrupt
from event_faces.models import QQAvatarInfo
from event_faces.pipeline.qq_client import QQClient
from event_faces.storage.paths import EventPaths, base_name, validate_filename

logger = logging.getLogger(__name__)


def upload_extension(upload_filename: str) -> str:
    """Lower-cased extension of an uploaded file, restricted to accepted image types."""
    ext = PurePath(upload_filename or "").suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidFilename(f"Only {', '.join(ALLOWED_IMAGE_EXTENSIONS)} allowed")
    return ext


def save_avatar(paths: EventPaths, face: str, upload_filename: str, data: bytes) -> str:
    """Store a user-supplied avatar for a face. Returns the avatar filename."""
    validate_filename(face)
    filename = base_name(face) + upload_extension(upload_filename)
    paths.ensure_dirs()
    paths.avatar(filename).write_bytes(data)
    logger.info("Saved avatar %s for event %s", filename, paths.event_id)
    return filename


def fetch_qq_avatar(paths: EventPaths, face: str, qq_number: str, client: QQClient) -> QQAvatarInfo:
    """Download a QQ avatar for a face and write it with its sidecar JSON."""
    validate_filename(face)
    data = client.download_avatar(qq_number)
    paths.ensure_dirs()
    base = base_name(face)
    info = QQAvatarInfo(qq_number=qq_number, filename=f"{base}.jpg")
    paths.avatar(info.filename).write_bytes(data)
    paths.avatar(f"{base}.json").write_text(
        json.dumps(info.to_dict(), ensure_ascii=False), encoding="utf-8"
    )
    logger.info("Saved QQ avatar for %s (event %s)", face, paths.event_id)
    return info


def read_qq_sidecar(paths: EventPaths, filename: str) -> dict:
    """QQ profile info for a face, or a null qq_number when none was attached."""
    validate_filename(filename)
    sidecar = paths.avatar(f"{base_name(filename)}.json")
    try:
        raw = sidecar.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {"qq_number": None, "filename": filename}
    except UnicodeDecodeError as exc:
        raise MetadataCorrupt(f"Invalid QQ info format for {filename}") from exc
    try:
        info = json.loads(raw)
    except ValueError as exc:
        raise MetadataCorrupt(f"Invalid QQ info format for {filename}") from exc
    if not isinstance(info, dict):
        raise MetadataCorrupt(f"Invalid QQ info format for {filename}")
    info["filename"] = filename
    return info


def avatar_candidates(paths: EventPaths, face: str) -> list[Path]:
    """Every avatar path (all accepted extensions) plus the sidecar for a face."""
    base = base_name(face)
    candidates = [paths.avatar(base + ext) for ext in ALLOWED_IMAGE_EXTENSIONS]
    candidates.append(paths.avatar(f"{base}.json"))
    return candidates
