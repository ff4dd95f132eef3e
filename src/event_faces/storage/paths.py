"""Per-event storage layout and read-only artifact access."""

from dataclasses import dataclass
from pathlib import Path, PurePath

from event_faces.config import (
    AVATARS_DIRNAME,
    FACES_DIRNAME,
    METADATA_FILENAME,
    ORIGINAL_FILENAME,
    STORAGE_DIR,
)
from event_faces.errors import ArtifactNotFound, InvalidFilename


def validate_filename(name: str) -> str:
    """Reject names that are empty or would escape their directory."""
    if not name or name in (".", "..") or PurePath(name).name != name or "\\" in name:
        raise InvalidFilename(f"Invalid filename: {name!r}")
    return name


def base_name(filename: str) -> str:
    """'face_1.jpg' -> 'face_1'."""
    return PurePath(filename).stem


@dataclass(frozen=True)
class EventPaths:
    """Fixed sub-paths of one event's storage area."""

    storage_dir: Path
    event_id: int

    @classmethod
    def for_event(cls, event_id: int, storage_dir: Path | None = None) -> "EventPaths":
        return cls(Path(storage_dir or STORAGE_DIR), event_id)

    @property
    def event_dir(self) -> Path:
        return self.storage_dir / "events" / str(self.event_id)

    @property
    def original(self) -> Path:
        return self.event_dir / ORIGINAL_FILENAME

    @property
    def metadata(self) -> Path:
        return self.event_dir / METADATA_FILENAME

    @property
    def faces_dir(self) -> Path:
        return self.event_dir / FACES_DIRNAME

    @property
    def avatars_dir(self) -> Path:
        return self.event_dir / AVATARS_DIRNAME

    def face(self, filename: str) -> Path:
        return self.faces_dir / validate_filename(filename)

    def avatar(self, filename: str) -> Path:
        return self.avatars_dir / validate_filename(filename)

    def ensure_dirs(self) -> None:
        for directory in (self.event_dir, self.faces_dir, self.avatars_dir):
            directory.mkdir(parents=True, exist_ok=True)


def _read(path: Path, what: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise ArtifactNotFound(f"{what} not found: {path.name}") from exc


def read_original(paths: EventPaths) -> bytes:
    return _read(paths.original, "Image")


def read_face(paths: EventPaths, filename: str) -> bytes:
    return _read(paths.face(filename), "Face image")


def read_avatar(paths: EventPaths, filename: str) -> bytes:
    return _read(paths.avatar(filename), "Avatar")


def list_face_files(paths: EventPaths) -> list[str]:
    """Names of face artifacts on disk, sorted."""
    if not paths.faces_dir.is_dir():
        raise ArtifactNotFound("Faces directory not found")
    return sorted(p.name for p in paths.faces_dir.iterdir() if p.is_file())
