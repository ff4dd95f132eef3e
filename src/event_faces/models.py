"""Data models for face annotation records."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import Any

from event_faces.config import ORIGINAL_FILENAME

STATUS_NOT_FOUND = "not_found"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"


@dataclass(frozen=True)
class FaceCoordinates:
    """Axis-aligned box in original-image pixel space."""

    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x1, self.y1, self.x2, self.y2)

    def to_dict(self) -> dict[str, int]:
        return {"x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FaceCoordinates":
        return cls(
            x1=int(data["x1"]),
            y1=int(data["y1"]),
            x2=int(data["x2"]),
            y2=int(data["y2"]),
        )


@dataclass
class FaceRecord:
    """A single detected or manually added face."""

    filename: str
    coordinates: FaceCoordinates
    confidence: float = 1.0
    manual: bool = False
    face_id: str | None = None

    def __post_init__(self) -> None:
        if self.face_id is None:
            self.face_id = PurePath(self.filename).stem

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "coordinates": self.coordinates.to_dict(),
            "confidence": self.confidence,
            "manual": self.manual,
            "face_id": self.face_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FaceRecord":
        # Records written by older detection runs carry no manual/face_id keys
        return cls(
            filename=str(data["filename"]),
            coordinates=FaceCoordinates.from_dict(data["coordinates"]),
            confidence=float(data.get("confidence", 1.0)),
            manual=bool(data.get("manual", False)),
            face_id=data.get("face_id"),
        )


@dataclass(frozen=True)
class ImageInfo:
    """Dimensions of the original photo at the time of last detection."""

    width: int
    height: int
    filename: str = ORIGINAL_FILENAME

    def to_dict(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height, "filename": self.filename}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageInfo":
        return cls(
            width=int(data["width"]),
            height=int(data["height"]),
            filename=str(data.get("filename", ORIGINAL_FILENAME)),
        )


@dataclass
class AnnotationRecord:
    """The per-event index of known faces. Serialized as metadata.json."""

    image_info: ImageInfo
    faces: list[FaceRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_info": self.image_info.to_dict(),
            "faces": [face.to_dict() for face in self.faces],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnnotationRecord":
        faces_raw = data.get("faces") or []
        return cls(
            image_info=ImageInfo.from_dict(data["image_info"]),
            faces=[FaceRecord.from_dict(face) for face in faces_raw],
        )

    def filenames(self) -> list[str]:
        return [face.filename for face in self.faces]


@dataclass(frozen=True)
class ProviderFace:
    """A face box as returned by the detection provider, in submitted-image pixels."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class ProviderResult:
    """Raw detection response."""

    faces: list[ProviderFace]
    image_width: int
    image_height: int


@dataclass(frozen=True)
class QQAvatarInfo:
    """Sidecar stored next to an avatar downloaded from a QQ profile."""

    qq_number: str
    filename: str

    def to_dict(self) -> dict[str, str]:
        return {"qq_number": self.qq_number, "filename": self.filename}


@dataclass
class ActivityLogEntry:
    """A single row of the operator-facing activity log."""

    id: int
    timestamp: datetime
    level: str
    module: str
    action: str
    user_id: str | None
    event_id: str | None
    ip_address: str | None
    details: Any
