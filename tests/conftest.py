"""Shared test fixtures."""

from io import BytesIO

import duckdb
import pytest
from PIL import Image

from event_faces.detection.detector import FaceDetector
from event_faces.models import ProviderFace, ProviderResult
from event_faces.pipeline.orchestrator import FaceAnnotationService
from event_faces.storage.activity_log import ActivityLog
from event_faces.storage.annotation_store import AnnotationStore
from event_faces.storage.schema import ensure_schema


class FakeProvider:
    """Detection provider returning canned boxes and remembering what it was sent."""

    def __init__(self, faces: list[tuple[int, int, int, int]] | None = None, error=None) -> None:
        self.faces = faces or []
        self.error = error
        self.calls: list[dict] = []

    def submit(self, image_bytes, max_face_num, min_face_size, model_version):
        self.calls.append(
            {
                "image_bytes": image_bytes,
                "max_face_num": max_face_num,
                "min_face_size": min_face_size,
                "model_version": model_version,
            }
        )
        if self.error is not None:
            raise self.error
        submitted = Image.open(BytesIO(image_bytes))
        return ProviderResult(
            faces=[ProviderFace(x, y, w, h) for x, y, w, h in self.faces],
            image_width=submitted.width,
            image_height=submitted.height,
        )


def make_image_bytes(
    width: int,
    height: int,
    color=(40, 80, 120),
    fmt: str = "JPEG",
    mode: str = "RGB",
) -> bytes:
    """Encode a solid-color synthetic image."""
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def db_conn():
    """In-memory DuckDB connection with schema initialized."""
    conn = duckdb.connect(":memory:")
    ensure_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture
def store(storage_dir) -> AnnotationStore:
    return AnnotationStore(storage_dir)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(faces=[(100, 100, 50, 50)])


@pytest.fixture
def service(storage_dir, provider, db_conn):
    """Service wired to the fake provider, temp storage and in-memory activity log."""
    svc = FaceAnnotationService(
        storage_dir=storage_dir,
        detector=FaceDetector(provider=provider),
        activity_log=ActivityLog(db_conn),
        workers=1,
    )
    yield svc
    svc.shutdown()
