"""End-to-end tests for the processing orchestrator."""

import json
import threading
from io import BytesIO

import pytest
from conftest import FakeProvider, make_image_bytes
from PIL import Image

from event_faces.detection.detector import FaceDetector
from event_faces.errors import (
    ArtifactNotFound,
    EmptyFaceBox,
    EventClosed,
    EventNotFound,
    InvalidFilename,
    ProviderUnavailable,
)
from event_faces.models import FaceCoordinates
from event_faces.pipeline.orchestrator import FaceAnnotationService
from event_faces.storage.activity_log import get_logs

EVENT = 1


def _face_size(service, filename):
    return Image.open(service.paths(EVENT).face(filename)).size


def test_status_not_found(service):
    assert service.get_status(EVENT)["status"] == "not_found"


def test_status_processing_when_only_original_exists(service):
    paths = service.paths(EVENT)
    paths.ensure_dirs()
    paths.original.write_bytes(make_image_bytes(100, 100))
    assert service.get_status(EVENT)["status"] == "processing"


def test_status_completed_reports_face_count(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600)).result()
    status = service.get_status(EVENT)
    assert status["status"] == "completed"
    assert status["faces_count"] == 1


def test_status_with_corrupt_metadata_is_processing(service):
    paths = service.paths(EVENT)
    paths.ensure_dirs()
    paths.original.write_bytes(make_image_bytes(100, 100))
    paths.metadata.write_text("garbage", encoding="utf-8")
    assert service.get_status(EVENT)["status"] == "processing"
    assert paths.metadata.read_text(encoding="utf-8") == "garbage"


def test_upload_runs_detection_in_background(service, provider):
    future = service.on_photo_uploaded(EVENT, make_image_bytes(6000, 4000), "group.jpg")
    record = future.result(timeout=60)

    assert record is not None
    assert len(provider.calls) == 1
    paths = service.paths(EVENT)
    assert paths.original.is_file()
    face = record.faces[0]
    assert face.filename == "face_1.jpg"
    x1, y1, x2, y2 = face.coordinates.as_tuple()
    assert abs(x1 - 135) <= 1 and abs(y1 - 135) <= 1
    assert abs(x2 - 240) <= 1 and abs(y2 - 240) <= 1
    assert _face_size(service, "face_1.jpg") == (x2 - x1, y2 - y1)

    stored = json.loads(paths.metadata.read_text(encoding="utf-8"))
    assert stored["image_info"] == {"width": 6000, "height": 4000, "filename": "original.jpg"}
    assert stored["faces"][0]["filename"] == "face_1.jpg"


def test_upload_returns_before_detection_finishes(storage_dir, db_conn):
    release = threading.Event()

    class BlockingProvider(FakeProvider):
        def submit(self, *args, **kwargs):
            release.wait(timeout=10)
            return super().submit(*args, **kwargs)

    svc = FaceAnnotationService(
        storage_dir=storage_dir,
        detector=FaceDetector(provider=BlockingProvider(faces=[(1, 1, 10, 10)])),
        workers=1,
    )
    try:
        future = svc.on_photo_uploaded(EVENT, make_image_bytes(100, 100))
        assert not future.done()
        assert svc.get_status(EVENT)["status"] == "processing"
        release.set()
        assert future.result(timeout=10) is not None
        assert svc.get_status(EVENT)["status"] == "completed"
    finally:
        release.set()
        svc.shutdown()


def test_failed_detection_writes_no_record(service, provider, db_conn):
    provider.error = ProviderUnavailable("provider down")
    assert service.on_photo_uploaded(EVENT, make_image_bytes(200, 200)).result() is None

    assert not service.paths(EVENT).metadata.exists()
    assert service.get_status(EVENT)["status"] == "processing"
    entries, _ = get_logs(db_conn, level="ERROR")
    assert entries[0].action == "face_detection_failed"
    assert entries[0].details["type"] == "ProviderUnavailable"


def test_upload_rejects_unsupported_extension(service):
    with pytest.raises(InvalidFilename):
        service.on_photo_uploaded(EVENT, b"GIF89a", "party.gif")
    assert not service.paths(EVENT).original.exists()


def test_upload_records_activity(service, db_conn):
    service.on_photo_uploaded(EVENT, make_image_bytes(100, 100), "a.png", user_id="admin").result()
    entries, total = get_logs(db_conn, module="event_management")
    assert total == 1
    assert entries[0].action == "upload_event_picture"
    assert entries[0].user_id == "admin"
    assert entries[0].event_id == "1"


def test_process_event_image_copies_external_source(service, tmp_path):
    source = tmp_path / "incoming.jpg"
    source.write_bytes(make_image_bytes(300, 300))
    service.process_event_image(EVENT, source)
    assert service.paths(EVENT).original.read_bytes() == source.read_bytes()


def test_process_event_image_missing_original(service):
    with pytest.raises(ArtifactNotFound):
        service.process_event_image(EVENT)


def _upload_original(service, width=400, height=300):
    paths = service.paths(EVENT)
    paths.ensure_dirs()
    paths.original.write_bytes(make_image_bytes(width, height))


def test_add_manual_face_creates_record(service):
    _upload_original(service)
    face = service.add_manual_face(EVENT, 10, 20, 110, 70, face_id="alice")

    assert face.filename == "alice.jpg"
    assert face.manual is True
    assert face.confidence == 1.0
    assert _face_size(service, "alice.jpg") == (100, 50)
    record = service.store.load(EVENT)
    assert record.image_info.width == 400
    assert record.image_info.height == 300
    assert record.faces[0].face_id == "alice"


def test_add_manual_face_clamps_box(service):
    _upload_original(service)
    face = service.add_manual_face(EVENT, -50, -50, 1000, 1000, face_id="big")
    assert face.coordinates == FaceCoordinates(0, 0, 400, 300)


def test_add_manual_face_default_id(service):
    _upload_original(service)
    face = service.add_manual_face(EVENT, 0, 0, 10, 10)
    assert face.face_id.startswith("manual_")
    assert face.filename == f"{face.face_id}.jpg"


def test_add_manual_face_empty_box(service):
    _upload_original(service)
    with pytest.raises(EmptyFaceBox):
        service.add_manual_face(EVENT, 50, 50, 10, 10)


def test_add_manual_face_without_original(service):
    with pytest.raises(ArtifactNotFound):
        service.add_manual_face(EVENT, 0, 0, 10, 10)


def test_add_manual_face_appends_after_detection(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600)).result()
    service.add_manual_face(EVENT, 300, 300, 350, 360, face_id="late")
    assert service.store.load(EVENT).filenames() == ["face_1.jpg", "late.jpg"]
    assert service.get_status(EVENT)["faces_count"] == 2


def test_delete_face_removes_all_artifacts(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600)).result()
    paths = service.paths(EVENT)
    paths.avatar("face_1.png").write_bytes(b"png")
    paths.avatar("face_1.json").write_text('{"qq_number": "1"}', encoding="utf-8")

    service.delete_face(EVENT, "face_1.jpg")

    assert not paths.face("face_1.jpg").exists()
    assert not paths.avatar("face_1.png").exists()
    assert not paths.avatar("face_1.json").exists()
    assert service.store.load(EVENT).faces == []

    service.delete_face(EVENT, "face_1.jpg")
    assert service.get_status(EVENT) == {
        "status": "completed",
        "faces_count": 0,
        "message": "Processing completed, 0 faces detected",
    }


def test_delete_face_with_corrupt_metadata_still_removes_files(service):
    _upload_original(service)
    paths = service.paths(EVENT)
    paths.face("face_1.jpg").write_bytes(b"x")
    paths.avatar("face_1.jpg").write_bytes(b"x")
    paths.metadata.write_text("{", encoding="utf-8")

    service.delete_face(EVENT, "face_1.jpg")

    assert not paths.face("face_1.jpg").exists()
    assert not paths.avatar("face_1.jpg").exists()
    assert paths.metadata.read_text(encoding="utf-8") == "{"


def test_delete_face_rejects_traversal(service):
    with pytest.raises(InvalidFilename):
        service.delete_face(EVENT, "../metadata.json")


def test_delete_face_records_warning(service, db_conn):
    service.delete_face(EVENT, "face_9.jpg", user_id="admin")
    entries, _ = get_logs(db_conn, level="WARNING")
    assert entries[0].details == {"deleted_face": "face_9.jpg"}


def test_read_only_views(service):
    with pytest.raises(ArtifactNotFound):
        service.get_metadata(EVENT)
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600)).result()
    assert service.get_metadata(EVENT)["faces"][0]["filename"] == "face_1.jpg"
    assert service.get_picture_info(EVENT) == {
        "pic_info": {"width": 800, "height": 600, "filename": "original.jpg"},
        "event_id": EVENT,
    }
    assert service.list_faces(EVENT) == {"faces": ["face_1.jpg"], "event_id": EVENT}


def test_face_artifact_is_valid_jpeg(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600, fmt="PNG")).result()
    data = service.paths(EVENT).face("face_1.jpg").read_bytes()
    assert Image.open(BytesIO(data)).format == "JPEG"


def test_remove_event(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(100, 100)).result()
    service.remove_event(EVENT)
    assert service.get_status(EVENT)["status"] == "not_found"


class Registry:
    def __init__(self, events: dict[int, bool]) -> None:
        self.events = events

    def exists(self, event_id):
        return event_id in self.events

    def is_open(self, event_id):
        return self.events.get(event_id, False)


def test_registry_gates_uploads(storage_dir, provider):
    svc = FaceAnnotationService(
        storage_dir=storage_dir,
        detector=FaceDetector(provider=provider),
        registry=Registry({1: False}),
        workers=1,
    )
    try:
        with pytest.raises(EventNotFound):
            svc.on_photo_uploaded(2, make_image_bytes(10, 10))
        with pytest.raises(EventClosed):
            svc.upload_avatar(1, "face_1.jpg", "me.png", b"png")
        assert svc.on_photo_uploaded(1, make_image_bytes(100, 100)).result() is not None
    finally:
        svc.shutdown()


def test_non_utf8_metadata_does_not_break_status_or_delete(service):
    _upload_original(service)
    paths = service.paths(EVENT)
    paths.face("face_1.jpg").write_bytes(b"x")
    paths.metadata.write_bytes(b"\xff\xfe\x00garbage")

    assert service.get_status(EVENT)["status"] == "processing"
    service.delete_face(EVENT, "face_1.jpg")
    assert not paths.face("face_1.jpg").exists()
    assert paths.metadata.read_bytes() == b"\xff\xfe\x00garbage"


def test_artifacts_are_world_readable(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(800, 600)).result()
    paths = service.paths(EVENT)
    for path in (paths.original, paths.face("face_1.jpg"), paths.metadata):
        assert path.stat().st_mode & 0o777 == 0o644


def test_remove_event_forgets_lock(service):
    service.on_photo_uploaded(EVENT, make_image_bytes(100, 100)).result()
    assert EVENT in service.store._locks
    service.remove_event(EVENT)
    assert EVENT not in service.store._locks
