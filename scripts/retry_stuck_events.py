"""Re-run face detection for every event stuck in the processing state.

An event is stuck when its original photo exists but no metadata.json was
ever written, typically because the background detection job failed.
"""

import time

from event_faces.config import LOG_LEVEL, STORAGE_DIR
from event_faces.errors import FaceAnnotationError
from event_faces.log import setup_logging
from event_faces.models import STATUS_PROCESSING
from event_faces.pipeline.orchestrator import FaceAnnotationService
from event_faces.storage.activity_log import ActivityLog


def find_event_ids() -> list[int]:
    """Event IDs that have a storage directory."""
    events_dir = STORAGE_DIR / "events"
    if not events_dir.is_dir():
        return []
    return sorted(int(p.name) for p in events_dir.iterdir() if p.is_dir() and p.name.isdigit())


def main() -> None:
    setup_logging(LOG_LEVEL)
    event_ids = find_event_ids()
    print(f"Found {len(event_ids)} event directories\n")

    retried = 0
    failed = 0
    with FaceAnnotationService(activity_log=ActivityLog.open()) as service:
        for event_id in event_ids:
            if service.get_status(event_id)["status"] != STATUS_PROCESSING:
                continue
            print(f"[event {event_id}] retrying detection")
            try:
                record = service.process_event_image(event_id)
                print(f"  -> {len(record.faces)} faces\n")
                retried += 1
            except (FaceAnnotationError, OSError, ValueError) as e:
                print(f"  -> Error: {e}\n")
                failed += 1

            # Rate limit: pause between provider calls
            time.sleep(1)

    print(f"\nDone! Re-processed: {retried}, failed: {failed}")


if __name__ == "__main__":
    main()
