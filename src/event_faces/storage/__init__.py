"""Event storage: per-event file layout, annotation records and the activity log."""

from event_faces.storage.annotation_store import AnnotationStore
from event_faces.storage.paths import EventPaths

__all__ = ["AnnotationStore", "EventPaths"]
