"""Face detection: provider client, coordinate geometry and the detection adapter."""

from event_faces.detection.detector import FaceDetector
from event_faces.detection.tencent_client import DetectionProvider, TencentFaceClient

__all__ = [
    "DetectionProvider",
    "FaceDetector",
    "TencentFaceClient",
]
