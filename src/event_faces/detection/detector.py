"""Face detection adapter: provider limits in, original-space face records out."""

import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from event_faces.config import (
    FACE_MODEL_VERSION,
    FACE_PADDING,
    JPEG_QUALITY,
    MAX_EDGE,
    MAX_FACE_NUM,
    MAX_PAYLOAD_BYTES,
    MIN_FACE_SIZE,
    ORIGINAL_FILENAME,
)
from event_faces.detection.geometry import compute_scale, pad_and_clamp, rescale, scaled_size
from event_faces.detection.tencent_client import DetectionProvider, TencentFaceClient
from event_faces.errors import ImageDecodeFailed, ImageTooLarge
from event_faces.models import AnnotationRecord, FaceRecord, ImageInfo

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes fully, raising ImageDecodeFailed on bad input."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageDecodeFailed(f"Failed to decode image: {exc}") from exc
    return img


def encode_jpeg(img: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    """Encode an image as JPEG, dropping alpha/palette modes JPEG cannot hold."""
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = BytesIO()
    try:
        img.save(buf, format="JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise ImageDecodeFailed(f"Failed to encode JPEG: {exc}") from exc
    return buf.getvalue()


def face_filename(index: int) -> str:
    """Artifact name for the index-th (0-based) face in provider emission order."""
    return f"face_{index + 1}.jpg"


class FaceDetector:
    """Submit a photo to the detection provider and map results to the original image."""

    def __init__(
        self,
        provider: DetectionProvider | None = None,
        max_edge: int = MAX_EDGE,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        padding: int = FACE_PADDING,
        max_face_num: int = MAX_FACE_NUM,
        min_face_size: int = MIN_FACE_SIZE,
        model_version: str = FACE_MODEL_VERSION,
    ) -> None:
        self.provider = provider or TencentFaceClient()
        self.max_edge = max_edge
        self.max_payload_bytes = max_payload_bytes
        self.padding = padding
        self.max_face_num = max_face_num
        self.min_face_size = min_face_size
        self.model_version = model_version

    def prepare_payload(self, image_bytes: bytes) -> tuple[bytes, ImageInfo, float]:
        """Shrink the image to the provider's edge limit if needed.

        Returns:
            (payload bytes, original ImageInfo, scale factor applied; 1.0 if untouched)
        """
        img = decode_image(image_bytes)
        orig_w, orig_h = img.size
        info = ImageInfo(width=orig_w, height=orig_h, filename=ORIGINAL_FILENAME)
        logger.info("Original dimensions: %dx%d (%d bytes)", orig_w, orig_h, len(image_bytes))

        scale = compute_scale(orig_w, orig_h, self.max_edge)
        payload = image_bytes
        if scale < 1.0:
            new_w, new_h = scaled_size(orig_w, orig_h, scale)
            logger.info("Resizing to %dx%d (scale: %.3f)", new_w, new_h, scale)
            resized = img.resize((new_w, new_h), Image.Resampling.BICUBIC)
            payload = encode_jpeg(resized)
            logger.info("Resized image size: %d bytes", len(payload))

        if len(payload) > self.max_payload_bytes:
            raise ImageTooLarge(
                f"Image too large: {len(payload)} bytes (max {self.max_payload_bytes})"
            )
        return payload, info, scale

    def detect(self, image_bytes: bytes) -> AnnotationRecord:
        """Detect faces and return a fresh annotation record in original-image coordinates."""
        payload, info, scale = self.prepare_payload(image_bytes)
        result = self.provider.submit(
            payload,
            max_face_num=self.max_face_num,
            min_face_size=self.min_face_size,
            model_version=self.model_version,
        )
        logger.info("Provider found %d faces", len(result.faces))

        padding = rescale(self.padding, scale)
        faces: list[FaceRecord] = []
        for i, pf in enumerate(result.faces):
            coords = pad_and_clamp(
                rescale(pf.x, scale),
                rescale(pf.y, scale),
                rescale(pf.width, scale),
                rescale(pf.height, scale),
                padding,
                (info.width, info.height),
            )
            if coords.width <= 0 or coords.height <= 0:
                logger.warning("Face %d lies outside the image after mapping, skipped", i + 1)
                continue
            logger.debug(
                "Face %d: provider (%d,%d,%d,%d) -> original %s",
                i + 1,
                pf.x,
                pf.y,
                pf.width,
                pf.height,
                coords.as_tuple(),
            )
            faces.append(FaceRecord(filename=face_filename(i), coordinates=coords))

        return AnnotationRecord(image_info=info, faces=faces)
