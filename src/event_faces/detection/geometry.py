"""Clamped cropping, padding and coordinate rescaling."""

from PIL import Image

from event_faces.models import FaceCoordinates


def clamp(value: int, lo: int, hi: int) -> int:
    """Clamp value into [lo, hi]."""
    if value < lo:
        return lo
    if value > hi:
        return hi
    return value


def compute_scale(width: int, height: int, max_edge: int) -> float:
    """Return the shrink factor that brings the long edge down to max_edge (1.0 if it fits)."""
    long_edge = max(width, height)
    if long_edge <= max_edge:
        return 1.0
    return max_edge / long_edge


def scaled_size(width: int, height: int, scale: float) -> tuple[int, int]:
    """Target (width, height) for a resize by scale, never below 1px."""
    return max(1, int(width * scale)), max(1, int(height * scale))


def rescale(coord: int, scale: float) -> int:
    """Map a coordinate measured in a resized image back to original pixels.

    Scale is the shrink factor used for the resize, so it is always <= 1.0.
    Truncates toward zero like the coordinates the provider reports.
    """
    if scale >= 1.0:
        return int(coord)
    return int(coord / scale)


def pad_and_clamp(
    x: int,
    y: int,
    width: int,
    height: int,
    padding: int,
    bounds: tuple[int, int],
) -> FaceCoordinates:
    """Grow an (x, y, width, height) box by padding on every side, clamped to bounds.

    Args:
        x, y, width, height: Box in original-image pixels.
        padding: Pixels added on each side, already rescaled like the box.
        bounds: (image_width, image_height) of the original image.
    """
    img_w, img_h = bounds
    return FaceCoordinates(
        x1=clamp(x - padding, 0, img_w),
        y1=clamp(y - padding, 0, img_h),
        x2=clamp(x + width + padding, 0, img_w),
        y2=clamp(y + height + padding, 0, img_h),
    )


def clamp_box(x1: int, y1: int, x2: int, y2: int, bounds: tuple[int, int]) -> FaceCoordinates:
    """Clamp a caller-supplied box into the image; x2/y2 never fall below x1/y1."""
    img_w, img_h = bounds
    cx1 = clamp(x1, 0, img_w)
    cy1 = clamp(y1, 0, img_h)
    cx2 = clamp(x2, cx1, img_w)
    cy2 = clamp(y2, cy1, img_h)
    return FaceCoordinates(cx1, cy1, cx2, cy2)


def crop_rect(image: Image.Image, box: FaceCoordinates) -> Image.Image:
    """Return the pixel region [x1, x2) x [y1, y2) of image.

    The box must be non-empty and lie within the image; callers clamp first.
    """
    img_w, img_h = image.size
    if not (0 <= box.x1 < box.x2 <= img_w and 0 <= box.y1 < box.y2 <= img_h):
        raise ValueError(f"Crop box {box.as_tuple()} outside image {img_w}x{img_h}")
    return image.crop(box.as_tuple())
