"""Exception types raised by the face annotation pipeline."""


class FaceAnnotationError(Exception):
    """Base class for all pipeline failures."""


class CredentialsMissing(FaceAnnotationError):
    """Provider credentials are not configured."""


class ProviderUnavailable(FaceAnnotationError):
    """Transport error, timeout, non-2xx status or provider-side error payload."""


class ImageDecodeFailed(FaceAnnotationError):
    """Image bytes could not be decoded or re-encoded."""


DecodeFailed = ImageDecodeFailed


class ImageTooLarge(FaceAnnotationError):
    """Encoded image still exceeds the provider payload limit after resizing."""


class MetadataCorrupt(FaceAnnotationError):
    """A stored JSON record exists but cannot be parsed."""


class ArtifactNotFound(FaceAnnotationError):
    """An original, face, avatar or sidecar file is missing on disk."""


class InvalidFilename(FaceAnnotationError, ValueError):
    """A caller-supplied filename is empty or escapes its directory."""


class EmptyFaceBox(FaceAnnotationError, ValueError):
    """A manual face box collapses to zero width or height after clamping."""


class EventNotFound(FaceAnnotationError):
    """The event registry has no event with this id."""


class EventClosed(FaceAnnotationError):
    """The event exists but is not open for participant changes."""
