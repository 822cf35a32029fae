"""Error taxonomy shared by the media pipeline and routers."""

from __future__ import annotations


class MediaError(RuntimeError):
    """Base class for media pipeline failures."""


class MediaNotFoundError(MediaError):
    """Raised when a media record or its underlying file is missing."""


class MediaValidationError(MediaError):
    """Raised when a required field is missing or malformed."""


class MediaToolError(MediaError):
    """Raised when ffmpeg/ffprobe fails or produces no usable output."""


class StorageError(MediaError):
    """Raised when writing, fetching or deleting stored media fails."""
