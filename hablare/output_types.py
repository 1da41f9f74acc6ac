"""
Output file types: what a requestor writes and when it goes to disk.

Each requestor declares one OutputFileType. Besides the MIME type and
extension it carries the byte threshold that decides between keeping a
result inline in its record and writing it into the request's storage area.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .formats import ProviderCategory, SerializationFormat

# Audio, image and video payloads at or above this size are written to file.
# Tunable through the [thresholds] section of the store config.
DEFAULT_MEDIA_THRESHOLD = 100_000

# Opaque binary blobs of unspecified content
DEFAULT_BINARY_THRESHOLD = 10_000


def threshold_decision(threshold: Optional[int], estimated_size: Optional[int]) -> Optional[bool]:
    """
    First step of the storage decision: apply a size threshold.

    Returns None when the threshold cannot decide (no threshold, or the size
    is unknown), so the caller falls back to the category default.
    """
    if threshold is None or estimated_size is None:
        return None
    return estimated_size >= threshold


def category_decision(category: ProviderCategory) -> bool:
    """Second step of the storage decision: the category's default hint."""
    return category.typically_needs_file_storage


@dataclass(frozen=True)
class OutputFileType:
    """
    Describes the file a requestor produces.

    Attributes:
        mime_type: MIME type (e.g. "audio/mpeg")
        file_extension: Extension without the leading dot
        type_tag: Platform uniform type identifier, if one exists
            (e.g. "public.mp3"); informational, not part of equality
        category: Content category this file represents
        serialization_format: Preferred encoding when written to file
        store_as_file_threshold: Byte size at or above which data goes to
            file; None defers to the category default
    """
    mime_type: str
    file_extension: str
    category: ProviderCategory
    serialization_format: SerializationFormat
    store_as_file_threshold: Optional[int] = None
    type_tag: Optional[str] = field(default=None, compare=False)

    def should_store_as_file(self, estimated_size: Optional[int]) -> bool:
        """
        Decide whether data of this size belongs in a file.

        Threshold first (size >= threshold means file); when no threshold
        applies or the size is unknown, the category default decides.
        """
        decided = threshold_decision(self.store_as_file_threshold, estimated_size)
        if decided is not None:
            return decided
        return category_decision(self.category)

    def with_threshold(self, threshold: Optional[int]) -> "OutputFileType":
        """Return a copy with a different file-storage threshold."""
        return replace(self, store_as_file_threshold=threshold)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "mime_type": self.mime_type,
            "file_extension": self.file_extension,
            "category": self.category.value,
            "serialization_format": self.serialization_format.value,
        }
        if self.type_tag is not None:
            d["type_tag"] = self.type_tag
        if self.store_as_file_threshold is not None:
            d["store_as_file_threshold"] = self.store_as_file_threshold
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "OutputFileType":
        return cls(
            mime_type=d["mime_type"],
            file_extension=d["file_extension"],
            category=ProviderCategory(d["category"]),
            serialization_format=SerializationFormat(d["serialization_format"]),
            store_as_file_threshold=d.get("store_as_file_threshold"),
            type_tag=d.get("type_tag"),
        )

    # -------------------------------------------------------------------------
    # Common file types
    # -------------------------------------------------------------------------

    @classmethod
    def plain_text(cls, store_as_file_threshold: Optional[int] = None) -> "OutputFileType":
        return cls("text/plain", "txt", ProviderCategory.TEXT, SerializationFormat.JSON,
                   store_as_file_threshold, type_tag="public.plain-text")

    @classmethod
    def json(
        cls,
        category: ProviderCategory = ProviderCategory.TEXT,
        store_as_file_threshold: Optional[int] = None,
    ) -> "OutputFileType":
        return cls("application/json", "json", category, SerializationFormat.JSON,
                   store_as_file_threshold, type_tag="public.json")

    @classmethod
    def mp3(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("audio/mpeg", "mp3", ProviderCategory.AUDIO, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="public.mp3")

    @classmethod
    def wav(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("audio/wav", "wav", ProviderCategory.AUDIO, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="com.microsoft.waveform-audio")

    @classmethod
    def m4a(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("audio/mp4", "m4a", ProviderCategory.AUDIO, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="public.mpeg-4-audio")

    @classmethod
    def png(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("image/png", "png", ProviderCategory.IMAGE, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="public.png")

    @classmethod
    def jpeg(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("image/jpeg", "jpg", ProviderCategory.IMAGE, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="public.jpeg")

    @classmethod
    def mp4(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("video/mp4", "mp4", ProviderCategory.VIDEO, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="public.mpeg-4")

    @classmethod
    def mov(cls, store_as_file_threshold: Optional[int] = DEFAULT_MEDIA_THRESHOLD) -> "OutputFileType":
        return cls("video/quicktime", "mov", ProviderCategory.VIDEO, SerializationFormat.BINARY,
                   store_as_file_threshold, type_tag="com.apple.quicktime-movie")

    @classmethod
    def plist(
        cls,
        category: ProviderCategory = ProviderCategory.STRUCTURED_DATA,
        store_as_file_threshold: Optional[int] = None,
    ) -> "OutputFileType":
        return cls("application/x-plist", "plist", category, SerializationFormat.PLIST,
                   store_as_file_threshold, type_tag="com.apple.property-list")

    @classmethod
    def binary(
        cls,
        category: ProviderCategory,
        file_extension: str = "bin",
        store_as_file_threshold: Optional[int] = DEFAULT_BINARY_THRESHOLD,
    ) -> "OutputFileType":
        return cls("application/octet-stream", file_extension, category, SerializationFormat.BINARY,
                   store_as_file_threshold)
