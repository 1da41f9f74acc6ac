"""
Static descriptors: content categories and serialization formats.

ProviderCategory describes what a requestor generates (text, audio, ...) and
carries the fallback storage hint used when no size threshold applies.
SerializationFormat enumerates the wire encodings; two of them are reserved
and fail loudly if anything tries to use them.
"""

from enum import Enum
from typing import Optional

from .errors import NotImplementedFormatError

# Sizes at or above this prefer the opaque binary encoding
LARGE_PAYLOAD_BYTES = 1_000_000


# -----------------------------------------------------------------------------
# Provider Category
# -----------------------------------------------------------------------------

_CATEGORY_INFO = {
    # value: (display name, description, typical size range, needs file storage)
    "text": (
        "Text Generation",
        "Generate text content including chat, completion, and translation",
        (1_000, 100_000),
        False,
    ),
    "audio": (
        "Audio Generation",
        "Generate audio including speech, music, and sound effects",
        (100_000, 50_000_000),
        True,
    ),
    "image": (
        "Image Generation",
        "Generate and manipulate images",
        (50_000, 10_000_000),
        True,
    ),
    "video": (
        "Video Generation",
        "Generate and edit video content",
        (1_000_000, 500_000_000),
        True,
    ),
    "embedding": (
        "Embeddings",
        "Generate vector embeddings for semantic search and similarity",
        (1_000, 10_000_000),
        False,
    ),
    "code": (
        "Code Generation",
        "Generate and transform code",
        (1_000, 1_000_000),
        False,
    ),
    "structured_data": (
        "Structured Data",
        "Generate structured data like JSON, tables, and graphs",
        None,
        False,
    ),
}


class ProviderCategory(str, Enum):
    """The content domain a requestor produces."""

    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    EMBEDDING = "embedding"
    CODE = "code"
    STRUCTURED_DATA = "structured_data"

    @property
    def display_name(self) -> str:
        return _CATEGORY_INFO[self.value][0]

    @property
    def description(self) -> str:
        return _CATEGORY_INFO[self.value][1]

    @property
    def typical_size_range(self) -> Optional[tuple[int, int]]:
        """Typical (min, max) payload size in bytes; None if it varies too widely."""
        return _CATEGORY_INFO[self.value][2]

    @property
    def typically_needs_file_storage(self) -> bool:
        """Fallback storage hint when no per-type threshold decides."""
        return _CATEGORY_INFO[self.value][3]


# -----------------------------------------------------------------------------
# Serialization Format
# -----------------------------------------------------------------------------

_FORMAT_INFO = {
    # value: (display name, mime type, extension, human readable, default impl, implemented)
    "json": ("JSON", "application/json", "json", True, True, True),
    "plist": ("Property List", "application/x-plist", "plist", True, True, True),
    "binary": ("Binary", "application/octet-stream", "bin", False, False, True),
    "protobuf": ("Protocol Buffers", "application/x-protobuf", "pb", False, False, False),
    "messagepack": ("MessagePack", "application/x-msgpack", "msgpack", False, False, False),
}

_FORMAT_DESCRIPTIONS = {
    "json": "Human-readable JSON format, good for text and debugging",
    "plist": "Property list format, good for metadata and configuration",
    "binary": "Efficient binary format, good for audio/images/large data",
    "protobuf": "Compact protocol buffers format, reserved",
    "messagepack": "Compact binary JSON-like format, reserved",
}


class SerializationFormat(str, Enum):
    """
    Wire encodings for typed data.

    JSON and PLIST have generic implementations driven by a value's dict
    form. BINARY needs a type-specific layout (audio/image bytes, the fixed
    vector layout). PROTOBUF and MESSAGEPACK are reserved: they stay listed
    so stored values naming them remain readable, but encoding or decoding
    through them raises NotImplementedFormatError.
    """

    JSON = "json"
    PLIST = "plist"
    BINARY = "binary"
    PROTOBUF = "protobuf"
    MESSAGEPACK = "messagepack"

    @property
    def display_name(self) -> str:
        return _FORMAT_INFO[self.value][0]

    @property
    def mime_type(self) -> str:
        return _FORMAT_INFO[self.value][1]

    @property
    def file_extension(self) -> str:
        return _FORMAT_INFO[self.value][2]

    @property
    def description(self) -> str:
        return _FORMAT_DESCRIPTIONS[self.value]

    @property
    def is_human_readable(self) -> bool:
        return _FORMAT_INFO[self.value][3]

    @property
    def has_default_implementation(self) -> bool:
        """Whether encoding works generically, without a type-specific layout."""
        return _FORMAT_INFO[self.value][4]

    @property
    def is_implemented(self) -> bool:
        return _FORMAT_INFO[self.value][5]

    def ensure_implemented(self) -> None:
        """Raise NotImplementedFormatError for reserved formats."""
        if not self.is_implemented:
            raise NotImplementedFormatError(self.value)

    @staticmethod
    def recommend(
        is_textual: bool,
        needs_inspection: bool,
        estimated_size: Optional[int],
    ) -> "SerializationFormat":
        """
        Recommend an encoding for data with the given characteristics.

        Textual data, or data a person will inspect, gets JSON. Large opaque
        data gets BINARY. Everything else defaults to JSON.
        """
        if is_textual or needs_inspection:
            return SerializationFormat.JSON
        if estimated_size is not None and estimated_size >= LARGE_PAYLOAD_BYTES:
            return SerializationFormat.BINARY
        return SerializationFormat.JSON
