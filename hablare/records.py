"""
Generated records: the durable form of one generation result.

Each record holds its content inline or points at a file through a
TypedDataFileReference, never both. Readers call `get_content()` and get
the same value either way; only file-backed reads touch the disk.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

from .codecs import decode_vector, pack_floats, unpack_floats
from .errors import DecodeError, FileOperationError, MissingContentError
from .formats import ProviderCategory
from .storage import ResolveTarget, TypedDataFileReference
from .typed_data import (
    AudioFormat,
    GeneratedAudioData,
    GeneratedEmbeddingData,
    GeneratedImageData,
    GeneratedTextData,
    ImageFormat,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return str(uuid.uuid4())


def _parse_time(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# -----------------------------------------------------------------------------
# Base record
# -----------------------------------------------------------------------------

@dataclass(kw_only=True)
class GeneratedRecord:
    """
    Fields and behavior shared by every record type.

    Subclasses name their inline content field in `content_field`. When a
    file reference is supplied that field is forced to None, so a record is
    never both inline and file-backed.
    """
    provider_id: str
    requestor_id: str
    id: str = field(default_factory=new_record_id)
    prompt: str = ""
    model_identifier: Optional[str] = None
    estimated_cost: Optional[float] = None
    file_reference: Optional[TypedDataFileReference] = None
    generated_at: datetime = field(default_factory=lambda: _now())
    modified_at: datetime = field(default_factory=lambda: _now())

    category: ClassVar[ProviderCategory]
    content_field: ClassVar[str]

    def __post_init__(self):
        if self.file_reference is not None and self._inline_value() is not None:
            setattr(self, self.content_field, None)

    def _inline_value(self) -> Any:
        return getattr(self, self.content_field)

    # Storage tier

    @property
    def is_file_stored(self) -> bool:
        return self.file_reference is not None

    def _inline_bytes(self) -> Optional[bytes]:
        return self._inline_value()

    @property
    def data_size(self) -> int:
        """Bytes held inline, or the file's declared size when file-backed."""
        if self.file_reference is not None:
            return self.file_reference.file_size
        inline = self._inline_bytes()
        return len(inline) if inline is not None else 0

    # Content access

    def get_data(self, target: Optional[ResolveTarget] = None) -> bytes:
        """
        Raw bytes of the content, from memory or from the referenced file.

        Args:
            target: Storage area or bundle root to resolve a file reference
                against; unused for inline content

        Raises:
            MissingContentError: neither inline content nor a file reference
            FileOperationError: file-backed but no target given, or the
                read failed
        """
        inline = self._inline_bytes()
        if inline is not None:
            return inline
        return self._read_file(target)

    def _read_file(self, target: Optional[ResolveTarget]) -> bytes:
        if self.file_reference is None:
            raise MissingContentError(f"get {self.content_field}")
        if target is None:
            raise FileOperationError(
                "read", "File reference exists but no storage area provided"
            )
        logger.debug("Loading %s content from %s", self.id, self.file_reference.relative_path)
        return self.file_reference.read_data(target)

    def get_content(self, target: Optional[ResolveTarget] = None) -> Any:
        """Content decoded to its natural type, resolving memory or file."""
        inline = self._inline_value()
        if inline is not None:
            return self._decode_inline(inline)
        return self._decode_file(self._read_file(target))

    def _decode_inline(self, value: Any) -> Any:
        return value

    def _decode_file(self, payload: bytes) -> Any:
        return payload

    def touch(self) -> None:
        """Mark as recently accessed; content is never modified."""
        self.modified_at = _now()

    # Persistence

    def _base_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "id": self.id,
            "provider_id": self.provider_id,
            "requestor_id": self.requestor_id,
            "prompt": self.prompt,
            "model_identifier": self.model_identifier,
            "estimated_cost": self.estimated_cost,
            "file_reference": self.file_reference.to_dict() if self.file_reference else None,
            "generated_at": self.generated_at.isoformat(),
            "modified_at": self.modified_at.isoformat(),
        }

    @staticmethod
    def _base_kwargs(d: dict[str, Any]) -> dict[str, Any]:
        ref = d.get("file_reference")
        return {
            "id": d["id"],
            "provider_id": d["provider_id"],
            "requestor_id": d["requestor_id"],
            "prompt": d.get("prompt", ""),
            "model_identifier": d.get("model_identifier"),
            "estimated_cost": d.get("estimated_cost"),
            "file_reference": TypedDataFileReference.from_dict(ref) if ref else None,
            "generated_at": _parse_time(d["generated_at"]),
            "modified_at": _parse_time(d["modified_at"]),
        }

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedRecord":
        raise NotImplementedError


# -----------------------------------------------------------------------------
# Text
# -----------------------------------------------------------------------------

@dataclass(kw_only=True)
class GeneratedTextRecord(GeneratedRecord):
    text: Optional[str] = None
    word_count: int = 0
    character_count: int = 0
    language_code: Optional[str] = None
    token_count: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None

    category: ClassVar[ProviderCategory] = ProviderCategory.TEXT
    content_field: ClassVar[str] = "text"

    def _inline_bytes(self) -> Optional[bytes]:
        return self.text.encode("utf-8") if self.text is not None else None

    def _decode_file(self, payload: bytes) -> str:
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("text", str(e)) from e

    @classmethod
    def from_data(
        cls,
        data: GeneratedTextData,
        *,
        provider_id: str,
        requestor_id: str,
        prompt: str = "",
        id: Optional[str] = None,
        file_reference: Optional[TypedDataFileReference] = None,
        estimated_cost: Optional[float] = None,
    ) -> "GeneratedTextRecord":
        return cls(
            id=id or new_record_id(),
            provider_id=provider_id,
            requestor_id=requestor_id,
            prompt=prompt,
            model_identifier=data.model,
            estimated_cost=estimated_cost,
            file_reference=file_reference,
            text=data.text,
            word_count=data.word_count,
            character_count=data.character_count,
            language_code=data.language_code,
            token_count=data.token_count,
            prompt_tokens=data.prompt_tokens,
            completion_tokens=data.completion_tokens,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d.update({
            "text": self.text,
            "word_count": self.word_count,
            "character_count": self.character_count,
            "language_code": self.language_code,
            "token_count": self.token_count,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
        })
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedTextRecord":
        return cls(
            **cls._base_kwargs(d),
            text=d.get("text"),
            word_count=d.get("word_count", 0),
            character_count=d.get("character_count", 0),
            language_code=d.get("language_code"),
            token_count=d.get("token_count"),
            prompt_tokens=d.get("prompt_tokens"),
            completion_tokens=d.get("completion_tokens"),
        )


# -----------------------------------------------------------------------------
# Audio
# -----------------------------------------------------------------------------

@dataclass(kw_only=True)
class GeneratedAudioRecord(GeneratedRecord):
    audio_data: Optional[bytes] = None
    format: AudioFormat = AudioFormat.MP3
    duration_seconds: Optional[float] = None
    sample_rate: Optional[int] = None
    bit_rate: Optional[int] = None
    channels: Optional[int] = None
    voice_id: str = ""
    voice_name: str = ""

    category: ClassVar[ProviderCategory] = ProviderCategory.AUDIO
    content_field: ClassVar[str] = "audio_data"

    @classmethod
    def from_data(
        cls,
        data: GeneratedAudioData,
        *,
        provider_id: str,
        requestor_id: str,
        prompt: str = "",
        id: Optional[str] = None,
        file_reference: Optional[TypedDataFileReference] = None,
        estimated_cost: Optional[float] = None,
    ) -> "GeneratedAudioRecord":
        return cls(
            id=id or new_record_id(),
            provider_id=provider_id,
            requestor_id=requestor_id,
            prompt=prompt,
            model_identifier=data.model,
            estimated_cost=estimated_cost,
            file_reference=file_reference,
            audio_data=data.audio_data,
            format=data.format,
            duration_seconds=data.duration_seconds,
            sample_rate=data.sample_rate,
            bit_rate=data.bit_rate,
            channels=data.channels,
            voice_id=data.voice_id,
            voice_name=data.voice_name,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d.update({
            "audio_data": self.audio_data,
            "format": self.format.value,
            "duration_seconds": self.duration_seconds,
            "sample_rate": self.sample_rate,
            "bit_rate": self.bit_rate,
            "channels": self.channels,
            "voice_id": self.voice_id,
            "voice_name": self.voice_name,
        })
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedAudioRecord":
        return cls(
            **cls._base_kwargs(d),
            audio_data=d.get("audio_data"),
            format=AudioFormat(d.get("format", "mp3")),
            duration_seconds=d.get("duration_seconds"),
            sample_rate=d.get("sample_rate"),
            bit_rate=d.get("bit_rate"),
            channels=d.get("channels"),
            voice_id=d.get("voice_id", ""),
            voice_name=d.get("voice_name", ""),
        )


# -----------------------------------------------------------------------------
# Image
# -----------------------------------------------------------------------------

@dataclass(kw_only=True)
class GeneratedImageRecord(GeneratedRecord):
    image_data: Optional[bytes] = None
    format: ImageFormat = ImageFormat.PNG
    width: int = 0
    height: int = 0
    revised_prompt: Optional[str] = None

    category: ClassVar[ProviderCategory] = ProviderCategory.IMAGE
    content_field: ClassVar[str] = "image_data"

    @property
    def aspect_ratio(self) -> Optional[float]:
        return self.width / self.height if self.height else None

    @classmethod
    def from_data(
        cls,
        data: GeneratedImageData,
        *,
        provider_id: str,
        requestor_id: str,
        prompt: str = "",
        id: Optional[str] = None,
        file_reference: Optional[TypedDataFileReference] = None,
        estimated_cost: Optional[float] = None,
    ) -> "GeneratedImageRecord":
        return cls(
            id=id or new_record_id(),
            provider_id=provider_id,
            requestor_id=requestor_id,
            prompt=prompt,
            model_identifier=data.model,
            estimated_cost=estimated_cost,
            file_reference=file_reference,
            image_data=data.image_data,
            format=data.format,
            width=data.width,
            height=data.height,
            revised_prompt=data.revised_prompt,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d.update({
            "image_data": self.image_data,
            "format": self.format.value,
            "width": self.width,
            "height": self.height,
            "revised_prompt": self.revised_prompt,
        })
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedImageRecord":
        return cls(
            **cls._base_kwargs(d),
            image_data=d.get("image_data"),
            format=ImageFormat(d.get("format", "png")),
            width=d.get("width", 0),
            height=d.get("height", 0),
            revised_prompt=d.get("revised_prompt"),
        )


# -----------------------------------------------------------------------------
# Embedding
# -----------------------------------------------------------------------------

@dataclass(kw_only=True)
class GeneratedEmbeddingRecord(GeneratedRecord):
    """
    An embedding vector.

    Inline, `embedding_data` holds exactly `dimensions` little-endian
    float32 values with no header. A file-backed embedding holds the full
    binary vector layout. Both are checked against `dimensions` on read.
    """
    embedding_data: Optional[bytes] = None
    dimensions: int = 0
    input_text: Optional[str] = None
    token_count: Optional[int] = None
    batch_index: Optional[int] = None

    category: ClassVar[ProviderCategory] = ProviderCategory.EMBEDDING
    content_field: ClassVar[str] = "embedding_data"

    def _decode_inline(self, value: bytes) -> list[float]:
        return unpack_floats(value, self.dimensions)

    def _decode_file(self, payload: bytes) -> list[float]:
        return decode_vector(payload, expected_dimensions=self.dimensions).values

    @classmethod
    def from_data(
        cls,
        data: GeneratedEmbeddingData,
        *,
        provider_id: str,
        requestor_id: str,
        prompt: Optional[str] = None,
        id: Optional[str] = None,
        file_reference: Optional[TypedDataFileReference] = None,
        estimated_cost: Optional[float] = None,
    ) -> "GeneratedEmbeddingRecord":
        embedding_data = None
        if file_reference is None and data.embedding is not None:
            embedding_data = pack_floats(data.embedding)
        return cls(
            id=id or new_record_id(),
            provider_id=provider_id,
            requestor_id=requestor_id,
            prompt=prompt if prompt is not None else (data.input_text or ""),
            model_identifier=data.model,
            estimated_cost=estimated_cost,
            file_reference=file_reference,
            embedding_data=embedding_data,
            dimensions=data.dimensions,
            input_text=data.input_text,
            token_count=data.token_count,
            batch_index=data.index,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d.update({
            "embedding_data": self.embedding_data,
            "dimensions": self.dimensions,
            "input_text": self.input_text,
            "token_count": self.token_count,
            "batch_index": self.batch_index,
        })
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedEmbeddingRecord":
        return cls(
            **cls._base_kwargs(d),
            embedding_data=d.get("embedding_data"),
            dimensions=d.get("dimensions", 0),
            input_text=d.get("input_text"),
            token_count=d.get("token_count"),
            batch_index=d.get("batch_index"),
        )


RECORD_TYPES: dict[ProviderCategory, type[GeneratedRecord]] = {
    ProviderCategory.TEXT: GeneratedTextRecord,
    ProviderCategory.AUDIO: GeneratedAudioRecord,
    ProviderCategory.IMAGE: GeneratedImageRecord,
    ProviderCategory.EMBEDDING: GeneratedEmbeddingRecord,
}


def record_from_dict(d: dict[str, Any]) -> GeneratedRecord:
    """Rebuild a record of whatever type its `category` names."""
    try:
        record_type = RECORD_TYPES[ProviderCategory(d["category"])]
    except (KeyError, ValueError) as e:
        raise DecodeError("record", f"unknown record category {d.get('category')!r}") from e
    return record_type.from_dict(d)
