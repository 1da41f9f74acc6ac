"""
Typed data: the transient result of one generation request.

A requestor returns one of these inside a Success. When the payload was
large enough to go to disk, the content field is None and the requestor
hands back a sibling TypedDataFileReference instead. The value is then
converted into a record and discarded.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, ClassVar, Optional

from .codecs import SerializableTypedData, encode_vector, decode_vector
from .errors import TypedDataError
from .formats import SerializationFormat

# Input text kept on embedding values is cut to this many characters
INPUT_TEXT_PREVIEW_CHARS = 1000


def truncate_preview(text: Optional[str], limit: int = INPUT_TEXT_PREVIEW_CHARS) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[:limit] + "..."


class TypedData(SerializableTypedData):
    """
    Base for generation results.

    `content_field` names the attribute holding the payload. It is None on
    a value whose payload was written to a storage area.
    """

    content_field: ClassVar[str]

    @property
    def data_size(self) -> int:
        raise NotImplementedError

    def has_content(self) -> bool:
        return getattr(self, self.content_field) is not None

    def file_bytes(self) -> bytes:
        """Bytes written when the payload goes to file."""
        return getattr(self, self.content_field)

    def without_content(self):
        """Copy with the payload removed, for file-backed results."""
        return replace(self, **{self.content_field: None})


# -----------------------------------------------------------------------------
# Media formats
# -----------------------------------------------------------------------------

class AudioFormat(str, Enum):
    MP3 = "mp3"
    WAV = "wav"
    M4A = "m4a"
    FLAC = "flac"
    OGG = "ogg"

    @property
    def mime_type(self) -> str:
        return {
            "mp3": "audio/mpeg",
            "wav": "audio/wav",
            "m4a": "audio/mp4",
            "flac": "audio/flac",
            "ogg": "audio/ogg",
        }[self.value]

    @property
    def file_extension(self) -> str:
        return self.value


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    JPG = "jpg"
    WEBP = "webp"
    HEIC = "heic"

    @property
    def mime_type(self) -> str:
        return {
            "png": "image/png",
            "jpeg": "image/jpeg",
            "jpg": "image/jpeg",
            "webp": "image/webp",
            "heic": "image/heic",
        }[self.value]

    @property
    def file_extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value


# -----------------------------------------------------------------------------
# Text
# -----------------------------------------------------------------------------

@dataclass
class GeneratedTextData(TypedData):
    """
    Generated text and its usage figures.

    Attributes:
        text: The generated content (None when written to file)
        model: Model that produced it
        language_code: ISO language code, if known
        token_count: Total tokens used
        prompt_tokens: Tokens in the prompt
        completion_tokens: Tokens in the completion
        word_count: Whitespace-separated words, computed from `text`
        character_count: Characters in `text`
    """
    text: Optional[str]
    model: str
    language_code: Optional[str] = None
    token_count: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    word_count: Optional[int] = None
    character_count: Optional[int] = None

    preferred_format: ClassVar[SerializationFormat] = SerializationFormat.JSON
    content_field: ClassVar[str] = "text"

    def __post_init__(self):
        # Counts outlive the text when it moves to file
        if self.text is not None:
            self.word_count = len(self.text.split())
            self.character_count = len(self.text)
        else:
            self.word_count = self.word_count or 0
            self.character_count = self.character_count or 0

    @property
    def data_size(self) -> int:
        return len(self.text.encode("utf-8")) if self.text is not None else 0

    def file_bytes(self) -> bytes:
        return self.text.encode("utf-8")

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model,
            "language_code": self.language_code,
            "token_count": self.token_count,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "word_count": self.word_count,
            "character_count": self.character_count,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedTextData":
        return cls(
            text=d.get("text"),
            model=d["model"],
            language_code=d.get("language_code"),
            token_count=d.get("token_count"),
            prompt_tokens=d.get("prompt_tokens"),
            completion_tokens=d.get("completion_tokens"),
            word_count=d.get("word_count"),
            character_count=d.get("character_count"),
        )


# -----------------------------------------------------------------------------
# Audio
# -----------------------------------------------------------------------------

@dataclass
class GeneratedAudioData(TypedData):
    """Synthesized audio plus the voice that spoke it."""
    audio_data: Optional[bytes]
    format: AudioFormat
    voice_id: str
    voice_name: str
    model: str
    duration_seconds: Optional[float] = None
    sample_rate: Optional[int] = None
    bit_rate: Optional[int] = None
    channels: Optional[int] = None

    preferred_format: ClassVar[SerializationFormat] = SerializationFormat.PLIST
    content_field: ClassVar[str] = "audio_data"

    @property
    def data_size(self) -> int:
        return len(self.audio_data) if self.audio_data is not None else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "audio_data": self.audio_data,
            "format": self.format.value,
            "voice_id": self.voice_id,
            "voice_name": self.voice_name,
            "model": self.model,
            "duration_seconds": self.duration_seconds,
            "sample_rate": self.sample_rate,
            "bit_rate": self.bit_rate,
            "channels": self.channels,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedAudioData":
        return cls(
            audio_data=d.get("audio_data"),
            format=AudioFormat(d["format"]),
            voice_id=d["voice_id"],
            voice_name=d["voice_name"],
            model=d["model"],
            duration_seconds=d.get("duration_seconds"),
            sample_rate=d.get("sample_rate"),
            bit_rate=d.get("bit_rate"),
            channels=d.get("channels"),
        )


# -----------------------------------------------------------------------------
# Image
# -----------------------------------------------------------------------------

@dataclass
class GeneratedImageData(TypedData):
    """A generated image. `revised_prompt` is what the provider actually used."""
    image_data: Optional[bytes]
    format: ImageFormat
    width: int
    height: int
    model: str
    revised_prompt: Optional[str] = None

    preferred_format: ClassVar[SerializationFormat] = SerializationFormat.PLIST
    content_field: ClassVar[str] = "image_data"

    @property
    def data_size(self) -> int:
        return len(self.image_data) if self.image_data is not None else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_data": self.image_data,
            "format": self.format.value,
            "width": self.width,
            "height": self.height,
            "model": self.model,
            "revised_prompt": self.revised_prompt,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedImageData":
        return cls(
            image_data=d.get("image_data"),
            format=ImageFormat(d["format"]),
            width=int(d["width"]),
            height=int(d["height"]),
            model=d["model"],
            revised_prompt=d.get("revised_prompt"),
        )


# -----------------------------------------------------------------------------
# Embedding
# -----------------------------------------------------------------------------

@dataclass
class GeneratedEmbeddingData(TypedData):
    """
    An embedding vector.

    `input_text` is a preview of what was embedded, truncated to
    INPUT_TEXT_PREVIEW_CHARS. The binary layout carries the vector, the
    preview and the token count; `model` and `index` survive only the
    dict-based formats.
    """
    embedding: Optional[list[float]]
    dimensions: int
    model: Optional[str] = None
    input_text: Optional[str] = None
    token_count: Optional[int] = None
    index: Optional[int] = None

    preferred_format: ClassVar[SerializationFormat] = SerializationFormat.BINARY
    content_field: ClassVar[str] = "embedding"

    def __post_init__(self):
        self.input_text = truncate_preview(self.input_text)

    @property
    def data_size(self) -> int:
        return len(self.embedding) * 4 if self.embedding is not None else 0

    def file_bytes(self) -> bytes:
        return self._encode_binary()

    def to_dict(self) -> dict[str, Any]:
        return {
            "embedding": self.embedding,
            "dimensions": self.dimensions,
            "model": self.model,
            "input_text": self.input_text,
            "token_count": self.token_count,
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GeneratedEmbeddingData":
        embedding = d.get("embedding")
        return cls(
            embedding=[float(v) for v in embedding] if embedding is not None else None,
            dimensions=int(d["dimensions"]),
            model=d.get("model"),
            input_text=d.get("input_text"),
            token_count=d.get("token_count"),
            index=d.get("index"),
        )

    def _encode_binary(self) -> bytes:
        if self.embedding is None:
            raise TypedDataError("Cannot serialize embedding: vector is not loaded")
        return encode_vector(self.embedding, self.input_text, self.token_count)

    @classmethod
    def _decode_binary(cls, payload: bytes) -> "GeneratedEmbeddingData":
        decoded = decode_vector(payload)
        return cls(
            embedding=decoded.values,
            dimensions=decoded.dimensions,
            input_text=decoded.input_text,
            token_count=decoded.token_count,
        )
