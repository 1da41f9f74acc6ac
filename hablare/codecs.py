"""
Encoders and decoders for typed data.

JSON and property-list encodings are generic: a value converts itself to a
plain dict (`to_dict`) and back (`from_dict`). Binary encodings are
type-specific; the one shared binary layout lives here:

    <i4 dimensions> <f4 x dimensions> [<i4 text length> <utf-8 text>] [<i4 token count>]

All integers and floats are little-endian. A text length of 0 means no input
text and a token count of -1 means no token count, so writers always emit
both trailers while readers accept their absence.
"""

import base64
import json
import plistlib
import struct
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Sequence

from .errors import DecodeError, TypedDataError
from .formats import SerializationFormat

_INT32 = struct.Struct("<i")
_FLOAT32_SIZE = 4

# Marker wrapping bytes inside JSON documents
_BYTES_KEY = "$bytes"


# -----------------------------------------------------------------------------
# Generic dict codecs
# -----------------------------------------------------------------------------

def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return {_BYTES_KEY: base64.b64encode(bytes(obj)).decode("ascii")}
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _json_object_hook(obj: dict) -> Any:
    if len(obj) == 1 and _BYTES_KEY in obj:
        return base64.b64decode(obj[_BYTES_KEY])
    return obj


def _drop_none(value: Any) -> Any:
    """Property lists have no null; omit None values recursively."""
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value if v is not None]
    return value


def encode_dict(data: dict[str, Any], format: SerializationFormat) -> bytes:
    """Encode a plain dict as JSON or an XML property list."""
    format.ensure_implemented()
    if format is SerializationFormat.JSON:
        return json.dumps(data, default=_json_default, ensure_ascii=False).encode("utf-8")
    if format is SerializationFormat.PLIST:
        return plistlib.dumps(_drop_none(data), fmt=plistlib.FMT_XML)
    raise TypedDataError(f"{format.display_name} has no generic dict encoding")


def decode_dict(payload: bytes, format: SerializationFormat) -> dict[str, Any]:
    """Decode a JSON or property-list document into a plain dict."""
    format.ensure_implemented()
    try:
        if format is SerializationFormat.JSON:
            value = json.loads(payload.decode("utf-8"), object_hook=_json_object_hook)
        elif format is SerializationFormat.PLIST:
            value = plistlib.loads(payload)
        else:
            raise TypedDataError(f"{format.display_name} has no generic dict decoding")
    except (ValueError, plistlib.InvalidFileException) as e:
        raise DecodeError(format.value, str(e)) from e
    if not isinstance(value, dict):
        raise DecodeError(format.value, f"expected a dictionary, got {type(value).__name__}")
    return value


class SerializableTypedData:
    """
    Mixin for typed data values with a preferred wire format.

    Subclasses provide `to_dict()` and `from_dict()`. Types whose preferred
    format is BINARY override `_encode_binary` / `_decode_binary`.
    """

    preferred_format: ClassVar[SerializationFormat] = SerializationFormat.JSON

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        raise NotImplementedError

    def serialize(self, format: Optional[SerializationFormat] = None) -> bytes:
        format = format or self.preferred_format
        format.ensure_implemented()
        if format is SerializationFormat.BINARY:
            return self._encode_binary()
        return encode_dict(self.to_dict(), format)

    @classmethod
    def deserialize(cls, payload: bytes, format: Optional[SerializationFormat] = None):
        format = format or cls.preferred_format
        format.ensure_implemented()
        if format is SerializationFormat.BINARY:
            return cls._decode_binary(payload)
        d = decode_dict(payload, format)
        try:
            return cls.from_dict(d)
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(format.value, f"invalid {cls.__name__} document: {e}") from e

    def _encode_binary(self) -> bytes:
        raise TypedDataError(f"{type(self).__name__} does not support binary serialization")

    @classmethod
    def _decode_binary(cls, payload: bytes):
        raise TypedDataError(f"{cls.__name__} does not support binary serialization")


# -----------------------------------------------------------------------------
# Vector layout
# -----------------------------------------------------------------------------

@dataclass
class DecodedVector:
    """The fields carried by the binary vector layout. Empty input text reads as None."""
    values: list[float]
    input_text: Optional[str] = None
    token_count: Optional[int] = None

    @property
    def dimensions(self) -> int:
        return len(self.values)


def pack_floats(values: Sequence[float]) -> bytes:
    """Pack floats as consecutive little-endian float32."""
    return struct.pack(f"<{len(values)}f", *values)


def unpack_floats(payload: bytes, dimensions: int) -> list[float]:
    """
    Unpack exactly `dimensions` little-endian float32 values.

    The payload must hold exactly that many bytes; anything else is a
    DecodeError rather than a truncated or padded read.
    """
    expected = dimensions * _FLOAT32_SIZE
    if dimensions < 0 or len(payload) != expected:
        raise DecodeError(
            "binary",
            f"vector payload is {len(payload)} bytes, expected {expected} "
            f"for {dimensions} dimensions",
        )
    return list(struct.unpack(f"<{dimensions}f", payload))


def encode_vector(
    values: Sequence[float],
    input_text: Optional[str] = None,
    token_count: Optional[int] = None,
) -> bytes:
    """
    Encode a vector and its metadata in the fixed binary layout.

    A missing `input_text` is written as a zero-length text field, the same
    bytes as an empty one, so `""` decodes back as None.
    """
    parts = [_INT32.pack(len(values)), pack_floats(values)]
    text = (input_text or "").encode("utf-8")
    parts.append(_INT32.pack(len(text)))
    parts.append(text)
    parts.append(_INT32.pack(token_count if token_count is not None else -1))
    return b"".join(parts)


def decode_vector(payload: bytes, expected_dimensions: Optional[int] = None) -> DecodedVector:
    """
    Decode the fixed binary vector layout.

    Raises DecodeError if the header is short, the declared dimension count
    disagrees with `expected_dimensions`, the vector body is truncated, a
    trailer is malformed, or bytes remain after the token count.
    """
    if len(payload) < _INT32.size:
        raise DecodeError("binary", "insufficient data for dimensions header")
    (dimensions,) = _INT32.unpack_from(payload, 0)
    if dimensions < 0:
        raise DecodeError("binary", f"negative dimension count {dimensions}")
    if expected_dimensions is not None and dimensions != expected_dimensions:
        raise DecodeError(
            "binary",
            f"payload declares {dimensions} dimensions, record declares {expected_dimensions}",
        )
    offset = _INT32.size
    vector_end = offset + dimensions * _FLOAT32_SIZE
    if len(payload) < vector_end:
        raise DecodeError(
            "binary",
            f"vector body truncated: need {vector_end - offset} bytes, have {len(payload) - offset}",
        )
    values = unpack_floats(payload[offset:vector_end], dimensions)
    offset = vector_end

    input_text = None
    token_count = None
    remaining = len(payload) - offset
    if remaining:
        if remaining < _INT32.size:
            raise DecodeError("binary", f"{remaining} trailing bytes after vector")
        (text_length,) = _INT32.unpack_from(payload, offset)
        offset += _INT32.size
        if text_length < 0 or offset + text_length > len(payload):
            raise DecodeError("binary", f"input text length {text_length} exceeds payload")
        if text_length:
            try:
                input_text = payload[offset:offset + text_length].decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError("binary", f"input text is not UTF-8: {e}") from e
        offset += text_length

        remaining = len(payload) - offset
        if remaining:
            if remaining != _INT32.size:
                raise DecodeError("binary", f"{remaining} trailing bytes where token count expected")
            (tokens,) = _INT32.unpack_from(payload, offset)
            if tokens >= 0:
                token_count = tokens

    return DecodedVector(values=values, input_text=input_text, token_count=token_count)
