"""Tests for the dict codecs, the vector layout and typed data serialization."""

import struct

import pytest

from hablare.codecs import (
    decode_dict,
    decode_vector,
    encode_dict,
    encode_vector,
    pack_floats,
    unpack_floats,
)
from hablare.errors import DecodeError, TypedDataError
from hablare.formats import SerializationFormat
from hablare.typed_data import (
    AudioFormat,
    GeneratedAudioData,
    GeneratedEmbeddingData,
    GeneratedImageData,
    GeneratedTextData,
    ImageFormat,
)


# ---------------------------------------------------------------------------
# Vector layout
# ---------------------------------------------------------------------------

class TestVectorLayout:

    def test_vector_survives_encoding(self):
        decoded = decode_vector(encode_vector([1.0, 2.0, 3.0]))
        assert decoded.values == pytest.approx([1.0, 2.0, 3.0])
        assert decoded.dimensions == 3

    def test_exact_byte_layout(self):
        expected = (
            struct.pack("<i", 2)
            + struct.pack("<2f", 0.5, -1.0)
            + struct.pack("<i", 2) + b"hi"
            + struct.pack("<i", 7)
        )
        assert encode_vector([0.5, -1.0], "hi", 7) == expected

    def test_absent_metadata_uses_sentinels(self):
        payload = encode_vector([1.0])
        assert payload[-8:] == struct.pack("<i", 0) + struct.pack("<i", -1)
        decoded = decode_vector(payload)
        assert decoded.input_text is None
        assert decoded.token_count is None

    def test_empty_input_text_reads_as_none(self):
        assert encode_vector([1.0], "") == encode_vector([1.0])
        assert decode_vector(encode_vector([1.0], "", 3)).input_text is None

    def test_large_vector(self):
        values = [i / 3072 for i in range(3072)]
        payload = encode_vector(values, "x", 1)
        assert len(payload) == 4 + 3072 * 4 + 4 + 1 + 4
        decoded = decode_vector(payload, expected_dimensions=3072)
        assert decoded.values == pytest.approx(values)

    def test_metadata_decoded(self):
        decoded = decode_vector(encode_vector([1.0, 2.0], "héllo wörld", 12))
        assert decoded.input_text == "héllo wörld"
        assert decoded.token_count == 12

    def test_trailers_are_optional_on_read(self):
        payload = struct.pack("<i", 2) + pack_floats([1.0, 2.0])
        decoded = decode_vector(payload)
        assert decoded.values == [1.0, 2.0]
        assert decoded.input_text is None
        assert decoded.token_count is None

    def test_text_without_token_count(self):
        payload = struct.pack("<i", 1) + pack_floats([1.0]) + struct.pack("<i", 3) + b"abc"
        decoded = decode_vector(payload)
        assert decoded.input_text == "abc"
        assert decoded.token_count is None

    def test_short_header(self):
        with pytest.raises(DecodeError, match="dimensions header"):
            decode_vector(b"\x01\x00")

    def test_truncated_body(self):
        payload = struct.pack("<i", 4) + pack_floats([1.0, 2.0])
        with pytest.raises(DecodeError, match="truncated"):
            decode_vector(payload)

    def test_declared_dimensions_must_match(self):
        with pytest.raises(DecodeError, match="declares 3 dimensions"):
            decode_vector(encode_vector([1.0, 2.0, 3.0]), expected_dimensions=4)

    def test_negative_dimension_count(self):
        with pytest.raises(DecodeError, match="negative"):
            decode_vector(struct.pack("<i", -1))

    def test_partial_trailer(self):
        payload = struct.pack("<i", 1) + pack_floats([1.0]) + b"\x00\x00"
        with pytest.raises(DecodeError, match="trailing"):
            decode_vector(payload)

    def test_text_length_beyond_payload(self):
        payload = struct.pack("<i", 1) + pack_floats([1.0]) + struct.pack("<i", 50) + b"abc"
        with pytest.raises(DecodeError, match="exceeds"):
            decode_vector(payload)

    def test_bytes_after_token_count(self):
        payload = encode_vector([1.0], "a", 1) + b"\x00"
        with pytest.raises(DecodeError):
            decode_vector(payload)


class TestFloatPacking:

    def test_exact_length_required(self):
        with pytest.raises(DecodeError, match="expected 12"):
            unpack_floats(pack_floats([1.0, 2.0]), 3)
        with pytest.raises(DecodeError):
            unpack_floats(pack_floats([1.0, 2.0, 3.0, 4.0]), 3)

    def test_little_endian(self):
        assert pack_floats([1.0]) == b"\x00\x00\x80\x3f"


# ---------------------------------------------------------------------------
# Dict codecs
# ---------------------------------------------------------------------------

class TestDictCodecs:

    def test_json_carries_bytes(self):
        payload = encode_dict({"blob": b"\x00\xff", "n": 1}, SerializationFormat.JSON)
        assert decode_dict(payload, SerializationFormat.JSON) == {"blob": b"\x00\xff", "n": 1}

    def test_plist_drops_none(self):
        payload = encode_dict({"a": None, "b": "x", "c": {"d": None}}, SerializationFormat.PLIST)
        assert decode_dict(payload, SerializationFormat.PLIST) == {"b": "x", "c": {}}

    def test_invalid_json(self):
        with pytest.raises(DecodeError, match="json"):
            decode_dict(b"{not json", SerializationFormat.JSON)

    def test_invalid_plist(self):
        with pytest.raises(DecodeError):
            decode_dict(b"not a plist", SerializationFormat.PLIST)

    def test_top_level_must_be_dict(self):
        with pytest.raises(DecodeError, match="dictionary"):
            decode_dict(b"[1, 2]", SerializationFormat.JSON)

    def test_binary_has_no_dict_encoding(self):
        with pytest.raises(TypedDataError):
            encode_dict({}, SerializationFormat.BINARY)


# ---------------------------------------------------------------------------
# Typed data
# ---------------------------------------------------------------------------

class TestTypedDataSerialization:

    def test_text_preferred_json(self):
        data = GeneratedTextData(text="one two three", model="gpt-4", token_count=5)
        restored = GeneratedTextData.deserialize(data.serialize())
        assert restored == data
        assert restored.word_count == 3

    def test_audio_preferred_plist_keeps_bytes(self):
        data = GeneratedAudioData(
            audio_data=b"ID3\x00\x01", format=AudioFormat.WAV,
            voice_id="v1", voice_name="Voice", model="m1", duration_seconds=1.5,
        )
        payload = data.serialize()
        assert payload.startswith(b"<?xml")
        assert GeneratedAudioData.deserialize(payload) == data

    def test_embedding_preferred_binary(self):
        data = GeneratedEmbeddingData(
            embedding=[1.0, 2.0, 3.0], dimensions=3, input_text="abc", token_count=1,
        )
        payload = data.serialize()
        assert payload == encode_vector([1.0, 2.0, 3.0], "abc", 1)
        restored = GeneratedEmbeddingData.deserialize(payload)
        assert restored.embedding == pytest.approx([1.0, 2.0, 3.0])
        assert restored.dimensions == 3
        assert restored.input_text == "abc"

    def test_embedding_json_keeps_model(self):
        data = GeneratedEmbeddingData(embedding=[0.25], dimensions=1, model="m", index=2)
        restored = GeneratedEmbeddingData.deserialize(
            data.serialize(SerializationFormat.JSON), SerializationFormat.JSON
        )
        assert restored.model == "m"
        assert restored.index == 2

    def test_empty_text(self):
        data = GeneratedTextData(text="", model="gpt-4")
        for fmt in (SerializationFormat.JSON, SerializationFormat.PLIST):
            restored = GeneratedTextData.deserialize(data.serialize(fmt), fmt)
            assert restored == data
            assert restored.word_count == 0

    def test_large_embedding_binary(self):
        values = [((i % 97) - 48) / 64 for i in range(3072)]
        data = GeneratedEmbeddingData(embedding=values, dimensions=3072, input_text="long", token_count=9)
        restored = GeneratedEmbeddingData.deserialize(data.serialize())
        assert restored.dimensions == 3072
        assert restored.embedding == values
        assert restored.token_count == 9

    def test_binary_unsupported_for_text(self):
        data = GeneratedTextData(text="x", model="m")
        with pytest.raises(TypedDataError, match="binary"):
            data.serialize(SerializationFormat.BINARY)

    def test_reserved_format_rejected(self):
        data = GeneratedTextData(text="x", model="m")
        with pytest.raises(NotImplementedError):
            data.serialize(SerializationFormat.MESSAGEPACK)

    def test_missing_field_is_decode_error(self):
        with pytest.raises(DecodeError, match="GeneratedTextData"):
            GeneratedTextData.deserialize(b'{"text": "x"}')

    def test_unloaded_vector_cannot_serialize(self):
        data = GeneratedEmbeddingData(embedding=None, dimensions=3)
        with pytest.raises(TypedDataError):
            data.serialize()


_SAMPLES = [
    GeneratedTextData(text="a short answer", model="gpt-4", language_code="en", token_count=4),
    GeneratedAudioData(
        audio_data=b"ID3\x03\x00" + bytes(64), format=AudioFormat.MP3,
        voice_id="v1", voice_name="Rachel", model="eleven_monolingual_v1", sample_rate=44100,
    ),
    GeneratedImageData(
        image_data=b"\x89PNG\r\n\x1a\n" + bytes(32), format=ImageFormat.PNG,
        width=1024, height=1024, model="dall-e-3", revised_prompt="a red lighthouse",
    ),
    GeneratedEmbeddingData(
        embedding=[0.5, -0.25, 0.125], dimensions=3, model="text-embedding-3-small",
        input_text="vectorize me", token_count=3, index=0,
    ),
]


@pytest.mark.parametrize("fmt", [SerializationFormat.JSON, SerializationFormat.PLIST])
@pytest.mark.parametrize("data", _SAMPLES, ids=lambda d: type(d).__name__)
def test_dict_formats_restore_every_category(data, fmt):
    assert type(data).deserialize(data.serialize(fmt), fmt) == data
