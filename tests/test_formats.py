"""Tests for content categories and serialization formats."""

import pytest

from hablare.codecs import decode_dict, encode_dict
from hablare.errors import NotImplementedFormatError
from hablare.formats import ProviderCategory, SerializationFormat


class TestProviderCategory:
    """Category descriptors and the storage hint."""

    @pytest.mark.parametrize("category", [
        ProviderCategory.AUDIO, ProviderCategory.IMAGE, ProviderCategory.VIDEO,
    ])
    def test_media_categories_prefer_files(self, category):
        assert category.typically_needs_file_storage is True

    @pytest.mark.parametrize("category", [
        ProviderCategory.TEXT, ProviderCategory.EMBEDDING,
        ProviderCategory.CODE, ProviderCategory.STRUCTURED_DATA,
    ])
    def test_other_categories_prefer_inline(self, category):
        assert category.typically_needs_file_storage is False

    def test_descriptors(self):
        assert ProviderCategory.TEXT.display_name == "Text Generation"
        assert ProviderCategory.EMBEDDING.display_name == "Embeddings"
        assert ProviderCategory.AUDIO.typical_size_range == (100_000, 50_000_000)
        assert ProviderCategory.STRUCTURED_DATA.typical_size_range is None
        assert "speech" in ProviderCategory.AUDIO.description

    def test_values_round_trip_through_strings(self):
        assert ProviderCategory("structured_data") is ProviderCategory.STRUCTURED_DATA


class TestSerializationFormat:
    """Format descriptors, recommendation and reserved formats."""

    def test_descriptors(self):
        assert SerializationFormat.JSON.mime_type == "application/json"
        assert SerializationFormat.PLIST.file_extension == "plist"
        assert SerializationFormat.BINARY.is_human_readable is False
        assert SerializationFormat.BINARY.has_default_implementation is False
        assert SerializationFormat.JSON.has_default_implementation is True

    @pytest.mark.parametrize("fmt", [SerializationFormat.PROTOBUF, SerializationFormat.MESSAGEPACK])
    def test_reserved_formats_stay_listed(self, fmt):
        assert fmt in list(SerializationFormat)
        assert fmt.is_implemented is False

    @pytest.mark.parametrize("fmt", [SerializationFormat.PROTOBUF, SerializationFormat.MESSAGEPACK])
    def test_reserved_formats_fail_loudly(self, fmt):
        with pytest.raises(NotImplementedFormatError, match="reserved"):
            fmt.ensure_implemented()
        with pytest.raises(NotImplementedFormatError):
            encode_dict({"a": 1}, fmt)
        with pytest.raises(NotImplementedFormatError):
            decode_dict(b"{}", fmt)

    def test_reserved_format_error_is_not_implemented_error(self):
        with pytest.raises(NotImplementedError):
            SerializationFormat.PROTOBUF.ensure_implemented()

    def test_recommend_textual_is_json(self):
        assert SerializationFormat.recommend(True, False, 50_000_000) is SerializationFormat.JSON

    def test_recommend_inspectable_is_json(self):
        assert SerializationFormat.recommend(False, True, 50_000_000) is SerializationFormat.JSON

    def test_recommend_large_opaque_is_binary(self):
        assert SerializationFormat.recommend(False, False, 1_000_000) is SerializationFormat.BINARY

    def test_recommend_small_or_unknown_opaque_is_json(self):
        assert SerializationFormat.recommend(False, False, 999_999) is SerializationFormat.JSON
        assert SerializationFormat.recommend(False, False, None) is SerializationFormat.JSON
