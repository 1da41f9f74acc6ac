"""
Tests for output file types and the inline-or-file decision.

The decision runs in two steps: a size threshold when one applies, then
the category default.
"""

import pytest

from hablare.formats import ProviderCategory, SerializationFormat
from hablare.output_types import (
    DEFAULT_BINARY_THRESHOLD,
    DEFAULT_MEDIA_THRESHOLD,
    OutputFileType,
    category_decision,
    threshold_decision,
)


class TestThresholdDecision:

    def test_size_at_threshold_goes_to_file(self):
        """100,000 bytes against a 100,000 threshold is stored as a file."""
        mp3 = OutputFileType.mp3(100_000)
        assert mp3.should_store_as_file(100_000) is True

    def test_size_below_threshold_stays_inline(self):
        mp3 = OutputFileType.mp3(100_000)
        assert mp3.should_store_as_file(99_999) is False

    def test_no_threshold_defers(self):
        assert threshold_decision(None, 10) is None

    def test_unknown_size_defers(self):
        assert threshold_decision(100, None) is None

    def test_threshold_decides_when_both_known(self):
        assert threshold_decision(100, 100) is True
        assert threshold_decision(100, 0) is False


class TestCategoryFallback:

    def test_category_decision_uses_hint(self):
        assert category_decision(ProviderCategory.IMAGE) is True
        assert category_decision(ProviderCategory.TEXT) is False

    def test_unknown_size_uses_category(self):
        assert OutputFileType.mp3().should_store_as_file(None) is True
        assert OutputFileType.plain_text(10).should_store_as_file(None) is False

    def test_no_threshold_uses_category_for_any_size(self):
        png = OutputFileType.png().with_threshold(None)
        assert png.should_store_as_file(1) is True
        assert OutputFileType.plain_text().should_store_as_file(50_000_000) is False

    def test_threshold_overrides_category(self):
        """A small image stays inline even though images prefer files."""
        assert OutputFileType.png().should_store_as_file(500) is False
        assert OutputFileType.plain_text(1_000).should_store_as_file(5_000) is True


class TestOutputFileType:

    def test_media_defaults(self):
        for output_type in (OutputFileType.mp3(), OutputFileType.wav(), OutputFileType.png(),
                            OutputFileType.jpeg(), OutputFileType.mp4()):
            assert output_type.store_as_file_threshold == DEFAULT_MEDIA_THRESHOLD
            assert output_type.serialization_format is SerializationFormat.BINARY

    def test_common_types(self):
        assert OutputFileType.plain_text().mime_type == "text/plain"
        assert OutputFileType.jpeg().file_extension == "jpg"
        assert OutputFileType.mov().category is ProviderCategory.VIDEO
        assert OutputFileType.m4a().mime_type == "audio/mp4"
        assert OutputFileType.plist().serialization_format is SerializationFormat.PLIST
        assert OutputFileType.json().category is ProviderCategory.TEXT

    def test_binary_default_threshold(self):
        blob = OutputFileType.binary(ProviderCategory.EMBEDDING)
        assert blob.store_as_file_threshold == DEFAULT_BINARY_THRESHOLD
        assert blob.mime_type == "application/octet-stream"

    def test_type_tag_is_not_part_of_equality(self):
        a = OutputFileType("audio/mpeg", "mp3", ProviderCategory.AUDIO, SerializationFormat.BINARY,
                           100, type_tag="public.mp3")
        b = OutputFileType("audio/mpeg", "mp3", ProviderCategory.AUDIO, SerializationFormat.BINARY,
                           100, type_tag=None)
        assert a == b

    def test_with_threshold_returns_copy(self):
        original = OutputFileType.png()
        changed = original.with_threshold(5)
        assert changed.store_as_file_threshold == 5
        assert original.store_as_file_threshold == DEFAULT_MEDIA_THRESHOLD

    def test_immutable(self):
        with pytest.raises(AttributeError):
            OutputFileType.png().mime_type = "image/gif"

    def test_dict_form(self):
        mp3 = OutputFileType.mp3()
        d = mp3.to_dict()
        assert d["category"] == "audio"
        assert d["store_as_file_threshold"] == DEFAULT_MEDIA_THRESHOLD
        assert OutputFileType.from_dict(d) == mp3

    def test_dict_form_omits_missing_threshold(self):
        d = OutputFileType.plain_text().to_dict()
        assert "store_as_file_threshold" not in d
        assert OutputFileType.from_dict(d).store_as_file_threshold is None
