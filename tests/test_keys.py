"""Tests for object key naming."""

from __future__ import annotations

from variant_storage.engine.keys import object_key, variant_key


class TestVariantKey(object):
    """Variant keys are [prefix-]filename-suffix.ext."""

    def test_with_prefix(self) -> None:
        assert variant_key("cat", "sm", "upload.png", "thumb") == "thumb-cat-sm.png"

    def test_without_prefix(self) -> None:
        assert variant_key("cat", "sm", "upload.png") == "cat-sm.png"

    def test_empty_prefix_is_no_prefix(self) -> None:
        assert variant_key("cat", "sm", "upload.png", "") == "cat-sm.png"

    def test_extension_comes_from_original_name(self) -> None:
        """Only the last extension of the last path component is kept."""
        assert variant_key("cat", "lg", "dir.v2/archive.tar.gz") == "cat-lg.gz"

    def test_original_without_extension(self) -> None:
        assert variant_key("cat", "lg", "README") == "cat-lg"


class TestObjectKey(object):
    """Single-output keys are destination/filename."""

    def test_with_destination(self) -> None:
        assert object_key("avatars", "cat") == "avatars/cat"

    def test_trailing_slash_on_destination(self) -> None:
        assert object_key("avatars/", "cat") == "avatars/cat"

    def test_without_destination(self) -> None:
        assert object_key("", "cat") == "cat"
        assert object_key(None, "cat") == "cat"

    def test_non_string_destination_is_ignored(self) -> None:
        assert object_key(False, "cat") == "cat"  # type: ignore[arg-type]

    def test_recorded_key_is_not_prefixed_twice(self) -> None:
        assert object_key("avatars", "avatars/cat") == "avatars/cat"
