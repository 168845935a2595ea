"""Unit tests for request path resolution."""

from __future__ import annotations

import pytest
from bucket_index.errors import InvalidPath
from bucket_index.listing import ListingResult
from bucket_index.paths import (
    BucketNotFound,
    RequestTarget,
    RootTarget,
    decode_key,
    resolve_path,
)
from bucket_index.storage import BucketRef, ObjectEntry

BUCKETS = (BucketRef("docs", "docs-backend"), BucketRef("media", "media"))


class TestResolvePath:
    """Test classification of request paths."""

    @pytest.mark.parametrize("path", ["/", "", "//", "///"])
    def test_root(self, path):
        assert resolve_path(path, BUCKETS) == RootTarget()

    def test_bucket_root(self):
        target = resolve_path("/docs/", BUCKETS)
        assert isinstance(target, RequestTarget)
        assert target.bucket == BUCKETS[0]
        assert target.segments == ()
        assert target.key == ""
        assert target.prefix == ""

    def test_empty_segments_are_dropped(self):
        target = resolve_path("//docs//a//b/", BUCKETS)
        assert isinstance(target, RequestTarget)
        assert target.segments == ("a", "b")
        assert target.key == "a/b"
        assert target.prefix == "a/b/"

    def test_key_without_trailing_slash(self):
        target = resolve_path("/media/photos/cat.jpg", BUCKETS)
        assert isinstance(target, RequestTarget)
        assert target.bucket.handle == "media"
        assert target.key == "photos/cat.jpg"

    def test_trailing_slash_does_not_change_target(self):
        assert resolve_path("/docs/a/b/", BUCKETS) == resolve_path("/docs/a/b", BUCKETS)

    def test_unknown_bucket(self):
        assert resolve_path("/nope/file", BUCKETS) == BucketNotFound("nope")

    def test_bucket_match_is_case_sensitive(self):
        assert resolve_path("/Docs/", BUCKETS) == BucketNotFound("Docs")

    def test_key_is_decoded_as_a_unit(self):
        target = resolve_path("/docs/My%20Files/%C3%89cole%2Fnotes.txt", BUCKETS)
        assert isinstance(target, RequestTarget)
        assert target.segments == ("My%20Files", "%C3%89cole%2Fnotes.txt")
        assert target.key == "My Files/École/notes.txt"

    def test_invalid_utf8_escape(self):
        with pytest.raises(InvalidPath):
            resolve_path("/docs/%FF%FE", BUCKETS)


class TestDecodeKey:
    def test_plain(self):
        assert decode_key("a/b.txt") == "a/b.txt"

    def test_multibyte_sequence(self):
        assert decode_key("%E2%9C%93") == "✓"

    def test_literal_percent_survives(self):
        assert decode_key("100%25") == "100%"


class TestObjectCandidate:
    """Test the directory-or-object decision."""

    def test_empty_listing_with_key_is_object(self):
        target = resolve_path("/docs/readme.txt", BUCKETS)
        assert target.is_object_candidate(ListingResult(prefix="readme.txt/"))

    def test_empty_bucket_root_is_directory(self):
        target = resolve_path("/docs/", BUCKETS)
        assert not target.is_object_candidate(ListingResult(prefix=""))

    def test_non_empty_listing_is_directory(self):
        target = resolve_path("/docs/dir", BUCKETS)
        listing = ListingResult(prefix="dir/", objects=(ObjectEntry("dir/a.txt", 1),))
        assert not target.is_object_candidate(listing)
