"""Tests for configuration loading."""

from __future__ import annotations

import os

import pytest
from bucket_index.settings import IndexSettings, load_settings_from_env
from bucket_index.storage import BucketRef
from pydantic import ValidationError


class TestIndexSettings:
    """Test IndexSettings configuration."""

    def test_default_settings(self):
        """Test that IndexSettings has sensible defaults."""
        settings = IndexSettings()
        assert settings.chunk_size == 16 * 1024 * 1024
        assert settings.addressing_style == "path"
        assert settings.log_level == "INFO"

    def test_load_from_env(self, index_env_vars):
        """Test that settings load from environment."""
        settings = load_settings_from_env()
        assert settings.endpoint == index_env_vars["BUCKET_INDEX_ENDPOINT"]
        assert settings.access_key == index_env_vars["BUCKET_INDEX_ACCESS_KEY_ID"]
        assert settings.secret_key == index_env_vars["BUCKET_INDEX_SECRET_ACCESS_KEY"]
        assert settings.region == index_env_vars["BUCKET_INDEX_REGION"]
        assert settings.chunk_size == 4096
        assert settings.owner == "Ada"

    def test_bucket_list_parsing(self, index_env_vars):
        """Test that bucket bindings are normalised and kept in order."""
        settings = load_settings_from_env()
        assert settings.bucket_refs() == (
            BucketRef(name="public-files", handle="public-files-prod"),
            BucketRef(name="media", handle="media"),
        )

    def test_bucket_list_with_spaces(self):
        """Test that bucket bindings tolerate surrounding whitespace."""
        original = os.environ.get("BUCKET_INDEX_BUCKETS")
        try:
            os.environ["BUCKET_INDEX_BUCKETS"] = "  docs : docs-prod ,  media  ,"
            settings = load_settings_from_env()
            assert settings.buckets == {"docs": "docs-prod", "media": "media"}
        finally:
            if original is None:
                os.environ.pop("BUCKET_INDEX_BUCKETS", None)
            else:
                os.environ["BUCKET_INDEX_BUCKETS"] = original

    def test_bucket_mapping_from_dict(self):
        settings = IndexSettings(buckets={"Docs": "docs-prod"})
        assert settings.bucket_refs() == (BucketRef("docs", "docs-prod"),)

    def test_no_buckets(self):
        assert IndexSettings(buckets="").bucket_refs() == ()

    @pytest.mark.parametrize(
        ("buckets", "message"),
        [
            ("docs,DOCS", "more than once"),
            ("my_files,my-files", "more than once"),
            ("health", "reserved"),
            ("metrics:metrics-prod", "reserved"),
            ("bad/name", "URL-safe"),
            ("-dash", "URL-safe"),
            ("docs:", "no backend bucket"),
        ],
    )
    def test_invalid_bucket_lists(self, buckets, message):
        with pytest.raises(ValidationError, match=message):
            IndexSettings(buckets=buckets)

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            IndexSettings(chunk_size=0)

    def test_settings_are_immutable(self):
        settings = IndexSettings()
        with pytest.raises(ValidationError):
            settings.chunk_size = 1

    def test_addressing_style_from_env(self):
        """Test that addressing_style can be configured from environment."""
        original = os.environ.get("BUCKET_INDEX_ADDRESSING_STYLE")
        try:
            os.environ["BUCKET_INDEX_ADDRESSING_STYLE"] = "virtual"
            settings = load_settings_from_env()
            assert settings.addressing_style == "virtual"
        finally:
            if original is None:
                os.environ.pop("BUCKET_INDEX_ADDRESSING_STYLE", None)
            else:
                os.environ["BUCKET_INDEX_ADDRESSING_STYLE"] = original
