"""
Tests for display config defaults and merging.
"""

import pytest
from pydantic import ValidationError

from flipbook_backend.configuration import (
    build_config_metadata,
    default_display_config,
    default_page_image_options,
    merge_display_config,
)
from flipbook_backend.errors import ConfigOptionError
from flipbook_backend.settings import load_settings


class TestDefaults:
    def test_display_defaults(self):
        config = default_display_config()
        assert config.width == 400
        assert config.height == 500
        assert config.flip_animation == "soft"
        assert config.flip_speed == 1000
        assert config.show_shadow is True
        assert config.shadow_opacity == pytest.approx(0.3)
        assert config.page_layout == "double"
        assert config.background_color == "#1a1a2e"
        assert config.navigation_style == "both"
        assert config.auto_play is False
        assert config.auto_play_interval == 3000

    def test_page_image_defaults(self):
        options = default_page_image_options()
        assert (options.width, options.height, options.quality, options.format) == (1200, 1600, "auto", "jpg")

    def test_metadata_lists_options(self):
        metadata = build_config_metadata()
        assert metadata.options["flipAnimation"] == ["hard", "soft", "fade", "vertical"]
        assert metadata.options["pageLayout"] == ["single", "double"]


class TestMerge:
    def test_partial_merge_keeps_other_fields(self):
        base = default_display_config()

        merged = merge_display_config(base, {"width": 800})

        assert merged.width == 800
        assert merged.model_dump(exclude={"width"}) == base.model_dump(exclude={"width"})

    def test_merge_is_pure(self):
        base = default_display_config()
        patch = {"flipAnimation": "fade"}

        merge_display_config(base, patch)

        assert base.flip_animation == "soft"
        assert patch == {"flipAnimation": "fade"}

    def test_camel_and_snake_keys(self):
        merged = merge_display_config(
            default_display_config(),
            {"navigationStyle": "none", "auto_play": True},
        )
        assert merged.navigation_style == "none"
        assert merged.auto_play is True

    def test_none_values_ignored(self):
        merged = merge_display_config(default_display_config(), {"height": None})
        assert merged.height == 500

    def test_unknown_option(self):
        with pytest.raises(ConfigOptionError):
            merge_display_config(default_display_config(), {"flipDirection": "left"})

    @pytest.mark.parametrize(
        "patch",
        [
            {"flipAnimation": "spin"},
            {"pageLayout": "triple"},
            {"shadowOpacity": 1.5},
            {"width": 0},
        ],
    )
    def test_invalid_values(self, patch):
        with pytest.raises(ValidationError):
            merge_display_config(default_display_config(), patch)


class TestSettings:
    def test_defaults(self):
        settings = load_settings(env={})
        assert settings.max_upload_bytes == 50 * 1024 * 1024
        assert settings.port == 5000
        assert settings.allowed_origin == "*"
        assert settings.s3_prefix == "flipbook"

    def test_bad_integer_falls_back(self):
        settings = load_settings(env={"PORT": "http", "MAX_UPLOAD_MB": "10"})
        assert settings.port == 5000
        assert settings.max_upload_bytes == 10 * 1024 * 1024

    def test_share_url(self):
        settings = load_settings(env={"FRONTEND_URL": "https://flip.example.test/"})
        assert settings.share_url("abc123") == "https://flip.example.test/view/abc123"
