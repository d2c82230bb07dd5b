"""Tests for settings loading."""

import pytest

from bot_config import (
    DEFAULT_CHECK_INTERVAL_MS,
    DEFAULT_EMBED_COLOR,
    DEFAULT_MESSAGE,
    load_settings,
    parse_color,
)


class TestParseColor:
    @pytest.mark.parametrize(
        "raw, expected",
        [("#FF0000", 0xFF0000), ("0x00ff00", 0x00FF00), ("255", 255), (" #0000ff ", 0x0000FF)],
    )
    def test_formats(self, raw, expected):
        assert parse_color(raw) == expected

    @pytest.mark.parametrize("raw", ["red", "#GGGGGG", "0x1000000", "-1"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_color(raw)


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({"DISCORD_TOKEN": "t", "DATABASE_URL": "postgresql://x"})

        assert settings.discord_token == "t"
        assert settings.database_url == "postgresql://x"
        assert settings.check_interval_ms == DEFAULT_CHECK_INTERVAL_MS
        assert settings.check_interval_seconds == 60
        assert settings.default_message == DEFAULT_MESSAGE
        assert settings.embed_color == DEFAULT_EMBED_COLOR
        assert settings.log_level == "INFO"

    def test_overrides(self):
        settings = load_settings(
            {
                "CHECK_INTERVAL_MS": "30000",
                "DEFAULT_MESSAGE": "{{video_title}}\\n{{video_url}}",
                "EMBED_COLOR": "#00FF00",
                "FEED_TIMEOUT_SECONDS": "2.5",
                "LOG_LEVEL": "debug",
            }
        )

        assert settings.check_interval_seconds == 30
        assert settings.default_message == "{{video_title}}\n{{video_url}}"
        assert settings.embed_color == 0x00FF00
        assert settings.feed_timeout == 2.5
        assert settings.log_level == "DEBUG"
        assert settings.discord_token is None

    @pytest.mark.parametrize("value", ["soon", "0", "-5"])
    def test_invalid_interval(self, value):
        with pytest.raises(ValueError):
            load_settings({"CHECK_INTERVAL_MS": value})

    def test_blank_values_use_defaults(self):
        settings = load_settings({"CHECK_INTERVAL_MS": "", "DEFAULT_MESSAGE": ""})

        assert settings.check_interval_ms == DEFAULT_CHECK_INTERVAL_MS
        assert settings.default_message == DEFAULT_MESSAGE

    @pytest.mark.parametrize("value", ["VERBOSE", "trace", "5"])
    def test_invalid_log_level(self, value):
        with pytest.raises(ValueError):
            load_settings({"LOG_LEVEL": value})

    def test_log_level_is_normalised(self):
        assert load_settings({"LOG_LEVEL": " warning "}).log_level == "WARNING"
