"""Tests for notification records and channel id validation."""

from datetime import datetime, timezone

import pytest

from conftest import CHANNEL_A, make_entry, make_mapping
from notification_models import (
    ChannelFeed,
    MappingPage,
    NotificationMapping,
    ValidationError,
    validate_channel_id,
)


class TestValidateChannelId:
    def test_accepts_and_strips(self):
        assert validate_channel_id(f"  {CHANNEL_A} ") == CHANNEL_A

    @pytest.mark.parametrize(
        "bad_id",
        [None, "", "UC", "ucaaaaaaaaaaaaaaaaaaaaaa", "UCaaaaaaaaaaaaaaaaaaaaa", "UCaaaaaaaaaaaaaaaaaaaaaaa"],
    )
    def test_rejects(self, bad_id):
        with pytest.raises(ValidationError):
            validate_channel_id(bad_id)


class TestRecords:
    def test_from_record(self):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        row = {name: None for name in NotificationMapping.field_names()}
        row.update(
            id=4,
            source_channel_id=CHANNEL_A,
            source_channel_name="Test Channel",
            guild_id="1",
            target_channel_id="2",
            created_by="3",
            is_active=False,
            created_at=now,
        )

        mapping = NotificationMapping.from_record(row)

        assert mapping.id == 4
        assert mapping.is_active is False
        assert mapping.created_at == now
        assert mapping.triple == (CHANNEL_A, "1", "2")
        assert mapping.channel_url == f"https://www.youtube.com/channel/{CHANNEL_A}"

    def test_page_remainder(self):
        mappings = [make_mapping(target=str(i)) for i in range(25)]

        assert MappingPage(mappings, total=31).remainder == 6
        assert MappingPage(mappings, total=25).remainder == 0
        assert MappingPage([], total=0).remainder == 0

    def test_feed_latest(self):
        assert ChannelFeed(CHANNEL_A, "Title").latest is None
        feed = ChannelFeed(CHANNEL_A, "Title", [make_entry("v2"), make_entry("v1")])
        assert feed.latest.entry_id == "v2"

    def test_thumbnail(self):
        assert (
            make_entry("abc").thumbnail_url
            == "https://img.youtube.com/vi/abc/maxresdefault.jpg"
        )
