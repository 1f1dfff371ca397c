"""Tests for EventNormalizer and clean_text."""

from datetime import date, datetime, timedelta
import time

import pytest
import pytz

from civic_feeds.ingestion.normalizer import DEFAULT_DESCRIPTION, EventNormalizer, clean_text


@pytest.fixture
def normalizer(settings):
    return EventNormalizer(settings)


class TestCleanText:
    def test_strips_tags_and_entities(self):
        assert clean_text("<p>Hello&nbsp;<b>world</b> &amp; friends</p>") == "Hello world & friends"

    def test_truncates(self):
        text = clean_text("word " * 100)
        assert len(text) == 300
        assert text.endswith("...")

    def test_empty(self):
        assert clean_text(None) == ""


class TestNormalizeDatetime:
    def test_naive_string_localized(self, normalizer):
        value = normalizer.normalize_datetime("2026-07-04 21:00")
        assert value == pytz.timezone("America/New_York").localize(datetime(2026, 7, 4, 21, 0))

    def test_date_becomes_local_midnight(self, normalizer):
        value = normalizer.normalize_datetime(date(2026, 7, 4))
        assert (value.hour, value.minute) == (0, 0)
        assert value.tzinfo is not None

    def test_struct_time_is_utc(self, normalizer):
        value = normalizer.normalize_datetime(time.strptime("2026-07-04 12:00", "%Y-%m-%d %H:%M"))
        assert value == datetime(2026, 7, 4, 12, 0, tzinfo=pytz.UTC)

    def test_epoch_milliseconds(self, normalizer):
        value = normalizer.normalize_datetime(1_783_166_400_000)
        assert value == datetime.fromtimestamp(1_783_166_400, tz=pytz.UTC)

    @pytest.mark.parametrize("value", [None, "", "not a date", object()])
    def test_unusable(self, normalizer, value):
        assert normalizer.normalize_datetime(value) is None


class TestBuild:
    def test_missing_title_or_start(self, normalizer, make_source):
        source = make_source()
        assert normalizer.build(source, title="", start="2026-07-04 21:00") is None
        assert normalizer.build(source, title="Fireworks", start=None) is None

    def test_end_not_after_start_replaced(self, normalizer, make_source, future):
        start = future(3)
        event = normalizer.build(make_source(), title="Fireworks", start=start, end=start - timedelta(hours=1))
        assert event.end_date == start + timedelta(hours=2)

    def test_defaults_and_times(self, normalizer, make_source):
        event = normalizer.build(make_source(), title="Fireworks Show", start="2026-07-04 21:00")
        assert event.description == DEFAULT_DESCRIPTION
        assert event.location == "Springfield, IL"
        assert event.start_time == "9:00 PM"
        assert event.end_time == "11:00 PM"
        assert event.is_free is False

    def test_negative_attendees_clamped(self, normalizer, make_source):
        event = normalizer.build(make_source(), title="Fireworks", start="2026-07-04 21:00", attendees=-4)
        assert event.attendees == 0

    def test_event_must_end_after_start(self, normalizer, make_source):
        event = normalizer.build(make_source(), title="Fireworks", start="2026-07-04 21:00")
        with pytest.raises(ValueError):
            type(event)(**{**event.__dict__, "end_date": event.start_date})
