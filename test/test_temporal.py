"""
Temporal Codec Tests

Tests for:
- Known epoch values in Europe/Warsaw (winter and summer offsets)
- decode(encode(m)) == m over a spread of valid moments, DST edges included
- Zone database failures surface as TimeZoneUnavailable
- Invalid calendar fields are not silently normalized

Run: python -m pytest test/test_temporal.py -v
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from eventshub.core.events import DateTime
from eventshub.core.temporal import TemporalCodec, TimeZoneUnavailable, DEFAULT_TIMEZONE


@pytest.fixture
def codec():
    return TemporalCodec()


class TestKnownValues:

    def test_default_zone_is_warsaw(self, codec):
        assert codec.zoneName == DEFAULT_TIMEZONE == "Europe/Warsaw"

    def test_winter_moment_is_utc_plus_one(self, codec):
        # 2024-02-13 09:00 CET == 2024-02-13 08:00 UTC
        assert codec.encode(DateTime(2024, 2, 13, 9, 0)) == 1707811200

    def test_summer_moment_is_utc_plus_two(self, codec):
        # 2024-07-01 12:00 CEST == 2024-07-01 10:00 UTC
        assert codec.encode(DateTime(2024, 7, 1, 12, 0)) == 1719828000

    def test_decode_known_epoch(self, codec):
        assert codec.decode(1707811200) == DateTime(2024, 2, 13, 9, 0)

    def test_decode_drops_seconds(self, codec):
        assert codec.decode(1707811200 + 59) == DateTime(2024, 2, 13, 9, 0)

    def test_other_zone(self):
        utc = TemporalCodec("UTC")
        assert utc.encode(DateTime(1970, 1, 1, 0, 0)) == 0
        assert utc.decode(86400 + 3600 + 60) == DateTime(1970, 1, 2, 1, 1)


class TestRoundTrip:

    @pytest.mark.parametrize("moment", [
        DateTime(2024, 2, 13, 9, 0),
        DateTime(2024, 2, 29, 23, 59),
        DateTime(2024, 12, 31, 23, 59),
        DateTime(2025, 1, 1, 0, 0),
        DateTime(1999, 6, 15, 12, 30),
        DateTime(2038, 1, 19, 4, 14),
        DateTime(2100, 3, 1, 0, 1),
        # Last Sunday of October: 02:30 happens twice, fold=0 picks the first
        DateTime(2024, 10, 27, 2, 30),
        # Day after spring-forward
        DateTime(2024, 4, 1, 2, 30),
    ])
    def test_round_trip(self, codec, moment):
        assert codec.decode(codec.encode(moment)) == moment

    def test_every_hour_of_a_year(self, codec):
        failures = []
        for month in range(1, 13):
            for day in (1, 15, 28):
                for hour in range(24):
                    moment = DateTime(2023, month, day, hour, 7)
                    if codec.decode(codec.encode(moment)) != moment:
                        failures.append(moment)
        # 2023 has no DST gap on the 1st/15th/28th
        assert failures == []

    def test_spring_forward_gap_does_not_raise(self, codec):
        # 2024-03-31 02:30 does not exist in Europe/Warsaw
        epoch = codec.encode(DateTime(2024, 3, 31, 2, 30))
        assert isinstance(epoch, int)
        assert codec.decode(epoch) != DateTime(2024, 3, 31, 2, 30)

    def test_encoding_preserves_order(self, codec):
        earlier = codec.encode(DateTime(2024, 2, 13, 9, 0))
        later = codec.encode(DateTime(2024, 2, 13, 9, 30))
        assert later - earlier == 30 * 60


class TestFailures:

    def test_unknown_zone_raises_time_zone_unavailable(self):
        codec = TemporalCodec("Nowhere/Atlantis")
        with pytest.raises(TimeZoneUnavailable):
            codec.encode(DateTime(2024, 1, 1))

    def test_unknown_zone_on_decode(self):
        with pytest.raises(TimeZoneUnavailable):
            TemporalCodec("Nowhere/Atlantis").decode(0)

    @pytest.mark.parametrize("moment", [
        DateTime(2024, 13, 1),
        DateTime(2024, 2, 30),
        DateTime(2024, 1, 1, 24, 0),
        DateTime(2024, 1, 1, 0, 60),
    ])
    def test_invalid_fields_raise_value_error(self, codec, moment):
        with pytest.raises(ValueError):
            codec.encode(moment)


class TestEncodeExact:

    def test_existing_moment(self, codec):
        moment = DateTime(2024, 2, 13, 9, 0)
        assert codec.encodeExact(moment) == codec.encode(moment)

    def test_fall_back_hour_is_accepted(self, codec):
        # 02:30 happens twice on 2024-10-27; the first occurrence is used
        moment = DateTime(2024, 10, 27, 2, 30)
        assert codec.decode(codec.encodeExact(moment)) == moment

    def test_spring_forward_gap_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.encodeExact(DateTime(2024, 3, 31, 2, 30))

    def test_below_representable_range_rejected(self, codec):
        with pytest.raises(ValueError):
            codec.encodeExact(DateTime(1, 1, 1, 0, 0))

    def test_invalid_fields_still_raise_value_error(self, codec):
        with pytest.raises(ValueError):
            codec.encodeExact(DateTime(2024, 13, 1))
