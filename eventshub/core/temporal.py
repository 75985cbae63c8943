"""
Temporal Codec

Converts wall-clock calendar moments (year/month/day/hour/minute in one fixed
named time zone) to and from integer epoch seconds. Storage and range queries
only ever see the epoch form.

Contract:
- encode() fails with TimeZoneUnavailable only when the zone database cannot
  be loaded; calendar fields are not validated here.
- decode(encode(m)) == m for every moment that exists in the zone;
  encodeExact() rejects the moments that do not.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .events import DateTime

DEFAULT_TIMEZONE = "Europe/Warsaw"


class TimeZoneUnavailable(Exception):
    """Zone database for the configured zone could not be loaded"""
    pass


class TemporalCodec:
    """Pure conversion between DateTime moments and epoch seconds in one zone"""

    def __init__(self, zoneName: str = DEFAULT_TIMEZONE):
        self.zoneName = zoneName
        self._zone = None

    @property
    def zone(self) -> ZoneInfo:
        if self._zone is None:
            try:
                self._zone = ZoneInfo(self.zoneName)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise TimeZoneUnavailable(f"Time zone '{self.zoneName}' is not available: {e}") from e
        return self._zone

    def encode(self, moment: DateTime) -> int:
        """
        Convert a local calendar moment to epoch seconds.

        Out-of-range fields (month=13, day=32, ...) raise ValueError from the
        datetime constructor; callers validate before storing. Wall times
        inside a DST gap resolve with fold=0 and do not round-trip.
        """
        local = datetime(moment.year, moment.month, moment.day,
                         moment.hour, moment.minute, tzinfo=self.zone)
        return int(local.timestamp())

    def encodeExact(self, moment: DateTime) -> int:
        """
        encode() for moments that will be stored.

        Raises ValueError unless decode(encode(moment)) == moment, so wall
        times inside a DST gap and moments outside the zone's representable
        range never reach storage.
        """
        epochSeconds = self.encode(moment)
        try:
            decoded = self.decode(epochSeconds)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"{moment} is outside the representable range: {e}") from e
        if decoded != moment:
            raise ValueError(f"{moment} does not exist in {self.zoneName} (reads back as {decoded})")
        return epochSeconds

    def decode(self, epochSeconds: int) -> DateTime:
        """Convert epoch seconds to a local calendar moment (seconds dropped)"""
        local = datetime.fromtimestamp(epochSeconds, tz=timezone.utc).astimezone(self.zone)
        return DateTime(
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute
        )
