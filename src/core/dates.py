#!/usr/bin/python
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatesConfig:
    # Format used when a round date is shown in Discord
    display_format: str = "%Y-%m-%d %H:%M"
    # Timezone used for display; None means the host's local timezone
    display_tz: Optional[timezone] = None


class RoundDates:
    """
    Parses the ISO 8601 timestamps found in scorecard snapshots
    ("2024-05-04T18:22:11.123Z") and renders them for humans.
    """
    def __init__(self, config: DatesConfig | None = None):
        self.config = config or DatesConfig()

    def parse(self, value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        text = value.strip()
        # fromisoformat() only learned the Z suffix in 3.11
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("RoundDates.parse: unparseable date %r", value)
            return None
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts

    def display(self, ts: Optional[datetime]) -> str:
        if ts is None:
            return "unknown date"
        local = ts.astimezone(self.config.display_tz) if self.config.display_tz else ts.astimezone()
        return local.strftime(self.config.display_format)


_DEFAULT_ROUND_DATES: RoundDates = RoundDates()


def get_round_dates() -> RoundDates:
    return _DEFAULT_ROUND_DATES


def set_round_dates(round_dates: RoundDates) -> None:
    global _DEFAULT_ROUND_DATES
    _DEFAULT_ROUND_DATES = round_dates


def parse_round_date(value: Optional[str]) -> Optional[datetime]:
    return _DEFAULT_ROUND_DATES.parse(value)


def display_round_date(ts: Optional[datetime]) -> str:
    return _DEFAULT_ROUND_DATES.display(ts)
