from __future__ import annotations

import datetime as dt

from timesbot.services.command_parser import DEFAULT_UTC_OFFSET_MINUTES, fixed_zone
from timesbot.services.replies import SlackReply, public


def days_until_christmas(today: dt.date) -> int:
    christmas = dt.date(today.year, 12, 25)
    if christmas < today:
        christmas = dt.date(today.year + 1, 12, 25)
    return (christmas - today).days


def christmas_reply(now: dt.datetime, utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES) -> SlackReply:
    today = now.astimezone(fixed_zone(utc_offset_minutes)).date()
    count = days_until_christmas(today)
    if count == 0:
        return public(":tada: Merry Christmas :gift: :santa:")
    return public(f"{count} days left until Christmas")
