"""
Timezone utility functions for pickpool
Game times are stored as naive UTC and shown in the configured timezone
"""

from datetime import datetime, timezone

import pytz
from flask import current_app


def get_app_timezone():
    """Get the application's configured timezone"""
    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def to_naive_utc(dt):
    """Normalize a datetime for storage, naive values are taken as UTC"""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_api_datetime(value):
    """
    Parse an ISO-8601 timestamp from a third-party API into naive UTC.

    Accepts the trailing "Z" both ESPN and The Odds API use, and ESPN's
    minute-precision form ("2024-09-08T17:00Z").
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None

    app_tz = get_app_timezone()

    # If datetime is naive, assume it's UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(app_tz)


def format_game_time(dt, format_str="%a %m/%d at %I:%M %p %Z"):
    """Format a game time in the application's timezone"""
    if dt is None:
        return "TBD"

    return convert_to_app_timezone(dt).strftime(format_str)
