"""
NFL calendar helpers

The regular season opens on the Thursday after Labor Day (the first Monday
of September) and runs 18 weeks. A pick'em week spans Thursday through
Monday, US time.
"""

from datetime import date, datetime, time, timedelta, timezone

REGULAR_SEASON_WEEKS = 18
SEPTEMBER = 9


def season_opener(year):
    """Date of the Thursday kickoff of week 1"""
    first = date(year, SEPTEMBER, 1)
    # Monday is weekday 0
    labor_day = first + timedelta(days=(7 - first.weekday()) % 7)
    return labor_day + timedelta(days=3)


def get_current_season_and_week(now=None):
    """
    Season year and week number for a moment in time.

    Before September the previous season is reported at its final week.
    From September 1 until the opener it is week 1 of the new season.
    """
    now = now or datetime.now(timezone.utc)
    today = now.date() if isinstance(now, datetime) else now

    if today.month < SEPTEMBER:
        return today.year - 1, REGULAR_SEASON_WEEKS

    days_since_opener = (today - season_opener(today.year)).days
    week = days_since_opener // 7 + 1
    return today.year, max(1, min(REGULAR_SEASON_WEEKS, week))


def get_week_window(season, week):
    """
    UTC bounds of a week: Thursday 00:00:00 to the following Tuesday 11:59:59.

    Monday night kickoffs land on Tuesday in UTC. Returns aware datetimes.
    """
    if not 1 <= week <= REGULAR_SEASON_WEEKS:
        raise ValueError(f"Week must be between 1 and {REGULAR_SEASON_WEEKS}")

    thursday = season_opener(season) + timedelta(weeks=week - 1)
    tuesday = thursday + timedelta(days=5)
    start = datetime.combine(thursday, time.min, tzinfo=timezone.utc)
    end = datetime.combine(tuesday, time(11, 59, 59), tzinfo=timezone.utc)
    return start, end


def week_for_datetime(season, when):
    """Week of a season a kickoff belongs to, clamped to the regular season"""
    kickoff = when.date() if isinstance(when, datetime) else when
    days = (kickoff - season_opener(season)).days
    return max(1, min(REGULAR_SEASON_WEEKS, days // 7 + 1))
