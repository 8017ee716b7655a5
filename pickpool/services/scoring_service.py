"""
Weekly scoring

Grades the picks of a finished week and rebuilds the WeeklyScore rows they
feed. Records are recomputed from the stored picks on every run, so scoring
the same week twice leaves the totals unchanged.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from pickpool import db
from pickpool.models import Game, Pick, WeeklyScore
from pickpool.models.game import STATUS_FINAL
from pickpool.utils.cache_utils import cached_query, invalidate_week_cache
from pickpool.utils.nfl_calendar import get_current_season_and_week
from pickpool.utils.scoring import standings_sort_key, tally

logger = logging.getLogger(__name__)


def get_scorable_games(season, week):
    """Final games of a week that have both scores"""
    return Game.query.filter(
        Game.season == season,
        Game.week == week,
        Game.status == STATUS_FINAL,
        Game.home_score.isnot(None),
        Game.away_score.isnot(None),
    ).all()


def recompute_weekly_score(user_id, group_id, season, week):
    """Rebuild one member's record for a week from their graded picks"""
    picks = (
        Pick.query.join(Game)
        .filter(
            Pick.user_id == user_id,
            Pick.group_id == group_id,
            Game.season == season,
            Game.week == week,
        )
        .all()
    )
    wins, losses, ties = tally(pick.grade() for pick in picks)

    score = WeeklyScore.get_or_create(user_id, group_id, season, week)
    score.wins = wins
    score.losses = losses
    score.ties = ties
    return score


def score_week(season, week, group_id=None, commit=True):
    """
    Grade every pick on the final games of a week and refresh weekly scores.

    Args:
        season: season year
        week: week number
        group_id: limit scoring to one group
        commit: commit the session when done

    Returns:
        dict with games_processed, picks_processed and scores_updated
    """
    games = get_scorable_games(season, week)
    summary = {
        "season": season,
        "week": week,
        "games_processed": len(games),
        "picks_processed": 0,
        "scores_updated": 0,
    }
    if not games:
        logger.info(f"No completed games to score for {season} week {week}")
        return summary

    query = Pick.query.filter(Pick.game_id.in_([g.id for g in games]))
    if group_id is not None:
        query = query.filter(Pick.group_id == group_id)

    touched = set()
    for pick in query.all():
        pick.update_result()
        touched.add((pick.user_id, pick.group_id))
        summary["picks_processed"] += 1

    for user_id, pick_group_id in sorted(touched):
        recompute_weekly_score(user_id, pick_group_id, season, week)
        summary["scores_updated"] += 1

    if commit:
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Failed to store scores for {season} week {week}")
            raise
        invalidate_week_cache(season, week)

    logger.info(
        f"Scored {season} week {week}: {summary['games_processed']} games, "
        f"{summary['picks_processed']} picks, {summary['scores_updated']} records"
    )
    return summary


def score_current_week(group_id=None):
    """Score the week the NFL calendar says is in progress"""
    season, week = get_current_season_and_week()
    return score_week(season, week, group_id=group_id)


@cached_query("scores", timeout=300)
def weekly_score_rows(season, week, group_id=None):
    """Stored weekly records as dicts, sorted wins desc, losses asc, ties desc"""
    query = WeeklyScore.query.filter_by(season=season, week=week)
    if group_id is not None:
        query = query.filter_by(group_id=group_id)
    rows = [score.to_dict() for score in query.all()]
    rows.sort(key=standings_sort_key)
    return rows
