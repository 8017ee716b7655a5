"""
Pick grading for pickpool

Every pick is graded against the spread (team picks) or the posted total
(over/under picks) by ``grade_pick``. The rest of the application calls
this module rather than comparing scores itself.

Line convention: ``spread`` is the home team's line, negative when the home
team is favored. A home team at -3.5 must win by four to cover.

    adjusted = (home_score - away_score) + spread

    home pick:  adjusted > 0 correct, == 0 tie, < 0 incorrect
    away pick:  adjusted < 0 correct, == 0 tie, > 0 incorrect
    over pick:  total > line correct, == line tie, < line incorrect
    under pick: the mirror of over

A missing spread grades as a pick'em (0). A missing total leaves over/under
picks pending.
"""

import math

RESULT_CORRECT = "correct"
RESULT_INCORRECT = "incorrect"
RESULT_TIE = "tie"
RESULT_PENDING = "pending"
PICK_RESULTS = (RESULT_CORRECT, RESULT_INCORRECT, RESULT_TIE, RESULT_PENDING)

HOME = "home"
AWAY = "away"
OVER = "over"
UNDER = "under"


def _compare(value):
    if value > 0:
        return RESULT_CORRECT
    if value < 0:
        return RESULT_INCORRECT
    return RESULT_TIE


def normalize_team(name):
    """Case and whitespace insensitive form of a team name"""
    return " ".join(str(name).split()).lower() if name is not None else ""


def grade_spread(home_score, away_score, spread, side):
    """Grade a home or away pick against the home-team spread"""
    adjusted = (home_score - away_score) + (spread or 0)
    if side == HOME:
        return _compare(adjusted)
    if side == AWAY:
        return _compare(-adjusted)
    raise ValueError(f"Unknown side: {side}")


def grade_total(home_score, away_score, over_under, direction):
    """Grade an over or under pick against the posted total"""
    if over_under is None:
        return RESULT_PENDING
    difference = (home_score + away_score) - over_under
    if direction == OVER:
        return _compare(difference)
    if direction == UNDER:
        return _compare(-difference)
    raise ValueError(f"Unknown total direction: {direction}")


def resolve_side(pick, home_team, away_team):
    """
    Work out what a stored pick refers to.

    Returns "home", "away", "over", "under", or None when the value names
    neither team. Legacy "home" / "away" values map to themselves.
    """
    value = normalize_team(pick)
    if not value:
        return None
    if value in (HOME, AWAY, OVER, UNDER):
        return value
    if value == normalize_team(home_team):
        return HOME
    if value == normalize_team(away_team):
        return AWAY
    return None


def grade_pick(
    pick,
    home_team,
    away_team,
    home_score,
    away_score,
    spread=None,
    over_under=None,
    is_final=True,
):
    """
    Classify a pick as correct, incorrect, tie or pending.

    Args:
        pick: team name, "home", "away", "over" or "under"
        home_team, away_team: full team names of the game
        home_score, away_score: final scores, None while unknown
        spread: home-team line, negative when the home team is favored
        over_under: posted total points line
        is_final: whether the game has finished

    Returns:
        One of ``PICK_RESULTS``. Unknown pick values grade as pending.
    """
    if not is_final or home_score is None or away_score is None:
        return RESULT_PENDING

    side = resolve_side(pick, home_team, away_team)
    if side in (HOME, AWAY):
        return grade_spread(home_score, away_score, spread, side)
    if side in (OVER, UNDER):
        return grade_total(home_score, away_score, over_under, side)
    return RESULT_PENDING


def tally(results):
    """Count wins, losses and ties, pending results are ignored"""
    wins = losses = ties = 0
    for result in results:
        if result == RESULT_CORRECT:
            wins += 1
        elif result == RESULT_INCORRECT:
            losses += 1
        elif result == RESULT_TIE:
            ties += 1
    return wins, losses, ties


def win_percentage(wins, losses, ties):
    """Whole-number share of graded picks that won, 0 with no picks"""
    total = (wins or 0) + (losses or 0) + (ties or 0)
    if total == 0:
        return 0
    # round half up
    return math.floor((wins or 0) * 100 / total + 0.5)


def standings_sort_key(row):
    # wins desc, losses asc, ties desc
    return (-row["wins"], row["losses"], -row["ties"], row.get("username") or "")
