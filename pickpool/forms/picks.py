from wtforms import IntegerField
from wtforms.validators import DataRequired, NumberRange, Optional, ValidationError

from pickpool.forms.base import JsonForm

MAX_PICKS_PER_REQUEST = 64


class SubmitPicksForm(JsonForm):
    group_id = IntegerField(
        "Group", validators=[DataRequired(message="group_id is required")]
    )

    @staticmethod
    def parse_picks(payload):
        """
        Validate the "picks" array of a submission.

        Returns a list of {"game_id", "pick", "confidence"} dicts with one
        entry per game (a later entry for the same game wins). Raises
        ValidationError on malformed input.
        """
        picks = (payload or {}).get("picks")
        if not isinstance(picks, list) or not picks:
            raise ValidationError("picks must be a non-empty list")
        if len(picks) > MAX_PICKS_PER_REQUEST:
            raise ValidationError(f"At most {MAX_PICKS_PER_REQUEST} picks per request")

        parsed = {}
        for index, item in enumerate(picks):
            if not isinstance(item, dict):
                raise ValidationError(f"Pick #{index + 1} must be an object")

            game_id = item.get("game_id", item.get("gameId"))
            if isinstance(game_id, bool) or not isinstance(game_id, (int, str)):
                raise ValidationError(f"Pick #{index + 1} is missing game_id")
            try:
                game_id = int(game_id)
            except ValueError:
                raise ValidationError(
                    f"Pick #{index + 1} has an invalid game_id"
                ) from None

            value = item.get("pick")
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Pick #{index + 1} is missing a pick value")

            confidence = item.get("confidence")
            if confidence is not None:
                if isinstance(confidence, bool) or not isinstance(confidence, int):
                    raise ValidationError(
                        f"Pick #{index + 1} confidence must be a whole number"
                    )
                if confidence < 1:
                    raise ValidationError(f"Pick #{index + 1} confidence must be positive")

            parsed[game_id] = {
                "game_id": game_id,
                "pick": value.strip(),
                "confidence": confidence,
            }

        return list(parsed.values())


class WeekQueryForm(JsonForm):
    """Optional ?week=&season= filters"""

    week = IntegerField(
        "Week",
        validators=[
            Optional(),
            NumberRange(min=1, max=18, message="Week must be between 1 and 18"),
        ],
    )
    season = IntegerField(
        "Season",
        validators=[
            Optional(),
            NumberRange(min=2000, max=2100, message="Season must be a valid year"),
        ],
    )


class ScoreWeekForm(JsonForm):
    """Admin scoring request, week and season are required"""

    week = IntegerField(
        "Week",
        validators=[
            DataRequired(message="Week and season are required"),
            NumberRange(min=1, max=18, message="Week must be between 1 and 18"),
        ],
    )
    season = IntegerField(
        "Season",
        validators=[
            DataRequired(message="Week and season are required"),
            NumberRange(min=2000, max=2100, message="Season must be a valid year"),
        ],
    )
    group_id = IntegerField("Group", validators=[Optional()])
