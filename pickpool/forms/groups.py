from wtforms import IntegerField, PasswordField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp

from pickpool.forms.base import JsonForm


class CreateGroupForm(JsonForm):
    name = StringField(
        "Group Name",
        validators=[
            DataRequired(message="Group name is required"),
            Length(
                min=3,
                max=100,
                message="Group name must be between 3 and 100 characters",
            ),
            Regexp(
                r"^[a-zA-Z0-9 '_.-]+$", message="Group name contains invalid characters"
            ),
        ],
    )
    description = TextAreaField(
        "Description",
        validators=[
            Optional(),
            Length(max=500, message="Description cannot exceed 500 characters"),
        ],
    )
    password = PasswordField(
        "Join Password",
        validators=[
            Optional(),
            Length(min=4, max=128, message="Join password must be 4 to 128 characters"),
        ],
    )
    max_members = IntegerField(
        "Maximum Members",
        validators=[
            Optional(),
            NumberRange(
                min=2, max=100, message="Maximum members must be between 2 and 100"
            ),
        ],
    )


class JoinGroupForm(JsonForm):
    password = PasswordField("Join Password", validators=[Optional()])


class JoinByCodeForm(JsonForm):
    invite_code = StringField(
        "Invite Code",
        validators=[
            DataRequired(message="Invite code is required"),
            Length(min=4, max=16, message="Invalid invite code"),
        ],
    )
