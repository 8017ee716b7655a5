from wtforms import PasswordField, StringField
from wtforms.validators import (
    DataRequired,
    Email,
    EqualTo,
    Length,
    Optional,
    Regexp,
    ValidationError,
)

from pickpool.forms.base import JsonForm
from pickpool.models.user import User


class SigninForm(JsonForm):
    username = StringField(
        "Username", validators=[DataRequired(message="Username is required")]
    )
    password = PasswordField(
        "Password", validators=[DataRequired(message="Password is required")]
    )


class SignupForm(JsonForm):
    username = StringField(
        "Username",
        validators=[
            DataRequired(message="Username is required"),
            Length(
                min=3, max=80, message="Username must be between 3 and 80 characters"
            ),
            Regexp(
                r"^[a-zA-Z0-9_.-]+$",
                message="Username can only contain letters, numbers, dots, underscores, and hyphens",
            ),
        ],
    )
    name = StringField(
        "Name",
        validators=[
            DataRequired(message="Name is required"),
            Length(max=100, message="Name cannot exceed 100 characters"),
        ],
    )
    email = StringField("Email", validators=[Optional(), Email(), Length(max=120)])
    password = PasswordField(
        "Password",
        validators=[
            DataRequired(message="Password is required"),
            Length(min=6, message="Password must be at least 6 characters long"),
        ],
    )
    confirm_password = PasswordField(
        "Confirm Password",
        validators=[
            DataRequired(message="Please confirm your password"),
            EqualTo("password", message="Passwords do not match"),
        ],
    )

    def validate_username(self, username):
        if User.query.filter_by(username=username.data.strip()).first():
            raise ValidationError("Username already exists")

    def validate_email(self, email):
        if email.data and User.query.filter_by(email=email.data.strip()).first():
            raise ValidationError("Email already registered")
