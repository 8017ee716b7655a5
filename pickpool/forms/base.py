import html

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import ImmutableMultiDict


def sanitize_input(text):
    """Sanitize user input to prevent XSS"""
    if not text:
        return text
    return html.escape(str(text).strip())


class JsonForm(FlaskForm):
    """
    Form fed from a JSON request body.

    CSRF is checked globally by CSRFProtect from the X-CSRFToken header
    instead of a form field.
    """

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls, payload=None, **kwargs):
        """
        Build the form from a JSON object.

        Scalars are passed to the fields as strings. Nulls, arrays and nested
        objects are left out and must be validated by the caller.
        """
        if payload is None:
            payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}

        formdata = {}
        for key, value in payload.items():
            if value is None or isinstance(value, (list, dict)):
                continue
            if isinstance(value, bool):
                value = "true" if value else ""
            formdata[key] = str(value)
        return cls(formdata=ImmutableMultiDict(formdata), **kwargs)

    def first_error(self):
        """First validation message, for the error envelope"""
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return "Invalid request"
