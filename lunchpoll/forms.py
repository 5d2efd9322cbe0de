"""Form fields shared by the group and poll blueprints."""

from wtforms import Field
from wtforms.validators import ValidationError


class StringListField(Field):
    """A field holding every submitted value for its name.

    Form posts repeat the field (``members=a&members=b``); JSON bodies send a
    list (``{"members": ["a", "b"]}``). Blank entries are dropped.
    """

    def _value(self):
        return ",".join(self.data or [])

    def process_formdata(self, valuelist):
        """Collect the non-blank submitted values."""
        self.data = [v.strip() for v in valuelist if isinstance(v, str) and v.strip()]


class NonEmptyList:
    """Validator requiring at least one entry in a StringListField."""

    def __init__(self, message=None):
        """Initialize the validator."""
        self.message = message

    def __call__(self, form, field):
        """Raise if the list is empty."""
        if not field.data:
            raise ValidationError(self.message or "Select at least one entry.")


def first_error(form):
    """Return the first validation message of a form, for error payloads."""
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return "Invalid request."
