"""Forms for the poll blueprint."""

from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Optional

from lunchpoll.forms import NonEmptyList, StringListField


class PollForm(FlaskForm):
    """Form for creating a poll over restaurant candidates."""

    group_id = StringField("Group", validators=[DataRequired()])
    restaurant_ids = StringListField(
        "Restaurants", validators=[NonEmptyList("Select at least one restaurant.")]
    )


class VoteForm(FlaskForm):
    """Form for casting or retracting a vote."""

    restaurant_id = StringField("Restaurant", validators=[DataRequired()])
    group_id = StringField("Group", validators=[Optional()])


class EndPollForm(FlaskForm):
    """Form for closing a poll."""

    group_id = StringField("Group", validators=[Optional()])
