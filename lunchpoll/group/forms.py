"""Forms for the group blueprint."""

from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired

from lunchpoll.forms import NonEmptyList, StringListField


class GroupForm(FlaskForm):
    """Form for creating a new group."""

    name = StringField("Group Name", validators=[DataRequired()])
    members = StringListField("Members")


class AddRestaurantsForm(FlaskForm):
    """Form for shortlisting restaurants on a group."""

    restaurant_ids = StringListField(
        "Restaurants", validators=[NonEmptyList("Select at least one restaurant.")]
    )


class EditMembersForm(FlaskForm):
    """Form for replacing a group's member list."""

    members = StringListField(
        "Members", validators=[NonEmptyList("A group needs at least one member.")]
    )
