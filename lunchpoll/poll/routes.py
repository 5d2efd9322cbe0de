"""Routes for the poll blueprint."""

from flask import current_app, jsonify

from lunchpoll.auth.decorators import current_user_email, login_required
from lunchpoll.errors import AccessDenied, ValidationError
from lunchpoll.forms import first_error
from lunchpoll.utils import get_group_repository, get_voting_engine

from . import bp
from .forms import EndPollForm, PollForm, VoteForm


def require_membership(group_id, email):
    """Raise AccessDenied unless the user belongs to the group."""
    group = get_group_repository().get_group(group_id)
    if email not in group.members:
        raise AccessDenied("You are not a member of this group.")
    return group


@bp.route("/create", methods=["POST"])
@login_required
def create_poll():
    """Start a poll over some of a group's restaurants."""
    form = PollForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    email = current_user_email()
    require_membership(form.group_id.data, email)
    poll = get_voting_engine().create_poll(
        form.group_id.data, form.restaurant_ids.data, email
    )
    return (
        jsonify(
            {
                "status": "success",
                "message": "Poll created successfully.",
                "poll": poll.to_dict(),
            }
        ),
        201,
    )


@bp.route("/<string:poll_id>/vote", methods=["POST"])
@login_required
def vote(poll_id):
    """Cast, switch or retract the current user's vote."""
    form = VoteForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    email = current_user_email()
    engine = get_voting_engine()
    group_id = form.group_id.data or engine.get_poll(poll_id).group_id
    require_membership(group_id, email)

    poll = engine.cast_or_retract(poll_id, form.restaurant_id.data, email, group_id)
    state = poll.vote_state(form.restaurant_id.data, email)
    current_app.logger.info(f"{email} is now {state.value} in poll {poll_id}.")
    return jsonify({"status": "success", "vote_state": state.value, "poll": poll.to_dict()})


@bp.route("/<string:poll_id>/end", methods=["POST"])
@login_required
def end_poll(poll_id):
    """Close a poll to further voting; only its creator may do this."""
    form = EndPollForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    engine = get_voting_engine()
    group_id = form.group_id.data or None
    poll = engine.get_poll(poll_id, group_id)
    if poll.created_by != current_user_email():
        raise AccessDenied("Only the poll creator can end this poll.")
    poll = engine.end_poll(poll_id, group_id)
    return jsonify({"status": "success", "message": "Poll ended.", "poll": poll.to_dict()})
