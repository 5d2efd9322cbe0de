"""Routes for the group blueprint."""

import json
import queue

from firebase_admin import firestore
from flask import Response, current_app, jsonify, request

from lunchpoll.auth.decorators import current_user_email, login_required
from lunchpoll.errors import AccessDenied, ValidationError
from lunchpoll.forms import first_error
from lunchpoll.services import GroupDetailReadModel
from lunchpoll.services.read_model import sort_polls
from lunchpoll.services.user_directory import search_users
from lunchpoll.utils import (
    get_group_repository,
    get_search_directory,
    get_user_directory,
)

from . import bp
from .forms import AddRestaurantsForm, EditMembersForm, GroupForm


def group_payload(group):
    """Serialize a group for a response, newest poll first."""
    data = group.to_dict()
    data["polls"] = [poll.to_dict() for poll in sort_polls(group.polls)]
    return data


def get_member_group(repo, group_id, email):
    """Fetch a group, insisting that the user belongs to it."""
    group = repo.get_group(group_id)
    if email not in group.members:
        raise AccessDenied("You are not a member of this group.")
    return group


@bp.route("/", methods=["GET"])
@login_required
def view_groups():
    """List the user's groups, or only those they created with ?created=1."""
    email = current_user_email()
    repo = get_group_repository()
    if request.args.get("created"):
        groups = repo.list_groups_created_by(email)
    else:
        groups = repo.list_groups_for_member(email)
    return jsonify({"groups": [group_payload(group) for group in groups]})


@bp.route("/create", methods=["POST"])
@login_required
def create_group():
    """Create a group with the current user as creator and member."""
    form = GroupForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    group = get_group_repository().create_group(
        form.name.data, form.members.data, current_user_email()
    )
    return (
        jsonify(
            {
                "status": "success",
                "message": "Group created successfully.",
                "group": group_payload(group),
            }
        ),
        201,
    )


@bp.route("/users/search", methods=["GET"])
@login_required
def search_members():
    """Search the user directory for people to add to a group."""
    users = get_search_directory().list_other_users(current_user_email())
    results = search_users(users, request.args.get("q", ""))
    return jsonify({"results": [user.to_dict() for user in results]})


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_group(group_id):
    """Return a single group with its polls."""
    group = get_member_group(get_group_repository(), group_id, current_user_email())
    return jsonify({"group": group_payload(group)})


@bp.route("/<string:group_id>/events", methods=["GET"])
@login_required
def group_events(group_id):
    """Stream the live group detail state as server-sent events."""
    email = current_user_email()
    get_member_group(get_group_repository(), group_id, email)

    keepalive_seconds = current_app.config["SSE_KEEPALIVE_SECONDS"]
    read_model = GroupDetailReadModel(
        firestore.client(), group_id, email, get_user_directory()
    )
    updates = queue.Queue()
    unsubscribe = read_model.subscribe(updates.put)
    read_model.start()
    current_app.logger.info(f"Streaming group {group_id} to {email}.")

    def stream():
        try:
            while True:
                try:
                    state = updates.get(timeout=keepalive_seconds)
                except queue.Empty:
                    # Idle: ping the client and check the listener.
                    read_model.check_listener()
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(state.to_dict(), default=str)}\n\n"
        finally:
            unsubscribe()
            read_model.close()

    return Response(stream(), mimetype="text/event-stream")


@bp.route("/<string:group_id>/restaurants", methods=["POST"])
@login_required
def add_restaurants(group_id):
    """Shortlist restaurants on a group."""
    form = AddRestaurantsForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    repo = get_group_repository()
    get_member_group(repo, group_id, current_user_email())
    result = repo.add_restaurants_to_group(group_id, form.restaurant_ids.data)
    if result.is_noop:
        message = "All selected restaurants are already in this group."
    else:
        message = f"Added {len(result.added)} restaurant(s) to the group."
    return jsonify(
        {
            "status": result.outcome.value,
            "message": message,
            "added": list(result.added),
            "skipped": list(result.skipped),
        }
    )


@bp.route("/<string:group_id>/members", methods=["POST"])
@login_required
def edit_members(group_id):
    """Replace the group's member list."""
    form = EditMembersForm()
    if not form.validate_on_submit():
        raise ValidationError(first_error(form))

    repo = get_group_repository()
    get_member_group(repo, group_id, current_user_email())
    members = repo.update_members(group_id, form.members.data)
    return jsonify({"status": "success", "members": members})


@bp.route("/<string:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id):
    """Leave a group; the last member to leave deletes it."""
    deleted = get_group_repository().leave_group(group_id, current_user_email())
    message = "Group deleted." if deleted else "You have left the group."
    return jsonify({"status": "success", "message": message, "group_deleted": deleted})


@bp.route("/<string:group_id>/delete", methods=["POST"])
@login_required
def delete_group(group_id):
    """Delete a group and its polls; only the creator may do this."""
    repo = get_group_repository()
    group = repo.get_group(group_id)
    if group.created_by != current_user_email():
        raise AccessDenied("Only the group creator can delete this group.")
    repo.delete_group(group_id)
    return jsonify({"status": "success", "message": "Group deleted."})
