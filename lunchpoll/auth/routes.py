"""Routes for the auth blueprint.

Sign-in itself happens in the Firebase client SDK; these routes only turn a
verified ID token into a server-side session.
"""

from firebase_admin import auth, firestore
from flask import current_app, jsonify, request, session

from lunchpoll.constants import USER_DISPLAY_NAME, USER_EMAIL, USERS_COLLECTION
from lunchpoll.utils import get_search_directory

from . import bp


@bp.route("/session_login", methods=["POST"])
def session_login():
    """
    This endpoint is called from the client-side after a successful Firebase login.
    It receives the ID token, verifies it, and creates a server-side session.
    """
    id_token = (request.get_json(silent=True) or {}).get("idToken")
    if not id_token:
        return jsonify({"status": "error", "message": "Missing ID token."}), 400
    try:
        decoded_token = auth.verify_id_token(id_token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError) as e:
        current_app.logger.error(f"Error during session login: {e}")
        return jsonify({"status": "error", "message": "Invalid token."}), 401

    uid = decoded_token["uid"]
    email = decoded_token.get("email")
    if not email:
        return jsonify({"status": "error", "message": "Account has no email."}), 401

    # Keep the directory entry in step with the identity provider so member
    # search can find the user.
    db = firestore.client()
    db.collection(USERS_COLLECTION).document(uid).set(
        {
            USER_EMAIL: email,
            USER_DISPLAY_NAME: decoded_token.get("name") or email,
        },
        merge=True,
    )
    get_search_directory().invalidate()

    session.clear()
    session["user_id"] = uid
    session["email"] = email
    return jsonify({"status": "success", "email": email})


@bp.route("/logout", methods=["POST"])
def logout():
    """
    The actual logout is handled by the Firebase client-side SDK.
    This route clears the server-side session.
    """
    session.clear()
    return jsonify({"status": "success"})
