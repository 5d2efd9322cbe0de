"""Decorators for the auth blueprint."""

from functools import wraps

from flask import g, session

from lunchpoll.errors import Unauthenticated


def login_required(f):
    """Reject the request with Unauthenticated if no user is signed in.

    Usage:
    @login_required
    def protected_view():
        ...
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if "user_id" not in session or not getattr(g, "user", None):
            raise Unauthenticated()
        return f(*args, **kwargs)

    return decorated_function


def current_user_email():
    """Return the signed-in user's email, or None."""
    user = getattr(g, "user", None)
    return user.get("email") if user else None
