"""Middleware for operator authentication context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from shopdesk.database import get_session
from shopdesk.exceptions import NotAuthenticatedError
from shopdesk.models import AppUser


def load_operator():
    """
    Load the logged-in operator into g.

    Called before each request. Sets g.user and g.user_id when the session
    carries the id of an active user.
    """
    g.user = None
    g.user_id = None

    user_id = session.get('user_id')
    if not user_id:
        return

    try:
        db_session = get_session()
        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_operator: {e}")
        return

    if user:
        g.user = user
        g.user_id = user.id
    else:
        session.pop('user_id', None)


def current_operator():
    """Logged-in AppUser or None."""
    return g.get('user')


def require_login(f):
    """
    Decorator: Require an operator to be logged in.

    Answers 401 JSON instead of redirecting; every client of this app is an API client.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            error = NotAuthenticatedError('Debes iniciar sesión para continuar.')
            return jsonify(error.to_dict()), error.status_code
        return f(*args, **kwargs)
    return decorated_function
