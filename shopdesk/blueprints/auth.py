"""Authentication blueprint - operator login/logout for the POS session."""

from flask import Blueprint, request, session, g, jsonify, Response
from typing import Union, Tuple
from shopdesk.database import get_session
from shopdesk.models import AppUser
from shopdesk.middleware import require_login
import logging

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
def login() -> Union[Response, Tuple[Response, int]]:
    """Start an operator session."""
    payload = request.get_json(silent=True) or request.form.to_dict()
    email = (payload.get('email') or '').strip().lower()
    password = payload.get('password') or ''

    if not email or not password:
        return jsonify({'status': 'error', 'message': 'Email y contraseña son requeridos.'}), 400

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(email=email, active=True).first()
    if not user or not user.check_password(password):
        logger.warning(f"Failed login attempt for {email}")
        return jsonify({'status': 'error', 'message': 'Credenciales inválidas.'}), 401

    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    logger.info(f"Operator {user.id} logged in")
    return jsonify({'status': 'ok', 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout() -> Response:
    """End the operator session (the session cart goes with it)."""
    user_id = session.get('user_id')
    session.clear()
    if user_id:
        logger.info(f"Operator {user_id} logged out")
    return jsonify({'status': 'ok'})


@auth_bp.route('/me')
@require_login
def me() -> Response:
    return jsonify({'status': 'ok', 'user': g.user.to_dict()})
