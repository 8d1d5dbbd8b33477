from flask import Blueprint, request, session, g, jsonify, current_app
from functools import wraps

from bracket_engine.errors import ValidationError
from models import db, User, current_time
import services

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


# Helper function - load current user
def load_current_user():
    """Load user into g.current_user for easy access"""
    if 'user_id' in session:
        g.current_user = db.session.get(User, session['user_id'])
    else:
        g.current_user = None


def login_required(f):
    """Require any logged-in user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'current_user', None):
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Require an administrator account"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'current_user', None):
            return jsonify({'error': 'Unauthorized'}), 401
        if not g.current_user.is_admin:
            return jsonify({'error': 'Administrator access required'}), 403
        return f(*args, **kwargs)
    return decorated_function


def check_user_uniqueness(username, email):
    """
    Check if username or email already exists in database.
    Returns list of errors. Requires Flask app context.
    """
    errors = []

    if User.query.filter_by(username=username).first():
        errors.append("Username already exists")

    if User.query.filter_by(email=email).first():
        errors.append("Email already registered")

    return errors


@auth_bp.route('/register', methods=['POST'])
def register():
    payload = request.get_json(silent=True) or {}
    username = (payload.get('username') or '').strip()
    email = (payload.get('email') or '').strip().lower()
    password = (payload.get('password') or '').strip()
    display_name = (payload.get('displayName') or '').strip() or None

    # Validate format (no DB queries)
    errors = User.validate_format(username, email, password)

    # Check uniqueness (requires DB queries)
    if not errors:
        errors.extend(check_user_uniqueness(username, email))

    if errors:
        raise ValidationError('; '.join(errors))

    user = User(username=username, email=email, display_name=display_name)
    user.set_password(password)

    with services.unit_of_work('register user'):
        db.session.add(user)

    current_app.logger.info(f"Registered user {user.id} ({username})")
    return jsonify({'message': 'Registration successful', 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    payload = request.get_json(silent=True) or {}
    username = (payload.get('username') or '').strip()
    password = payload.get('password') or ''

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        return jsonify({'error': 'Invalid username or password'}), 401

    session.clear()
    session['user_id'] = user.id
    session['username'] = user.username
    session['logged_in_at'] = current_time().isoformat()
    session.modified = True

    return jsonify({'message': f'Welcome, {user.public_name}', 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'message': 'You have been logged out.'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(g.current_user.to_dict())


@auth_bp.route('/submit-bracket', methods=['POST'])
@login_required
def submit_bracket():
    user = services.submit_bracket(g.current_user.id)
    return jsonify({'message': 'Bracket submitted successfully', 'user': user.to_dict()})
