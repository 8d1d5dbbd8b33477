import json
import os

from flask import Flask, jsonify, current_app
from werkzeug.exceptions import HTTPException

from bracket_engine.errors import BracketError
from bracket_engine.scoring import policy_from_config
from models import db, ensure_schema_integrity, init_default_data, User
from blueprints.auth import auth_bp, load_current_user
from blueprints.predictions import predictions_bp
from blueprints.admin import admin_bp
from blueprints.public import public_bp

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _database_uri() -> str:
    """Supports both local SQLite and remote PostgreSQL."""
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Heroku PostgreSQL URL fix (postgres:// → postgresql://)
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url

    default_sqlite_dir = os.path.join(BASE_DIR, 'instance')
    os.makedirs(default_sqlite_dir, exist_ok=True)
    sqlite_path = os.environ.get('SQLITE_PATH', os.path.join(default_sqlite_dir, 'bracket.db'))
    return f'sqlite:///{sqlite_path}'


def _round_multipliers_from_env():
    raw = os.environ.get('ROUND_MULTIPLIERS')
    if not raw:
        return None
    return {int(round_number): value for round_number, value in json.loads(raw).items()}


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'bracket-dev'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SQLALCHEMY_ENGINE_OPTIONS={
            'pool_pre_ping': True,
            'pool_recycle': 300,
        },
        TIMEZONE=os.environ.get('TIMEZONE', 'America/Chicago'),
        SCORING_POLICY_VERSION=os.environ.get('SCORING_POLICY_VERSION'),
        ROUND_MULTIPLIERS=_round_multipliers_from_env(),
        BRACKET_PATH_RULE=os.environ.get('BRACKET_PATH_RULE'),
        SEED_DEFAULT_DATA=True,
    )

    if test_config:
        app.config.update(test_config)

    if 'SQLALCHEMY_DATABASE_URI' not in app.config:
        app.config['SQLALCHEMY_DATABASE_URI'] = _database_uri()

    app.extensions['scoring_policy'] = policy_from_config(app.config)

    db.init_app(app)

    with app.app_context():
        db.create_all()
        ensure_schema_integrity()

        if app.config.get('SEED_DEFAULT_DATA') and not User.query.filter_by(username='admin').first():
            init_default_data()

    app.register_blueprint(auth_bp)
    app.register_blueprint(predictions_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(public_bp)

    @app.before_request
    def before_request():
        """Load current user before every request to ANY route"""
        load_current_user()

    @app.errorhandler(BracketError)
    def handle_bracket_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"{type(error).__name__}: {error.message}")
        else:
            current_app.logger.warning(f"{type(error).__name__}: {error.message}")
        return jsonify({'error': error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
