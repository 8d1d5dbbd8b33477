from datetime import datetime
import re

import pytz
from flask import current_app, has_app_context
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import inspect, text
from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash

from bracket_engine import topology
from bracket_engine.errors import ValidationError
from bracket_engine.resolution import PLACEHOLDER_TEAM
from bracket_engine.scoring import SETS_TO_WIN, VALID_TOTAL_SETS, total_sets, winner_from_sets

db = SQLAlchemy()

DEFAULT_TIMEZONE = 'America/Chicago'


def current_time():
    tz_name = DEFAULT_TIMEZONE
    if has_app_context():
        tz_name = current_app.config.get('TIMEZONE') or DEFAULT_TIMEZONE
    return datetime.now(pytz.timezone(tz_name))


class User(db.Model):
    """Players of the prediction game."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(100))
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    bracket_submitted = db.Column(db.Boolean, default=False, nullable=False)
    bracket_submitted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=current_time)

    predictions = db.relationship(
        'Prediction', backref='user', lazy=True, cascade='all, delete-orphan'
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<User {self.id} {self.username}>"

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def public_name(self) -> str:
        return self.display_name or self.email.split('@')[0]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'displayName': self.public_name,
            'isAdmin': bool(self.is_admin),
            'bracketSubmitted': bool(self.bracket_submitted),
            'bracketSubmittedAt': self.bracket_submitted_at.isoformat() if self.bracket_submitted_at else None,
        }

    @staticmethod
    def validate_format(username: str, email: str, password: str) -> list[str]:
        """Validate registration data format without using the database."""
        errors: list[str] = []

        if not username or len(username.strip()) < 3:
            errors.append("Username must be at least 3 characters")

        if username and not username.replace('_', '').replace('-', '').isalnum():
            errors.append("Username can only contain letters, numbers, hyphens and underscores")

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not email or not re.match(email_pattern, email):
            errors.append("Valid email required")

        if not password or len(password) < 8:
            errors.append("Password must be at least 8 characters")

        return errors


class Match(db.Model):
    """One contest of the bracket, addressed by ``(round, match_number)``."""

    __tablename__ = 'match'

    id = db.Column(db.Integer, primary_key=True)
    round = db.Column(db.Integer, nullable=False)
    match_number = db.Column(db.Integer, nullable=False)
    team1 = db.Column(db.String(100), nullable=False, default=PLACEHOLDER_TEAM)
    team2 = db.Column(db.String(100), nullable=False, default=PLACEHOLDER_TEAM)
    team1_seed = db.Column(db.Integer)
    team2_seed = db.Column(db.Integer)
    team1_sets = db.Column(db.Integer)
    team2_sets = db.Column(db.Integer)
    winner = db.Column(db.String(10))  # 'team1' or 'team2' once completed
    completed = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    __table_args__ = (db.UniqueConstraint('round', 'match_number', name='unique_round_match_number'),)

    predictions = db.relationship('Prediction', backref='match', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Match R{self.round}M{self.match_number} {self.team1} vs {self.team2}>"

    @validates('round')
    def validate_round(self, key, value):
        if value not in topology.MATCHES_PER_ROUND:
            raise ValueError(f'Round must be between 1 and {topology.CHAMPIONSHIP_ROUND}')
        return value

    @property
    def index(self) -> int:
        return self.match_number - 1

    @property
    def round_name(self) -> str:
        return topology.round_name(self.round)

    @property
    def total_sets(self) -> int:
        return total_sets(self.team1_sets, self.team2_sets)

    @property
    def winning_team(self):
        if not self.completed or self.winner not in topology.SLOTS:
            return None
        return self.team_in(self.winner)

    def team_in(self, slot: str) -> str:
        return self.team1 if slot == topology.SLOT_A else self.team2

    def record_result(self, winner: str, team1_sets: int, team2_sets: int) -> None:
        """Mark the match completed, enforcing the best-of-five invariant."""
        if winner not in topology.SLOTS:
            raise ValidationError('Winner must be "team1" or "team2"')
        if not isinstance(team1_sets, int) or not isinstance(team2_sets, int):
            raise ValidationError('team1Sets and team2Sets must be numbers')
        if team1_sets < 0 or team2_sets < 0:
            raise ValidationError('Set counts cannot be negative')
        winner_sets = team1_sets if winner == topology.SLOT_A else team2_sets
        if winner_sets < SETS_TO_WIN:
            raise ValidationError(f'Winner must have won at least {SETS_TO_WIN} sets')
        if winner_from_sets(team1_sets, team2_sets) != winner:
            raise ValidationError('Set counts do not match the declared winner')
        if total_sets(team1_sets, team2_sets) not in VALID_TOTAL_SETS:
            raise ValidationError('A best-of-five match lasts 3, 4 or 5 sets')

        self.winner = winner
        self.team1_sets = team1_sets
        self.team2_sets = team2_sets
        self.completed = True

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'round': self.round,
            'roundName': self.round_name,
            'matchNumber': self.match_number,
            'team1': self.team1,
            'team2': self.team2,
            'team1Seed': self.team1_seed,
            'team2Seed': self.team2_seed,
            'team1Sets': self.team1_sets,
            'team2Sets': self.team2_sets,
            'winner': self.winner,
            'completed': bool(self.completed),
        }


class Prediction(db.Model):
    """A user's pick of winner slot and total sets for one match."""

    __tablename__ = 'prediction'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    predicted_winner = db.Column(db.String(10), nullable=False)  # 'team1' or 'team2'
    predicted_team_name = db.Column(db.String(100))
    predicted_total_sets = db.Column(db.Integer, nullable=False)
    points_earned = db.Column(db.Numeric(5, 2))
    scoring_version = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    __table_args__ = (db.UniqueConstraint('user_id', 'match_id', name='unique_user_match_prediction'),)

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Prediction {self.id} user={self.user_id} match={self.match_id} {self.predicted_winner}>"

    @validates('predicted_winner')
    def validate_predicted_winner(self, key, value):
        if value not in topology.SLOTS:
            raise ValidationError('Invalid winner selection')
        return value

    @validates('predicted_total_sets')
    def validate_predicted_total_sets(self, key, value):
        if value not in VALID_TOTAL_SETS:
            raise ValidationError('Invalid total sets')
        return value

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'userId': self.user_id,
            'matchId': self.match_id,
            'predictedWinner': self.predicted_winner,
            'predictedTeamName': self.predicted_team_name,
            'predictedTotalSets': self.predicted_total_sets,
            'pointsEarned': float(self.points_earned) if self.points_earned is not None else None,
            'scoringVersion': self.scoring_version,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


def build_bracket_template() -> list[dict]:
    """Produce the 63 match positions of the bracket, round by round."""
    rounds: list[dict] = []
    for round_number in range(topology.FIRST_ROUND, topology.CHAMPIONSHIP_ROUND + 1):
        round_entry = {
            'round_number': round_number,
            'stage_name': topology.round_name(round_number),
            'matches': [],
        }
        for match_index in range(topology.match_count(round_number)):
            match_info = {'match_number': match_index + 1, 'advance_to': None}
            if round_number < topology.CHAMPIONSHIP_ROUND:
                next_index, slot = topology.feeds_into(round_number, match_index)
                match_info['advance_to'] = {'match_number': next_index + 1, 'slot': slot}
            round_entry['matches'].append(match_info)
        rounds.append(round_entry)
    return rounds


def seed_tournament(first_round: list[tuple]) -> list[Match]:
    """Create every bracket match; ``first_round`` holds 32 team pairings.

    Each entry is ``(team1, team2)`` or ``(team1, team2, seed1, seed2)``.
    Later rounds start as TBD placeholders.  Does not commit.
    """
    expected = topology.match_count(topology.FIRST_ROUND)
    if len(first_round) != expected:
        raise ValueError(f'A 64-team bracket needs exactly {expected} first-round matches')

    if Match.query.count():
        raise ValueError('Bracket has already been seeded')

    created: list[Match] = []
    for round_entry in build_bracket_template():
        for match_info in round_entry['matches']:
            match = Match(round=round_entry['round_number'], match_number=match_info['match_number'])
            if round_entry['round_number'] == topology.FIRST_ROUND:
                pairing = first_round[match_info['match_number'] - 1]
                match.team1, match.team2 = pairing[0], pairing[1]
                if len(pairing) > 2:
                    match.team1_seed, match.team2_seed = pairing[2], pairing[3]
            db.session.add(match)
            created.append(match)
    return created


def advance_winner(match: Match) -> Match | None:
    """Copy a completed match's winning team into the slot it feeds.

    Later matches that have already been played are left alone.
    """
    if not match.completed or match.round >= topology.CHAMPIONSHIP_ROUND:
        return None

    next_index, slot = topology.feeds_into(match.round, match.index)
    next_match = Match.query.filter_by(round=match.round + 1, match_number=next_index + 1).first()
    if not next_match or next_match.completed:
        return None

    winning_seed = match.team1_seed if match.winner == topology.SLOT_A else match.team2_seed
    if slot == topology.SLOT_A:
        next_match.team1 = match.winning_team
        next_match.team1_seed = winning_seed
    else:
        next_match.team2 = match.winning_team
        next_match.team2_seed = winning_seed
    return next_match


SAMPLE_TEAMS = (
    'Nebraska', 'Texas', 'Wisconsin', 'Stanford',
    'Penn State', 'Pittsburgh', 'Minnesota', 'Louisville',
    'Kentucky', 'Oregon', 'Purdue', 'Florida',
    'Creighton', 'Marquette', 'Kansas', 'Georgia Tech',
    'TCU', 'SMU', 'Ohio State', 'Michigan',
    'UCLA', 'USC', 'Washington', 'BYU',
    'Baylor', 'Tennessee', 'Missouri', 'Arkansas',
    'Arizona', 'Colorado', 'Utah', 'Oregon State',
    'Illinois', 'Northwestern', 'Indiana', 'Rutgers',
    'Iowa', 'Maryland', 'Michigan State', 'Penn',
    'Princeton', 'Yale', 'Harvard', 'Columbia',
    'Rice', 'Tulane', 'Houston', 'Memphis',
    'Charlotte', 'FAU', 'FIU', 'UTSA',
    'Denver', 'Northern Iowa', 'Loyola Chicago', 'Drake',
    'Dayton', 'VCU', 'Saint Louis', 'George Mason',
    'Montana', 'Weber State', 'Idaho State', 'Montana State',
)


def sample_first_round() -> list[tuple[str, str]]:
    return [(SAMPLE_TEAMS[i * 2], SAMPLE_TEAMS[i * 2 + 1]) for i in range(len(SAMPLE_TEAMS) // 2)]


def init_default_data():
    """Initialize default data for the application."""

    ensure_schema_integrity()

    admin = User.query.filter_by(username='admin').first()
    if not admin:
        admin = User(
            username='admin',
            email='admin@bracket.local',
            display_name='Administrator',
            is_admin=True,
        )
        admin.set_password('admin12345')
        db.session.add(admin)

    if not Match.query.count():
        seed_tournament(sample_first_round())

    db.session.commit()


def ensure_schema_integrity():
    """Apply lightweight schema updates required for new fields."""

    inspector = inspect(db.engine)

    try:
        prediction_columns = {col['name'] for col in inspector.get_columns('prediction')}
    except Exception:
        return

    if 'predicted_team_name' not in prediction_columns:
        with db.engine.begin() as connection:
            connection.execute(text('ALTER TABLE prediction ADD COLUMN predicted_team_name VARCHAR(100)'))
    if 'scoring_version' not in prediction_columns:
        with db.engine.begin() as connection:
            connection.execute(text('ALTER TABLE prediction ADD COLUMN scoring_version VARCHAR(20)'))

    try:
        user_columns = {col['name'] for col in inspector.get_columns('users')}
    except Exception:
        return

    if 'bracket_submitted_at' not in user_columns:
        with db.engine.begin() as connection:
            connection.execute(text('ALTER TABLE users ADD COLUMN bracket_submitted_at DATETIME'))
