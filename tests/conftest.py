import pytest

from app import create_app
from bracket_engine import topology
from models import db, User, Match, Prediction, sample_first_round, seed_tournament


@pytest.fixture
def flask_app():
    """Create test application with in-memory SQLite database and a seeded bracket"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'SECRET_KEY': 'test-secret-key',
        'SEED_DEFAULT_DATA': False,
    })

    with app.app_context():
        seed_tournament(sample_first_round())
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(flask_app):
    """Test client"""
    return flask_app.test_client()


def _make_user(username, is_admin=False):
    user = User(
        username=username,
        email=f'{username}@test.com',
        display_name=username.title(),
        is_admin=is_admin,
    )
    user.set_password('Test@12345')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def user(flask_app):
    return _make_user('alice')


@pytest.fixture
def other_user(flask_app):
    return _make_user('bob')


@pytest.fixture
def admin_user(flask_app):
    return _make_user('referee', is_admin=True)


@pytest.fixture
def match_at(flask_app):
    """Look up a seeded match by round and 1-based match number"""
    def _lookup(round_number, match_number):
        return Match.query.filter_by(round=round_number, match_number=match_number).one()
    return _lookup


@pytest.fixture
def pick(flask_app, match_at):
    """Store a prediction directly, bypassing the service guards"""
    def _pick(user, round_number, match_number, winner='team1', sets=3, team_name=None):
        prediction = Prediction(
            user_id=user.id,
            match_id=match_at(round_number, match_number).id,
            predicted_winner=winner,
            predicted_total_sets=sets,
            predicted_team_name=team_name,
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction
    return _pick


@pytest.fixture
def path_from_first_match():
    """Positions (round, match_number) on the path from round 1 match 1 to the final"""
    path = [(1, 1)]
    round_number, match_index = 1, 0
    while round_number < topology.CHAMPIONSHIP_ROUND:
        match_index, _slot = topology.feeds_into(round_number, match_index)
        round_number += 1
        path.append((round_number, match_index + 1))
    return path


@pytest.fixture
def login(client):
    """Log a user in by writing the session directly"""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
            sess['username'] = user.username
        return client
    return _login


# ----------------------------------------------------------------------
# Transient bracket for the pure engine tests (no database involved)
# ----------------------------------------------------------------------
@pytest.fixture
def transient_bracket():
    """All 63 matches as unsaved Match objects keyed by (round, match_number)"""
    first_round = sample_first_round()
    matches = {}
    next_id = 1
    for round_number in range(1, topology.CHAMPIONSHIP_ROUND + 1):
        for match_number in range(1, topology.match_count(round_number) + 1):
            team1, team2 = ('TBD', 'TBD')
            if round_number == 1:
                team1, team2 = first_round[match_number - 1]
            matches[(round_number, match_number)] = Match(
                id=next_id,
                round=round_number,
                match_number=match_number,
                team1=team1,
                team2=team2,
                completed=False,
            )
            next_id += 1
    return matches


@pytest.fixture
def transient_pick(transient_bracket):
    def _pick(round_number, match_number, winner='team1', sets=3, team_name=None, user_id=1):
        match = transient_bracket[(round_number, match_number)]
        return Prediction(
            user_id=user_id,
            match_id=match.id,
            predicted_winner=winner,
            predicted_total_sets=sets,
            predicted_team_name=team_name,
        )
    return _pick
