import os
import random
import sys
import pytest

# Ensure the backend root (containing the `cardduel` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cardduel import create_app, db, socketio
from cardduel.services.games.cards import build_deck
from cardduel.services.games.engine import Match, MatchStatus, MatchTimings
from cardduel.services.games.hand import Player


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    FRONTEND_BASE_URL = 'http://localhost:5173'
    CORS_ORIGINS = ['http://localhost:5173']
    LEADERBOARD_MIN_MATCHES = 2


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualSpawner:
    """Collects timer tasks instead of sleeping; tests decide when they run."""

    def __init__(self):
        self.tasks = []

    def __call__(self, delay, fn, *args):
        self.tasks.append((delay, fn, args))

    def run_pending(self):
        tasks, self.tasks = self.tasks, []
        for _, fn, args in tasks:
            fn(*args)
        return len(tasks)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import cardduel.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except RuntimeError:
            pass


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def spawner():
    return ManualSpawner()


@pytest.fixture()
def make_match(clock):
    def make(seed=7, timings=None):
        players = (Player('alice', 'sid-a', 'Alice'), Player('bob', 'sid-b', 'Bob'))
        return Match(players, timings=timings or MatchTimings(), clock=clock,
                     rng=random.Random(seed), match_id='m1')
    return make


def rig(match, first, second, top, active_suit=None, current=0):
    """Deal exact hands to a match as (suit, rank) pairs.

    The top card starts the discard pile and every other card stays in the
    deck, so the match still holds the full 40 cards.
    """
    deck = build_deck()

    def take(wanted):
        suit, rank = wanted
        for card in deck:
            if card.suit == suit and card.rank == rank:
                deck.remove(card)
                return card
        raise ValueError(f"{wanted} already dealt")

    match.players[0].hand = [take(w) for w in first]
    match.players[1].hand = [take(w) for w in second]
    match.discard_pile = [take(top)]
    match.deck = deck
    match.active_suit = active_suit or match.discard_pile[-1].suit
    match.status = MatchStatus.PLAYING
    match.pending_effect = None
    match.current_player_index = current
    match.turn_deadline = match._now() + match.timings.turn_timeout
    match.events.drain()
    return match


@pytest.fixture()
def rigged():
    return rig
