from cardduel import db
import random
import string
import time

ROOM_CODE_ALPHABET = string.ascii_letters + string.digits


class UserProfile(db.Model):
    __tablename__ = 'user_profile'
    id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    username = db.Column(db.String(20), nullable=False)
    avatar = db.Column(db.String(16), nullable=False)
    matches_played = db.Column(db.Integer, default=0, nullable=False)
    matches_won = db.Column(db.Integer, default=0, nullable=False)
    matches_lost = db.Column(db.Integer, default=0, nullable=False)
    rounds_played = db.Column(db.Integer, default=0, nullable=False)
    rounds_won = db.Column(db.Integer, default=0, nullable=False)
    win_streak = db.Column(db.Integer, default=0, nullable=False)
    best_win_streak = db.Column(db.Integer, default=0, nullable=False)
    # Epoch seconds, like the rest of the server's deadlines
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    last_seen_at = db.Column(db.Float, nullable=False, default=time.time)

    @property
    def win_rate(self) -> int:
        if not self.matches_played:
            return 0
        return round(self.matches_won * 100 / self.matches_played)

    def record_round_result(self, won: bool) -> None:
        self.rounds_played = (self.rounds_played or 0) + 1
        if won:
            self.rounds_won = (self.rounds_won or 0) + 1

    def record_match_result(self, won: bool) -> None:
        self.matches_played = (self.matches_played or 0) + 1
        if won:
            self.matches_won = (self.matches_won or 0) + 1
            self.win_streak = (self.win_streak or 0) + 1
            if self.win_streak > (self.best_win_streak or 0):
                self.best_win_streak = self.win_streak
        else:
            self.matches_lost = (self.matches_lost or 0) + 1
            self.win_streak = 0

    def stats_dict(self):
        return {
            'matches_played': self.matches_played or 0,
            'matches_won': self.matches_won or 0,
            'matches_lost': self.matches_lost or 0,
            'rounds_played': self.rounds_played or 0,
            'rounds_won': self.rounds_won or 0,
            'win_streak': self.win_streak or 0,
            'best_win_streak': self.best_win_streak or 0,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'avatar': self.avatar,
            'stats': self.stats_dict(),
            'win_rate': self.win_rate,
        }


def generate_room_code(length=8):
    """Generate a unique room code for share links."""
    while True:
        code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
        if not PrivateRoom.query.filter_by(code=code).first():
            return code


class PrivateRoom(db.Model):
    __tablename__ = 'private_room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), unique=True, nullable=False, index=True)
    host_visitor_id = db.Column(db.String(64), nullable=False, index=True)
    host_sid = db.Column(db.String(64), nullable=True)
    guest_visitor_id = db.Column(db.String(64), nullable=True)
    guest_sid = db.Column(db.String(64), nullable=True)
    match_id = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, playing, finished, expired
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    expires_at = db.Column(db.Float, nullable=False)

    def __init__(self, **kwargs):
        super(PrivateRoom, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_room_code()

    def is_expired(self, now=None) -> bool:
        return (now if now is not None else time.time()) > self.expires_at

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'status': self.status,
            'host_visitor_id': self.host_visitor_id,
            'guest_visitor_id': self.guest_visitor_id,
            'match_id': self.match_id,
            'created_at': self.created_at,
            'expires_at': self.expires_at,
        }
