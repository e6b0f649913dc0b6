"""Visitor profiles and the stats kept on them."""
import random
import time
from typing import List, Optional

from cardduel import db
from cardduel.models import UserProfile

AVATARS = [
    '🎴', '🃏', '👑', '⚔️', '🛡️', '🏆', '🎯', '🔥',
    '💎', '🌟', '🦁', '🦊', '🐺', '🦅', '🐉', '🎭',
]
USERNAME_MIN = 2
USERNAME_MAX = 20


def find_or_create_profile(visitor_id: str, username: Optional[str] = None) -> UserProfile:
    profile = UserProfile.query.filter_by(visitor_id=visitor_id).first()
    if profile is None:
        name = _clean_username(username) or f"Player{random.randint(0, 9999)}"
        profile = UserProfile(visitor_id=visitor_id, username=name, avatar=random.choice(AVATARS))
        db.session.add(profile)
        db.session.commit()
        return profile
    profile.last_seen_at = time.time()
    db.session.add(profile)
    db.session.commit()
    return profile


def get_profile(visitor_id: str) -> Optional[UserProfile]:
    return UserProfile.query.filter_by(visitor_id=visitor_id).first()


def update_profile(visitor_id: str, username: Optional[str] = None, avatar: Optional[str] = None) -> Optional[UserProfile]:
    """Apply the valid parts of an update; invalid fields are ignored."""
    profile = get_profile(visitor_id)
    if profile is None:
        return None
    name = _clean_username(username)
    if name:
        profile.username = name
    if avatar and avatar in AVATARS:
        profile.avatar = avatar
    db.session.add(profile)
    db.session.commit()
    return profile


def leaderboard(limit: int = 10, min_matches: int = 5) -> List[UserProfile]:
    return (UserProfile.query
            .filter(UserProfile.matches_played >= min_matches)
            .order_by(UserProfile.matches_won.desc(), UserProfile.id.asc())
            .limit(limit)
            .all())


def record_round(winner_id: str, player_ids) -> None:
    for visitor_id in player_ids:
        profile = get_profile(visitor_id)
        if profile is None:
            continue
        profile.record_round_result(visitor_id == winner_id)
        db.session.add(profile)
    db.session.commit()


def record_match(winner_id: str, player_ids) -> None:
    for visitor_id in player_ids:
        profile = get_profile(visitor_id)
        if profile is None:
            continue
        profile.record_match_result(visitor_id == winner_id)
        db.session.add(profile)
    db.session.commit()


def _clean_username(username: Optional[str]) -> Optional[str]:
    if not username:
        return None
    name = username.strip()
    if USERNAME_MIN <= len(name) <= USERNAME_MAX:
        return name
    return None
