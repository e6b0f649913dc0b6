"""Private rooms: a share code that pairs a host with one invited guest."""
import time
from typing import List, Optional

from flask import current_app

from cardduel import db
from cardduel.models import PrivateRoom

WAITING = 'waiting'
PLAYING = 'playing'
FINISHED = 'finished'
EXPIRED = 'expired'


class RoomError(Exception):
    def __init__(self, message: str, code: str = 'room_unavailable'):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


def create_room(host_visitor_id: str, host_sid: str, expiry_sec: Optional[float] = None) -> PrivateRoom:
    if expiry_sec is None:
        expiry_sec = float(current_app.config.get('PRIVATE_ROOM_EXPIRY_SEC', 1800))
    # A host keeps at most one waiting room
    PrivateRoom.query.filter_by(host_visitor_id=host_visitor_id, status=WAITING).update({'status': EXPIRED})
    now = time.time()
    room = PrivateRoom(host_visitor_id=host_visitor_id, host_sid=host_sid, status=WAITING,
                       created_at=now, expires_at=now + expiry_sec)
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] created code={room.code} host={host_visitor_id}")
    return room


def get_room(code: str) -> Optional[PrivateRoom]:
    if not code:
        return None
    return PrivateRoom.query.filter_by(code=code.strip()).first()


def join_room(code: str, guest_visitor_id: str, guest_sid: str) -> PrivateRoom:
    room = get_room(code)
    if room is None:
        raise RoomError('Room not found', 'room_not_found')
    if room.host_visitor_id == guest_visitor_id:
        raise RoomError('You cannot join your own room', 'own_room')
    if room.status != WAITING:
        raise RoomError('This room is no longer available')
    if room.is_expired():
        room.status = EXPIRED
        db.session.add(room)
        db.session.commit()
        raise RoomError('This room link has expired', 'room_expired')
    if not room.host_sid:
        raise RoomError('The host is no longer connected', 'host_gone')
    room.guest_visitor_id = guest_visitor_id
    room.guest_sid = guest_sid
    room.status = PLAYING
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] joined code={room.code} guest={guest_visitor_id}")
    return room


def cancel_room(code: str, host_visitor_id: str) -> bool:
    room = get_room(code)
    if room is None or room.host_visitor_id != host_visitor_id or room.status != WAITING:
        return False
    room.status = EXPIRED
    room.host_sid = None
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] cancelled code={room.code}")
    return True


def attach_match(code: str, match_id: str) -> None:
    room = get_room(code)
    if room is None:
        return
    room.match_id = match_id
    db.session.add(room)
    db.session.commit()


def finish_room(code: str) -> None:
    room = get_room(code)
    if room is None or room.status != PLAYING:
        return
    room.status = FINISHED
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] finished code={room.code} match={room.match_id}")


def expire_stale_rooms(now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    count = (PrivateRoom.query
             .filter(PrivateRoom.status == WAITING, PrivateRoom.expires_at < now)
             .update({'status': EXPIRED}, synchronize_session=False))
    db.session.commit()
    return count


def release_host_socket(sid: str) -> List[str]:
    """Expire the waiting rooms hosted from a socket that went away."""
    rooms = PrivateRoom.query.filter_by(host_sid=sid, status=WAITING).all()
    for room in rooms:
        room.status = EXPIRED
        room.host_sid = None
        db.session.add(room)
    if rooms:
        db.session.commit()
    return [room.code for room in rooms]


def active_rooms_for(visitor_id: str) -> List[PrivateRoom]:
    return (PrivateRoom.query
            .filter(db.or_(PrivateRoom.host_visitor_id == visitor_id,
                           PrivateRoom.guest_visitor_id == visitor_id))
            .filter(PrivateRoom.status.in_([WAITING, PLAYING]))
            .order_by(PrivateRoom.created_at.desc())
            .all())


def expire_waiting_rooms(visitor_id: str) -> List[str]:
    """Expire every room a host is still waiting in, e.g. once they join the random queue."""
    rooms = PrivateRoom.query.filter_by(host_visitor_id=visitor_id, status=WAITING).all()
    for room in rooms:
        room.status = EXPIRED
        db.session.add(room)
    if rooms:
        db.session.commit()
        current_app.logger.info(f"[room] expired host={visitor_id} codes={[r.code for r in rooms]}")
    return [room.code for room in rooms]


def abort_room(code: str) -> None:
    """Close a joined room whose match could not be started."""
    room = get_room(code)
    if room is None or room.status != PLAYING or room.match_id:
        return
    room.status = EXPIRED
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] aborted code={room.code}")
