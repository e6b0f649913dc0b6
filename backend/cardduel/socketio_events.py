from flask_socketio import emit
from flask import current_app, request
from cardduel import socketio
from cardduel.services import profiles, rooms
from cardduel.services.games.engine import MatchMode
from cardduel.services.games.errors import GameError
from cardduel.services.games.orchestrator import Pairing, Seat
from cardduel.services.matchmaking import QueuedPlayer
from typing import Any, Dict, Optional


def _service():
    return current_app.extensions['match_service']


def _queue():
    return current_app.extensions['matchmaking']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _error(code: str, message: str) -> None:
    emit('error', {'code': code, 'message': message})


def _current_visitor() -> Optional[str]:
    """Visitor bound to this socket by ``authenticate``; never taken from the payload."""
    visitor_id = _service().player_for_handle(_get_sid())
    if not visitor_id:
        _error('not_authenticated', 'Authenticate first')
    return visitor_id


def _seat(visitor_id: str, handle: str) -> Seat:
    profile = profiles.get_profile(visitor_id)
    if profile is None:
        return Seat(visitor_id, handle)
    return Seat(visitor_id, handle, profile.username, profile.avatar)


def _share_url(code: str) -> str:
    base_url = current_app.config.get('FRONTEND_BASE_URL', '').rstrip('/')
    return f"{base_url}/room/{code}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws', 'sid': _get_sid()})


def handle_disconnect(reason=None):
    sid = _get_sid()
    _queue().remove_by_handle(sid)
    released = rooms.release_host_socket(sid)
    if released:
        current_app.logger.info(f"[room] host left sid={sid} expired={released}")
    match_id = _service().handle_disconnect(sid)
    if match_id:
        current_app.logger.info(f"[abandon] match={match_id} sid={sid}")
    _service().unregister_handle(sid)


def handle_authenticate(data):
    visitor_id = (data or {}).get('visitor_id')
    if not visitor_id or not isinstance(visitor_id, str):
        _error('bad_request', 'visitor_id is required')
        return
    profile = profiles.find_or_create_profile(visitor_id, (data or {}).get('username'))
    service = _service()
    service.register_handle(_get_sid(), visitor_id)
    match_id = service.match_id_for_player(visitor_id) if service.in_live_match(visitor_id) else None
    emit('profile_loaded', {
        'visitor_id': visitor_id,
        'profile': profile.to_dict(),
        'active_match_id': match_id,
    })
    if match_id:
        emit('game_update', service.snapshot(match_id, visitor_id))


def handle_update_profile(data):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    profile = profiles.update_profile(visitor_id, (data or {}).get('username'), (data or {}).get('avatar'))
    if profile is None:
        _error('profile_not_found', 'Profile not found')
        return
    emit('profile_updated', {'profile': profile.to_dict()})


def handle_find_match(data=None):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    service = _service()
    if service.in_live_match(visitor_id):
        _error('already_in_match', 'You are already in a match')
        return
    # Searching gives up any room this visitor is hosting
    expired = rooms.expire_waiting_rooms(visitor_id)
    for code in expired:
        emit('room_cancelled', {'code': code, 'success': True})
    profile = profiles.get_profile(visitor_id)
    entry = QueuedPlayer(visitor_id, _get_sid(),
                         profile.username if profile else 'Player',
                         profile.avatar if profile else '🎴')
    pair = _queue().add(entry)
    emit('queue_joined', {'queue_size': _queue().size(), 'paired': bool(pair)})
    current_app.logger.info(f"[queue] joined visitor={visitor_id} paired={bool(pair)}")
    if pair:
        first, second = pair
        try:
            service.create_match(Pairing(
                Seat(first.visitor_id, first.handle, first.username, first.avatar),
                Seat(second.visitor_id, second.handle, second.username, second.avatar),
            ))
        except GameError as exc:
            emit('error', exc.to_dict())


def handle_cancel_search(data=None):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    removed = _queue().remove(visitor_id)
    emit('search_cancelled', {'success': removed})


def handle_create_private_room(data=None):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    if _service().in_live_match(visitor_id):
        _error('already_in_match', 'You are already in a match')
        return
    _queue().remove(visitor_id)
    room = rooms.create_room(visitor_id, _get_sid())
    emit('room_created', {
        'code': room.code,
        'share_url': _share_url(room.code),
        'expires_at': room.expires_at,
    })
    emit('waiting_for_opponent', {'code': room.code})


def handle_join_private_room(data):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    code = (data or {}).get('code')
    if not code:
        _error('bad_request', 'code is required')
        return
    service = _service()
    if service.in_live_match(visitor_id):
        _error('already_in_match', 'You are already in a match')
        return
    try:
        room = rooms.join_room(code, visitor_id, _get_sid())
    except rooms.RoomError as exc:
        emit('error', exc.to_dict())
        return
    _queue().remove(visitor_id)
    _queue().remove(room.host_visitor_id)
    emit('room_joined', {'code': room.code})
    socketio.emit('room_joined', {'code': room.code}, to=room.host_sid, namespace='/ws')
    try:
        match = service.create_match(Pairing(
            _seat(room.host_visitor_id, room.host_sid),
            _seat(visitor_id, _get_sid()),
            mode=MatchMode.PRIVATE,
            room_code=room.code,
        ))
    except GameError as exc:
        rooms.abort_room(room.code)
        emit('error', exc.to_dict())
        socketio.emit('room_cancelled', {'code': room.code, 'success': True}, to=room.host_sid, namespace='/ws')
        return
    rooms.attach_match(room.code, match.id)


def handle_cancel_private_room(data):
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    code = (data or {}).get('code')
    emit('room_cancelled', {'code': code, 'success': rooms.cancel_room(code, visitor_id)})


def _match_action(data: Dict[str, Any], action) -> None:
    """Run a player action against the caller's match and report rule violations to the caller."""
    visitor_id = _current_visitor()
    if not visitor_id:
        return
    match_id = (data or {}).get('match_id')
    if not match_id:
        _error('bad_request', 'match_id is required')
        return
    try:
        action(_service(), match_id, visitor_id)
    except GameError as exc:
        current_app.logger.info(f"[rejected] match={match_id} visitor={visitor_id} code={exc.code}")
        emit('error', exc.to_dict())


def handle_play_card(data):
    card_id = (data or {}).get('card_id')
    suit = (data or {}).get('suit')
    if not card_id:
        _error('bad_request', 'card_id is required')
        return
    _match_action(data, lambda svc, mid, vid: svc.play_card(mid, vid, card_id, suit))


def handle_counter_decision(data):
    will_counter = bool((data or {}).get('will_counter'))
    card_id = (data or {}).get('card_id')
    _match_action(data, lambda svc, mid, vid: svc.counter_decision(mid, vid, will_counter, card_id))


def handle_draw_card(data):
    _match_action(data, lambda svc, mid, vid: svc.draw_card(mid, vid))


def handle_request_state(data):
    _match_action(data, lambda svc, mid, vid: emit('game_update', svc.snapshot(mid, vid)))


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('authenticate', handle_authenticate, namespace='/ws')
    socketio.on_event('update_profile', handle_update_profile, namespace='/ws')
    socketio.on_event('find_match', handle_find_match, namespace='/ws')
    socketio.on_event('cancel_search', handle_cancel_search, namespace='/ws')
    socketio.on_event('create_private_room', handle_create_private_room, namespace='/ws')
    socketio.on_event('join_private_room', handle_join_private_room, namespace='/ws')
    socketio.on_event('cancel_private_room', handle_cancel_private_room, namespace='/ws')
    socketio.on_event('play_card', handle_play_card, namespace='/ws')
    socketio.on_event('counter_decision', handle_counter_decision, namespace='/ws')
    socketio.on_event('draw_card', handle_draw_card, namespace='/ws')
    socketio.on_event('request_state', handle_request_state, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')
