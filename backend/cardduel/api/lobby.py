from flask import Blueprint, jsonify, request, current_app
from cardduel.services import profiles, rooms


lobby = Blueprint('lobby', __name__)


@lobby.route('/avatars', methods=['GET'])
def list_avatars():
    return jsonify({'avatars': profiles.AVATARS})


@lobby.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    try:
        limit = int(request.args.get('limit', 10))
    except (TypeError, ValueError):
        return jsonify({'error': 'limit must be an integer'}), 400
    limit = max(1, min(limit, 100))
    min_matches = int(current_app.config.get('LEADERBOARD_MIN_MATCHES', 5))
    entries = profiles.leaderboard(limit=limit, min_matches=min_matches)
    return jsonify({
        'leaderboard': [dict(rank=i + 1, **p.to_dict()) for i, p in enumerate(entries)],
        'min_matches': min_matches,
    })


@lobby.route('/profile/<string:visitor_id>', methods=['GET'])
def get_profile(visitor_id):
    profile = profiles.get_profile(visitor_id)
    if profile is None:
        return jsonify({'error': 'Profile not found'}), 404
    return jsonify(profile.to_dict())


@lobby.route('/room/<string:code>', methods=['GET'])
def get_room(code):
    room = rooms.get_room(code)
    if room is None:
        return jsonify({'error': 'Room not found'}), 404
    host = profiles.get_profile(room.host_visitor_id)
    base_url = current_app.config.get('FRONTEND_BASE_URL', '').rstrip('/')
    return jsonify({
        'code': room.code,
        'status': room.status,
        'is_expired': room.is_expired(),
        'host': {'username': host.username, 'avatar': host.avatar} if host else None,
        'expires_at': room.expires_at,
        'share_url': f"{base_url}/room/{room.code}",
    })
