from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Card Duel server', 'socket_namespace': '/ws'})


@main.route('/health')
def health():
    service = current_app.extensions['match_service']
    queue = current_app.extensions['matchmaking']
    return jsonify({
        'status': 'ok',
        'active_matches': service.active_match_count(),
        'queue_size': queue.size(),
    })
