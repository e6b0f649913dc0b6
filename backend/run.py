import os

from cardduel import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Socket.IO server so match timers and websockets work in dev
    socketio.run(
        app,
        host=os.environ.get('HOST', '127.0.0.1'),
        port=int(os.environ.get('PORT', '5000')),
        debug=os.environ.get('FLASK_DEBUG', '1') == '1',
    )
