from betpool import create_app, socketio
from betpool.services.settlement.scheduler import start_lifecycle_poller

app = create_app()

if __name__ == '__main__':
    start_lifecycle_poller(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
