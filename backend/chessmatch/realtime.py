"""Socket.IO namespace, room names and the emitter used outside handlers."""

NAMESPACE = '/ws'
LOBBY_ROOM = 'lobby'


def game_room(game_id) -> str:
    return f"game:{game_id}"


class SocketNotifier:
    """Emits on the game namespace; usable from handlers and background tasks."""

    def __init__(self, socketio, namespace: str = NAMESPACE) -> None:
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event: str, payload: dict, to=None) -> None:
        self.socketio.emit(event, payload, to=to, namespace=self.namespace)
