import logging

from chessmatch.realtime import SocketNotifier, game_room
from .draws import DrawNegotiation
from .lifecycle import MatchLifecycle
from .lobby import LobbyCoordinator
from .referee import MoveReferee
from .scheduler import TaskScheduler
from .sessions import ConnectionSessionManager

logger = logging.getLogger(__name__)


class GameRuntime:
    """Process-wide coordination state, built once per app by ``create_app``.

    Owns the in-memory tables (seats, draw offers, countdowns); handlers reach
    it through ``current_app.extensions['chessmatch']``.
    """

    def __init__(self, app, socketio, lifecycle: MatchLifecycle = None, scheduler=None, notifier=None) -> None:
        self.notifier = notifier or SocketNotifier(socketio)
        self.scheduler = scheduler or TaskScheduler(app, socketio)
        self.lifecycle = lifecycle or MatchLifecycle(
            waiting_ttl_sec=int(app.config.get('WAITING_GAME_TTL_SEC', 300)),
        )
        self.referee = MoveReferee()
        self.draws = DrawNegotiation(self.lifecycle)
        self.lobby = LobbyCoordinator(self.lifecycle, self.notifier)
        self.sessions = ConnectionSessionManager(
            self.lifecycle,
            self.scheduler,
            self.notifier,
            on_game_over=self.finish,
            reconnect_timeout_sec=float(app.config.get('RECONNECT_TIMEOUT_SEC', 60)),
        )
        self.clock_tolerance_sec = int(app.config.get('CLOCK_TOLERANCE_SEC', 1))

    def finish(self, outcome) -> None:
        """Fan out a terminal outcome and drop the game's in-memory state."""
        if outcome is None:
            return
        self.draws.clear(outcome.game_id)
        self.notifier.emit('game:ended', outcome.to_dict(), to=game_room(outcome.game_id))
        self.sessions.release_game(outcome.game_id)
