"""Connection-to-seat bookkeeping and the reconnection grace period.

Each live connection (Socket.IO sid) attached to a game has a
ConnectionSession. Each game has at most one authoritative connection per
seat; a connection that has been superseded by a newer one for the same seat
can neither vacate the seat nor start a forfeit countdown.

When the authoritative connection drops, the seat is vacated, the opponent
is told, and a countdown keyed by (game_id, color) is armed. Attaching to the
seat again cancels it in the same call. If the countdown runs out the seat is
re-checked and, if still empty, the game is forfeited.
"""

from dataclasses import dataclass
import logging
from typing import Callable, Optional

from chessmatch.errors import AuthorizationError, InvalidStateError
from chessmatch.models import COLORS, GameStatus, opposite

logger = logging.getLogger(__name__)

RECONNECT_TIMEOUT_SEC = 60


@dataclass(frozen=True)
class ConnectionSession:
    game_id: str
    user_id: str
    color: str


@dataclass(frozen=True)
class Attachment:
    game: object
    color: str
    reconnected: bool


class ConnectionSessionManager:

    def __init__(self, lifecycle, scheduler, notifier, on_game_over: Callable = None,
                 reconnect_timeout_sec: float = RECONNECT_TIMEOUT_SEC) -> None:
        self.lifecycle = lifecycle
        self.scheduler = scheduler
        self.notifier = notifier
        self.on_game_over = on_game_over
        self.reconnect_timeout_sec = reconnect_timeout_sec
        self._sessions: dict[str, ConnectionSession] = {}
        self._seats: dict[str, dict[str, str]] = {}

    @property
    def reconnect_timeout_ms(self) -> int:
        return int(self.reconnect_timeout_sec * 1000)

    # -- lookups --

    def holder(self, game_id, color) -> Optional[str]:
        return self._seats.get(game_id, {}).get(color)

    def require_seat(self, sid) -> ConnectionSession:
        """Session of a connection allowed to act for its seat."""
        session = self._sessions.get(sid)
        if session is None:
            raise InvalidStateError('Not in a game')
        if self.holder(session.game_id, session.color) != sid:
            raise AuthorizationError('This connection no longer holds the seat')
        return session

    # -- transitions --

    def attach(self, sid, game_id, user_id) -> Attachment:
        game = self.lifecycle.get(game_id)
        if game.status != GameStatus.IN_PROGRESS:
            raise InvalidStateError('Game is not in progress')
        color = game.color_of(user_id)
        if color is None:
            raise AuthorizationError('You are not a player in this game')

        previous = self._sessions.get(sid)
        if previous is not None and (previous.game_id, previous.color) != (game_id, color):
            self.detach(sid)

        self._sessions[sid] = ConnectionSession(game_id, user_id, color)
        self._seats.setdefault(game_id, {})[color] = sid
        reconnected = self.scheduler.cancel((game_id, color))

        opponent_sid = self.holder(game_id, opposite(color))
        if opponent_sid is not None:
            if reconnected:
                self.notifier.emit('game:playerReconnected', {'color': color}, to=opponent_sid)
            self.notifier.emit('game:playerConnected', {'color': color}, to=opponent_sid)
        logger.info(f"[seat-attached] game={game_id} color={color} user={user_id} reconnected={reconnected}")
        return Attachment(game, color, reconnected)

    def detach(self, sid) -> Optional[ConnectionSession]:
        """Explicit leave: frees the seat only if ``sid`` still holds it."""
        session = self._sessions.pop(sid, None)
        if session is None:
            return None
        self._vacate(session, sid)
        return session

    def on_disconnect(self, sid) -> bool:
        """Start the grace countdown if ``sid`` held its seat. Returns True if armed."""
        session = self._sessions.pop(sid, None)
        if session is None or not self._vacate(session, sid):
            return False

        game_id, color = session.game_id, session.color
        opponent_sid = self.holder(game_id, opposite(color))
        if opponent_sid is not None:
            self.notifier.emit(
                'game:playerDisconnected',
                {'color': color, 'reconnectTimeoutMs': self.reconnect_timeout_ms},
                to=opponent_sid,
            )
        logger.info(f"[seat-vacated] game={game_id} color={color} grace={self.reconnect_timeout_sec}s")
        self.scheduler.arm(
            (game_id, color),
            self.reconnect_timeout_sec,
            lambda: self.expire_seat(game_id, color, session.user_id),
        )
        return True

    def expire_seat(self, game_id, color, user_id) -> None:
        """Grace period over: forfeit if the seat is still empty."""
        if self.holder(game_id, color) is not None:
            logger.info(f"[seat-expiry-skip] game={game_id} color={color} reoccupied")
            return
        try:
            outcome = self.lifecycle.forfeit(game_id, user_id)
            if outcome is not None and self.on_game_over is not None:
                self.on_game_over(outcome)
        except Exception:
            logger.exception(f"[forfeit-error] game={game_id} color={color}")
        finally:
            self.release_game(game_id)

    def release_game(self, game_id) -> None:
        """Drop seat tracking and pending countdowns for a finished game."""
        self._seats.pop(game_id, None)
        for color in COLORS:
            self.scheduler.cancel((game_id, color))

    def _vacate(self, session, sid) -> bool:
        seats = self._seats.get(session.game_id)
        if not seats or seats.get(session.color) != sid:
            return False
        del seats[session.color]
        if not seats:
            self._seats.pop(session.game_id, None)
        return True
