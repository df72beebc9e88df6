"""Authoritative state machine for a single game.

WAITING -> IN_PROGRESS -> COMPLETED
WAITING -> CANCELLED

Every transition out of WAITING or IN_PROGRESS is a conditional update on the
current status, so when two callers race (two disconnect timers, a resign
against a timeout, a join against the expiry sweep) exactly one of them
changes the record. Terminal operations report the loser of such a race as a
no-op (``None``) rather than an error.

This module never looks at connection or draw-offer bookkeeping.
"""

from dataclasses import dataclass
from datetime import timedelta
import logging
import random
from typing import Callable, Optional

from sqlalchemy import and_, or_

from chessmatch.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chessmatch.models import (
    COLORS,
    WHITE,
    EndReason,
    Game,
    GameResult,
    GameStatus,
    User,
    opposite,
    utcnow,
)
from chessmatch.store import RecordStore
from . import timers
from .referee import STARTING_POSITION

logger = logging.getLogger(__name__)

TIME_CONTROLS = (None, 60, 180, 300)
WAITING_GAME_TTL_SEC = 300


@dataclass(frozen=True)
class Outcome:
    """What a terminal transition decided, for fan-out to the clients."""
    game_id: str
    result: str
    reason: str
    winner_id: Optional[str] = None

    def to_dict(self):
        return {'gameId': self.game_id, 'result': self.result, 'reason': self.reason}


def draw_colors(creator_id, joiner_id, rng) -> tuple:
    """(white_id, black_id) by a fair coin flip."""
    if rng.random() < 0.5:
        return creator_id, joiner_id
    return joiner_id, creator_id


def validate_time_control(value):
    # bool is an int subclass; True must not pass as 1
    if isinstance(value, bool) or value not in TIME_CONTROLS:
        raise ValidationError(f'Invalid time control: {value!r}')
    return value


class MatchLifecycle:

    def __init__(self, games: RecordStore = None, users: RecordStore = None,
                 clock: Callable = utcnow, rng=None,
                 waiting_ttl_sec: int = WAITING_GAME_TTL_SEC) -> None:
        self.games = games or RecordStore(Game)
        self.users = users or RecordStore(User)
        self.clock = clock
        # SystemRandom draws are independent across games and processes
        self.rng = rng or random.SystemRandom()
        self.waiting_ttl = timedelta(seconds=waiting_ttl_sec)

    # -- queries --

    def get(self, game_id) -> Game:
        game = self.games.find_by_id(game_id)
        if game is None:
            raise NotFoundError('Game not found')
        return game

    def available_games(self) -> list[Game]:
        return self.games.find_many(Game.status == GameStatus.WAITING, order_by=Game.created_at.desc())

    def active_game_for(self, user_id) -> Optional[Game]:
        return self.games.find_first(or_(
            and_(Game.creator_id == user_id, Game.status.in_(GameStatus.ACTIVE)),
            and_(Game.white_player_id == user_id, Game.status == GameStatus.IN_PROGRESS),
            and_(Game.black_player_id == user_id, Game.status == GameStatus.IN_PROGRESS),
        ))

    def require_in_progress(self, game_id) -> Game:
        game = self.get(game_id)
        if game.status != GameStatus.IN_PROGRESS:
            raise InvalidStateError('Game is not in progress')
        return game

    def read_clock(self, game: Game) -> timers.ClockReading:
        turn = timers.side_to_move(game.turn_color, game.move_log)
        return timers.read_clock(
            game.time_control, game.last_move_at,
            game.white_time_remaining, game.black_time_remaining,
            turn, self.clock(),
        )

    # -- WAITING --

    def create(self, creator_id, time_control=None) -> Game:
        validate_time_control(time_control)
        if self.users.find_by_id(creator_id) is None:
            raise NotFoundError('User not found')
        if self.active_game_for(creator_id) is not None:
            raise ConflictError('You already have an active game')
        game = self.games.create(
            creator_id=creator_id,
            time_control=time_control,
            status=GameStatus.WAITING,
            created_at=self.clock(),
        )
        logger.info(f"[game-created] game={game.id} creator={creator_id} time_control={time_control}")
        return game

    def join(self, game_id, joiner_id) -> Game:
        game = self.get(game_id)
        if game.status != GameStatus.WAITING:
            raise InvalidStateError('Game is not available')
        if game.creator_id == joiner_id:
            raise ConflictError('Cannot join your own game')
        if self.users.find_by_id(joiner_id) is None:
            raise NotFoundError('User not found')
        if self.active_game_for(joiner_id) is not None:
            raise ConflictError('You already have an active game')

        white_id, black_id = draw_colors(game.creator_id, joiner_id, self.rng)
        now = self.clock()
        changed = self.games.update_many(
            Game.id == game_id,
            Game.status == GameStatus.WAITING,
            status=GameStatus.IN_PROGRESS,
            white_player_id=white_id,
            black_player_id=black_id,
            started_at=now,
            white_time_remaining=game.time_control,
            black_time_remaining=game.time_control,
            last_move_at=now,
            turn_color=WHITE,
            position=STARTING_POSITION,
            move_log='',
        )
        if not changed:
            # Lost to another joiner, a cancel or the expiry sweep
            raise InvalidStateError('Game is not available')
        logger.info(f"[game-started] game={game_id} white={white_id} black={black_id}")
        return self.get(game_id)

    def cancel(self, game_id, requester_id) -> Game:
        game = self.get(game_id)
        if game.creator_id != requester_id:
            raise AuthorizationError('Only the creator can cancel the game')
        if game.status != GameStatus.WAITING:
            raise InvalidStateError('Can only cancel waiting games')
        changed = self.games.update_many(
            Game.id == game_id,
            Game.status == GameStatus.WAITING,
            status=GameStatus.CANCELLED,
            ended_at=self.clock(),
        )
        if not changed:
            raise InvalidStateError('Can only cancel waiting games')
        logger.info(f"[game-cancelled] game={game_id} by={requester_id}")
        return self.get(game_id)

    def cancel_user_waiting(self, user_id) -> Optional[Game]:
        game = self.games.find_first(Game.creator_id == user_id, Game.status == GameStatus.WAITING)
        if game is None:
            return None
        changed = self.games.update_many(
            Game.id == game.id,
            Game.status == GameStatus.WAITING,
            status=GameStatus.CANCELLED,
            ended_at=self.clock(),
        )
        return self.get(game.id) if changed else None

    def expire_stale_waiting(self, now=None) -> list[Game]:
        """Cancel WAITING games older than the staleness threshold.

        Only games this call actually moved to CANCELLED are returned, so a
        game joined between the scan and the update is never reported.
        """
        now = now or self.clock()
        cutoff = now - self.waiting_ttl
        expired = []
        for game in self.games.find_many(Game.status == GameStatus.WAITING, Game.created_at < cutoff):
            changed = self.games.update_many(
                Game.id == game.id,
                Game.status == GameStatus.WAITING,
                status=GameStatus.CANCELLED,
                ended_at=now,
            )
            if changed:
                expired.append(self.get(game.id))
        if expired:
            logger.info(f"[waiting-expired] games={[g.id for g in expired]}")
        return expired

    # -- IN_PROGRESS --

    def apply_move(self, game_id, moving_color: str, move_log: str, position: str = None) -> timers.ClockReading:
        if moving_color not in COLORS:
            raise ValidationError(f'Invalid color: {moving_color!r}')
        game = self.get(game_id)
        if game.status != GameStatus.IN_PROGRESS:
            raise InvalidStateError('Game is not in progress')
        now = self.clock()
        reading = timers.charge_move(
            game.time_control, game.last_move_at,
            game.white_time_remaining, game.black_time_remaining,
            moving_color, now,
        )
        fields = dict(
            move_log=move_log,
            white_time_remaining=reading.white,
            black_time_remaining=reading.black,
            last_move_at=now,
            turn_color=reading.turn,
        )
        if position is not None:
            fields['position'] = position
        changed = self.games.update_many(Game.id == game_id, Game.status == GameStatus.IN_PROGRESS, **fields)
        if not changed:
            raise InvalidStateError('Game is not in progress')
        return reading

    def declare_winner(self, game_id, losing_color: str, reason: str) -> Optional[Outcome]:
        """Shared terminal transition for resignation, forfeit, timeout and checkmate."""
        game = self.games.find_by_id(game_id)
        if game is None or game.status != GameStatus.IN_PROGRESS:
            return None
        winning_color = opposite(losing_color)
        result = GameResult.win_for(winning_color)
        winner_id = game.player_id(winning_color)
        changed = self.games.update_many(
            Game.id == game_id,
            Game.status == GameStatus.IN_PROGRESS,
            status=GameStatus.COMPLETED,
            result=result,
            winner_id=winner_id,
            end_reason=reason,
            ended_at=self.clock(),
        )
        if not changed:
            return None
        logger.info(f"[game-ended] game={game_id} result={result} reason={reason}")
        return Outcome(game_id, result, reason, winner_id)

    def resign(self, game_id, user_id) -> Optional[Outcome]:
        return self._declare_loser_by_user(game_id, user_id, EndReason.RESIGNATION)

    def forfeit(self, game_id, user_id) -> Optional[Outcome]:
        return self._declare_loser_by_user(game_id, user_id, EndReason.OPPONENT_DISCONNECTED)

    def timeout(self, game_id, timed_out_color: str) -> Optional[Outcome]:
        if timed_out_color not in COLORS:
            raise ValidationError(f'Invalid color: {timed_out_color!r}')
        return self.declare_winner(game_id, timed_out_color, EndReason.TIMEOUT)

    def end_as_draw(self, game_id, reason: str = EndReason.AGREEMENT) -> Optional[Outcome]:
        game = self.games.find_by_id(game_id)
        if game is None or game.status != GameStatus.IN_PROGRESS:
            return None
        changed = self.games.update_many(
            Game.id == game_id,
            Game.status == GameStatus.IN_PROGRESS,
            status=GameStatus.COMPLETED,
            result=GameResult.DRAW,
            winner_id=None,
            end_reason=reason,
            ended_at=self.clock(),
        )
        if not changed:
            return None
        logger.info(f"[game-ended] game={game_id} result={GameResult.DRAW} reason={reason}")
        return Outcome(game_id, GameResult.DRAW, reason)

    def forfeit_user_active(self, user_id) -> Optional[Outcome]:
        game = self.games.find_first(
            Game.status == GameStatus.IN_PROGRESS,
            or_(Game.white_player_id == user_id, Game.black_player_id == user_id),
        )
        if game is None:
            return None
        return self.forfeit(game.id, user_id)

    def _declare_loser_by_user(self, game_id, user_id, reason) -> Optional[Outcome]:
        game = self.games.find_by_id(game_id)
        if game is None or game.status != GameStatus.IN_PROGRESS:
            return None
        color = game.color_of(user_id)
        if color is None:
            return None
        return self.declare_winner(game_id, color, reason)

