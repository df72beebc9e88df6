"""Chess clock arithmetic.

Pure functions over stored clock state and a wall-clock reading. Nothing in
here touches the database; MatchLifecycle persists what ``charge_move``
returns.

Clocks are charged per turn: the side that just moved pays for the time
since ``last_move_at``. ``last_move_at`` is anchored when the second player
joins, so the time a game spends WAITING is never charged to anyone.
"""

from dataclasses import dataclass
from datetime import datetime
import re
from typing import Optional

from chessmatch.models import BLACK, COLORS, WHITE

_MOVE_NUMBER = re.compile(r'^\d+\.(\.\.)?')
_RESULT_TOKENS = {'1-0', '0-1', '1/2-1/2', '*'}


@dataclass(frozen=True)
class ClockReading:
    white: Optional[int]
    black: Optional[int]
    turn: str

    def remaining(self, color: str) -> Optional[int]:
        return self.white if color == WHITE else self.black

    def to_dict(self):
        return {
            'whiteTimeRemaining': self.white,
            'blackTimeRemaining': self.black,
            'turn': self.turn,
        }


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


def elapsed_seconds(last_move_at: Optional[datetime], now: datetime) -> int:
    """Whole seconds between the clock anchor and now, floored, never negative."""
    if last_move_at is None:
        return 0
    delta = (_naive(now) - _naive(last_move_at)).total_seconds()
    return max(0, int(delta // 1))


def charge(remaining: Optional[int], elapsed: int) -> Optional[int]:
    if remaining is None:
        return None
    return max(0, remaining - elapsed)


def turn_from_move_log(move_log: Optional[str]) -> str:
    """Side to move derived from the number of half-moves in a SAN move log.

    Accepts "1. e4 e5 2. Nf3", "1.e4 e5 2.Nf3" and "1... e5" styles. After an
    even number of half-moves it is White's turn.
    """
    half_moves = 0
    for token in (move_log or '').split():
        if token in _RESULT_TOKENS:
            continue
        token = _MOVE_NUMBER.sub('', token)
        if token:
            half_moves += 1
    return WHITE if half_moves % 2 == 0 else BLACK


def side_to_move(turn_color: Optional[str], move_log: Optional[str]) -> str:
    if turn_color in COLORS:
        return turn_color
    return turn_from_move_log(move_log)


def read_clock(time_control, last_move_at, white_remaining, black_remaining,
               turn: str, now: datetime) -> ClockReading:
    """Live remaining times: the side to move has its running turn deducted."""
    if time_control is None or last_move_at is None:
        return ClockReading(white_remaining, black_remaining, turn)
    elapsed = elapsed_seconds(last_move_at, now)
    if turn == WHITE:
        return ClockReading(charge(white_remaining, elapsed), black_remaining, turn)
    return ClockReading(white_remaining, charge(black_remaining, elapsed), turn)


def charge_move(time_control, last_move_at, white_remaining, black_remaining,
                moving_color: str, now: datetime) -> ClockReading:
    """Remaining times after ``moving_color`` completes a move at ``now``.

    Only the mover is charged; the opponent's clock was not running. The
    returned ``turn`` is the side to move next.
    """
    next_turn = BLACK if moving_color == WHITE else WHITE
    if time_control is None or last_move_at is None:
        return ClockReading(white_remaining, black_remaining, next_turn)
    elapsed = elapsed_seconds(last_move_at, now)
    if moving_color == WHITE:
        return ClockReading(charge(white_remaining, elapsed), black_remaining, next_turn)
    return ClockReading(white_remaining, charge(black_remaining, elapsed), next_turn)
