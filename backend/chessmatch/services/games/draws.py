"""Pending draw offers, at most one per game.

NONE -> OFFERED(color) -> NONE        (decline / cancel)
                       -> RESOLVED    (accept, or a counter-offer from the other side)
"""

from dataclasses import dataclass
import logging
from typing import Optional

from chessmatch.errors import InvalidStateError, ValidationError
from chessmatch.models import COLORS, EndReason

logger = logging.getLogger(__name__)

OFFERED = 'offered'
AGREED = 'agreed'
DUPLICATE = 'duplicate'


@dataclass(frozen=True)
class DrawStep:
    action: str
    outcome: object = None  # lifecycle Outcome when action == AGREED


class DrawNegotiation:

    def __init__(self, lifecycle) -> None:
        self.lifecycle = lifecycle
        self._offers: dict[str, str] = {}

    def pending(self, game_id) -> Optional[str]:
        """Color of the side with an outstanding offer, if any."""
        return self._offers.get(game_id)

    def offer(self, game_id, color: str) -> DrawStep:
        _check_color(color)
        pending = self._offers.get(game_id)
        if pending == color:
            return DrawStep(DUPLICATE)
        if pending is not None:
            # Both sides offered: that is an agreement
            logger.info(f"[draw-crossed] game={game_id}")
            return DrawStep(AGREED, self._resolve(game_id))
        self._offers[game_id] = color
        logger.info(f"[draw-offered] game={game_id} by={color}")
        return DrawStep(OFFERED)

    def accept(self, game_id, color: str):
        _check_color(color)
        pending = self._offers.get(game_id)
        if pending is None or pending == color:
            raise InvalidStateError('No draw offer to accept')
        return self._resolve(game_id)

    def decline(self, game_id, color: str) -> str:
        """Reject the opponent's offer; returns the color that had offered."""
        _check_color(color)
        pending = self._offers.get(game_id)
        if pending is None or pending == color:
            raise InvalidStateError('No draw offer to decline')
        del self._offers[game_id]
        return pending

    def cancel(self, game_id, color: str) -> None:
        _check_color(color)
        if self._offers.get(game_id) != color:
            raise InvalidStateError('No draw offer to cancel')
        del self._offers[game_id]

    def clear(self, game_id) -> None:
        self._offers.pop(game_id, None)

    def _resolve(self, game_id):
        self._offers.pop(game_id, None)
        return self.lifecycle.end_as_draw(game_id, EndReason.AGREEMENT)


def _check_color(color):
    if color not in COLORS:
        raise ValidationError(f'Invalid color: {color!r}')
