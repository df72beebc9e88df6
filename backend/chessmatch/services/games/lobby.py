"""The lobby: the view of WAITING games shown to every lobby member.

Each lifecycle transition into WAITING is announced once with
``lobby:gameAdded``; each transition out of it once with
``lobby:gameRemoved``. The lifecycle's conditional updates guarantee that only
one caller ever wins a given transition, so announcing after a successful
call cannot double-report.
"""

import logging

from chessmatch.realtime import LOBBY_ROOM, game_room

logger = logging.getLogger(__name__)


class LobbyCoordinator:

    def __init__(self, lifecycle, notifier) -> None:
        self.lifecycle = lifecycle
        self.notifier = notifier

    def open_games(self) -> list[dict]:
        return [g.to_dict() for g in self.lifecycle.available_games()]

    def create(self, creator_id, time_control=None):
        game = self.lifecycle.create(creator_id, time_control)
        self.notifier.emit('lobby:gameAdded', {'game': game.to_dict()}, to=LOBBY_ROOM)
        return game

    def join(self, game_id, joiner_id):
        game = self.lifecycle.join(game_id, joiner_id)
        payload = game.to_dict()
        self.notifier.emit('lobby:gameRemoved', {'gameId': game.id}, to=LOBBY_ROOM)
        self.notifier.emit('game:started', {'game': payload}, to=game_room(game.id))
        return game

    def cancel(self, game_id, requester_id):
        game = self.lifecycle.cancel(game_id, requester_id)
        self.notifier.emit('lobby:gameRemoved', {'gameId': game.id}, to=LOBBY_ROOM)
        return game

    def expire_stale(self, now=None) -> list:
        expired = self.lifecycle.expire_stale_waiting(now)
        for game in expired:
            self.notifier.emit('lobby:gameRemoved', {'gameId': game.id}, to=LOBBY_ROOM)
            self.notifier.emit('game:autoCancelled', {'gameId': game.id}, to=game_room(game.id))
        return expired

    def withdraw_user(self, user_id):
        """Cancel the user's WAITING game, if any (logout)."""
        game = self.lifecycle.cancel_user_waiting(user_id)
        if game is not None:
            self.notifier.emit('lobby:gameRemoved', {'gameId': game.id}, to=LOBBY_ROOM)
            logger.info(f"[lobby-withdraw] game={game.id} user={user_id}")
        return game
