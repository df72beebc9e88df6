from chessmatch.models import Game, GameStatus
from chessmatch.store import RecordStore


def test_update_and_conditional_update_many(flask_app, users):
    games = RecordStore(Game)
    game = games.create(creator_id=users['alice'], status=GameStatus.WAITING)

    updated = games.update(game.id, time_control=180)
    assert updated.time_control == 180
    assert games.update('missing', time_control=60) is None

    # Only rows still matching the expected status change
    assert games.update_many(Game.id == game.id, Game.status == GameStatus.WAITING,
                             status=GameStatus.CANCELLED) == 1
    assert games.update_many(Game.id == game.id, Game.status == GameStatus.WAITING,
                             status=GameStatus.IN_PROGRESS) == 0
    assert games.find_by_id(game.id).status == GameStatus.CANCELLED
    assert games.find_first(Game.creator_id == users['alice']).id == game.id
    assert games.find_many(Game.status == GameStatus.WAITING) == []
