import random

import pytest

from chessmatch.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chessmatch.models import BLACK, WHITE, EndReason, GameResult, GameStatus
from chessmatch.services.games.lifecycle import MatchLifecycle, draw_colors
from conftest import reload_game


class FixedCoin:
    """rng stub: 0.0 puts the creator on white, 0.9 on black."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


@pytest.fixture()
def creator_white(flask_app, fake_clock):
    return MatchLifecycle(clock=fake_clock, rng=FixedCoin(0.0))


def _started(lifecycle, users, time_control=None):
    game = lifecycle.create(users['alice'], time_control)
    return lifecycle.join(game.id, users['bob'])


def test_create_validates_time_control(lifecycle, users):
    for bad in (30, 0, '60', True):
        with pytest.raises(ValidationError):
            lifecycle.create(users['alice'], bad)
    game = lifecycle.create(users['alice'], 180)
    assert game.status == GameStatus.WAITING
    assert game.time_control == 180


def test_create_rejects_unknown_user_and_second_active_game(lifecycle, users):
    with pytest.raises(NotFoundError):
        lifecycle.create('no-such-user')
    lifecycle.create(users['alice'])
    with pytest.raises(ConflictError):
        lifecycle.create(users['alice'], 60)


def test_join_starts_game_and_anchors_clock(creator_white, users, fake_clock):
    game = creator_white.create(users['alice'], 60)
    fake_clock.advance(120)  # time in WAITING is free
    started = creator_white.join(game.id, users['bob'])

    assert started.status == GameStatus.IN_PROGRESS
    assert started.white_player_id == users['alice']
    assert started.black_player_id == users['bob']
    assert started.white_time_remaining == 60
    assert started.black_time_remaining == 60
    assert started.last_move_at == fake_clock.now
    assert started.started_at == fake_clock.now
    assert started.turn_color == WHITE
    assert started.move_log == ''


def test_join_preconditions(lifecycle, users):
    with pytest.raises(NotFoundError):
        lifecycle.join('missing', users['bob'])
    game = lifecycle.create(users['alice'])
    with pytest.raises(ConflictError):
        lifecycle.join(game.id, users['alice'])
    with pytest.raises(NotFoundError):
        lifecycle.join(game.id, 'no-such-user')

    lifecycle.join(game.id, users['bob'])
    with pytest.raises(InvalidStateError):
        lifecycle.join(game.id, users['carol'])


def test_join_rejects_player_already_in_a_game(lifecycle, users):
    _started(lifecycle, users)
    waiting = lifecycle.create(users['carol'])
    with pytest.raises(ConflictError):
        lifecycle.join(waiting.id, users['bob'])


def test_cancel_only_by_creator_and_only_while_waiting(lifecycle, users):
    game = lifecycle.create(users['alice'])
    with pytest.raises(AuthorizationError):
        lifecycle.cancel(game.id, users['bob'])
    cancelled = lifecycle.cancel(game.id, users['alice'])
    assert cancelled.status == GameStatus.CANCELLED
    assert cancelled.ended_at is not None
    with pytest.raises(InvalidStateError):
        lifecycle.cancel(game.id, users['alice'])
    # A cancelled game no longer blocks a new one
    assert lifecycle.create(users['alice']).status == GameStatus.WAITING


def test_stale_waiting_games_are_expired_once(lifecycle, users, fake_clock):
    stale = lifecycle.create(users['alice'], 180)
    fake_clock.advance(200)
    fresh = lifecycle.create(users['bob'])
    fake_clock.advance(101)

    expired = lifecycle.expire_stale_waiting()
    assert [g.id for g in expired] == [stale.id]
    assert reload_game(stale.id).status == GameStatus.CANCELLED
    assert reload_game(fresh.id).status == GameStatus.WAITING

    # Second sweep has nothing left to do
    assert lifecycle.expire_stale_waiting() == []


def test_expiry_skips_games_joined_before_the_sweep(lifecycle, users, fake_clock):
    game = lifecycle.create(users['alice'])
    fake_clock.advance(299)
    lifecycle.join(game.id, users['bob'])
    fake_clock.advance(10)
    assert lifecycle.expire_stale_waiting() == []
    assert reload_game(game.id).status == GameStatus.IN_PROGRESS


def test_apply_move_charges_the_mover(creator_white, users, fake_clock):
    game = _started(creator_white, users, 60)
    fake_clock.advance(10)
    reading = creator_white.apply_move(game.id, WHITE, '1. e4')

    assert reading.white == 50
    assert reading.black == 60
    stored = reload_game(game.id)
    assert stored.white_time_remaining == 50
    assert stored.black_time_remaining == 60
    assert stored.last_move_at == fake_clock.now
    assert stored.turn_color == BLACK
    assert stored.move_log == '1. e4'


def test_apply_move_requires_game_in_progress(lifecycle, users):
    game = lifecycle.create(users['alice'])
    with pytest.raises(InvalidStateError):
        lifecycle.apply_move(game.id, WHITE, '1. e4')
    with pytest.raises(ValidationError):
        lifecycle.apply_move(game.id, 'green', '1. e4')


def test_resign_is_terminal_and_idempotent(creator_white, users):
    game = _started(creator_white, users)
    outcome = creator_white.resign(game.id, users['alice'])
    assert outcome.result == GameResult.BLACK_WIN
    assert outcome.reason == EndReason.RESIGNATION
    assert outcome.winner_id == users['bob']

    before = reload_game(game.id)
    assert before.status == GameStatus.COMPLETED
    assert before.winner_id == users['bob']
    ended_at = before.ended_at

    assert creator_white.resign(game.id, users['bob']) is None
    after = reload_game(game.id)
    assert after.result == GameResult.BLACK_WIN
    assert after.winner_id == users['bob']
    assert after.ended_at == ended_at


def test_only_first_terminal_transition_wins(creator_white, users):
    game = _started(creator_white, users, 60)
    first = creator_white.timeout(game.id, BLACK)
    assert first.result == GameResult.WHITE_WIN
    assert first.reason == EndReason.TIMEOUT
    assert creator_white.forfeit(game.id, users['alice']) is None
    assert creator_white.end_as_draw(game.id) is None
    assert creator_white.declare_winner(game.id, WHITE, EndReason.CHECKMATE) is None
    assert reload_game(game.id).end_reason == EndReason.TIMEOUT


def test_resign_by_non_player_is_a_no_op(creator_white, users):
    game = _started(creator_white, users)
    assert creator_white.resign(game.id, users['carol']) is None
    assert reload_game(game.id).status == GameStatus.IN_PROGRESS


def test_end_as_draw_has_no_winner(lifecycle, users):
    game = _started(lifecycle, users)
    outcome = lifecycle.end_as_draw(game.id)
    assert outcome.result == GameResult.DRAW
    assert outcome.reason == EndReason.AGREEMENT
    stored = reload_game(game.id)
    assert stored.winner_id is None
    assert stored.result == GameResult.DRAW


def test_forfeit_user_active(creator_white, users):
    game = _started(creator_white, users)
    assert creator_white.forfeit_user_active(users['carol']) is None
    outcome = creator_white.forfeit_user_active(users['bob'])
    assert outcome.game_id == game.id
    assert outcome.result == GameResult.WHITE_WIN
    assert outcome.reason == EndReason.OPPONENT_DISCONNECTED


def test_active_game_for(lifecycle, users):
    assert lifecycle.active_game_for(users['alice']) is None
    game = lifecycle.create(users['alice'])
    assert lifecycle.active_game_for(users['alice']).id == game.id
    assert lifecycle.active_game_for(users['bob']) is None
    lifecycle.join(game.id, users['bob'])
    assert lifecycle.active_game_for(users['bob']).id == game.id
    lifecycle.resign(game.id, users['bob'])
    assert lifecycle.active_game_for(users['alice']) is None


def test_color_assignment_is_unbiased():
    rng = random.Random(1234)
    creator_white = sum(
        1 for _ in range(1000) if draw_colors('creator', 'joiner', rng)[0] == 'creator'
    )
    assert 430 <= creator_white <= 570


def test_read_clock_reports_running_time(creator_white, users, fake_clock):
    game = _started(creator_white, users, 180)
    fake_clock.advance(42)
    reading = creator_white.read_clock(reload_game(game.id))
    assert reading.white == 138
    assert reading.black == 180
    assert reading.turn == WHITE


def test_join_assigns_creator_white_about_half_the_time(lifecycle, users):
    assert isinstance(lifecycle.rng, random.SystemRandom)
    creator_white = 0
    for _ in range(1000):
        waiting = lifecycle.create(users['alice'])
        game = lifecycle.join(waiting.id, users['bob'])
        if game.white_player_id == users['alice']:
            creator_white += 1
        # Frees both players for the next game
        lifecycle.resign(game.id, users['bob'])
    # 1000 fair flips: mean 500, standard deviation about 15.8
    assert 430 <= creator_white <= 570
