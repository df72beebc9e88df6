from functools import wraps

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room, rooms

from chessmatch import socketio
from chessmatch.errors import AuthorizationError, GameError, InvalidStateError, ValidationError
from chessmatch.models import COLORS, EndReason, GameStatus, opposite
from chessmatch.realtime import LOBBY_ROOM, NAMESPACE, game_room
from chessmatch.services.games.draws import AGREED, OFFERED


def _runtime():
    return current_app.extensions['chessmatch']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _require(data, *names):
    data = data or {}
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"Missing field(s): {', '.join(missing)}")
    return [data[n] for n in names]


def reports_errors(error_event: str):
    """Turn domain errors into an error message for the requesting connection only."""
    def decorator(handler):
        @wraps(handler)
        def wrapper(*args):
            try:
                return handler(*args)
            except GameError as exc:
                current_app.logger.info(f"[{error_event}] {handler.__name__}: {exc.message}")
                emit(error_event, exc.to_dict())
            except Exception:
                current_app.logger.exception(f"[{error_event}] {handler.__name__} failed")
                emit(error_event, {'message': 'Internal server error', 'code': 'internal_error'})
        return wrapper
    return decorator


def _to_opponent(session, event, payload=None):
    rt = _runtime()
    opponent_sid = rt.sessions.holder(session.game_id, opposite(session.color))
    if opponent_sid is not None:
        rt.notifier.emit(event, payload or {}, to=opponent_sid)


# ---- connection ----

def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    sid = _get_sid()
    try:
        _runtime().sessions.on_disconnect(sid)
    except Exception:
        current_app.logger.exception(f"[disconnect-error] sid={sid}")


# ---- lobby ----

@reports_errors('lobby:error')
def handle_lobby_join(data=None):
    join_room(LOBBY_ROOM)
    emit('lobby:games', {'games': _runtime().lobby.open_games()})


@reports_errors('lobby:error')
def handle_lobby_leave(data=None):
    leave_room(LOBBY_ROOM)


@reports_errors('lobby:error')
def handle_create_game(data):
    user_id, = _require(data, 'userId')
    game = _runtime().lobby.create(user_id, (data or {}).get('timeControl'))
    # The creator hears game:started / game:autoCancelled through the game room
    join_room(game_room(game.id))
    emit('lobby:gameCreated', {'game': game.to_dict()})


@reports_errors('lobby:error')
def handle_join_lobby_game(data):
    game_id, user_id = _require(data, 'gameId', 'userId')
    room = game_room(game_id)
    # Joined up front so game:started reaches the joiner too
    already_in_room = room in rooms()
    join_room(room)
    try:
        game = _runtime().lobby.join(game_id, user_id)
    except GameError:
        # The creator asking to join its own game keeps its room membership
        if not already_in_room:
            leave_room(room)
        raise
    emit('lobby:gameJoined', {'game': game.to_dict(), 'color': game.color_of(user_id)})


@reports_errors('lobby:error')
def handle_cancel_game(data):
    game_id, user_id = _require(data, 'gameId', 'userId')
    _runtime().lobby.cancel(game_id, user_id)
    leave_room(game_room(game_id))
    emit('lobby:gameCancelled', {'gameId': game_id})


@reports_errors('lobby:error')
def handle_watch_game(data):
    """Subscribe to a game's room, e.g. after creating it over HTTP."""
    game_id, user_id = _require(data, 'gameId', 'userId')
    game = _runtime().lifecycle.get(game_id)
    if user_id != game.creator_id and game.color_of(user_id) is None:
        raise AuthorizationError('You are not a player in this game')
    join_room(game_room(game_id))
    emit('lobby:watching', {'gameId': game_id, 'status': game.status})


@reports_errors('lobby:error')
def handle_logout(data):
    user_id, = _require(data, 'userId')
    rt = _runtime()
    rt.lobby.withdraw_user(user_id)
    rt.finish(rt.lifecycle.forfeit_user_active(user_id))


# ---- game ----

@reports_errors('game:error')
def handle_game_join(data):
    game_id, user_id = _require(data, 'gameId', 'userId')
    rt = _runtime()
    attachment = rt.sessions.attach(_get_sid(), game_id, user_id)
    join_room(game_room(game_id))
    game = attachment.game
    payload = {
        'gameId': game.id,
        'color': attachment.color,
        'moveLog': game.move_log or '',
        'position': game.position,
        'drawOfferBy': rt.draws.pending(game.id),
    }
    payload.update(rt.lifecycle.read_clock(game).to_dict())
    emit('game:joined', payload)


@reports_errors('game:error')
def handle_game_leave(data=None):
    session = _runtime().sessions.detach(_get_sid())
    if session is not None:
        leave_room(game_room(session.game_id))
        emit('game:left', {'gameId': session.game_id})


@reports_errors('game:error')
def handle_move(data):
    from_square, to_square = _require(data, 'from', 'to')
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    game = rt.lifecycle.require_in_progress(session.game_id)
    if rt.lifecycle.read_clock(game).turn != session.color:
        raise InvalidStateError('Not your turn')

    # Client-side position and log are advisory; the referee's are persisted
    played = rt.referee.play(game.position, game.move_log, from_square, to_square, data.get('promotion'))
    reading = rt.lifecycle.apply_move(session.game_id, session.color, played.move_log, played.position)

    move = {
        'from': from_square,
        'to': to_square,
        'promotion': data.get('promotion'),
        'san': played.san,
        'position': played.position,
        'moveLog': played.move_log,
    }
    move.update(reading.to_dict())
    _to_opponent(session, 'game:moveMade', move)
    emit('game:timerSync', reading.to_dict())

    if played.ending == EndReason.CHECKMATE:
        outcome = rt.lifecycle.declare_winner(session.game_id, opposite(session.color), EndReason.CHECKMATE)
    elif played.ending == EndReason.STALEMATE:
        outcome = rt.lifecycle.end_as_draw(session.game_id, EndReason.STALEMATE)
    elif game.is_timed and reading.remaining(session.color) == 0:
        # Flag fell before the move arrived
        outcome = rt.lifecycle.timeout(session.game_id, session.color)
    else:
        outcome = None
    rt.finish(outcome)


@reports_errors('game:error')
def handle_resign(data=None):
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    rt.finish(rt.lifecycle.resign(session.game_id, session.user_id))


@reports_errors('game:error')
def handle_timeout(data):
    timed_out_color, = _require(data, 'timedOutColor')
    if timed_out_color not in COLORS:
        raise ValidationError(f'Invalid color: {timed_out_color!r}')
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    game = rt.lifecycle.get(session.game_id)
    if game.status == GameStatus.IN_PROGRESS:
        if not game.is_timed:
            raise InvalidStateError('Game is not timed')
        reading = rt.lifecycle.read_clock(game)
        if reading.turn != timed_out_color or reading.remaining(timed_out_color) > rt.clock_tolerance_sec:
            raise InvalidStateError('Clock has not run out')
    rt.finish(rt.lifecycle.timeout(session.game_id, timed_out_color))


@reports_errors('game:error')
def handle_offer_draw(data=None):
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    rt.lifecycle.require_in_progress(session.game_id)
    step = rt.draws.offer(session.game_id, session.color)
    if step.action == OFFERED:
        _to_opponent(session, 'game:drawOffered', {'color': session.color})
        emit('game:drawOfferSent', {'color': session.color})
    elif step.action == AGREED:
        rt.finish(step.outcome)


@reports_errors('game:error')
def handle_accept_draw(data=None):
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    rt.finish(rt.draws.accept(session.game_id, session.color))


@reports_errors('game:error')
def handle_decline_draw(data=None):
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    rt.draws.decline(session.game_id, session.color)
    _to_opponent(session, 'game:drawDeclined', {'color': session.color})
    emit('game:drawOfferDeclined', {'color': session.color})


@reports_errors('game:error')
def handle_cancel_draw_offer(data=None):
    rt = _runtime()
    session = rt.sessions.require_seat(_get_sid())
    rt.draws.cancel(session.game_id, session.color)
    _to_opponent(session, 'game:drawOfferCancelled', {'color': session.color})
    emit('game:drawOfferCancelledConfirm', {'color': session.color})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the game namespace."""
    events = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'ping': handle_ping,
        'lobby:join': handle_lobby_join,
        'lobby:leave': handle_lobby_leave,
        'lobby:createGame': handle_create_game,
        'lobby:joinGame': handle_join_lobby_game,
        'lobby:cancelGame': handle_cancel_game,
        'lobby:watchGame': handle_watch_game,
        'user:logout': handle_logout,
        'game:join': handle_game_join,
        'game:leave': handle_game_leave,
        'game:move': handle_move,
        'game:resign': handle_resign,
        'game:timeout': handle_timeout,
        'game:offerDraw': handle_offer_draw,
        'game:acceptDraw': handle_accept_draw,
        'game:declineDraw': handle_decline_draw,
        'game:cancelDrawOffer': handle_cancel_draw_offer,
    }
    for name, handler in events.items():
        socketio.on_event(name, handler, namespace=NAMESPACE)
