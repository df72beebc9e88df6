from chessmatch import db
from datetime import datetime, timezone
import uuid


WHITE = 'white'
BLACK = 'black'
COLORS = (WHITE, BLACK)


def opposite(color: str) -> str:
    return BLACK if color == WHITE else WHITE


def utcnow() -> datetime:
    """Current UTC time as a naive datetime; every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class GameStatus:
    WAITING = 'WAITING'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'

    ACTIVE = (WAITING, IN_PROGRESS)
    TERMINAL = (COMPLETED, CANCELLED)


class GameResult:
    WHITE_WIN = 'WHITE_WIN'
    BLACK_WIN = 'BLACK_WIN'
    DRAW = 'DRAW'

    @staticmethod
    def win_for(color: str) -> str:
        return GameResult.WHITE_WIN if color == WHITE else GameResult.BLACK_WIN


class EndReason:
    CHECKMATE = 'checkmate'
    STALEMATE = 'stalemate'
    RESIGNATION = 'resignation'
    AGREEMENT = 'agreement'
    TIMEOUT = 'timeout'
    OPPONENT_DISCONNECTED = 'opponent_disconnected'


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    status = db.Column(db.String(16), nullable=False, default=GameStatus.WAITING, index=True)
    time_control = db.Column(db.Integer, nullable=True)  # seconds per side; None = untimed
    result = db.Column(db.String(16), nullable=True)
    end_reason = db.Column(db.String(32), nullable=True)

    creator_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    white_player_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True, index=True)
    black_player_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True, index=True)
    winner_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    white_time_remaining = db.Column(db.Integer, nullable=True)
    black_time_remaining = db.Column(db.Integer, nullable=True)
    last_move_at = db.Column(db.DateTime, nullable=True)
    turn_color = db.Column(db.String(5), nullable=True)
    move_log = db.Column(db.Text, nullable=False, default='')
    position = db.Column(db.Text, nullable=True)  # FEN after the last move

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = db.relationship('User', foreign_keys=[creator_id])
    white_player = db.relationship('User', foreign_keys=[white_player_id])
    black_player = db.relationship('User', foreign_keys=[black_player_id])

    @property
    def is_timed(self) -> bool:
        return self.time_control is not None

    def player_id(self, color: str):
        return self.white_player_id if color == WHITE else self.black_player_id

    def color_of(self, user_id):
        """Seat color held by user_id, or None when the user is not seated."""
        if user_id is None:
            return None
        if self.white_player_id == user_id:
            return WHITE
        if self.black_player_id == user_id:
            return BLACK
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'timeControl': self.time_control,
            'result': self.result,
            'endReason': self.end_reason,
            'creatorId': self.creator_id,
            'whitePlayerId': self.white_player_id,
            'blackPlayerId': self.black_player_id,
            'winnerId': self.winner_id,
            'creator': self.creator.to_dict() if self.creator else None,
            'whitePlayer': self.white_player.to_dict() if self.white_player else None,
            'blackPlayer': self.black_player.to_dict() if self.black_player else None,
            'whiteTimeRemaining': self.white_time_remaining,
            'blackTimeRemaining': self.black_time_remaining,
            'lastMoveAt': _iso(self.last_move_at),
            'turn': self.turn_color,
            'moveLog': self.move_log or '',
            'position': self.position,
            'createdAt': _iso(self.created_at),
            'startedAt': _iso(self.started_at),
            'endedAt': _iso(self.ended_at),
        }
