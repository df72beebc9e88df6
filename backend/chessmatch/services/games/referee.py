"""Move legality through python-chess.

The rest of the server only needs to know whether a move is legal, what the
position and SAN move log look like afterwards, and whether the move ended
the game on the board.
"""

from dataclasses import dataclass
from typing import Optional

import chess

from chessmatch.errors import ValidationError
from chessmatch.models import EndReason

STARTING_POSITION = chess.STARTING_FEN

_PROMOTIONS = {
    'q': chess.QUEEN, 'queen': chess.QUEEN,
    'r': chess.ROOK, 'rook': chess.ROOK,
    'b': chess.BISHOP, 'bishop': chess.BISHOP,
    'n': chess.KNIGHT, 'knight': chess.KNIGHT,
}


@dataclass(frozen=True)
class PlayedMove:
    san: str
    uci: str
    position: str
    move_log: str
    ending: Optional[str] = None  # EndReason.CHECKMATE / EndReason.STALEMATE


def _square(name, field):
    try:
        return chess.parse_square(str(name).lower())
    except ValueError:
        raise ValidationError(f'Invalid {field} square: {name!r}') from None


def append_san(move_log: str, san: str, ply: int) -> str:
    """Append ``san`` as half-move number ``ply`` (0-based) to a PGN-style log."""
    if ply % 2 == 0:
        token = f'{ply // 2 + 1}. {san}'
    else:
        token = san
    return f'{move_log} {token}'.strip() if move_log else token


class MoveReferee:

    def play(self, position: Optional[str], move_log: str, from_square, to_square, promotion=None) -> PlayedMove:
        try:
            board = chess.Board(position or STARTING_POSITION)
        except ValueError:
            raise ValidationError('Stored position is not a valid FEN') from None

        promotion_piece = None
        if promotion:
            promotion_piece = _PROMOTIONS.get(str(promotion).lower())
            if promotion_piece is None:
                raise ValidationError(f'Invalid promotion piece: {promotion!r}')

        move = chess.Move(_square(from_square, 'from'), _square(to_square, 'to'), promotion_piece)
        if promotion_piece is None and not board.is_legal(move):
            # Pawn reaching the last rank without a choice promotes to a queen
            queening = chess.Move(move.from_square, move.to_square, chess.QUEEN)
            if board.is_legal(queening):
                move = queening
        if not board.is_legal(move):
            raise ValidationError(f'Illegal move: {move.uci()}')

        san = board.san(move)
        ply = _ply_of(board)
        board.push(move)

        ending = None
        if board.is_checkmate():
            ending = EndReason.CHECKMATE
        elif board.is_stalemate():
            ending = EndReason.STALEMATE
        return PlayedMove(
            san=san,
            uci=move.uci(),
            position=board.fen(),
            move_log=append_san(move_log or '', san, ply),
            ending=ending,
        )


def _ply_of(board: chess.Board) -> int:
    # A board built from a FEN has no move stack; derive the ply from the counters
    return (board.fullmove_number - 1) * 2 + (0 if board.turn == chess.WHITE else 1)
