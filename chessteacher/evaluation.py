"""
Static position scoring for the search and the local coach.

Scores are centipawn-equivalent units from White's perspective
(positive = White better).
"""

import chess


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PIECE_VALUES = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 20000,
}

PIECE_NAMES = {
    chess.PAWN: "pawn",
    chess.KNIGHT: "knight",
    chess.BISHOP: "bishop",
    chess.ROOK: "rook",
    chess.QUEEN: "queen",
    chess.KING: "king",
}

CENTER_SQUARES = frozenset([chess.D4, chess.E4, chess.D5, chess.E5])

CENTER_BONUS = 20
PAWN_ADVANCE_BONUS = 5
MOBILITY_WEIGHT = 2

MATE_SCORE = 99999


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def static_evaluation(board: chess.Board) -> int:
    """Material + centre occupation + pawn advancement + mobility.

    Pure function of the position; terminal states are not special-cased
    here (see evaluate_position).
    """
    score = 0
    for square, piece in board.piece_map().items():
        bonus = 0
        if square in CENTER_SQUARES:
            bonus += CENTER_BONUS
        if piece.piece_type == chess.PAWN:
            rank = chess.square_rank(square)
            if piece.color == chess.WHITE:
                bonus += (rank - 1) * PAWN_ADVANCE_BONUS
            else:
                bonus += (6 - rank) * PAWN_ADVANCE_BONUS

        value = PIECE_VALUES[piece.piece_type] + bonus
        score += value if piece.color == chess.WHITE else -value

    # Mobility belongs to the side to move
    mobility = board.legal_moves.count() * MOBILITY_WEIGHT
    score += mobility if board.turn == chess.WHITE else -mobility
    return score


def terminal_score(board: chess.Board):
    """Fixed score for a finished position, or None if play continues."""
    if board.is_checkmate():
        return -MATE_SCORE if board.turn == chess.WHITE else MATE_SCORE
    if (board.is_stalemate()
            or board.is_insufficient_material()
            or board.is_fifty_moves()
            or board.is_repetition(3)):
        return 0
    return None


def evaluate_position(board: chess.Board) -> int:
    """Terminal-aware evaluation used at search leaves."""
    fixed = terminal_score(board)
    if fixed is not None:
        return fixed
    return static_evaluation(board)


# ---------------------------------------------------------------------------
# Move flags (chess.js letters, shared with the browser client)
# ---------------------------------------------------------------------------

def move_flags(board: chess.Board, move: chess.Move) -> str:
    """Flag letters for `move` played from `board` (before the push).

    n = normal, b = double pawn push, e = en passant, c = capture,
    p = promotion, k = kingside castle, q = queenside castle.
    """
    flags = ""
    piece = board.piece_at(move.from_square)
    if board.is_kingside_castling(move):
        flags += "k"
    elif board.is_queenside_castling(move):
        flags += "q"
    elif board.is_en_passant(move):
        flags += "e"
    elif board.is_capture(move):
        flags += "c"
    elif (piece is not None and piece.piece_type == chess.PAWN
            and abs(move.to_square - move.from_square) == 16):
        flags += "b"

    if move.promotion is not None:
        flags += "p"
    return flags or "n"
