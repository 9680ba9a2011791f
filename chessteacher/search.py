"""
Depth-limited minimax with alpha-beta pruning over the static evaluator.

White maximises, Black minimises. Each branch works on its own copy of
the board, so recursive calls never share a mutable position.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import chess

from chessteacher.evaluation import evaluate_position, move_flags, terminal_score


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class RankedMove:
    """A legal move and the score reachable after it."""
    move: chess.Move
    san: str
    from_square: str
    to_square: str
    flags: str
    score: float

    def to_dict(self) -> Dict:
        return {
            "san": self.san,
            "from": self.from_square,
            "to": self.to_square,
            "flags": self.flags,
            "score": self.score,
        }


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def _ordered_moves(board: chess.Board) -> List[chess.Move]:
    # Captures first; only changes how much gets pruned, never the value.
    moves = list(board.legal_moves)
    return sorted(moves, key=lambda m: 0 if board.is_capture(m) else 1)


def minimax(
    board: chess.Board,
    depth: int,
    alpha: float,
    beta: float,
    maximizing: bool,
) -> Tuple[float, Optional[chess.Move]]:
    """Return (score, best_move) for `board` searched `depth` plies deep.

    At depth 0, or in a finished position, only the evaluation is
    returned and the move is None.
    """
    if depth <= 0:
        return evaluate_position(board), None
    fixed = terminal_score(board)
    if fixed is not None:
        return fixed, None

    best_move = None
    if maximizing:
        best_score = -math.inf
        for move in _ordered_moves(board):
            child = board.copy()
            child.push(move)
            score, _ = minimax(child, depth - 1, alpha, beta, False)
            if score > best_score:
                best_score = score
                best_move = move
            alpha = max(alpha, best_score)
            if beta <= alpha:
                break
        return best_score, best_move

    best_score = math.inf
    for move in _ordered_moves(board):
        child = board.copy()
        child.push(move)
        score, _ = minimax(child, depth - 1, alpha, beta, True)
        if score < best_score:
            best_score = score
            best_move = move
        beta = min(beta, best_score)
        if beta <= alpha:
            break
    return best_score, best_move


def rank_moves(
    position: Union[chess.Board, str],
    depth: int = 2,
    limit: Optional[int] = 3,
) -> List[RankedMove]:
    """Rank every legal move by the score reachable after it.

    Each move is played and the resulting position searched at
    depth - 1. Sorted best-first for the side to move (descending for
    White, ascending for Black); ties keep enumeration order.

    Args:
        position: Board or FEN string. A Board is never mutated.
        depth: Search depth in plies (>= 0).
        limit: Maximum number of moves returned (None = all).
    """
    board = chess.Board(position) if isinstance(position, str) else position.copy()

    ranked = []
    for move in board.legal_moves:
        child = board.copy()
        child.push(move)
        score, _ = minimax(
            child,
            max(depth - 1, 0),
            -math.inf,
            math.inf,
            child.turn == chess.WHITE,
        )
        ranked.append(RankedMove(
            move=move,
            san=board.san(move),
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            flags=move_flags(board, move),
            score=score,
        ))

    # list.sort is stable, so equal scores keep generation order
    ranked.sort(key=lambda r: r.score, reverse=board.turn == chess.WHITE)
    if limit is None:
        return ranked
    return ranked[:limit]
