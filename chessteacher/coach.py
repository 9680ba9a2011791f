"""
Move-quality coaching with the built-in heuristic search.

Given the position before a move and the SAN of the move that was
played, compare the played move against the best alternatives and
explain the verdict: how much was lost, what the move is trying to do,
and which enemy piece it puts under pressure.

The engine adapter (chessteacher.engine) reuses the result type and the
explanation helpers here, only with sharper evaluations and tighter
thresholds.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import chess

from chessteacher.evaluation import (
    CENTER_SQUARES,
    PIECE_NAMES,
    PIECE_VALUES,
    evaluate_position,
    move_flags,
)
from chessteacher.search import rank_moves


# Verdict thresholds on the score delta (centipawn-equivalent units)
LOCAL_GOOD_THRESHOLD = 90
LOCAL_INACCURACY_THRESHOLD = 220

ALTERNATIVES = 3
ALTERNATIVE_DEPTH = 2

SOURCE_ENGINE = "engine"
SOURCE_LIGHTWEIGHT = "lightweight"

ILLEGAL_MESSAGE = "That move is not legal in this position."
ILLEGAL_IDEA = "No strategic explanation because the move is illegal."
NO_TARGET_SUMMARY = "No target identified."


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class Target:
    """An enemy piece the mover attacks after the move."""
    square: str
    piece: str            # lowercase symbol: "q", "r", ...
    value: int

    def to_dict(self) -> Dict:
        return {"square": self.square, "piece": self.piece, "value": self.value}


@dataclass
class AnalysisResult:
    """Verdict on one played move. Transient, never stored server-side."""
    verdict: str                          # best | good | inaccuracy | illegal
    message: str
    alternatives: List[Dict] = field(default_factory=list)
    score_delta: Optional[float] = None
    strategic_idea: str = ILLEGAL_IDEA
    primary_target: Optional[Target] = None
    target_summary: str = NO_TARGET_SUMMARY
    source: str = SOURCE_LIGHTWEIGHT

    def to_dict(self) -> Dict:
        return {
            "verdict": self.verdict,
            "scoreDelta": self.score_delta,
            "message": self.message,
            "alternatives": self.alternatives,
            "strategicIdea": self.strategic_idea,
            "primaryTarget": self.primary_target.to_dict() if self.primary_target else None,
            "targetSummary": self.target_summary,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def find_legal_move(board: chess.Board, san: str) -> Optional[chess.Move]:
    """The legal move whose SAN is exactly `san`, or None."""
    for move in board.legal_moves:
        if board.san(move) == san:
            return move
    return None


def classify_delta(delta: float, good_threshold: float, inaccuracy_threshold: float) -> str:
    if delta <= good_threshold:
        return "best"
    if delta <= inaccuracy_threshold:
        return "good"
    return "inaccuracy"


def identify_targets(board: chess.Board, attacker: chess.Color) -> List[Target]:
    """Enemy pieces `attacker` hits in `board`, most valuable first.

    Squares are scanned from a8 to h1; equal values keep that order.
    """
    targets = []
    for square in chess.SQUARES_180:
        piece = board.piece_at(square)
        if piece is None or piece.color == attacker:
            continue
        if board.is_attacked_by(attacker, square):
            targets.append(Target(
                square=chess.square_name(square),
                piece=piece.symbol().lower(),
                value=PIECE_VALUES[piece.piece_type],
            ))
    targets.sort(key=lambda t: t.value, reverse=True)
    return targets


def describe_strategic_idea(
    board: chess.Board,
    move: chess.Move,
    san: str,
    target: Optional[Target],
) -> str:
    """One-sentence idea behind `move`, judged from the pre-move `board`.

    Priority: mate > check > castling > capture > pressure on a target >
    centre > development > generic improvement.
    """
    flags = move_flags(board, move)
    if "#" in san:
        return "It delivers checkmate, so the game ends immediately."
    if "+" in san:
        return "It gives check, forcing the king to respond and limiting your opponent's options."
    if "k" in flags or "q" in flags:
        return "It castles to improve king safety and bring a rook toward the centre."
    if "c" in flags or "e" in flags:
        return "It captures material, removing one of your opponent's active pieces."
    if target is not None:
        name = PIECE_NAMES.get(chess.Piece.from_symbol(target.piece).piece_type, "piece")
        return f"It builds pressure on the {name} on {target.square}, creating tactical threats."
    if move.to_square in CENTER_SQUARES:
        return "It increases control of the centre, giving your pieces more room."
    if san[:1] in ("N", "B", "R", "Q", "K"):
        return "It develops a piece toward active squares for future attack or defence."
    return "It improves coordination and keeps your position flexible for the next plan."


def summarize_target(target: Optional[Target], fallback: str) -> str:
    if target is None:
        return fallback
    name = PIECE_NAMES.get(chess.Piece.from_symbol(target.piece).piece_type, target.piece)
    return f"Main target: {name.upper()} on {target.square}."


# ---------------------------------------------------------------------------
# Local analysis
# ---------------------------------------------------------------------------

def explain_move_quality(fen: str, san: str) -> AnalysisResult:
    """Judge `san` played from `fen` with the heuristic search.

    Raises:
        ValueError: If `fen` is not a valid position.
    """
    board = chess.Board(fen)
    alternatives = rank_moves(board, ALTERNATIVE_DEPTH, ALTERNATIVES)
    played = find_legal_move(board, san)

    if played is None:
        return AnalysisResult(
            verdict="illegal",
            message=ILLEGAL_MESSAGE,
            alternatives=[alt.to_dict() for alt in alternatives],
        )

    after = board.copy()
    after.push(played)
    after_score = evaluate_position(after)
    best_score = alternatives[0].score if alternatives else after_score

    delta = abs(best_score - after_score)
    verdict = classify_delta(delta, LOCAL_GOOD_THRESHOLD, LOCAL_INACCURACY_THRESHOLD)
    message = {
        "best": "Great move. It keeps a strong balance of material, centre control and mobility.",
        "good": "Good idea, but there is an even stronger continuation.",
        "inaccuracy": "This move misses a stronger tactical or positional continuation.",
    }[verdict]

    targets = identify_targets(after, board.turn)
    primary = targets[0] if targets else None

    return AnalysisResult(
        verdict=verdict,
        message=message,
        alternatives=[alt.to_dict() for alt in alternatives],
        score_delta=delta,
        strategic_idea=describe_strategic_idea(board, played, san, primary),
        primary_target=primary,
        target_summary=summarize_target(
            primary, "Main target: improves piece activity and board control."
        ),
        source=SOURCE_LIGHTWEIGHT,
    )
