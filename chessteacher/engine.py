"""
Stockfish coaching: one UCI engine process per analysis request.

Uses the python-chess UCI interface. Each call starts its own engine,
configures it for a small footprint (1 thread, 16 MB hash), runs a
fixed-depth search capped by a wall-clock limit and shuts the process
down afterwards. Any failure along the way surfaces as
EngineAnalysisError so the caller can fall back to the heuristic coach.

Eval convention: scores are reported by the engine from the side to
move's point of view; everything returned from here is normalized to
White's perspective (positive = White better).
"""

import asyncio
import logging
import os
from typing import Dict, Iterable, List, Optional

import chess
import chess.engine

from chessteacher.coach import (
    ALTERNATIVES,
    ILLEGAL_MESSAGE,
    SOURCE_ENGINE,
    AnalysisResult,
    classify_delta,
    describe_strategic_idea,
    find_legal_move,
    identify_targets,
    summarize_target,
)
from chessteacher.evaluation import move_flags


log = logging.getLogger(__name__)

DEFAULT_SF_PATH = "stockfish"

MATE_VALUE = 100000

DEFAULT_TIMEOUT = 10.0

ENGINE_GOOD_THRESHOLD = 70
ENGINE_INACCURACY_THRESHOLD = 180


class EngineAnalysisError(RuntimeError):
    """The external engine could not produce a usable analysis."""


# asyncio.TimeoutError is not the builtin before Python 3.11
_ENGINE_FAILURES = (chess.engine.EngineError, TimeoutError, asyncio.TimeoutError)


# ---------------------------------------------------------------------------
# Protocol helpers
# ---------------------------------------------------------------------------

def score_value(score) -> Optional[int]:
    """Convert an engine score to a single integer, side-to-move view.

    Accepts a chess.engine.PovScore (uses its relative score) or a plain
    Score. `mate N` becomes MATE_VALUE - N when the side to move mates,
    and -MATE_VALUE - N when it is being mated, so any forced mate
    outranks every centipawn score and shorter mates outrank longer ones.
    """
    if score is None:
        return None
    if isinstance(score, chess.engine.PovScore):
        score = score.relative
    mate = score.mate()
    if mate is not None:
        if mate > 0:
            return MATE_VALUE - mate
        return -MATE_VALUE - mate
    return score.score()


def normalize_to_white(value: int, board: chess.Board) -> int:
    """Flip a side-to-move score so that positive always favours White."""
    return value if board.turn == chess.WHITE else -value


def uci_to_move(text: str) -> Optional[chess.Move]:
    """Parse coordinate notation ("e2e4", "a7a8q"); None if malformed."""
    if not text or len(text) < 4:
        return None
    try:
        return chess.Move.from_uci(text)
    except ValueError:
        return None


def collect_lines(infos: Iterable[Dict], board: chess.Board, limit: int = ALTERNATIVES) -> List[Dict]:
    """Turn accumulated info reports into ranked candidate lines.

    Reports are keyed by their multipv index (1 when absent); a later
    report for the same index replaces an earlier one. The first move of
    each line is converted to SAN on a fresh copy of `board`, and the
    score is normalized to White's perspective.
    """
    best_by_pv: Dict[int, Dict] = {}
    for info in infos:
        pv = info.get("pv")
        if not pv:
            continue
        value = score_value(info.get("score"))
        if value is None:
            continue

        first = pv[0]
        if isinstance(first, str):
            first = uci_to_move(first)
        if first is None:
            continue

        scratch = board.copy()
        if first not in scratch.legal_moves:
            continue
        best_by_pv[int(info.get("multipv", 1))] = {
            "san": scratch.san(first),
            "from": chess.square_name(first.from_square),
            "to": chess.square_name(first.to_square),
            "flags": move_flags(scratch, first),
            "score": normalize_to_white(value, board),
        }

    return [best_by_pv[k] for k in sorted(best_by_pv)][:limit]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class StockfishEngine:
    """Per-request Stockfish analysis for move coaching.

    Nothing is kept running between calls: each analysis owns its
    process from start to quit, so concurrent requests never share an
    engine.
    """

    def __init__(
        self,
        sf_path: Optional[str] = None,
        depth: int = 12,
        enabled: bool = True,
        timeout: Optional[float] = 10.0,
        threads: int = 1,
        hash_mb: int = 16,
        popen=None,
    ):
        self._sf_path = str(sf_path or os.environ.get("STOCKFISH_PATH", DEFAULT_SF_PATH))
        self.depth = depth
        self.enabled = enabled
        self._timeout = timeout or DEFAULT_TIMEOUT
        self._threads = threads
        self._hash_mb = hash_mb
        self._popen = popen or chess.engine.SimpleEngine.popen_uci

    def _open(self) -> chess.engine.SimpleEngine:
        try:
            engine = self._popen(self._sf_path, timeout=self._timeout)
        except (OSError,) + _ENGINE_FAILURES as e:
            raise EngineAnalysisError(f"Could not start {self._sf_path}: {e}") from e
        return engine

    def _run(self, board: chess.Board, multipv: int) -> List[Dict]:
        """Search `board` and return the final report of every line.

        The engine is told to stop after `timeout` seconds; SimpleEngine
        gives up waiting `timeout` seconds after that and raises, so an
        engine that stops answering cannot hold the caller.
        """
        engine = self._open()
        try:
            engine.configure({"Threads": self._threads, "Hash": self._hash_mb})
            limit = chess.engine.Limit(depth=self.depth, time=self._timeout)
            infos = engine.analyse(board, limit, multipv=multipv)
            infos = [info for info in infos if "pv" in info]
            log.debug(f"Engine returned {len(infos)} lines (depth {self.depth}, multipv {multipv})")
            return infos
        except _ENGINE_FAILURES as e:
            raise EngineAnalysisError(f"Engine failed: {e or type(e).__name__}") from e
        finally:
            try:
                engine.quit()
            except _ENGINE_FAILURES:
                engine.close()

    def analyze_fen(self, fen: str, multipv: int = 1) -> Dict:
        """Analyse a position.

        Returns:
            {"bestmove": uci or None, "score": White-perspective int,
             "lines": up to `multipv` candidate lines, best first}
        """
        if not self.enabled:
            raise EngineAnalysisError("Stockfish disabled")

        board = chess.Board(fen)
        infos = self._run(board, multipv)
        lines = collect_lines(infos, board, limit=multipv)
        if not lines:
            if board.is_game_over():
                value = 0
                if board.is_checkmate():
                    value = normalize_to_white(-MATE_VALUE, board)
                return {"bestmove": None, "score": value, "lines": []}
            raise EngineAnalysisError("Engine produced no usable lines")

        best_move = board.parse_san(lines[0]["san"]).uci()
        return {"bestmove": best_move, "score": lines[0]["score"], "lines": lines}

    def explain_move_quality(self, fen: str, san: str) -> AnalysisResult:
        """Judge `san` played from `fen` against Stockfish's best lines."""
        board = chess.Board(fen)
        played = find_legal_move(board, san)

        candidates = self.analyze_fen(fen, multipv=ALTERNATIVES)
        if played is None:
            return AnalysisResult(
                verdict="illegal",
                message=ILLEGAL_MESSAGE,
                alternatives=candidates["lines"],
                source=SOURCE_ENGINE,
            )

        after = board.copy()
        after.push(played)
        played_eval = self.analyze_fen(after.fen(), multipv=1)

        best = candidates["lines"][0] if candidates["lines"] else None
        best_score = best["score"] if best else played_eval["score"]
        delta = abs(best_score - played_eval["score"])

        verdict = classify_delta(delta, ENGINE_GOOD_THRESHOLD, ENGINE_INACCURACY_THRESHOLD)
        message = {
            "best": "Great move. It matches Stockfish's best play in this position.",
            "good": "Playable move, but Stockfish finds a stronger continuation.",
            "inaccuracy": "This move gives away notable evaluation compared with the best continuation.",
        }[verdict]

        targets = identify_targets(after, board.turn)
        primary = targets[0] if targets else None

        return AnalysisResult(
            verdict=verdict,
            message=message,
            alternatives=candidates["lines"],
            score_delta=delta,
            strategic_idea=describe_strategic_idea(board, played, san, primary),
            primary_target=primary,
            target_summary=summarize_target(
                primary, "Main target: improve activity and control key squares."
            ),
            source=SOURCE_ENGINE,
        )
