"""
Coaching entry point: Stockfish first, heuristic coach as the fallback.

Nothing raised by the engine path gets past this boundary. A missing
binary, a crashed process or garbled output all degrade to the local
analysis, tagged with source "lightweight".
"""

import logging
from typing import Optional

import chess

from chessteacher import coach
from chessteacher.coach import SOURCE_LIGHTWEIGHT, AnalysisResult
from chessteacher.engine import EngineAnalysisError, StockfishEngine


log = logging.getLogger(__name__)


class CoachingService:
    """Explains move quality for the analyze-move endpoint."""

    def __init__(self, engine: Optional[StockfishEngine] = None):
        self.engine = engine

    @property
    def engine_enabled(self) -> bool:
        return self.engine is not None and self.engine.enabled

    def analyze(self, fen: str, san: str) -> AnalysisResult:
        """Judge `san` played from `fen`.

        Raises:
            ValueError: If `fen` is not a valid position (rejected input,
                not an engine failure).
        """
        chess.Board(fen)

        if self.engine_enabled:
            try:
                return self.engine.explain_move_quality(fen, san)
            except EngineAnalysisError as e:
                log.warning(f"Engine analysis failed, using heuristic coach: {e}")

        result = coach.explain_move_quality(fen, san)
        result.source = SOURCE_LIGHTWEIGHT
        return result
