"""
Adaptive ratings and play-style profiles.

After a game the client saves the result; the pairing's stored profile
gets an Elo update and a fresh style snapshot computed from the move
quality log of that game.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from chessteacher.profile_store import ProfileStore


log = logging.getLogger(__name__)

RATING_FLOOR = 100
RATING_CAP = 3000
DEFAULT_RATING = 800
PROFILE_K = 32
DEFAULT_AVG_LOSS = 120

HEAD_TO_HEAD = "head-to-head"
VS_BOT = "vs-bot"

_MODE_ALIASES = {
    "head-to-head": HEAD_TO_HEAD,
    "pvp": HEAD_TO_HEAD,
    "vs-bot": VS_BOT,
    "bot": VS_BOT,
}

RESULT_SCORES = {"win": 1.0, "draw": 0.5, "loss": 0.0}


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_mode(mode: Optional[str], default: str = HEAD_TO_HEAD) -> str:
    """Canonical game mode name; accepts the short aliases pvp/bot."""
    if not mode:
        return default
    return _MODE_ALIASES.get(str(mode).strip().lower(), default)


# ---------------------------------------------------------------------------
# Elo
# ---------------------------------------------------------------------------

def update_elo(
    current: float,
    opponent: float,
    score: float,
    k: float = 28,
    floor: int = RATING_FLOOR,
    cap: int = RATING_CAP,
    no_decrease: bool = False,
) -> int:
    """Standard Elo update, clamped to [floor, cap] and rounded.

    Args:
        score: 1 for a win, 0.5 for a draw, 0 for a loss.
        no_decrease: Never return less than `current` (before the
            floor/cap clamp).
    """
    expected = 1 / (1 + 10 ** ((opponent - current) / 400))
    updated = current + k * (score - expected)
    if no_decrease:
        updated = max(current, updated)
    return max(floor, min(cap, _round_half_up(updated)))


def outcome_score(result: Optional[str]) -> float:
    return RESULT_SCORES.get(str(result or "").lower(), 0.0)


def inferred_opponent_rating(game_type: str, bot_rating, avg_loss_a: float) -> float:
    """Opponent strength used for the update.

    A bot game uses the bot's published rating; otherwise the strength
    is guessed from how accurately player A played.
    """
    if game_type == VS_BOT and _is_number(bot_rating):
        return float(bot_rating)
    return 1200 + max(0.0, 200 - avg_loss_a / 2)


# ---------------------------------------------------------------------------
# Style
# ---------------------------------------------------------------------------

def build_style_profile(moves: Sequence[Mapping]) -> Dict[str, int]:
    """Aggregate style statistics over a move-quality log.

    Each entry may carry `san`, `flags` (chess.js letters) and `loss`.
    Entries that are not mappings are ignored. All fields are 0 when no
    entry remains; otherwise every field is in [0, 100] and consistency
    is at least 1.
    """
    profile = {"aggression": 0, "tactical": 0, "consistency": 0, "openingSpeed": 0}
    moves = [move for move in moves if isinstance(move, Mapping)]
    total = len(moves)
    if not total:
        return profile

    captures = 0
    checks = 0
    total_loss = 0.0
    for move in moves:
        flags = str(move.get("flags") or "")
        san = str(move.get("san") or "")
        if "c" in flags or "e" in flags:
            captures += 1
        if "+" in san or "#" in san:
            checks += 1
        loss = move.get("loss")
        if _is_number(loss):
            total_loss += loss

    profile["aggression"] = min(100, _round_half_up(200 * captures / total))
    profile["tactical"] = min(100, _round_half_up(250 * checks / total))
    profile["consistency"] = max(1, min(100, 100 - _round_half_up(total_loss / total / 4)))
    profile["openingSpeed"] = min(100, _round_half_up(100 * 12 / max(total, 12)))
    return profile


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def profile_id(player_a: str, player_b: str, game_type: str) -> str:
    """Deterministic key for a pairing: "a-vs-b" or "a-vs-bot-b"."""
    a = player_a.strip().lower()
    b = player_b.strip().lower()
    if normalize_mode(game_type) == VS_BOT:
        return f"{a}-vs-bot-{b}"
    return f"{a}-vs-{b}"


@dataclass
class RatingProfile:
    """Persisted rating of one pairing."""
    name: str
    rating: int = DEFAULT_RATING
    games: int = 0
    style: Dict[str, int] = field(default_factory=dict)
    avg_loss_a: Optional[float] = None
    avg_loss_b: Optional[float] = None
    game_type: str = HEAD_TO_HEAD

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "rating": self.rating,
            "games": self.games,
            "style": dict(self.style),
            "avgLossA": self.avg_loss_a,
            "avgLossB": self.avg_loss_b,
            "gameType": self.game_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "RatingProfile":
        return cls(
            name=str(data.get("name", "")),
            rating=int(data.get("rating", DEFAULT_RATING)),
            games=int(data.get("games", 0)),
            style=dict(data.get("style") or {}),
            avg_loss_a=data.get("avgLossA"),
            avg_loss_b=data.get("avgLossB"),
            game_type=normalize_mode(data.get("gameType")),
        )


def record_game(
    store: ProfileStore,
    player_a: str,
    player_b: str,
    game_type: str = HEAD_TO_HEAD,
    moves: Optional[List[Mapping]] = None,
    result_a: Optional[str] = None,
    bot_rating=None,
    avg_loss_a=None,
    avg_loss_b=None,
    no_decrease: bool = True,
) -> Tuple[str, RatingProfile]:
    """Apply one finished game to the pairing's stored profile.

    Read-modify-write through the store; creates the profile on first
    save.
    """
    game_type = normalize_mode(game_type)
    key = profile_id(player_a, player_b, game_type)
    loss_a = float(avg_loss_a) if _is_number(avg_loss_a) else DEFAULT_AVG_LOSS
    loss_b = float(avg_loss_b) if _is_number(avg_loss_b) else DEFAULT_AVG_LOSS

    def apply(existing: Optional[Mapping]) -> Dict:
        if existing:
            profile = RatingProfile.from_dict(existing)
        else:
            name = (f"{player_a} vs {player_b} bot" if game_type == VS_BOT
                    else f"{player_a} vs {player_b}")
            profile = RatingProfile(name=name, game_type=game_type)

        opponent = inferred_opponent_rating(game_type, bot_rating, loss_a)
        profile.rating = update_elo(
            profile.rating, opponent, outcome_score(result_a),
            k=PROFILE_K, floor=RATING_FLOOR, cap=RATING_CAP, no_decrease=no_decrease,
        )
        profile.games += 1
        profile.style = build_style_profile(moves or [])
        profile.avg_loss_a = loss_a
        profile.avg_loss_b = loss_b
        profile.game_type = game_type
        return profile.to_dict()

    saved = store.update(key, apply)
    log.info(f"Profile {key}: rating {saved['rating']} after {saved['games']} game(s)")
    return key, RatingProfile.from_dict(saved)
