"""
Scripted opponents: the preset rating ladder and move selection.

A bot ranks its top candidates with the adversarial search at its own
depth, then a blunder policy decides whether to play the best one or
deliberately fall back to the weakest of them. Lower tiers blunder more
often, which is what makes the ladder feel different to play against.
"""

import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

import chess

from chessteacher.search import RankedMove, rank_moves


BOT_CANDIDATES = 6
MIN_CANDIDATES_TO_BLUNDER = 3


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BotProfile:
    """Immutable description of a scripted opponent."""
    id: str
    name: str
    rating: int
    depth: int
    blunder_chance: float

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"depth must be >= 0, got {self.depth}")
        if not 0.0 <= self.blunder_chance <= 1.0:
            raise ValueError(
                f"blunder_chance must be in [0, 1], got {self.blunder_chance}"
            )

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "rating": self.rating,
            "depth": self.depth,
            "blunderChance": self.blunder_chance,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "BotProfile":
        return cls(
            id=str(data.get("id") or f"bot-{int(data['rating'])}"),
            name=str(data.get("name") or "Bot"),
            rating=int(data["rating"]),
            depth=int(data["depth"]),
            blunder_chance=float(data.get("blunderChance", 0.0)),
        )

    @classmethod
    def from_rating_profile(cls, profile_id: str, profile: Mapping) -> "BotProfile":
        """Build a bot that plays at a stored adaptive rating.

        Depth comes from the highest preset tier at or below the rating;
        blunder chance is interpolated between that tier and the next.
        """
        rating = int(profile.get("rating", PRESET_BOTS[0].rating))
        lower = PRESET_BOTS[0]
        upper = PRESET_BOTS[-1]
        for tier in PRESET_BOTS:
            if tier.rating <= rating:
                lower = tier
        for tier in reversed(PRESET_BOTS):
            if tier.rating >= rating:
                upper = tier

        if upper.rating == lower.rating:
            blunder = lower.blunder_chance
        else:
            t = (rating - lower.rating) / (upper.rating - lower.rating)
            blunder = lower.blunder_chance + t * (upper.blunder_chance - lower.blunder_chance)

        return cls(
            id=profile_id,
            name=str(profile.get("name") or profile_id),
            rating=rating,
            depth=lower.depth,
            blunder_chance=round(min(1.0, max(0.0, blunder)), 4),
        )


PRESET_BOTS: List[BotProfile] = [
    BotProfile("bot-200", "Pawn Rookie", 200, 1, 0.45),
    BotProfile("bot-700", "Knight Cadet", 700, 1, 0.25),
    BotProfile("bot-1200", "Bishop Learner", 1200, 2, 0.15),
    BotProfile("bot-1700", "Rook Strategist", 1700, 2, 0.10),
    BotProfile("bot-2200", "Queen Master", 2200, 3, 0.06),
    BotProfile("bot-2600", "Grandmaster Ghost", 2600, 3, 0.02),
    BotProfile("bot-3000", "Impossible 3000", 3000, 4, 0.0),
]

PRESETS_BY_ID: Dict[str, BotProfile] = {bot.id: bot for bot in PRESET_BOTS}

DEFAULT_BOT_ID = "bot-1200"


def resolve_bot(payload) -> Optional[BotProfile]:
    """Turn whatever the client sent as `bot` into a BotProfile.

    Accepts a BotProfile, a preset id string, a preset/explicit profile
    dict (with depth), or a stored rating-profile dict (rating only).
    Returns None when nothing usable was sent.
    """
    if payload is None:
        return None
    if isinstance(payload, BotProfile):
        return payload
    if isinstance(payload, str):
        return PRESETS_BY_ID.get(payload)
    if not isinstance(payload, Mapping):
        return None

    bot_id = payload.get("id")
    if bot_id in PRESETS_BY_ID:
        return PRESETS_BY_ID[bot_id]
    try:
        if "depth" in payload:
            return BotProfile.from_dict(payload)
        if "rating" in payload:
            return BotProfile.from_rating_profile(str(bot_id or "adaptive"), payload)
    except (KeyError, TypeError, ValueError):
        return None
    return None


# ---------------------------------------------------------------------------
# Blunder policies
# ---------------------------------------------------------------------------

BlunderPolicy = Callable[[List[RankedMove], BotProfile], RankedMove]


class RandomBlunderPolicy:
    """Play the worst candidate with probability `profile.blunder_chance`.

    Only blunders when at least three candidates exist, so forced or
    near-forced positions are always played correctly.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def __call__(self, ranked: List[RankedMove], profile: BotProfile) -> RankedMove:
        should_blunder = self._rng.random() < profile.blunder_chance
        if should_blunder and len(ranked) >= MIN_CANDIDATES_TO_BLUNDER:
            return ranked[-1]
        return ranked[0]


def best_move_policy(ranked: List[RankedMove], profile: BotProfile) -> RankedMove:
    return ranked[0]


_default_policy = RandomBlunderPolicy()


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def choose_bot_move(
    board: chess.Board,
    profile: BotProfile,
    policy: Optional[BlunderPolicy] = None,
) -> Optional[RankedMove]:
    """Pick the bot's move for `board`, or None if there is no legal move."""
    ranked = rank_moves(board, depth=profile.depth, limit=BOT_CANDIDATES)
    if not ranked:
        return None
    return (policy or _default_policy)(ranked, profile)
