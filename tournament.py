#!/usr/bin/env python3
"""
Ladder Tournament -- preset bot vs preset bot round-robin.

Plays every pairing of the selected preset bots N times (alternating
colors) and checks that the published ladder ratings are ordered the
way the bots actually play. A running Elo is kept for every bot,
starting at its published rating.

Usage:
    python tournament.py                            # all 7 tiers, 2 games per pairing
    python tournament.py --games 6                  # 6 games per pairing
    python tournament.py --bots bot-200,bot-1200    # only these tiers
    python tournament.py --seed 7                   # reproducible blunders

Output:
    - Console progress and a final standings table
    - JSON summary in data/tournament_results.json
"""

import argparse
import itertools
import json
import math
import random
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import chess
import pandas as pd

from chessteacher.bots import PRESET_BOTS, PRESETS_BY_ID, BotProfile, RandomBlunderPolicy, choose_bot_move
from chessteacher.rating import update_elo


TOURNAMENT_K = 32
DEFAULT_MAX_PLIES = 120

_PROJECT_ROOT = Path(__file__).resolve().parent
RESULTS_PATH = _PROJECT_ROOT / "data" / "tournament_results.json"


# ---------------------------------------------------------------------------
# Play a single game between two bots
# ---------------------------------------------------------------------------

def play_game(
    white: BotProfile,
    black: BotProfile,
    policy: RandomBlunderPolicy,
    max_plies: int = DEFAULT_MAX_PLIES,
    verbose: bool = False,
) -> Dict:
    """Play one game; hitting `max_plies` counts as a draw.

    Returns:
        Dict with result ("1-0", "0-1", "1/2-1/2"), termination, plies,
        elapsed seconds and the SAN move list.
    """
    board = chess.Board()
    moves: List[str] = []
    start = time.time()

    while not board.is_game_over(claim_draw=True) and len(moves) < max_plies:
        profile = white if board.turn == chess.WHITE else black
        choice = choose_bot_move(board, profile, policy)
        if choice is None:
            break
        moves.append(choice.san)
        board.push(choice.move)

    outcome = board.outcome(claim_draw=True)
    if outcome is None:
        result, termination = "1/2-1/2", "max_plies"
    else:
        result, termination = outcome.result(), outcome.termination.name.lower()

    if verbose:
        print(f"    {' '.join(moves)}")

    return {
        "white": white.id,
        "black": black.id,
        "result": result,
        "termination": termination,
        "total_plies": len(moves),
        "elapsed_seconds": round(time.time() - start, 1),
        "moves": moves,
    }


# ---------------------------------------------------------------------------
# Tournament runner
# ---------------------------------------------------------------------------

def standings_table(standings: Dict[str, Dict]) -> pd.DataFrame:
    """Standings as a DataFrame sorted by score, then running Elo."""
    df = pd.DataFrame.from_dict(standings, orient="index")
    df.index.name = "bot"
    df = df.sort_values(["score", "elo"], ascending=False)
    df["elo_change"] = df["elo"] - df["published"]
    return df


def run_tournament(
    bots: List[BotProfile],
    games_per_pairing: int,
    max_plies: int = DEFAULT_MAX_PLIES,
    seed: Optional[int] = None,
    verbose: bool = False,
    out_path: Optional[Path] = RESULTS_PATH,
) -> Dict:
    """Run a round-robin tournament between preset tiers.

    Args:
        bots: Bots taking part.
        games_per_pairing: Games per pairing (alternating colors).
        max_plies: Game length cap; longer games are drawn.
        seed: Seed for the blunder policy.
        out_path: Where to write the JSON summary; None to skip.

    Returns:
        Tournament results dict.
    """
    pairings = list(itertools.combinations(bots, 2))
    policy = RandomBlunderPolicy(random.Random(seed))

    print()
    print("=" * 60)
    print("   LADDER TOURNAMENT")
    print("=" * 60)
    print(f"   Bots: {', '.join(b.name for b in bots)}")
    print(f"   Games per pairing: {games_per_pairing}")
    print(f"   Total games: {len(pairings) * games_per_pairing}")
    print("=" * 60)
    print()

    results = {
        "tournament_start": datetime.now().isoformat(),
        "games_per_pairing": games_per_pairing,
        "max_plies": max_plies,
        "seed": seed,
        "pairings": [],
        "standings": {},
    }

    standings = {
        b.id: {
            "name": b.name, "published": b.rating, "elo": b.rating,
            "wins": 0, "draws": 0, "losses": 0, "score": 0.0, "games_played": 0,
        }
        for b in bots
    }

    total_games = len(pairings) * games_per_pairing
    game_num = 0

    for bot_a, bot_b in pairings:
        pairing = {"a": bot_a.id, "b": bot_b.id, "games": [], "a_wins": 0, "b_wins": 0, "draws": 0}
        print(f"  === {bot_a.name} ({bot_a.rating}) vs {bot_b.name} ({bot_b.rating}) ===")

        for game_idx in range(games_per_pairing):
            game_num += 1
            white, black = (bot_a, bot_b) if game_idx % 2 == 0 else (bot_b, bot_a)

            game = play_game(white, black, policy, max_plies=max_plies, verbose=verbose)
            pairing["games"].append(game)

            white_score = {"1-0": 1.0, "0-1": 0.0}.get(game["result"], 0.5)
            a_score = white_score if white is bot_a else 1.0 - white_score
            if a_score == 1.0:
                pairing["a_wins"] += 1
            elif a_score == 0.0:
                pairing["b_wins"] += 1
            else:
                pairing["draws"] += 1

            for bot, score in ((white, white_score), (black, 1.0 - white_score)):
                s = standings[bot.id]
                s["games_played"] += 1
                s["score"] += score
                if score == 1.0:
                    s["wins"] += 1
                elif score == 0.0:
                    s["losses"] += 1
                else:
                    s["draws"] += 1

            # Both updates use the ratings from before this game
            white_elo = standings[white.id]["elo"]
            black_elo = standings[black.id]["elo"]
            standings[white.id]["elo"] = update_elo(
                white_elo, black_elo, white_score, k=TOURNAMENT_K, floor=-math.inf, cap=math.inf)
            standings[black.id]["elo"] = update_elo(
                black_elo, white_elo, 1.0 - white_score, k=TOURNAMENT_K, floor=-math.inf, cap=math.inf)

            print(f"  Game {game_num}/{total_games}: {white.name} (W) vs {black.name} (B) "
                  f"-> {game['result']} in {game['total_plies']} plies, "
                  f"{game['elapsed_seconds']}s [{game['termination']}]")

        print(f"  Pairing result: {bot_a.name} {pairing['a_wins']}W "
              f"{pairing['draws']}D {pairing['b_wins']}L")
        print()
        results["pairings"].append(pairing)

    results["tournament_end"] = datetime.now().isoformat()
    results["standings"] = standings

    table = standings_table(standings)
    print("=" * 60)
    print("   FINAL STANDINGS")
    print("=" * 60)
    print(table[["name", "published", "elo", "elo_change", "wins", "draws", "losses", "score"]]
          .to_string())
    print("=" * 60)

    if out_path is not None:
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w") as f:
            json.dump(results, f, indent=2, default=str)
        print(f"  Results saved: {out_path}")

    return results


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description="Ladder Tournament -- round-robin between preset bots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python tournament.py                          # all tiers, 2 games each\n"
            "  python tournament.py --games 6                # 6 games per pairing\n"
            "  python tournament.py --bots bot-200,bot-1200  # only these tiers\n"
        ),
    )
    parser.add_argument(
        "--bots", type=str, default=None,
        help="Comma-separated preset ids (default: all "
             f"{len(PRESET_BOTS)} tiers: {', '.join(PRESETS_BY_ID)})",
    )
    parser.add_argument(
        "--games", type=int, default=2,
        help="Number of games per pairing (default: 2)",
    )
    parser.add_argument(
        "--max-plies", type=int, default=DEFAULT_MAX_PLIES,
        help=f"Plies before a game is adjudicated a draw (default: {DEFAULT_MAX_PLIES})",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Random seed for blunders",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Print the move list of every game",
    )
    args = parser.parse_args()

    if args.bots:
        ids = [b.strip() for b in args.bots.split(",") if b.strip()]
        unknown = [b for b in ids if b not in PRESETS_BY_ID]
        if unknown:
            parser.error(f"unknown bot id(s): {', '.join(unknown)}")
        bots = [PRESETS_BY_ID[b] for b in ids]
    else:
        bots = list(PRESET_BOTS)

    if len(bots) < 2:
        parser.error("need at least two bots")

    run_tournament(
        bots=bots,
        games_per_pairing=args.games,
        max_plies=args.max_plies,
        seed=args.seed,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
