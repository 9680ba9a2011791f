import pytest

from chessteacher.rating import (
    DEFAULT_RATING,
    HEAD_TO_HEAD,
    RATING_CAP,
    RATING_FLOOR,
    VS_BOT,
    RatingProfile,
    build_style_profile,
    inferred_opponent_rating,
    normalize_mode,
    outcome_score,
    profile_id,
    record_game,
    update_elo,
)


# ---------------------------------------------------------------------------
# Elo
# ---------------------------------------------------------------------------

def test_equal_players():
    assert update_elo(1200, 1200, 1.0, k=32) == 1216
    assert update_elo(1200, 1200, 0.0, k=32) == 1184
    assert update_elo(1000, 1000, 0.5) == 1000


def test_rating_stays_in_bounds():
    assert update_elo(RATING_FLOOR, 3000, 0.0) == RATING_FLOOR
    assert update_elo(RATING_CAP, 100, 1.0) == RATING_CAP
    for current in (100, 900, 2999):
        for opponent in (100, 1500, 3000):
            for score in (0.0, 0.5, 1.0):
                assert RATING_FLOOR <= update_elo(current, opponent, score) <= RATING_CAP


def test_no_decrease_clamp():
    assert update_elo(1500, 1500, 0.0, no_decrease=True) == 1500
    assert update_elo(1500, 1500, 1.0, no_decrease=True) > 1500


def test_half_points_round_up():
    # 1000 + 1 * (1 - 0.5) = 1000.5
    assert update_elo(1000, 1000, 1.0, k=1) == 1001


def test_outcomes():
    assert outcome_score("win") == 1.0
    assert outcome_score("draw") == 0.5
    assert outcome_score("loss") == 0.0
    assert outcome_score(None) == 0.0


def test_opponent_strength():
    assert inferred_opponent_rating(VS_BOT, 1700, 50) == 1700
    assert inferred_opponent_rating(VS_BOT, "1700", 120) == 1340
    assert inferred_opponent_rating(HEAD_TO_HEAD, 1700, 0) == 1400
    assert inferred_opponent_rating(HEAD_TO_HEAD, None, 1000) == 1200


def test_mode_aliases():
    assert normalize_mode("bot") == VS_BOT
    assert normalize_mode("pvp") == HEAD_TO_HEAD
    assert normalize_mode(None) == HEAD_TO_HEAD
    assert normalize_mode("nonsense") == HEAD_TO_HEAD


# ---------------------------------------------------------------------------
# Style
# ---------------------------------------------------------------------------

def test_empty_style_profile():
    assert build_style_profile([]) == {
        "aggression": 0, "tactical": 0, "consistency": 0, "openingSpeed": 0,
    }


def test_style_profile_values():
    moves = [
        {"san": "e4", "flags": "b", "loss": 0},
        {"san": "Bxf7+", "flags": "c", "loss": 40},
    ]
    assert build_style_profile(moves) == {
        "aggression": 100, "tactical": 100, "consistency": 95, "openingSpeed": 100,
    }


def test_style_profile_bounds_on_long_sloppy_game():
    moves = [{"san": "Kh1", "flags": "n", "loss": 5000} for _ in range(40)]
    style = build_style_profile(moves)
    assert style["consistency"] == 1
    assert style["aggression"] == 0
    assert style["openingSpeed"] == 30
    assert all(0 <= v <= 100 for v in style.values())


def test_en_passant_counts_as_capture():
    style = build_style_profile([{"san": "exd6", "flags": "e"}])
    assert style["aggression"] == 100


def test_malformed_entries_are_skipped():
    assert build_style_profile(["e4", "e5", None, 7]) == build_style_profile([])
    mixed = ["e4", {"san": "Bxf7+", "flags": "c", "loss": 40}, ["Nf3"]]
    assert build_style_profile(mixed) == {
        "aggression": 100, "tactical": 100, "consistency": 90, "openingSpeed": 100,
    }


def test_record_game_with_san_list(store):
    _, profile = record_game(store, "Ann", "Bob", moves=["e4", "e5"], result_a="win")
    assert profile.games == 1
    assert profile.style["aggression"] == 0


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def test_profile_ids():
    assert profile_id("Ann", "Bob", "pvp") == "ann-vs-bob"
    assert profile_id(" Ann ", "Bishop Learner", "vs-bot") == "ann-vs-bot-bishop learner"


def test_profile_dict_round_trip_keeps_wire_names():
    profile = RatingProfile(name="Ann vs Bob", rating=950, games=2, avg_loss_a=30.0)
    data = profile.to_dict()
    assert data["avgLossA"] == 30.0
    assert data["gameType"] == HEAD_TO_HEAD
    assert RatingProfile.from_dict(data) == profile


def test_win_then_loss_accumulates(store):
    key, first = record_game(store, "Ann", "Bob", "head-to-head", result_a="win")
    assert key == "ann-vs-bob"
    assert first.games == 1
    assert first.name == "Ann vs Bob"

    _, second = record_game(store, "ann", "bob", "pvp", result_a="loss")
    assert second.games == 2
    opponent = 1200 + (200 - 120 / 2)
    expected = update_elo(
        update_elo(DEFAULT_RATING, opponent, 1.0, k=32, no_decrease=True),
        opponent, 0.0, k=32, no_decrease=True,
    )
    assert second.rating == expected
    assert store.get("ann-vs-bob")["games"] == 2


def test_bot_game_uses_bot_rating(store):
    moves = [{"san": "e4", "flags": "b", "loss": 10}]
    key, profile = record_game(
        store, "Ann", "Knight Cadet", "bot", moves=moves, result_a="win",
        bot_rating=700, avg_loss_a=10, avg_loss_b="oops",
    )
    assert key == "ann-vs-bot-knight cadet"
    assert profile.game_type == VS_BOT
    assert profile.rating == update_elo(DEFAULT_RATING, 700, 1.0, k=32, no_decrease=True)
    assert profile.avg_loss_a == 10
    assert profile.avg_loss_b == 120
    assert profile.style["openingSpeed"] == 100


def test_rating_can_drop_without_clamp(store):
    _, profile = record_game(store, "Ann", "Bob", result_a="loss", no_decrease=False)
    assert profile.rating < DEFAULT_RATING


@pytest.mark.parametrize("result", ["win", "draw", "loss"])
def test_default_clamp_never_lowers(store, result):
    _, profile = record_game(store, "Ann", "Bob", result_a=result)
    assert profile.rating >= DEFAULT_RATING
