import chess
import pytest

from chessteacher.bots import best_move_policy
from chessteacher.rating import HEAD_TO_HEAD, VS_BOT
from chessteacher.session import SessionManager, parse_client_move


@pytest.fixture
def manager(recorder, scheduler):
    return SessionManager(recorder, scheduler, bot_reply_delay=0.1, bot_policy=best_move_policy)


def states(recorder):
    return [payload for event, payload, _ in recorder.events if event == "room-state"]


# ---------------------------------------------------------------------------
# Joining and roles
# ---------------------------------------------------------------------------

def test_first_joiner_is_admin(manager, recorder):
    assert manager.join("a", "r1", "Ann") is True
    assert manager.join("b", "r1", "Bob") is False
    roles = recorder.named("role-state")
    assert roles == [
        ("role-state", {"isAdmin": True}, "a"),
        ("role-state", {"isAdmin": False}, "b"),
    ]
    state = states(recorder)[-1]
    assert [p["name"] for p in state["players"]] == ["Ann", "Bob"]
    assert state["fen"] == chess.STARTING_FEN
    assert state["turn"] == "w"
    assert state["mode"] == HEAD_TO_HEAD


def test_room_state_goes_to_room_and_role_to_sender(manager, recorder):
    manager.join("a", "r1")
    assert recorder.events[0][2] == "a"
    assert recorder.events[1] == ("room-state", manager.room_state("r1"), "r1")


def test_default_player_names(manager):
    manager.join("a", "r1")
    manager.join("b", "r1", "  ")
    assert [p["name"] for p in manager.room_state("r1")["players"]] == ["Player1", "Player2"]


def test_rejoin_does_not_duplicate(manager):
    manager.join("a", "r1", "Ann")
    assert manager.join("a", "r1", "Ann") is True
    assert len(manager.room_state("r1")["players"]) == 1


def test_matching_credential_moves_admin(manager):
    assert manager.join("a", "r1", admin_credential="k1") is True
    assert manager.join("b", "r1") is False
    assert manager.join("c", "r1", admin_credential="wrong") is False
    assert manager.join("d", "r1", admin_credential="k1") is True
    assert manager.get_room("r1").admin_sid == "d"


def test_non_ascii_credential(manager, recorder):
    assert manager.join("a", "r1", admin_credential="clé-secrète") is True
    assert manager.join("b", "r1", admin_credential="autre-clé") is False
    assert manager.join("c", "r1", admin_credential="clé-secrète") is True
    assert recorder.last("role-state") == ("role-state", {"isAdmin": True}, "c")
    assert [p["name"] for p in states(recorder)[-1]["players"]] == [
        "Player1", "Player2", "Player3",
    ]


@pytest.mark.parametrize("credential", [12345, ["k1"], {"token": "k1"}, ""])
def test_non_string_credential_is_ignored(manager, recorder, credential):
    manager.join("a", "r1", admin_credential="k1")
    assert manager.join("b", "r1", admin_credential=credential) is False
    assert recorder.last("role-state") == ("role-state", {"isAdmin": False}, "b")
    assert states(recorder)[-1]["players"][-1]["name"] == "Player2"
    assert manager.get_room("r1").admin_sid == "a"


def test_non_string_credential_on_first_join(manager):
    assert manager.join("a", "r1", admin_credential=12345) is True
    assert manager.get_room("r1").admin_credential is None


def test_checked_credentials(recorder, scheduler):
    valid = {"good-token"}
    manager = SessionManager(recorder, scheduler, credential_check=lambda c: c in valid)

    assert manager.join("a", "r1") is True
    # An unverified credential neither claims the room nor takes it over
    assert manager.join("b", "r1", admin_credential="made-up") is False
    assert manager.get_room("r1").admin_credential is None
    assert manager.get_room("r1").admin_sid == "a"

    assert manager.join("c", "r1", admin_credential="good-token") is True
    assert manager.get_room("r1").admin_sid == "c"


def test_rooms_are_independent(manager):
    manager.join("a", "r1")
    assert manager.join("b", "r2") is True
    assert sorted(manager.room_ids()) == ["r1", "r2"]


# ---------------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------------

def test_move_is_broadcast_with_last_move(manager, recorder):
    manager.join("a", "r1", "Ann")
    assert manager.make_move("a", "r1", "e4")
    state = states(recorder)[-1]
    assert state["turn"] == "b"
    assert state["lastMoveBy"] == "Ann"
    assert state["lastMove"]["san"] == "e4"
    assert state["lastMove"]["flags"] == "b"
    assert state["lastMove"]["color"] == "w"
    assert state["history"] == [
        {"san": "e4", "from": "e2", "to": "e4", "flags": "b", "by": "Ann"},
    ]
    assert state["gameOver"] is False


def test_move_formats(manager):
    manager.join("a", "r1")
    assert manager.make_move("a", "r1", {"from": "e2", "to": "e4", "promotion": "q"})
    assert manager.make_move("a", "r1", "e7e5")
    assert manager.make_move("a", "r1", "Nf3")
    assert len(manager.room_state("r1")["history"]) == 3


def test_illegal_move_is_reported_privately(manager, recorder):
    manager.join("a", "r1")
    before = len(recorder.events)
    assert not manager.make_move("a", "r1", "e5")
    assert recorder.events[before:] == [("invalid-move", {"move": "e5"}, "a")]
    assert manager.room_state("r1")["history"] == []


def test_unknown_room_is_ignored(manager, recorder):
    assert not manager.make_move("a", "nowhere", "e4")
    assert not manager.request_bot_move("nowhere", "bot-200")
    assert recorder.events == []


def test_moves_after_mate_are_rejected(manager, recorder):
    manager.join("a", "r1")
    for san in ("f3", "e5", "g4", "Qh4#"):
        assert manager.make_move("a", "r1", san)
    assert states(recorder)[-1]["gameOver"] is True
    assert not manager.make_move("a", "r1", "a3")


def test_threefold_repetition_ends_the_game(manager, recorder):
    manager.join("a", "r1")
    shuffle = ["Nf3", "Nf6", "Ng1", "Ng8"] * 2
    for san in shuffle[:-1]:
        assert manager.make_move("a", "r1", san)
    assert states(recorder)[-1]["gameOver"] is False

    assert manager.make_move("a", "r1", shuffle[-1])
    assert states(recorder)[-1]["gameOver"] is True
    assert not manager.make_move("a", "r1", "e4")


def test_no_bot_reply_after_repetition(manager, scheduler):
    manager.join("a", "r1", mode=VS_BOT, bot="bot-200")
    room = manager.get_room("r1")
    for san in ["Nf3", "Nf6", "Ng1", "Ng8"] * 2:
        room.push_move(room.board.parse_san(san), by="setup")

    # Third occurrence of the position after 1.Nf3
    assert manager.make_move("a", "r1", "Nf3") is True
    assert manager.room_state("r1")["gameOver"] is True
    assert scheduler.calls == []
    board = chess.Board("7k/P7/8/8/8/8/8/K7 w - - 0 1")
    move = parse_client_move(board, {"from": "a7", "to": "a8", "promotion": "n"})
    assert move.promotion == chess.KNIGHT


def test_parse_client_move_rejects_junk():
    board = chess.Board()
    assert parse_client_move(board, "zz") is None
    assert parse_client_move(board, {"from": "z9", "to": "e4"}) is None
    assert parse_client_move(board, {"to": "e4"}) is None
    assert parse_client_move(board, 42) is None
    assert parse_client_move(board, "") is None


# ---------------------------------------------------------------------------
# Bot games
# ---------------------------------------------------------------------------

def test_vs_bot_reply_is_scheduled(manager, recorder, scheduler):
    manager.join("a", "r1", "Ann", mode="bot", bot="bot-200")
    room = manager.get_room("r1")
    assert room.mode == VS_BOT
    assert room.bot.id == "bot-200"

    manager.make_move("a", "r1", "e4")
    assert len(scheduler.calls) == 1
    delay, _, args = scheduler.calls[0]
    assert delay == 0.1
    assert args == ("r1", 1)

    # Still the bot's turn: the human has to wait
    assert not manager.make_move("a", "r1", "e5")

    scheduler.run_all()
    state = states(recorder)[-1]
    assert len(state["history"]) == 2
    assert state["lastMoveBy"] == "Pawn Rookie"
    assert state["turn"] == "w"


def test_vs_bot_without_bot_uses_default(manager):
    manager.join("a", "r1", mode="vs-bot")
    assert manager.get_room("r1").bot.id == "bot-1200"


def test_stale_scheduled_reply_does_nothing(manager, recorder, scheduler):
    manager.join("a", "r1", mode="vs-bot", bot="bot-200")
    manager.make_move("a", "r1", "e4")
    assert manager.request_bot_move("r1")
    count = len(states(recorder))

    scheduler.run_all()
    assert len(states(recorder)) == count
    assert len(manager.room_state("r1")["history"]) == 2


def test_bot_move_rejected_on_human_turn(manager):
    manager.join("a", "r1", mode="vs-bot", bot="bot-200")
    assert not manager.request_bot_move("r1")


def test_bot_move_ignored_in_head_to_head(manager):
    manager.join("a", "r1")
    manager.make_move("a", "r1", "e4")
    assert not manager.request_bot_move("r1", "bot-200")


def test_position_change_during_search_discards_result(recorder, scheduler):
    calls = []

    def racing_policy(ranked, profile):
        if not calls:
            calls.append(profile)
            # Another request lands while the first is still thinking
            assert manager.request_bot_move("r1")
        return ranked[0]

    manager = SessionManager(recorder, scheduler, bot_policy=racing_policy)
    manager.join("a", "r1", mode="vs-bot", bot="bot-200")
    manager.make_move("a", "r1", "e4")
    assert not manager.request_bot_move("r1")
    assert len(manager.room_state("r1")["history"]) == 2


def test_bot_is_fixed_once_game_starts(manager, scheduler):
    manager.join("a", "r1", mode="vs-bot", bot="bot-200")
    manager.join("a", "r1", mode="vs-bot", bot="bot-700")
    assert manager.get_room("r1").bot.id == "bot-700"

    manager.make_move("a", "r1", "e4")
    manager.join("b", "r1", mode="vs-bot", bot="bot-3000")
    assert manager.get_room("r1").bot.id == "bot-700"


def test_adaptive_bot_from_profile_payload(manager):
    manager.join("a", "r1", mode="vs-bot", bot={"id": "ann-vs-bot-x", "name": "Ann", "rating": 1800})
    bot = manager.get_room("r1").bot
    assert bot.id == "ann-vs-bot-x"
    assert bot.depth == 2


# ---------------------------------------------------------------------------
# Disconnects
# ---------------------------------------------------------------------------

def test_disconnect_clears_admin_and_drops_empty_room(manager, recorder):
    manager.join("a", "r1")
    manager.join("b", "r1")
    assert manager.disconnect("a") == ["r1"]
    room = manager.get_room("r1")
    assert room.admin_sid is None
    assert [p["id"] for p in states(recorder)[-1]["players"]] == ["b"]

    # Not reassigned to the remaining player
    assert manager.join("c", "r1") is False

    manager.disconnect("b")
    manager.disconnect("c")
    assert manager.room_ids() == []
    assert room.closed


def test_disconnect_unknown_sid(manager):
    manager.join("a", "r1")
    assert manager.disconnect("zzz") == []
    assert manager.room_ids() == ["r1"]


def test_rejoin_after_drop_starts_fresh(manager):
    manager.join("a", "r1")
    manager.make_move("a", "r1", "e4")
    manager.disconnect("a")
    assert manager.join("b", "r1") is True
    assert manager.room_state("r1")["history"] == []


def test_pending_reply_for_dropped_room_is_harmless(manager, scheduler):
    manager.join("a", "r1", mode="vs-bot", bot="bot-200")
    manager.make_move("a", "r1", "e4")
    manager.disconnect("a")
    scheduler.run_all()
    assert manager.room_state("r1") is None
