"""
Room sessions: authoritative game state for every room.

One Room per room id holds the board, the move log, the roster, the
game mode and the bot in play. SessionManager owns the room registry
and applies every client action; it talks to the transport only through
two callables, so it can run behind Flask-SocketIO or inside a test:

    emit(event, payload, to)        to = room id or connection id
    schedule(delay, fn, *args)      run fn(*args) after `delay` seconds

Locking: the registry lock guards only the room map. Each room has its
own lock, held while its state changes and while the resulting
broadcast is emitted, so members see one strictly ordered stream of
room-state events. Never take a room lock while holding the registry
lock.
"""

import hmac
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import chess

from chessteacher.bots import (
    DEFAULT_BOT_ID,
    PRESETS_BY_ID,
    BlunderPolicy,
    BotProfile,
    choose_bot_move,
    resolve_bot,
)
from chessteacher.evaluation import move_flags
from chessteacher.rating import HEAD_TO_HEAD, VS_BOT, normalize_mode


log = logging.getLogger(__name__)

BOT_COLOR = chess.BLACK
DEFAULT_BOT_REPLY_DELAY = 0.35


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class MoveRecord:
    """One entry of a room's move log. Appended, never changed."""
    san: str
    from_square: str
    to_square: str
    flags: str
    by: str

    def to_dict(self) -> Dict:
        return {
            "san": self.san,
            "from": self.from_square,
            "to": self.to_square,
            "flags": self.flags,
            "by": self.by,
        }


@dataclass
class Player:
    """A connected client; lives as long as its connection."""
    sid: str
    name: str

    def to_dict(self) -> Dict:
        return {"id": self.sid, "name": self.name}


# ---------------------------------------------------------------------------
# Room
# ---------------------------------------------------------------------------

class Room:
    """State of one room. Callers hold `lock` while touching it."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.board = chess.Board()
        self.history: List[MoveRecord] = []
        self.players: List[Player] = []
        self.mode = HEAD_TO_HEAD
        self.bot: Optional[BotProfile] = None
        self.admin_credential: Optional[str] = None
        self.admin_sid: Optional[str] = None
        self.closed = False
        self.lock = threading.Lock()

    @property
    def ply(self) -> int:
        return len(self.history)

    @property
    def is_game_over(self) -> bool:
        # Threefold repetition and the fifty-move rule end the game outright
        return self.board.is_game_over(claim_draw=True)

    @property
    def is_bot_turn(self) -> bool:
        return self.mode == VS_BOT and self.board.turn == BOT_COLOR

    def player(self, sid: str) -> Optional[Player]:
        for player in self.players:
            if player.sid == sid:
                return player
        return None

    def push_move(self, move: chess.Move, by: str) -> Tuple[MoveRecord, Dict]:
        """Play a legal move and log it.

        Returns:
            (MoveRecord, last-move dict for the broadcast)

        Raises:
            ValueError: If the move is not legal.
        """
        if move not in self.board.legal_moves:
            raise ValueError(f"Illegal move: {move} in position {self.board.fen()}")

        piece = self.board.piece_at(move.from_square)
        record = MoveRecord(
            san=self.board.san(move),
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            flags=move_flags(self.board, move),
            by=by,
        )
        last_move = {
            "color": "w" if self.board.turn == chess.WHITE else "b",
            "from": record.from_square,
            "to": record.to_square,
            "piece": piece.symbol().lower() if piece else None,
            "san": record.san,
            "flags": record.flags,
        }
        if move.promotion is not None:
            last_move["promotion"] = chess.piece_symbol(move.promotion)

        self.board.push(move)
        self.history.append(record)
        return record, last_move

    def state(self, last_move: Optional[Dict] = None, last_move_by: Optional[str] = None) -> Dict:
        state = {
            "fen": self.board.fen(),
            "players": [p.to_dict() for p in self.players],
            "history": [r.to_dict() for r in self.history],
            "turn": "w" if self.board.turn == chess.WHITE else "b",
            "mode": self.mode,
            "gameOver": self.is_game_over,
        }
        if last_move is not None:
            state["lastMove"] = last_move
            state["lastMoveBy"] = last_move_by
        return state


def parse_client_move(board: chess.Board, move) -> Optional[chess.Move]:
    """Resolve what a client sent into a legal move, or None.

    Accepts SAN ("Nf3"), UCI ("g1f3") or {"from", "to", "promotion"}.
    A promotion piece on a move that is not a promotion is ignored, the
    way the browser client sends it on every move.
    """
    if isinstance(move, Mapping):
        try:
            from_sq = chess.parse_square(str(move["from"]))
            to_sq = chess.parse_square(str(move["to"]))
            promo = move.get("promotion")
            promotion = chess.Piece.from_symbol(str(promo)).piece_type if promo else None
        except (KeyError, ValueError):
            return None
        candidate = chess.Move(from_sq, to_sq, promotion)
        if candidate in board.legal_moves:
            return candidate
        plain = chess.Move(from_sq, to_sq)
        return plain if plain in board.legal_moves else None

    if isinstance(move, str) and move:
        try:
            return board.parse_san(move)
        except ValueError:
            pass
        try:
            candidate = chess.Move.from_uci(move)
        except ValueError:
            return None
        return candidate if candidate in board.legal_moves else None

    return None


def _timer_schedule(delay: float, fn: Callable, *args) -> threading.Timer:
    timer = threading.Timer(delay, fn, args=args)
    timer.daemon = True
    timer.start()
    return timer


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class SessionManager:
    """Registry of rooms and the rules for acting on them."""

    def __init__(
        self,
        emit: Callable,
        schedule: Optional[Callable] = None,
        bot_reply_delay: float = DEFAULT_BOT_REPLY_DELAY,
        bot_policy: Optional[BlunderPolicy] = None,
        credential_check: Optional[Callable[[str], bool]] = None,
    ):
        self._emit = emit
        self._schedule = schedule or _timer_schedule
        self.bot_reply_delay = bot_reply_delay
        self._bot_policy = bot_policy
        # When set, an admin credential that fails it is ignored
        self._credential_check = credential_check
        self._rooms: Dict[str, Room] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._registry_lock:
            return self._rooms.get(room_id)

    def room_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._rooms)

    def room_state(self, room_id: str) -> Optional[Dict]:
        room = self.get_room(room_id)
        if room is None:
            return None
        with room.lock:
            return room.state()

    def _get_or_create(self, room_id: str) -> Room:
        with self._registry_lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(room_id)
                self._rooms[room_id] = room
                log.info(f"Room {room_id}: created")
            return room

    def _drop(self, room: Room) -> None:
        # Caller holds room.lock
        room.closed = True
        with self._registry_lock:
            if self._rooms.get(room.room_id) is room:
                del self._rooms[room.room_id]
        log.info(f"Room {room.room_id}: empty, dropped")

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    def join(
        self,
        sid: str,
        room_id: str,
        player_name: Optional[str] = None,
        mode: Optional[str] = None,
        bot=None,
        admin_credential: Optional[str] = None,
    ) -> bool:
        """Add `sid` to the room (creating it if needed).

        Sends role-state privately, then room-state to the whole room.

        Returns:
            True if `sid` is now the room's administrator.
        """
        while True:
            room = self._get_or_create(room_id)
            with room.lock:
                # Lost a race with the last player leaving; start over
                if room.closed:
                    continue

                if room.player(sid) is None:
                    name = (player_name or "").strip() or f"Player{len(room.players) + 1}"
                    room.players.append(Player(sid=sid, name=name))
                    log.info(f"Room {room_id}: {name} joined ({len(room.players)} player(s))")

                if normalize_mode(mode) == VS_BOT:
                    room.mode = VS_BOT
                    self._select_bot(room, bot)

                is_admin = self._grant_admin(room, sid, admin_credential)

                self._emit("role-state", {"isAdmin": is_admin}, to=sid)
                self._emit("room-state", room.state(), to=room_id)
                return is_admin

    def _select_bot(self, room: Room, bot) -> None:
        # The bot is fixed once the game has started
        profile = resolve_bot(bot)
        if room.bot is not None and (room.history or profile is None):
            return
        room.bot = profile or PRESETS_BY_ID[DEFAULT_BOT_ID]
        log.info(f"Room {room.room_id}: playing {room.bot.name} ({room.bot.rating})")

    def _grant_admin(self, room: Room, sid: str, credential) -> bool:
        # Clients may send any JSON value; only non-empty strings count
        if not isinstance(credential, str) or not credential:
            credential = None
        elif self._credential_check is not None and not self._credential_check(credential):
            log.warning(f"Room {room.room_id}: rejected admin credential from {sid}")
            credential = None

        if credential and room.admin_credential is None:
            room.admin_credential = credential

        if (credential and room.admin_credential
                and hmac.compare_digest(credential.encode(), room.admin_credential.encode())):
            room.admin_sid = sid
        elif room.admin_sid is None and len(room.players) == 1:
            room.admin_sid = sid

        is_admin = room.admin_sid == sid
        if is_admin:
            log.info(f"Room {room.room_id}: {sid} is administrator")
        return is_admin

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def make_move(self, sid: str, room_id: str, move) -> bool:
        """Apply a human move; unknown rooms are ignored.

        Returns:
            True if the move was played.
        """
        room = self.get_room(room_id)
        if room is None:
            return False

        with room.lock:
            if room.closed:
                return False

            parsed = None
            if not room.is_bot_turn and not room.is_game_over:
                parsed = parse_client_move(room.board, move)
            if parsed is None:
                log.debug(f"Room {room_id}: rejected move {move!r} from {sid}")
                self._emit("invalid-move", {"move": move}, to=sid)
                return False

            player = room.player(sid)
            by = player.name if player else "Player"
            _, last_move = room.push_move(parsed, by=by)
            self._emit(
                "room-state",
                room.state(last_move=last_move, last_move_by=by),
                to=room_id,
            )

            if room.is_bot_turn and not room.is_game_over:
                self._schedule(
                    self.bot_reply_delay, self._scheduled_bot_move, room_id, room.ply
                )
        return True

    def request_bot_move(self, room_id: str, bot=None, expected_ply: Optional[int] = None) -> bool:
        """Let the room's bot play if it is its turn.

        The search runs on a copy of the board without the room lock;
        the result is applied only if nothing was played meanwhile.

        Args:
            bot: Used only when the room has no bot recorded yet.
            expected_ply: If given, abort unless the move log still has
                exactly this many entries.

        Returns:
            True if the bot moved.
        """
        room = self.get_room(room_id)
        if room is None:
            return False

        with room.lock:
            if not self._bot_may_move(room, expected_ply):
                return False
            if room.bot is None:
                room.bot = resolve_bot(bot)
                if room.bot is None:
                    return False
            profile = room.bot
            board = room.board.copy()
            ply = room.ply

        choice = choose_bot_move(board, profile, self._bot_policy)
        if choice is None:
            return False

        with room.lock:
            if not self._bot_may_move(room, ply):
                log.debug(f"Room {room_id}: position changed while {profile.name} was thinking")
                return False
            _, last_move = room.push_move(choice.move, by=profile.name)
            log.info(f"Room {room_id}: {profile.name} plays {choice.san} ({choice.score})")
            self._emit(
                "room-state",
                room.state(last_move=last_move, last_move_by=profile.name),
                to=room_id,
            )
        return True

    def _bot_may_move(self, room: Room, expected_ply: Optional[int]) -> bool:
        if room.closed or not room.is_bot_turn or room.is_game_over:
            return False
        return expected_ply is None or room.ply == expected_ply

    def _scheduled_bot_move(self, room_id: str, expected_ply: int) -> None:
        # Runs on a timer thread; nothing above it would log a failure
        try:
            self.request_bot_move(room_id, expected_ply=expected_ply)
        except Exception as e:
            log.error(f"Room {room_id}: scheduled bot move failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    def disconnect(self, sid: str) -> List[str]:
        """Remove `sid` from every room it is in.

        Returns:
            Ids of the rooms it left.
        """
        with self._registry_lock:
            rooms = list(self._rooms.values())

        left = []
        for room in rooms:
            with room.lock:
                if room.closed or room.player(sid) is None:
                    continue
                room.players = [p for p in room.players if p.sid != sid]
                if room.admin_sid == sid:
                    room.admin_sid = None
                    log.info(f"Room {room.room_id}: administrator left")
                left.append(room.room_id)

                if not room.players:
                    self._drop(room)
                else:
                    self._emit("room-state", room.state(), to=room.room_id)
        return left
