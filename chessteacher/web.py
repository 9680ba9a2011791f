"""
Flask + Flask-SocketIO transport.

HTTP:
    GET  /api/bots             preset ladder + adaptive bots from saved profiles
    POST /api/analyze-move     coaching for one move
    POST /api/update-profile   save a finished game into the pairing's profile
    POST /api/admin-login      issue an admin token
    POST /api/admin-logout     revoke the presented token
    GET  /api/health

Socket events (client -> server): join-room, make-move, bot-move.
Game rules live in SessionManager; this module only translates.
"""

import logging
from typing import Optional, Tuple

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, join_room

from chessteacher.auth import AdminAuth, extract_token
from chessteacher.bots import PRESET_BOTS
from chessteacher.coaching import CoachingService
from chessteacher.config import Settings
from chessteacher.engine import StockfishEngine
from chessteacher.profile_store import ProfileStore
from chessteacher.rating import record_game
from chessteacher.session import SessionManager


log = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[StockfishEngine] = None,
    store: Optional[ProfileStore] = None,
) -> Tuple[Flask, SocketIO]:
    """Wire the HTTP routes and socket events around one SessionManager.

    Args:
        settings: Defaults to Settings.from_env().
        engine: Stockfish adapter; built from settings when omitted.
        store: Profile store; built from settings.profile_path when omitted.
    """
    settings = settings or Settings.from_env()
    if engine is None:
        engine = StockfishEngine(
            settings.stockfish_path,
            depth=settings.stockfish_depth,
            enabled=settings.stockfish_enabled,
            timeout=settings.stockfish_timeout,
        )
    store = store or ProfileStore(settings.profile_path)
    coaching = CoachingService(engine)
    auth = AdminAuth(
        settings.admin_username, settings.admin_password, settings.admin_token_ttl
    )
    if settings.require_admin_for_profile and not auth.enabled:
        log.warning("REQUIRE_ADMIN_FOR_PROFILE is set but no ADMIN_PASSWORD: "
                    "profile updates will be refused")

    app = Flask(__name__)
    socketio = SocketIO(app, async_mode="threading", cors_allowed_origins="*")

    def emit(event, payload, to):
        socketio.emit(event, payload, to=to)

    def schedule(delay, fn, *args):
        def run():
            socketio.sleep(delay)
            fn(*args)
        return socketio.start_background_task(run)

    sessions = SessionManager(
        emit,
        schedule,
        bot_reply_delay=settings.bot_reply_delay,
        credential_check=auth.is_valid if auth.enabled else None,
    )

    app.extensions["chessteacher"] = {
        "sessions": sessions,
        "auth": auth,
        "store": store,
        "coaching": coaching,
    }

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------

    @app.route("/api/bots")
    def api_bots():
        return jsonify({
            "preset": [bot.to_dict() for bot in PRESET_BOTS],
            "dynamic": store.vs_bot(),
        })

    @app.route("/api/analyze-move", methods=["POST"])
    def api_analyze_move():
        data = request.get_json(silent=True) or {}
        fen = data.get("fen")
        san = data.get("san")
        if not fen or not san:
            return jsonify({"error": "fen and san are required"}), 400
        try:
            result = coaching.analyze(str(fen), str(san))
        except ValueError as e:
            return jsonify({"error": f"Invalid FEN: {e}"}), 400
        return jsonify(result.to_dict())

    @app.route("/api/update-profile", methods=["POST"])
    def api_update_profile():
        data = request.get_json(silent=True) or {}
        player_a = str(data.get("playerA") or "").strip()
        player_b = str(data.get("playerB") or "").strip()
        if not player_a or not player_b:
            return jsonify({"error": "playerA and playerB are required"}), 400

        if settings.require_admin_for_profile:
            if not auth.is_valid(extract_token(data, request.headers)):
                return jsonify({"error": "Admin credential required"}), 403

        moves = data.get("moves")
        key, profile = record_game(
            store,
            player_a,
            player_b,
            game_type=data.get("gameType"),
            moves=moves if isinstance(moves, list) else [],
            result_a=data.get("resultA"),
            bot_rating=data.get("botRating"),
            avg_loss_a=data.get("avgLossA"),
            avg_loss_b=data.get("avgLossB"),
            no_decrease=settings.rating_no_decrease,
        )
        return jsonify({"id": key, "profile": profile.to_dict()})

    @app.route("/api/admin-login", methods=["POST"])
    def api_admin_login():
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        token = auth.login(username, data.get("password"))
        if token is None:
            return jsonify({"error": "Invalid credentials"}), 401
        return jsonify({"token": token, "username": username})

    @app.route("/api/admin-logout", methods=["POST"])
    def api_admin_logout():
        data = request.get_json(silent=True) or {}
        revoked = auth.revoke(extract_token(data, request.headers))
        return jsonify({"revoked": revoked})

    @app.route("/api/health")
    def api_health():
        return jsonify({
            "status": "ok",
            "rooms": len(sessions.room_ids()),
            "engine": coaching.engine_enabled,
        })

    # -----------------------------------------------------------------------
    # Socket events
    # -----------------------------------------------------------------------

    @socketio.on("join-room")
    def on_join_room(data):
        data = data or {}
        room_id = data.get("roomId")
        if not room_id:
            return
        room_id = str(room_id)
        join_room(room_id)
        sessions.join(
            request.sid,
            room_id,
            player_name=data.get("playerName"),
            mode=data.get("mode"),
            bot=data.get("bot"),
            admin_credential=data.get("adminCredential"),
        )

    @socketio.on("make-move")
    def on_make_move(data):
        data = data or {}
        if data.get("roomId"):
            sessions.make_move(request.sid, str(data["roomId"]), data.get("move"))

    @socketio.on("bot-move")
    def on_bot_move(data):
        data = data or {}
        if data.get("roomId"):
            sessions.request_bot_move(str(data["roomId"]), bot=data.get("bot"))

    @socketio.on("disconnect")
    def on_disconnect(*args):
        left = sessions.disconnect(request.sid)
        if left:
            log.info(f"{request.sid} disconnected from {', '.join(left)}")

    return app, socketio
