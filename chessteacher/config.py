"""
Server settings, loaded from environment variables.

Every value has a default so the server starts with no configuration;
play_online.py lets the command line override the common ones.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from chessteacher.profile_store import DEFAULT_PROFILE_PATH


log = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(environ: Mapping, key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    log.warning(f"Ignoring {key}={raw!r}: expected a boolean")
    return default


def _env_number(environ: Mapping, key: str, default, cast=float):
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        log.warning(f"Ignoring {key}={raw!r}: expected a number")
        return default


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    stockfish_path: str = "stockfish"
    stockfish_depth: int = 12
    stockfish_enabled: bool = True
    stockfish_timeout: float = 10.0
    profile_path: str = str(DEFAULT_PROFILE_PATH)
    admin_username: str = "admin"
    admin_password: str = ""
    admin_token_ttl: float = 12 * 3600
    require_admin_for_profile: bool = False
    bot_reply_delay: float = 0.35
    rating_no_decrease: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            host=env.get("HOST", defaults.host),
            port=_env_number(env, "PORT", defaults.port, int),
            stockfish_path=env.get("STOCKFISH_PATH", defaults.stockfish_path),
            stockfish_depth=_env_number(env, "STOCKFISH_DEPTH", defaults.stockfish_depth, int),
            stockfish_enabled=_env_bool(env, "STOCKFISH_ENABLED", defaults.stockfish_enabled),
            stockfish_timeout=_env_number(env, "STOCKFISH_TIMEOUT", defaults.stockfish_timeout),
            profile_path=env.get("PROFILE_PATH", defaults.profile_path),
            admin_username=env.get("ADMIN_USERNAME", defaults.admin_username),
            admin_password=env.get("ADMIN_PASSWORD", defaults.admin_password),
            admin_token_ttl=_env_number(env, "ADMIN_TOKEN_TTL", defaults.admin_token_ttl),
            require_admin_for_profile=_env_bool(
                env, "REQUIRE_ADMIN_FOR_PROFILE", defaults.require_admin_for_profile
            ),
            bot_reply_delay=_env_number(env, "BOT_REPLY_DELAY", defaults.bot_reply_delay),
            rating_no_decrease=_env_bool(env, "RATING_NO_DECREASE", defaults.rating_no_decrease),
        )
