"""
Flat JSON store of rating profiles: profile id -> profile dict.

Database: data/profiles.json (overridable via PROFILE_PATH)
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional


log = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_PROFILE_PATH = _PROJECT_ROOT / "data" / "profiles.json"


class ProfileStore:
    """Reads and writes the whole mapping on every call.

    Writes go to a temporary file that is then moved into place, so a
    crash mid-write never leaves a truncated store. Updates made through
    one ProfileStore are serialized; separate processes sharing the file
    are not (last write wins).
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.environ.get("PROFILE_PATH", DEFAULT_PROFILE_PATH))
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Dict]:
        """Whole mapping; a missing or unreadable file counts as empty."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.warning(f"Could not read profiles from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)

    def get(self, profile_id: str) -> Optional[Dict]:
        return self.load().get(profile_id)

    def put(self, profile_id: str, profile: Dict) -> None:
        with self._lock:
            data = self.load()
            data[profile_id] = profile
            self._save(data)

    def update(self, profile_id: str, fn: Callable[[Optional[Dict]], Dict]) -> Dict:
        """Read-modify-write one profile; `fn` gets the current value or None."""
        with self._lock:
            data = self.load()
            updated = fn(data.get(profile_id))
            data[profile_id] = updated
            self._save(data)
        return updated

    def vs_bot(self) -> List[Dict]:
        """Every stored bot-game profile, each with its id attached."""
        profiles = []
        for profile_id, profile in self.load().items():
            if not isinstance(profile, dict):
                continue
            if profile.get("gameType") in ("vs-bot", "bot"):
                profiles.append({"id": profile_id, **profile})
        return profiles
