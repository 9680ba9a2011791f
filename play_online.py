#!/usr/bin/env python3
"""
Chess Teacher -- online play and coaching server
================================================
Serves the room-based real-time game channel (Socket.IO) and the
coaching / rating HTTP endpoints.

Usage:
    python play_online.py                          # 0.0.0.0:3000, Stockfish on PATH
    python play_online.py --port 8080
    python play_online.py --stockfish /usr/local/bin/stockfish --depth 16
    python play_online.py --no-stockfish           # heuristic coach only

Every option also has an environment variable (HOST, PORT,
STOCKFISH_PATH, STOCKFISH_DEPTH, STOCKFISH_ENABLED, PROFILE_PATH, ...).
"""

import argparse
import logging
import socket
from typing import List

from chessteacher.config import Settings
from chessteacher.web import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("chessteacher")


def lan_addresses() -> List[str]:
    """Non-loopback IPv4 addresses of this host."""
    addresses = set()
    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            addresses.add(info[4][0])
    except socket.gaierror:
        pass

    # Address of the interface holding the default route; no packet is sent
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("192.0.2.1", 80))
        addresses.add(sock.getsockname()[0])
    except OSError:
        pass
    finally:
        sock.close()

    return sorted(a for a in addresses if not a.startswith("127."))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description="Chess Teacher -- online play and coaching server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python play_online.py --port 8080\n"
            "  python play_online.py --stockfish ./stockfish --depth 16\n"
            "  python play_online.py --no-stockfish\n"
        ),
    )
    parser.add_argument("--host", default=None, help="Listen address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: $PORT or 3000)")
    parser.add_argument("--stockfish", default=None, help="Path to the Stockfish binary")
    parser.add_argument("--depth", type=int, default=None, help="Stockfish analysis depth")
    parser.add_argument("--no-stockfish", action="store_true",
                        help="Disable Stockfish; coach with the built-in heuristics only")
    parser.add_argument("--profiles", default=None, help="Path of the JSON profile store")
    args = parser.parse_args()

    settings = Settings.from_env()
    if args.host is not None:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    if args.stockfish is not None:
        settings.stockfish_path = args.stockfish
    if args.depth is not None:
        settings.stockfish_depth = args.depth
    if args.no_stockfish:
        settings.stockfish_enabled = False
    if args.profiles is not None:
        settings.profile_path = args.profiles

    app, socketio = create_app(settings)

    print("=" * 60)
    print("  Chess Teacher -- online server")
    print("=" * 60)
    if settings.stockfish_enabled:
        print(f"  Stockfish: {settings.stockfish_path} (depth {settings.stockfish_depth})")
    else:
        print("  Stockfish: disabled (heuristic coach)")
    print(f"  Profiles:  {settings.profile_path}")
    print(f"  Local:     http://localhost:{settings.port}")
    for address in lan_addresses():
        print(f"  LAN:       http://{address}:{settings.port}")
    print("  Press Ctrl+C to stop.")
    print("=" * 60)

    socketio.run(app, host=settings.host, port=settings.port,
                 use_reloader=False, allow_unsafe_werkzeug=True)


if __name__ == "__main__":
    main()
